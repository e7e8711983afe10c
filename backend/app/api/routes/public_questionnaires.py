"""Unauthenticated questionnaire routes for visitors who have not signed up yet."""

import uuid

from fastapi import APIRouter

from app.core.exceptions import NotFoundError
from app.db.base import get_session_factory
from app.schemas.questionnaires import PublicScoreResult, QuestionnaireOut, ResponseSubmission
from app.services.questionnaire_service import QuestionnaireService

router = APIRouter()


@router.get("/active", response_model=QuestionnaireOut | None)
async def public_active_questionnaire():
    """The active questionnaire, or ``null`` when none is active."""
    try:
        return await QuestionnaireService(get_session_factory()).get_active()
    except NotFoundError:
        return None


@router.post("/{questionnaire_id}/respond", response_model=PublicScoreResult)
async def public_respond(questionnaire_id: uuid.UUID, payload: ResponseSubmission):
    """Score answers without saving them; the client keeps ``temp_data`` for ``/transfer``."""
    return await QuestionnaireService(get_session_factory()).public_score(questionnaire_id, payload.responses)
