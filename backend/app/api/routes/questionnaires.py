"""Questionnaire API routes: management, answers and the submission pipeline."""

import uuid

from fastapi import APIRouter, Depends, Query

from app.core.auth import AuthUser, require_admin, require_auth, require_master
from app.db.base import get_session_factory
from app.llm.gateway import LLMGateway, get_gateway
from app.schemas.diagnostics import SubmissionResult
from app.schemas.questionnaires import (
    QuestionnaireCreate,
    QuestionnaireOut,
    QuestionnaireStatistics,
    QuestionnaireUpdate,
    ResponseOut,
    ResponseSubmission,
)
from app.services.questionnaire_service import QuestionnaireService

router = APIRouter()


def _service(gateway: LLMGateway | None = None) -> QuestionnaireService:
    return QuestionnaireService(get_session_factory(), gateway)


@router.post("", response_model=QuestionnaireOut, status_code=201)
async def create_questionnaire(payload: QuestionnaireCreate, user: AuthUser = Depends(require_admin)):
    return await _service().create(payload, user.user_id)


@router.get("", response_model=list[QuestionnaireOut])
async def list_questionnaires(
    type: str | None = Query(None),
    user: AuthUser = Depends(require_auth),
):
    """Masters see every questionnaire; everyone else only active ones."""
    return await _service().list_for_role(user.role, type)


@router.get("/statistics", response_model=QuestionnaireStatistics)
async def questionnaire_statistics(
    questionnaire_id: uuid.UUID | None = Query(None),
    user: AuthUser = Depends(require_admin),
):
    return await _service().statistics(questionnaire_id)


@router.get("/active", response_model=QuestionnaireOut)
async def active_questionnaire(user: AuthUser = Depends(require_auth)):
    return await _service().get_active()


@router.get("/my-responses", response_model=list[ResponseOut])
async def my_responses(user: AuthUser = Depends(require_auth)):
    return await _service().user_responses(user.user_id)


@router.get("/{questionnaire_id}", response_model=QuestionnaireOut)
async def get_questionnaire(questionnaire_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    return await _service().get(questionnaire_id)


@router.put("/{questionnaire_id}", response_model=QuestionnaireOut)
async def update_questionnaire(
    questionnaire_id: uuid.UUID,
    payload: QuestionnaireUpdate,
    user: AuthUser = Depends(require_admin),
):
    return await _service().update(questionnaire_id, payload, user.user_id, user.role)


@router.delete("/{questionnaire_id}")
async def delete_questionnaire(questionnaire_id: uuid.UUID, user: AuthUser = Depends(require_master)):
    await _service().delete(questionnaire_id, user.role)
    return {"message": "Questionário deletado com sucesso"}


@router.patch("/{questionnaire_id}/toggle-active", response_model=QuestionnaireOut)
async def toggle_questionnaire(questionnaire_id: uuid.UUID, user: AuthUser = Depends(require_admin)):
    return await _service().toggle_active(questionnaire_id, user.user_id, user.role)


@router.get("/{questionnaire_id}/responses", response_model=list[ResponseOut])
async def questionnaire_responses(questionnaire_id: uuid.UUID, user: AuthUser = Depends(require_admin)):
    return await _service().questionnaire_responses(questionnaire_id, user.role)


@router.post("/{questionnaire_id}/respond", response_model=SubmissionResult, status_code=201)
async def respond_questionnaire(
    questionnaire_id: uuid.UUID,
    payload: ResponseSubmission,
    user: AuthUser = Depends(require_auth),
    gateway: LLMGateway = Depends(get_gateway),
):
    """Submit answers once. A second submission is rejected with 403."""
    return await _service(gateway).respond(questionnaire_id, payload.responses, user.user_id)


@router.post("/{questionnaire_id}/transfer", response_model=SubmissionResult, status_code=201)
async def transfer_questionnaire(
    questionnaire_id: uuid.UUID,
    payload: ResponseSubmission,
    user: AuthUser = Depends(require_auth),
    gateway: LLMGateway = Depends(get_gateway),
):
    """Replace any earlier submission with answers collected before signup."""
    return await _service(gateway).transfer(questionnaire_id, payload.responses, user.user_id)
