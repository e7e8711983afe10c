"""QuestionnaireResponse model — one row per (user, question) answer."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Text, UniqueConstraint, Uuid

from app.db.base import Base


class QuestionnaireResponse(Base):
    __tablename__ = "questionnaire_responses"
    # A user answers each question once; closes the respond() race at the storage layer
    __table_args__ = (UniqueConstraint("user_id", "question_id", name="uq_response_user_question"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    questionnaire_id = Column(
        Uuid, ForeignKey("questionnaires.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id = Column(
        Uuid, ForeignKey("questionnaire_questions.id", ondelete="CASCADE"), nullable=False
    )
    response = Column(Text, nullable=False)
    score = Column(Float, nullable=True)  # only set for numeric scale answers

    completed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
