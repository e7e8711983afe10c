"""Diagnostic model — analyzed result of one questionnaire submission.

Lifecycle: created as ``processing`` on submission, moved to ``completed``
once either the LLM result or the rule-based fallback is available.
``failed`` is a valid value that the submission pipeline never sets.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.base import Base

DIAGNOSTIC_STATUSES = ("processing", "completed", "failed")


class Diagnostic(Base):
    __tablename__ = "diagnostics"
    __table_args__ = (
        UniqueConstraint("user_id", "questionnaire_id", name="uq_diagnostic_user_questionnaire"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    questionnaire_id = Column(
        Uuid, ForeignKey("questionnaires.id", ondelete="CASCADE"), nullable=False, index=True
    )

    status = Column(String(20), nullable=False, default="processing")
    score_intelligent = Column(Float, nullable=True)
    insights = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    areas_focus = Column(JSON, nullable=False, default=list)
    # basic_score, category, totalQuestions, answeredQuestions, ai_analysis | error
    analysis_data = Column(JSON, nullable=False, default=dict)

    generated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    completed_at = Column(DateTime(timezone=True), nullable=True)

    questionnaire = relationship("Questionnaire", lazy="joined")
    user = relationship("User", lazy="joined")
