"""Questionnaire, question and option models.

A questionnaire owns its questions, and each question owns its options.
Questions and options load eagerly (selectin) because every consumer of a
questionnaire (prompt building, answer validation, API output) needs them.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.db.base import Base


class Questionnaire(Base):
    __tablename__ = "questionnaires"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False)  # e.g. "wellness", "clima", "lideranca"
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    questions = relationship(
        "QuestionnaireQuestion",
        back_populates="questionnaire",
        cascade="all, delete-orphan",
        order_by="QuestionnaireQuestion.order",
        lazy="selectin",
    )


class QuestionnaireQuestion(Base):
    __tablename__ = "questionnaire_questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    questionnaire_id = Column(
        Uuid, ForeignKey("questionnaires.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question = Column(Text, nullable=False)
    type = Column(String(30), nullable=False)  # scale, multiple_choice, text, yes_no
    order = Column(Integer, nullable=False, default=0)
    required = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    questionnaire = relationship("Questionnaire", back_populates="questions")
    options = relationship(
        "QuestionnaireOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionnaireOption.order",
        lazy="selectin",
    )


class QuestionnaireOption(Base):
    __tablename__ = "questionnaire_options"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(
        Uuid, ForeignKey("questionnaire_questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    value = Column(String(255), nullable=False)
    label = Column(String(255), nullable=False)
    score = Column(Integer, nullable=False, default=1)
    order = Column(Integer, nullable=False, default=0)

    question = relationship("QuestionnaireQuestion", back_populates="options")
