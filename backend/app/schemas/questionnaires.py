"""Questionnaire Pydantic schemas — authoring, answering and public scoring."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

QuestionType = Literal["scale", "multiple_choice", "text", "yes_no"]


class OptionIn(BaseModel):
    value: str = Field(..., min_length=1, max_length=255)
    label: str = Field(..., min_length=1, max_length=255)
    score: int = 1
    order: int = 0


class QuestionIn(BaseModel):
    question: str = Field(..., min_length=1)
    type: QuestionType
    order: int = 0
    required: bool = True
    is_active: bool = True
    options: list[OptionIn] = Field(default_factory=list)


class QuestionnaireCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    description: str | None = None
    type: str = Field(..., min_length=1, max_length=50)
    is_active: bool = True
    questions: list[QuestionIn] = Field(default_factory=list)


class QuestionnaireUpdate(BaseModel):
    """Partial update. A non-null ``questions`` list replaces every question."""

    title: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = None
    type: str | None = Field(None, min_length=1, max_length=50)
    is_active: bool | None = None
    questions: list[QuestionIn] | None = None


class OptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    value: str
    label: str
    score: int
    order: int


class QuestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    question: str
    type: str
    order: int
    required: bool
    is_active: bool
    options: list[OptionOut] = Field(default_factory=list)


class QuestionnaireOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None = None
    type: str
    is_active: bool
    created_by: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime
    questions: list[QuestionOut] = Field(default_factory=list)
    response_count: int = 0


class ResponseSubmission(BaseModel):
    """Answers keyed by question id: ``{"<question_id>": "<answer>"}``."""

    questionnaire_id: str | None = None  # redundant with the URL, accepted for compatibility
    responses: dict[str, str]

    @field_validator("responses", mode="before")
    @classmethod
    def stringify_answers(cls, v):
        """Numeric answers arrive as JSON numbers from some clients."""
        if isinstance(v, dict):
            return {
                str(k): (str(val) if isinstance(val, (int, float)) and not isinstance(val, bool) else val)
                for k, val in v.items()
            }
        return v


class ResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    questionnaire_id: uuid.UUID
    question_id: uuid.UUID
    response: str
    score: float | None = None
    completed_at: datetime


class QuestionnaireStatistics(BaseModel):
    total_responses: int
    average_score: float
    unique_respondents: int
    questionnaires_answered: int


class PublicTempData(BaseModel):
    """What the client keeps locally and later posts to ``/transfer``."""

    questionnaire_id: uuid.UUID
    answers: dict[str, str]
    score: int
    category: str
    completed_at: datetime


class PublicQuestionnaireRef(BaseModel):
    id: uuid.UUID
    title: str
    type: str


class PublicScoreResult(BaseModel):
    message: str
    score: int
    category: str
    questionnaire: PublicQuestionnaireRef
    responses: int
    completed_at: datetime
    temp_data: PublicTempData
