"""Diagnostic schemas — LLM answer validation, pipeline results, API output.

The pipeline result is a tagged union discriminated by ``source``:

- ``ai``: the model answered with a usable JSON object
- ``ai_fallback``: the model answered, but nothing parseable came back
- ``rule_based``: the model call failed; insights come from the basic score
"""

import math
import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_AI_SCORE = 50.0


def _coerce_text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


class DiagnosticPayload(BaseModel):
    """Shape the model is asked to answer with; every field degrades on its own."""

    model_config = ConfigDict(extra="ignore")

    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    areas_focus: list[str] = Field(default_factory=list)
    score_intelligent: float = DEFAULT_AI_SCORE
    analysis_summary: str | None = None

    @field_validator("insights", "recommendations", "areas_focus", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> list[str]:
        return _coerce_text_list(v)

    @field_validator("score_intelligent", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            return DEFAULT_AI_SCORE
        return min(max(float(v), 0.0), 100.0)

    @field_validator("analysis_summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None


class _DiagnosticResultBase(BaseModel):
    insights: list[str]
    recommendations: list[str]
    areas_focus: list[str]
    score_intelligent: float = Field(..., ge=0, le=100)
    analysis_summary: str


class ParsedDiagnostic(_DiagnosticResultBase):
    source: Literal["ai"] = "ai"


class FallbackDiagnostic(_DiagnosticResultBase):
    source: Literal["ai_fallback"] = "ai_fallback"


DiagnosticResult = Annotated[
    Union[ParsedDiagnostic, FallbackDiagnostic],
    Field(discriminator="source"),
]


class RuleBasedInsights(BaseModel):
    """Category-keyed insights used when the model could not be reached."""

    recommendations: list[str]
    areas_for_improvement: list[str]


# ---------- Submission envelope ----------


class DiagnosticSummary(BaseModel):
    id: uuid.UUID
    score: float
    category: str
    insights: list[str]
    recommendations: list[str]
    areas_focus: list[str]


class SubmissionResult(BaseModel):
    message: str
    source: Literal["ai", "ai_fallback", "rule_based"]
    diagnostic: DiagnosticSummary
    responses: int
    completed_at: datetime


# ---------- Read API ----------


class QuestionnaireRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    type: str


class UserRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str


class DiagnosticOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    questionnaire_id: uuid.UUID
    status: str
    score_intelligent: float | None = None
    insights: list[Any] = Field(default_factory=list)
    recommendations: list[Any] = Field(default_factory=list)
    areas_focus: list[Any] = Field(default_factory=list)
    analysis_data: dict = Field(default_factory=dict)
    generated_at: datetime
    completed_at: datetime | None = None
    questionnaire: QuestionnaireRef | None = None


class DiagnosticAdminOut(DiagnosticOut):
    user: UserRef | None = None
