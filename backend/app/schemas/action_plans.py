"""Action plan Pydantic schemas for LLM drafts, API requests and responses."""

import math
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Ten years; keeps generated due dates well inside datetime's range
MAX_DUE_IN_DAYS = 3650

PlanCategory = Literal["leadership", "wellness", "development", "performance", "career"]
PlanStatus = Literal["rascunho", "em_andamento", "pausado", "concluido", "cancelado"]
Priority = Literal["baixa", "media", "alta"]
GoalStatus = Literal["pendente", "em_andamento", "andamento", "concluida", "cancelada"]


# ---------- LLM draft ----------


class PlanTaskDraft(BaseModel):
    """One task from the model's ``tarefas`` list; any field may be missing."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    description: str | None = Field(None, alias="descricao")
    priority: str | None = Field(None, alias="prioridade")
    area: str | None = None
    due_in_days: int | None = Field(None, alias="prazoDias")

    @field_validator("description", "priority", "area", mode="before")
    @classmethod
    def text_or_none(cls, v: Any) -> str | None:
        return v if isinstance(v, str) and v.strip() else None

    @field_validator("due_in_days", mode="before")
    @classmethod
    def numeric_or_none(cls, v: Any) -> int | None:
        """Non-numbers, NaN and infinities count as missing; the rest is clamped."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        if isinstance(v, float) and not math.isfinite(v):
            return None
        return max(-MAX_DUE_IN_DAYS, min(MAX_DUE_IN_DAYS, int(v)))


class ActionPlanDraft(BaseModel):
    """The model's action-plan answer. Title, description and task list are required."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str = Field(..., alias="titulo", min_length=1)
    description: str = Field(..., alias="descricao", min_length=1)
    tasks: list[PlanTaskDraft] = Field(..., alias="tarefas")

    @field_validator("tasks", mode="before")
    @classmethod
    def tasks_from_items(cls, v: Any) -> Any:
        """Keep object items, wrap bare strings; a non-list is left for validation to reject."""
        if not isinstance(v, list):
            return v
        tasks = []
        for item in v:
            if isinstance(item, dict):
                tasks.append(item)
            elif isinstance(item, str) and item.strip():
                tasks.append({"descricao": item})
        return tasks


# ---------- Goals ----------


class GoalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: GoalStatus = "pendente"
    priority: Priority = "media"
    progress: int = Field(0, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None


class GoalUpsert(BaseModel):
    """Goal entry in a plan update: with a known ``id`` it updates, otherwise it creates."""

    id: uuid.UUID | None = None
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: GoalStatus | None = None
    priority: Priority | None = None
    progress: int | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None


class GoalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action_plan_id: uuid.UUID
    title: str
    description: str | None = None
    status: str
    priority: str
    progress: int
    start_date: datetime | None = None
    due_date: datetime | None = None
    created_at: datetime
    updated_at: datetime


# ---------- Plans ----------


class ActionPlanCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: PlanCategory
    status: PlanStatus = "rascunho"
    priority: Priority = "media"
    progress: int = Field(0, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None
    diagnostic_id: uuid.UUID | None = None
    goals: list[GoalCreate] = Field(default_factory=list)


class ActionPlanUpdate(BaseModel):
    """Partial update. ``goals`` (when present) is the complete desired goal set."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: PlanCategory | None = None
    status: PlanStatus | None = None
    priority: Priority | None = None
    progress: int | None = Field(None, ge=0, le=100)
    start_date: datetime | None = None
    due_date: datetime | None = None
    diagnostic_id: uuid.UUID | None = None
    goals: list[GoalUpsert] | None = None

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "ActionPlanUpdate":
        """Omitting a field leaves it alone; sending null for a required one is an error."""
        nulled = [
            name
            for name in ("title", "category", "status", "priority", "progress")
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"Campos não podem ser nulos: {', '.join(nulled)}")
        return self


class ActionPlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    diagnostic_id: uuid.UUID | None = None
    title: str
    description: str | None = None
    category: str
    status: str
    priority: str
    progress: int
    start_date: datetime | None = None
    due_date: datetime | None = None
    created_at: datetime
    updated_at: datetime
    goals: list[GoalOut] = Field(default_factory=list)


# ---------- Stats ----------


class PlanSummaryStats(BaseModel):
    total: int = 0
    active: int = 0
    completed: int = 0
    overdue: int = 0
    cancelled: int = 0


class ProgressStats(BaseModel):
    avg_plan_progress: float = 0.0
    avg_goal_progress: float = 0.0


class GoalStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    overdue: int = 0


class Bucket(BaseModel):
    key: str
    count: int


class DistributionStats(BaseModel):
    by_status: list[Bucket] = Field(default_factory=list)
    by_category: list[Bucket] = Field(default_factory=list)
    by_priority: list[Bucket] = Field(default_factory=list)


class ActionPlanStats(BaseModel):
    summary: PlanSummaryStats
    progress: ProgressStats
    goals: GoalStats
    distribution: DistributionStats
