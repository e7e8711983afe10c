"""ActionPlanService — action plan CRUD, goal reconciliation, stats and LLM generation.

Generation turns a completed diagnostic into a draft plan with at least one
goal. It is idempotent per (diagnostic, user): the first plan wins, at the
storage layer too, so concurrent callers converge on the same row.
"""

import unicodedata
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import (
    ActionPlanGenerationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from app.db.models.action_plan import ActionPlan, Goal
from app.db.models.diagnostic import Diagnostic
from app.db.models.user import User
from app.llm.gateway import LLMGateway
from app.llm.helpers import extract_json_object
from app.llm.prompts import build_action_plan_context, build_action_plan_prompt
from app.schemas.action_plans import (
    ActionPlanCreate,
    ActionPlanDraft,
    ActionPlanStats,
    ActionPlanUpdate,
    Bucket,
    DistributionStats,
    GoalCreate,
    GoalStats,
    GoalUpsert,
    PlanSummaryStats,
    ProgressStats,
)

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "wellness"
DEFAULT_PRIORITY = "media"
DEFAULT_GOAL_DAYS = 7
MIN_PLAN_DAYS = 30
GOAL_TITLE_PREVIEW = 60

INITIAL_GOAL_TITLE = "Revisar diagnóstico e definir metas iniciais"
INITIAL_GOAL_DESCRIPTION = "Analisar os resultados do diagnóstico e estabelecer metas iniciais de tratamento"

# Accent-free, lower-cased area/priority text -> stored value
_CATEGORY_ALIASES = {
    "leadership": "leadership",
    "lideranca": "leadership",
    "wellness": "wellness",
    "bem-estar": "wellness",
    "bem estar": "wellness",
    "development": "development",
    "desenvolvimento": "development",
    "performance": "performance",
    "desempenho": "performance",
    "career": "career",
    "carreira": "career",
}
_PRIORITY_ALIASES = {
    "baixa": "baixa",
    "low": "baixa",
    "media": "media",
    "medium": "media",
    "alta": "alta",
    "high": "alta",
}

ACTIVE_PLAN_STATUS = "em_andamento"
COMPLETED_PLAN_STATUS = "concluido"
CANCELLED_PLAN_STATUS = "cancelado"
COMPLETED_GOAL_STATUS = "concluida"
IN_PROGRESS_GOAL_STATUSES = ("em_andamento", "andamento")
PENDING_GOAL_STATUS = "pendente"


def _normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def map_category(area: str | None) -> str:
    if not area:
        return DEFAULT_CATEGORY
    return _CATEGORY_ALIASES.get(_normalize(area), DEFAULT_CATEGORY)


def map_priority(priority: str | None) -> str:
    if not priority:
        return DEFAULT_PRIORITY
    return _PRIORITY_ALIASES.get(_normalize(priority), DEFAULT_PRIORITY)


def goal_title(index: int, description: str | None) -> str:
    """``Meta N: <first 60 chars>`` with an ellipsis when the description was cut."""
    if not description:
        return f"Meta {index}: Nova meta"
    suffix = "..." if len(description) > GOAL_TITLE_PREVIEW else ""
    return f"Meta {index}: {description[:GOAL_TITLE_PREVIEW]}{suffix}"


@dataclass
class PlanFilters:
    """Optional filters shared by plan listings and stats."""

    status: list[str] = field(default_factory=list)
    category: list[str] = field(default_factory=list)
    priority: list[str] = field(default_factory=list)
    created_from: datetime | None = None
    created_to: datetime | None = None
    company_id: str | None = None

    def conditions(self) -> list:
        conds = []
        if self.status:
            conds.append(ActionPlan.status.in_(self.status))
        if self.category:
            conds.append(ActionPlan.category.in_(self.category))
        if self.priority:
            conds.append(ActionPlan.priority.in_(self.priority))
        if self.created_from is not None:
            conds.append(ActionPlan.created_at >= self.created_from)
        if self.created_to is not None:
            conds.append(ActionPlan.created_at <= self.created_to)
        if self.company_id:
            conds.append(ActionPlan.user_id.in_(select(User.id).where(User.company_id == self.company_id)))
        return conds


class ActionPlanService:
    """Service layer for action plans and their goals.

    The gateway is only needed for ``generate_from_diagnostic``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: LLMGateway | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway

    # ---------- reads ----------

    async def list_for_user(self, user_id: uuid.UUID, filters: PlanFilters | None = None) -> list[ActionPlan]:
        filters = filters or PlanFilters()
        async with self.session_factory() as session:
            result = await session.execute(
                select(ActionPlan)
                .where(ActionPlan.user_id == user_id, *filters.conditions())
                .order_by(ActionPlan.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_all(self, filters: PlanFilters | None = None) -> list[ActionPlan]:
        filters = filters or PlanFilters()
        async with self.session_factory() as session:
            result = await session.execute(
                select(ActionPlan).where(*filters.conditions()).order_by(ActionPlan.created_at.desc())
            )
            return list(result.scalars().all())

    async def get(self, plan_id: uuid.UUID, user_id: uuid.UUID) -> ActionPlan:
        """Fetch a plan owned by ``user_id``.

        Raises:
            NotFoundError: no such plan
            PermissionDeniedError: the plan belongs to someone else
        """
        async with self.session_factory() as session:
            return await self._get_owned(session, plan_id, user_id)

    async def get_admin(self, plan_id: uuid.UUID) -> ActionPlan:
        async with self.session_factory() as session:
            plan = await session.get(ActionPlan, plan_id)
            if plan is None:
                raise NotFoundError(f'Action plan with ID "{plan_id}" not found')
            return plan

    # ---------- writes ----------

    async def create(self, payload: ActionPlanCreate, user_id: uuid.UUID) -> ActionPlan:
        """Create a plan, then its goals, as two sequential commits.

        Raises:
            NotFoundError: ``diagnostic_id`` does not name one of the user's diagnostics
            ValidationError: the diagnostic already has a plan for this user
        """
        if payload.diagnostic_id is not None:
            await self._check_diagnostic(payload.diagnostic_id, user_id)
        try:
            return await self._insert(payload, user_id)
        except IntegrityError:
            raise ValidationError("Já existe um plano de ação para este diagnóstico")

    async def update(self, plan_id: uuid.UUID, payload: ActionPlanUpdate, user_id: uuid.UUID) -> ActionPlan:
        """Apply a partial update; a ``goals`` list replaces the goal set.

        Goals whose id is not supplied are deleted, supplied known ids are
        updated in full, everything else is created. Deletes, updates,
        creates and the plan's own fields commit together or not at all.
        """
        fields = payload.model_dump(exclude_unset=True, exclude={"goals"})
        if fields.get("diagnostic_id") is not None:
            await self._check_diagnostic(fields["diagnostic_id"], user_id)

        async with self.session_factory() as session:
            plan = await self._get_owned(session, plan_id, user_id, action="modify")

            try:
                if payload.goals is not None:
                    self._reconcile_goals(plan, payload.goals)
                for name, value in fields.items():
                    setattr(plan, name, value)
                plan.updated_at = datetime.now(timezone.utc)
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                logger.error("goal_reconciliation_failed", plan_id=str(plan_id), exc_info=True)
                raise

            return await self._load(session, plan.id)

    async def delete(self, plan_id: uuid.UUID, user_id: uuid.UUID) -> uuid.UUID:
        async with self.session_factory() as session:
            plan = await self._get_owned(session, plan_id, user_id, action="modify")
            await session.delete(plan)
            await session.commit()
        logger.info("action_plan_deleted", plan_id=str(plan_id), user_id=str(user_id))
        return plan_id

    # ---------- generation ----------

    async def generate_from_diagnostic(self, diagnostic_id: uuid.UUID, user_id: uuid.UUID) -> ActionPlan:
        """Generate (or return the existing) plan for a diagnostic.

        Raises:
            NotFoundError: the diagnostic does not exist
            PermissionDeniedError: the diagnostic belongs to someone else
            LLMGatewayError: no model answered
            ActionPlanGenerationError: the answer is not a usable plan
        """
        existing = await self._find_generated(diagnostic_id, user_id)
        if existing is not None:
            logger.info("action_plan_exists", diagnostic_id=str(diagnostic_id), plan_id=str(existing.id))
            return existing

        if self.gateway is None:
            raise RuntimeError("ActionPlanService needs an LLM gateway to generate plans")

        async with self.session_factory() as session:
            diagnostic = await session.get(Diagnostic, diagnostic_id)
            if diagnostic is None:
                raise NotFoundError("Diagnóstico não encontrado")
            if diagnostic.user_id != user_id:
                raise PermissionDeniedError("Você não tem permissão para usar este diagnóstico")
            context = build_action_plan_context(diagnostic)

        text = await self.gateway.analyze(build_action_plan_prompt(context))
        payload = self.build_plan(parse_action_plan(text), diagnostic_id)

        try:
            plan = await self._insert(payload, user_id)
        except IntegrityError:
            # Lost a race with another generator for the same diagnostic
            existing = await self._find_generated(diagnostic_id, user_id)
            if existing is None:
                raise
            return existing

        logger.info(
            "action_plan_generated",
            plan_id=str(plan.id),
            diagnostic_id=str(diagnostic_id),
            goals=len(plan.goals),
            category=plan.category,
        )
        return plan

    @staticmethod
    def build_plan(draft: ActionPlanDraft, diagnostic_id: uuid.UUID, now: datetime | None = None) -> ActionPlanCreate:
        """Normalize an LLM draft into a plan payload with at least one goal."""
        now = now or datetime.now(timezone.utc)
        first = draft.tasks[0] if draft.tasks else None

        goals = []
        goal_days = []
        for index, task in enumerate(draft.tasks, start=1):
            days = task.due_in_days if task.due_in_days is not None else DEFAULT_GOAL_DAYS
            goal_days.append(days)
            goals.append(
                GoalCreate(
                    title=goal_title(index, task.description),
                    description=task.description or "Descrição não fornecida",
                    status="pendente",
                    priority=map_priority(task.priority),
                    due_date=now + timedelta(days=days),
                )
            )

        if not goals:
            goal_days.append(DEFAULT_GOAL_DAYS)
            goals.append(
                GoalCreate(
                    title=INITIAL_GOAL_TITLE,
                    description=INITIAL_GOAL_DESCRIPTION,
                    status="pendente",
                    priority="alta",
                    due_date=now + timedelta(days=DEFAULT_GOAL_DAYS),
                )
            )

        return ActionPlanCreate(
            title=draft.title[:255],
            description=draft.description,
            category=map_category(first.area if first else None),
            status="rascunho",
            priority=map_priority(first.priority if first else None),
            progress=0,
            start_date=now,
            due_date=now + timedelta(days=max(goal_days + [MIN_PLAN_DAYS])),
            diagnostic_id=diagnostic_id,
            goals=goals,
        )

    # ---------- stats ----------

    async def stats(self, user_id: uuid.UUID | None = None, filters: PlanFilters | None = None) -> ActionPlanStats:
        """Plan and goal aggregates, scoped to ``user_id`` when given."""
        filters = filters or PlanFilters()
        conds = filters.conditions()
        if user_id is not None:
            conds.append(ActionPlan.user_id == user_id)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            by_status = await self._buckets(session, ActionPlan.status, conds)
            by_category = await self._buckets(session, ActionPlan.category, conds)
            by_priority = await self._buckets(session, ActionPlan.priority, conds)

            plan_overdue = await session.scalar(
                select(func.count(ActionPlan.id)).where(
                    *conds,
                    ActionPlan.due_date < now,
                    ActionPlan.status != COMPLETED_PLAN_STATUS,
                )
            )
            avg_plan_progress = await session.scalar(select(func.avg(ActionPlan.progress)).where(*conds))

            goal_rows = await session.execute(
                select(Goal.status, func.count(Goal.id))
                .join(ActionPlan, Goal.action_plan_id == ActionPlan.id)
                .where(*conds)
                .group_by(Goal.status)
            )
            goals_by_status = {status: count for status, count in goal_rows.all()}
            goal_overdue = await session.scalar(
                select(func.count(Goal.id))
                .join(ActionPlan, Goal.action_plan_id == ActionPlan.id)
                .where(*conds, Goal.due_date < now, Goal.status != COMPLETED_GOAL_STATUS)
            )
            avg_goal_progress = await session.scalar(
                select(func.avg(Goal.progress)).join(ActionPlan, Goal.action_plan_id == ActionPlan.id).where(*conds)
            )

        plan_counts = {bucket.key: bucket.count for bucket in by_status}
        return ActionPlanStats(
            summary=PlanSummaryStats(
                total=sum(plan_counts.values()),
                active=plan_counts.get(ACTIVE_PLAN_STATUS, 0),
                completed=plan_counts.get(COMPLETED_PLAN_STATUS, 0),
                overdue=plan_overdue or 0,
                cancelled=plan_counts.get(CANCELLED_PLAN_STATUS, 0),
            ),
            progress=ProgressStats(
                avg_plan_progress=float(avg_plan_progress or 0),
                avg_goal_progress=float(avg_goal_progress or 0),
            ),
            goals=GoalStats(
                total=sum(goals_by_status.values()),
                completed=goals_by_status.get(COMPLETED_GOAL_STATUS, 0),
                in_progress=sum(goals_by_status.get(s, 0) for s in IN_PROGRESS_GOAL_STATUSES),
                pending=goals_by_status.get(PENDING_GOAL_STATUS, 0),
                overdue=goal_overdue or 0,
            ),
            distribution=DistributionStats(
                by_status=by_status,
                by_category=by_category,
                by_priority=by_priority,
            ),
        )

    # ---------- internals ----------

    @staticmethod
    async def _buckets(session: AsyncSession, column, conds: list) -> list[Bucket]:
        result = await session.execute(
            select(column, func.count(ActionPlan.id)).where(*conds).group_by(column).order_by(column)
        )
        return [Bucket(key=str(key), count=count) for key, count in result.all()]

    async def _insert(self, payload: ActionPlanCreate, user_id: uuid.UUID) -> ActionPlan:
        async with self.session_factory() as session:
            plan = ActionPlan(
                user_id=user_id,
                diagnostic_id=payload.diagnostic_id,
                title=payload.title,
                description=payload.description,
                category=payload.category,
                status=payload.status,
                priority=payload.priority,
                progress=payload.progress,
                start_date=payload.start_date,
                due_date=payload.due_date,
            )
            session.add(plan)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise

            if payload.goals:
                session.add_all(
                    [Goal(action_plan_id=plan.id, **goal.model_dump()) for goal in payload.goals]
                )
                await session.commit()

            return await self._load(session, plan.id)

    @staticmethod
    async def _load(session: AsyncSession, plan_id: uuid.UUID) -> ActionPlan:
        result = await session.execute(
            select(ActionPlan).where(ActionPlan.id == plan_id).execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _find_generated(self, diagnostic_id: uuid.UUID, user_id: uuid.UUID) -> ActionPlan | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ActionPlan).where(
                    ActionPlan.diagnostic_id == diagnostic_id,
                    ActionPlan.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def _check_diagnostic(self, diagnostic_id: uuid.UUID, user_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            owner = await session.scalar(select(Diagnostic.user_id).where(Diagnostic.id == diagnostic_id))
        if owner is None or owner != user_id:
            raise NotFoundError("Diagnóstico não encontrado")

    @staticmethod
    async def _get_owned(
        session: AsyncSession, plan_id: uuid.UUID, user_id: uuid.UUID, action: str = "access"
    ) -> ActionPlan:
        plan = await session.get(ActionPlan, plan_id)
        if plan is None:
            raise NotFoundError(f'Action plan with ID "{plan_id}" not found')
        if plan.user_id != user_id:
            raise PermissionDeniedError(f"You do not have permission to {action} this action plan")
        return plan

    @staticmethod
    def _reconcile_goals(plan: ActionPlan, supplied: list[GoalUpsert]) -> None:
        """Diff ``supplied`` against ``plan.goals`` and stage the changes on the session."""
        existing = {goal.id: goal for goal in plan.goals}
        supplied_ids = {g.id for g in supplied if g.id is not None}

        to_delete = [goal for goal_id, goal in existing.items() if goal_id not in supplied_ids]
        to_update = [g for g in supplied if g.id is not None and g.id in existing]
        to_create = [g for g in supplied if g.id is None or g.id not in existing]

        missing_title = [g for g in to_create if not g.title]
        if missing_title:
            raise ValidationError("Novas metas precisam de um título")

        for goal in to_delete:
            plan.goals.remove(goal)

        now = datetime.now(timezone.utc)
        for data in to_update:
            goal = existing[data.id]
            if data.title:
                goal.title = data.title
            goal.description = data.description
            goal.status = data.status or "pendente"
            goal.priority = data.priority or DEFAULT_PRIORITY
            goal.progress = data.progress if data.progress is not None else 0
            goal.start_date = data.start_date
            goal.due_date = data.due_date
            goal.updated_at = now

        for data in to_create:
            plan.goals.append(
                Goal(
                    title=data.title,
                    description=data.description,
                    status=data.status or "pendente",
                    priority=data.priority or DEFAULT_PRIORITY,
                    progress=data.progress if data.progress is not None else 0,
                    start_date=data.start_date,
                    due_date=data.due_date,
                )
            )

        logger.info(
            "goals_reconciled",
            plan_id=str(plan.id),
            deleted=len(to_delete),
            updated=len(to_update),
            created=len(to_create),
        )


def parse_action_plan(text: str) -> ActionPlanDraft:
    """Extract and validate the plan object from a raw model answer.

    Raises:
        ActionPlanGenerationError: no JSON object, or title/description/tasks missing
    """
    data = extract_json_object(text)
    if data is None:
        raise ActionPlanGenerationError("Resposta da IA não contém um plano de ação em JSON")
    try:
        return ActionPlanDraft.model_validate(data)
    except PydanticValidationError as exc:
        missing = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
        raise ActionPlanGenerationError(f"Plano de ação gerado é inválido: {missing}") from exc
