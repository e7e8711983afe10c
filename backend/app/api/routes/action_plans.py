"""Action plan API routes: CRUD, generation from a diagnostic and stats."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth import AuthUser, require_admin, require_auth
from app.db.base import get_session_factory
from app.llm.gateway import LLMGateway, get_gateway
from app.schemas.action_plans import ActionPlanCreate, ActionPlanOut, ActionPlanStats, ActionPlanUpdate
from app.services.action_plan_service import ActionPlanService, PlanFilters

router = APIRouter()


def plan_filters(
    status: list[str] | None = Query(None),
    category: list[str] | None = Query(None),
    priority: list[str] | None = Query(None),
    created_from: datetime | None = Query(None, alias="from"),
    created_to: datetime | None = Query(None, alias="to"),
    company_id: str | None = Query(None),
) -> PlanFilters:
    return PlanFilters(
        status=status or [],
        category=category or [],
        priority=priority or [],
        created_from=created_from,
        created_to=created_to,
        company_id=company_id,
    )


@router.get("", response_model=list[ActionPlanOut])
async def list_my_plans(
    filters: PlanFilters = Depends(plan_filters),
    user: AuthUser = Depends(require_auth),
):
    return await ActionPlanService(get_session_factory()).list_for_user(user.user_id, filters)


@router.post("", response_model=ActionPlanOut, status_code=201)
async def create_plan(payload: ActionPlanCreate, user: AuthUser = Depends(require_auth)):
    return await ActionPlanService(get_session_factory()).create(payload, user.user_id)


def diagnostic_query(
    diagnostic_id: uuid.UUID | None = Query(None, alias="diagnosticId"),
    snake_case_id: uuid.UUID | None = Query(None, alias="diagnostic_id"),
) -> uuid.UUID:
    """``?diagnosticId=``, with ``?diagnostic_id=`` still accepted."""
    chosen = diagnostic_id or snake_case_id
    if chosen is None:
        raise HTTPException(status_code=422, detail="diagnosticId is required")
    return chosen


@router.post("/generate", response_model=ActionPlanOut, status_code=201)
async def generate_plan(
    diagnostic_id: uuid.UUID = Depends(diagnostic_query),
    user: AuthUser = Depends(require_auth),
    gateway: LLMGateway = Depends(get_gateway),
):
    """Generate a plan from one of the caller's diagnostics (or return the existing one)."""
    return await ActionPlanService(get_session_factory(), gateway).generate_from_diagnostic(
        diagnostic_id, user.user_id
    )


@router.get("/stats", response_model=ActionPlanStats)
async def my_plan_stats(
    filters: PlanFilters = Depends(plan_filters),
    user: AuthUser = Depends(require_auth),
):
    """Stats over the caller's own plans; staff get the global view."""
    user_id = None if user.is_staff else user.user_id
    return await ActionPlanService(get_session_factory()).stats(user_id, filters)


@router.get("/admin/all", response_model=list[ActionPlanOut])
async def list_all_plans(
    filters: PlanFilters = Depends(plan_filters),
    user: AuthUser = Depends(require_admin),
):
    return await ActionPlanService(get_session_factory()).list_all(filters)


@router.get("/admin/{plan_id}", response_model=ActionPlanOut)
async def get_plan_admin(plan_id: uuid.UUID, user: AuthUser = Depends(require_admin)):
    return await ActionPlanService(get_session_factory()).get_admin(plan_id)


@router.get("/{plan_id}", response_model=ActionPlanOut)
async def get_plan(plan_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    return await ActionPlanService(get_session_factory()).get(plan_id, user.user_id)


@router.patch("/{plan_id}", response_model=ActionPlanOut)
async def update_plan(plan_id: uuid.UUID, payload: ActionPlanUpdate, user: AuthUser = Depends(require_auth)):
    return await ActionPlanService(get_session_factory()).update(plan_id, payload, user.user_id)


@router.delete("/{plan_id}")
async def delete_plan(plan_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    deleted = await ActionPlanService(get_session_factory()).delete(plan_id, user.user_id)
    return {"id": str(deleted)}
