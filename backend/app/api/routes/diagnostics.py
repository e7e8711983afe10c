"""Diagnostic read API routes."""

import uuid

from fastapi import APIRouter, Depends

from app.core.auth import AuthUser, require_admin, require_auth
from app.db.base import get_session_factory
from app.schemas.diagnostics import DiagnosticAdminOut, DiagnosticOut
from app.services.diagnostic_service import DiagnosticService

router = APIRouter()


@router.get("", response_model=list[DiagnosticOut])
async def list_my_diagnostics(user: AuthUser = Depends(require_auth)):
    return await DiagnosticService(get_session_factory()).list_for_user(user.user_id)


@router.get("/admin/all", response_model=list[DiagnosticAdminOut])
async def list_all_diagnostics(user: AuthUser = Depends(require_admin)):
    return await DiagnosticService(get_session_factory()).list_all()


@router.get("/admin/{diagnostic_id}", response_model=DiagnosticAdminOut)
async def get_diagnostic_admin(diagnostic_id: uuid.UUID, user: AuthUser = Depends(require_admin)):
    return await DiagnosticService(get_session_factory()).get(diagnostic_id)


@router.get("/{diagnostic_id}", response_model=DiagnosticOut)
async def get_my_diagnostic(diagnostic_id: uuid.UUID, user: AuthUser = Depends(require_auth)):
    return await DiagnosticService(get_session_factory()).get_for_user(diagnostic_id, user.user_id)
