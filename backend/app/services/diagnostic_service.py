"""DiagnosticService — read access to stored diagnostics."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import NotFoundError
from app.db.models.diagnostic import Diagnostic


class DiagnosticService:
    """Owner and staff views over diagnostics, newest first."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_for_user(self, user_id: uuid.UUID) -> list[Diagnostic]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Diagnostic).where(Diagnostic.user_id == user_id).order_by(Diagnostic.generated_at.desc())
            )
            return list(result.scalars().all())

    async def get_for_user(self, diagnostic_id: uuid.UUID, user_id: uuid.UUID) -> Diagnostic:
        """Someone else's diagnostic is reported as missing, not forbidden."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Diagnostic).where(Diagnostic.id == diagnostic_id, Diagnostic.user_id == user_id)
            )
            diagnostic = result.scalar_one_or_none()
        if diagnostic is None:
            raise NotFoundError("Diagnóstico não encontrado")
        return diagnostic

    async def list_all(self) -> list[Diagnostic]:
        async with self.session_factory() as session:
            result = await session.execute(select(Diagnostic).order_by(Diagnostic.generated_at.desc()))
            return list(result.scalars().all())

    async def get(self, diagnostic_id: uuid.UUID) -> Diagnostic:
        async with self.session_factory() as session:
            diagnostic = await session.get(Diagnostic, diagnostic_id)
        if diagnostic is None:
            raise NotFoundError("Diagnóstico não encontrado")
        return diagnostic
