"""ActionPlan and Goal models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.base import Base

PLAN_CATEGORIES = ("leadership", "wellness", "development", "performance", "career")
PLAN_STATUSES = ("rascunho", "em_andamento", "pausado", "concluido", "cancelado")
PRIORITIES = ("baixa", "media", "alta")
GOAL_STATUSES = ("pendente", "em_andamento", "andamento", "concluida", "cancelada")


class ActionPlan(Base):
    __tablename__ = "action_plans"
    # At most one generated plan per (user, diagnostic); NULL diagnostic_id rows are unconstrained
    __table_args__ = (UniqueConstraint("user_id", "diagnostic_id", name="uq_action_plan_user_diagnostic"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    diagnostic_id = Column(Uuid, ForeignKey("diagnostics.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=False, default="wellness")
    status = Column(String(30), nullable=False, default="rascunho")
    priority = Column(String(10), nullable=False, default="media")
    progress = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    goals = relationship(
        "Goal",
        back_populates="action_plan",
        cascade="all, delete-orphan",
        order_by="Goal.created_at",
        lazy="selectin",
    )


class Goal(Base):
    __tablename__ = "goals"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action_plan_id = Column(Uuid, ForeignKey("action_plans.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pendente")
    priority = Column(String(10), nullable=False, default="media")
    progress = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    action_plan = relationship("ActionPlan", back_populates="goals")
