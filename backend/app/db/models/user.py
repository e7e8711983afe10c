"""User model — account identity and role."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Uuid

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default="user")  # user, admin, master
    company_id = Column(String(255), nullable=True, index=True)
    # bcrypt hash; null for accounts that only ever authenticate with issued tokens
    password_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
