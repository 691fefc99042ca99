# app/models/profile.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.rbac import Role
from app.models.base import Base, values_check


class Profile(Base):
    """A user of the system. Only what the lifecycle engine needs to look up."""

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint(values_check("role", Role), name="ck_profiles_role_allowed"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)

    # NULL for factory staff and admins
    company_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
