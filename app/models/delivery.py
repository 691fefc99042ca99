# app/models/delivery.py
from __future__ import annotations

import enum
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, values_check


class DeliveryStatus(str, enum.Enum):
    planned = "planned"
    loading = "loading"
    in_transit = "in_transit"
    arrived = "arrived"
    completed = "completed"
    cancelled = "cancelled"


class Delivery(Base):
    """One truck run from the factory to a project site."""

    __tablename__ = "deliveries"
    __table_args__ = (
        CheckConstraint(values_check("status", DeliveryStatus), name="ck_deliveries_status_allowed"),
        CheckConstraint(
            "status <> 'completed' OR (completed_at IS NOT NULL AND received_by_name IS NOT NULL)",
            name="ck_deliveries_completion_record",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # owner of the run
    driver_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)

    truck_registration: Mapped[str] = mapped_column(String(20), nullable=False)
    truck_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DeliveryStatus.planned.value)

    planned_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    loading_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    departed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    arrived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # completion record
    received_by_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    signature_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
