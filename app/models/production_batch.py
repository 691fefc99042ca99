# app/models/production_batch.py
from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, values_check


class BatchStatus(str, enum.Enum):
    preparing = "preparing"
    completed = "completed"
    cancelled = "cancelled"


class ProductionBatch(Base):
    """A cast lot: elements poured together, gated by a pre-pour checklist."""

    __tablename__ = "production_batches"
    __table_args__ = (
        UniqueConstraint("batch_number", name="uq_production_batches_batch_number"),
        CheckConstraint(values_check("status", BatchStatus), name="ck_production_batches_status_allowed"),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_production_batches_completed_at_consistent",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    batch_number: Mapped[str] = mapped_column(String(64), nullable=False)
    batch_date: Mapped[date] = mapped_column(Date, nullable=False)

    concrete_supplier: Mapped[str | None] = mapped_column(Text, nullable=True)
    concrete_grade: Mapped[str | None] = mapped_column(Text, nullable=True)
    air_temperature_c: Mapped[float | None] = mapped_column(Float, nullable=True)

    # list of {key, label, checked, checked_by, checked_at}; always replaced as a whole
    checklist: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default=BatchStatus.preparing.value)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    completed_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
