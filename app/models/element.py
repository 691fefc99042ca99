# app/models/element.py
from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, values_check


class ElementStatus(str, enum.Enum):
    planned = "planned"
    rebar = "rebar"
    cast = "cast"
    curing = "curing"
    ready = "ready"
    loaded = "loaded"
    delivered = "delivered"


class ElementType(str, enum.Enum):
    wall = "wall"
    filigran = "filigran"
    staircase = "staircase"
    balcony = "balcony"
    ceiling = "ceiling"
    column = "column"
    beam = "beam"
    other = "other"


# status -> milestone column stamped on first entry
MILESTONES: dict[ElementStatus, str] = {
    ElementStatus.rebar: "rebar_at",
    ElementStatus.cast: "cast_at",
    ElementStatus.curing: "curing_at",
    ElementStatus.ready: "ready_at",
    ElementStatus.loaded: "loaded_at",
    ElementStatus.delivered: "delivered_at",
}

MAX_DIMENSION_MM = 50_000
MAX_WEIGHT_KG = 100_000


class Element(Base):
    __tablename__ = "elements"
    __table_args__ = (
        CheckConstraint(values_check("status", ElementStatus), name="ck_elements_status_allowed"),
        CheckConstraint(values_check("element_type", ElementType), name="ck_elements_type_allowed"),
        CheckConstraint("priority >= 0", name="ck_elements_priority_nonneg"),
        CheckConstraint(
            f"length_mm IS NULL OR (length_mm > 0 AND length_mm <= {MAX_DIMENSION_MM})",
            name="ck_elements_length_range",
        ),
        CheckConstraint(
            f"width_mm IS NULL OR (width_mm > 0 AND width_mm <= {MAX_DIMENSION_MM})",
            name="ck_elements_width_range",
        ),
        CheckConstraint(
            f"height_mm IS NULL OR (height_mm > 0 AND height_mm <= {MAX_DIMENSION_MM})",
            name="ck_elements_height_range",
        ),
        CheckConstraint(
            f"weight_kg IS NULL OR (weight_kg > 0 AND weight_kg <= {MAX_WEIGHT_KG})",
            name="ck_elements_weight_range",
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # immutable after creation
    project_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    building_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    element_type: Mapped[str] = mapped_column(String(32), nullable=False, default=ElementType.other.value)

    # written only by ElementLifecycleService
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=ElementStatus.planned.value)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)

    length_mm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    width_mm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height_mm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    weight_kg: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)

    drawing_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    position_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    production_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # set at batch creation, cleared if the batch is cancelled
    batch_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("production_batches.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    rebar_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cast_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    curing_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    loaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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

    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
