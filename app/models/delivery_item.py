# app/models/delivery_item.py
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class DeliveryItem(Base):
    """Manifest line: one element on one delivery."""

    __tablename__ = "delivery_items"
    __table_args__ = (
        # closes the race between two concurrent scans of the same element
        UniqueConstraint("delivery_id", "element_id", name="uq_delivery_items_delivery_element"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    delivery_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("deliveries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    element_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("elements.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    load_position: Mapped[str | None] = mapped_column(String(100), nullable=True)

    loaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    loaded_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
