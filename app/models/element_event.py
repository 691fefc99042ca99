from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class ElementEvent(Base):
    __tablename__ = "element_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    element_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("elements.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # NULL for the creation event
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
