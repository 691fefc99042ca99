# app/services/notification_dispatcher.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.rbac import Role
from app.models.notification import Notification
from app.models.profile import Profile

logger = structlog.get_logger(__name__)

NOTIFICATION_TYPE_STATUS = "element_status"


@dataclass(frozen=True)
class StatusChangeEvent:
    """Emitted once per successful element transition."""

    element_id: UUID
    element_name: str
    project_id: UUID
    company_id: UUID | None
    old_status: str
    new_status: str


class NotificationDispatcher(Protocol):
    def dispatch(self, event: StatusChangeEvent) -> None: ...


class NullDispatcher:
    def dispatch(self, event: StatusChangeEvent) -> None:
        return None


class DbNotificationDispatcher:
    """Writes one notification row per active admin and per active buyer of the project's company.

    Rows are written in their own SAVEPOINT: a failed insert never poisons the
    caller's transaction. Errors still propagate; the caller decides to swallow.
    """

    def __init__(self, db: Session):
        self.db = db

    def recipients(self, company_id: UUID | None) -> list[UUID]:
        cond = Profile.role == Role.admin.value
        if company_id is not None:
            cond = or_(cond, (Profile.role == Role.buyer.value) & (Profile.company_id == company_id))

        rows = self.db.execute(
            select(Profile.id).where(Profile.is_active.is_(True), cond).order_by(Profile.id)
        ).scalars().all()
        return list(rows)

    def dispatch(self, event: StatusChangeEvent) -> None:
        user_ids = self.recipients(event.company_id)
        if not user_ids:
            return

        with self.db.begin_nested():
            for user_id in user_ids:
                self.db.add(
                    Notification(
                        user_id=user_id,
                        type=NOTIFICATION_TYPE_STATUS,
                        title=f"{event.element_name}: {event.new_status}",
                        body=f"Status changed from '{event.old_status}' to '{event.new_status}'",
                        link=f"/projects/{event.project_id}/elements/{event.element_id}",
                    )
                )
            self.db.flush()

        logger.debug(
            "notifications_written",
            element_id=str(event.element_id),
            recipients=len(user_ids),
        )


def default_dispatcher(db: Session) -> NotificationDispatcher:
    if not settings.notifications_enabled:
        return NullDispatcher()
    return DbNotificationDispatcher(db)
