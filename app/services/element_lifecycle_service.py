# app/services/element_lifecycle_service.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from sqlalchemy import exists, select, update
from sqlalchemy.orm import Session

from app.core.db import storage_errors
from app.core.errors import InvalidState, NotFound
from app.core.rbac import ActorContext, ensure_allowed, ensure_delivery_actor
from app.fsm.element_fsm import apply_transition, is_reversal
from app.models.delivery_item import DeliveryItem
from app.models.element import MILESTONES, Element, ElementStatus
from app.models.element_event import ElementEvent
from app.models.project import Project
from app.services.notification_dispatcher import (
    NotificationDispatcher,
    StatusChangeEvent,
    default_dispatcher,
)

if TYPE_CHECKING:
    from app.models.delivery import Delivery

logger = structlog.get_logger(__name__)

# fields an operator may edit after creation; project and status are not among them
UPDATABLE_FIELDS = frozenset({
    "name",
    "element_type",
    "building_id",
    "priority",
    "floor",
    "length_mm",
    "width_mm",
    "height_mm",
    "weight_kg",
    "drawing_reference",
    "position_description",
    "production_notes",
    "delivery_notes",
})

# NOT NULL columns among them
REQUIRED_FIELDS = frozenset({"name", "element_type", "priority"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ElementLifecycleService:
    """
    The only writer of Element.status.

    Batch casting and delivery loading route every status change through
    `transition`, so the FSM table, milestone stamping, the event log and
    the notification fan-out stay in one place.
    """

    def __init__(self, db: Session, notifier: NotificationDispatcher | None = None):
        self.db = db
        self.notifier = notifier if notifier is not None else default_dispatcher(db)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, element_id: UUID) -> Element:
        """Fresh read: bypasses whatever the identity map holds."""
        element = self.db.execute(
            select(Element)
            .where(Element.id == element_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if element is None:
            raise NotFound(entity="Element", id=element_id)
        return element

    def list_events(self, element_id: UUID) -> list[ElementEvent]:
        self.get(element_id)
        return list(
            self.db.execute(
                select(ElementEvent)
                .where(ElementEvent.element_id == element_id)
                .order_by(ElementEvent.created_at.asc())
            ).scalars().all()
        )

    # ------------------------------------------------------------------
    # create / update / delete
    # ------------------------------------------------------------------

    def create_element(self, *, project_id: UUID, actor: ActorContext, **fields: Any) -> Element:
        ensure_allowed("element.create", actor.role)

        if self.db.get(Project, project_id) is None:
            raise NotFound(entity="Project", id=project_id)

        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown element fields: {', '.join(sorted(unknown))}")

        name = (fields.pop("name", None) or "").strip()
        if not name:
            raise ValueError("Element name is required")

        element = Element(
            project_id=project_id,
            name=name,
            status=ElementStatus.planned.value,
            created_by=actor.actor_user_id,
            **fields,
        )
        self.db.add(element)

        with storage_errors("create element"):
            self.db.flush()
            self.db.add(
                ElementEvent(
                    element_id=element.id,
                    previous_status=None,
                    status=ElementStatus.planned.value,
                    created_by=actor.actor_user_id,
                    created_at=_now(),
                )
            )
            self.db.flush()

        logger.info("element_created", element_id=str(element.id), project_id=str(project_id))
        return element

    def update_element(self, element_id: UUID, changes: dict[str, Any], *, actor: ActorContext) -> Element:
        ensure_allowed("element.update", actor.role)
        element = self.get(element_id)

        forbidden = set(changes) - UPDATABLE_FIELDS
        if forbidden:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(forbidden))}")

        nulled = sorted(k for k in REQUIRED_FIELDS if k in changes and changes[k] is None)
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValueError("Element name is required")
            changes = {**changes, "name": name}

        for key, value in changes.items():
            setattr(element, key, value)
        element.updated_at = _now()
        element.row_version += 1

        with storage_errors("update element"):
            self.db.flush()
        return element

    def delete_element(self, element_id: UUID, *, actor: ActorContext) -> None:
        ensure_allowed("element.delete", actor.role)
        element = self.get(element_id)

        on_manifest = self.db.execute(
            select(exists().where(DeliveryItem.element_id == element_id))
        ).scalar()
        if element.batch_id is not None or on_manifest:
            raise InvalidState(operation="delete element", status=element.status, reason="referenced")

        with storage_errors("delete element"):
            self.db.delete(element)
            self.db.flush()
        logger.info("element_deleted", element_id=str(element_id))

    # ------------------------------------------------------------------
    # transition
    # ------------------------------------------------------------------

    def transition(
        self,
        element_id: UUID,
        new_status: ElementStatus | str,
        actor: ActorContext,
        notes: str | None = None,
        *,
        delivery: "Delivery | None" = None,
        expected_from: ElementStatus | None = None,
    ) -> Element:
        """Move one element along a single FSM edge.

        `delivery` switches authorization to the delivery owner (driver or admin).
        `expected_from` makes the caller's eligibility read part of the guard:
        if the element moved since, the step fails InvalidState instead of
        taking whatever edge happens to be legal now.
        """
        # 1) Fresh read
        element = self.get(element_id)

        # 2) Who may move it
        if delivery is None:
            ensure_allowed("element.transition", actor.role)
        else:
            ensure_delivery_actor(actor, delivery)

        from_status = ElementStatus(element.status)
        if expected_from is not None and from_status != expected_from:
            raise InvalidState(
                operation=f"move element to {getattr(new_status, 'value', new_status)}",
                status=from_status.value,
                expected=expected_from.value,
            )

        # 3) FSM
        to_status = apply_transition(from_status, new_status)

        # 4) Conditional write keyed on what we read
        now = _now()
        values: dict[str, Any] = {
            "status": to_status.value,
            "updated_at": now,
            "row_version": element.row_version + 1,
        }

        stamp = MILESTONES.get(to_status)
        if stamp and getattr(element, stamp) is None:
            values[stamp] = now
        if is_reversal(from_status, to_status):
            cleared = MILESTONES.get(from_status)
            if cleared:
                values[cleared] = None

        if notes is not None:
            values["production_notes"] = notes

        with storage_errors("transition element"):
            result = self.db.execute(
                update(Element)
                .where(
                    Element.id == element.id,
                    Element.status == from_status.value,
                    Element.row_version == element.row_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self.db.execute(
                    select(Element.status).where(Element.id == element.id)
                ).scalar_one()
                raise InvalidState(
                    operation=f"move element to {to_status.value}",
                    status=current,
                    reason="concurrent_update",
                )

            self.db.add(
                ElementEvent(
                    element_id=element.id,
                    previous_status=from_status.value,
                    status=to_status.value,
                    notes=notes,
                    created_by=actor.actor_user_id,
                    created_at=now,
                )
            )
            self.db.flush()
            self.db.refresh(element)

        logger.info(
            "element_transitioned",
            element_id=str(element.id),
            from_status=from_status.value,
            to_status=to_status.value,
            actor_user_id=str(actor.actor_user_id),
        )

        # 5) Best effort, never undoes the transition
        self._notify(element, from_status, to_status)
        return element

    def _notify(self, element: Element, from_status: ElementStatus, to_status: ElementStatus) -> None:
        try:
            project = self.db.get(Project, element.project_id)
            self.notifier.dispatch(
                StatusChangeEvent(
                    element_id=element.id,
                    element_name=element.name,
                    project_id=element.project_id,
                    company_id=project.company_id if project else None,
                    old_status=from_status.value,
                    new_status=to_status.value,
                )
            )
        except Exception:
            logger.warning(
                "notification_dispatch_failed",
                element_id=str(element.id),
                from_status=from_status.value,
                to_status=to_status.value,
                exc_info=True,
            )
