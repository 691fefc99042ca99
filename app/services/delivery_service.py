# app/services/delivery_service.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.db import storage_errors
from app.core.errors import (
    DuplicateItem,
    EmptyManifest,
    InvalidState,
    ItemsPending,
    NotFound,
    ProjectMismatch,
    StorageFailure,
)
from app.core.rbac import ActorContext, Role, ensure_allowed, ensure_delivery_actor
from app.fsm.delivery_fsm import OPEN_FOR_LOADING, Action, apply_transition, ensure_open_for_loading
from app.models.delivery import Delivery, DeliveryStatus
from app.models.delivery_item import DeliveryItem
from app.models.element import Element, ElementStatus
from app.models.project import Project
from app.services.element_lifecycle_service import ElementLifecycleService
from app.services.scan_resolver import ScanResolver

logger = structlog.get_logger(__name__)

MAX_TRUCK_REGISTRATION = 20
MAX_RECEIVER_NAME = 100
MAX_COMPLETION_NOTES = 2000
MAX_ITEM_NOTES = 1000
MAX_LOAD_POSITION = 100

# correction edges: from -> (action, timestamp cleared on the way back)
_STEP_BACK: dict[DeliveryStatus, tuple[Action, str]] = {
    DeliveryStatus.loading: (Action.RESET_TO_PLANNED, "loading_started_at"),
    DeliveryStatus.in_transit: (Action.RETURN_TO_LOADING, "departed_at"),
    DeliveryStatus.arrived: (Action.RESUME_TRANSIT, "arrived_at"),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_registration(value: str) -> str:
    reg = (value or "").strip().upper()
    if not reg:
        raise ValueError("Truck registration is required")
    if len(reg) > MAX_TRUCK_REGISTRATION:
        raise ValueError(f"Truck registration too long (max {MAX_TRUCK_REGISTRATION} characters)")
    return reg


def _check_length(value: str | None, limit: int, label: str) -> None:
    if value is not None and len(value) > limit:
        raise ValueError(f"{label} too long (max {limit} characters)")


class DeliveryService:
    """
    Truck runs and their manifests.

    Every element status change goes through ElementLifecycleService with the
    delivery as context, so drivers can move elements on their own trucks only.
    """

    def __init__(
        self,
        db: Session,
        lifecycle: ElementLifecycleService | None = None,
        scanner: ScanResolver | None = None,
    ):
        self.db = db
        self.lifecycle = lifecycle or ElementLifecycleService(db)
        self.scanner = scanner or ScanResolver(db)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, delivery_id: UUID) -> Delivery:
        delivery = self.db.execute(
            select(Delivery)
            .where(Delivery.id == delivery_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if delivery is None:
            raise NotFound(entity="Delivery", id=delivery_id)
        return delivery

    def items(self, delivery_id: UUID) -> list[DeliveryItem]:
        return list(
            self.db.execute(
                select(DeliveryItem)
                .where(DeliveryItem.delivery_id == delivery_id)
                .order_by(DeliveryItem.loaded_at.asc())
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def item_counts(self, delivery_id: UUID) -> tuple[int, int]:
        """(total, delivered)"""
        total, delivered = self.db.execute(
            select(
                func.count(DeliveryItem.id),
                func.count(DeliveryItem.delivered_at),
            ).where(DeliveryItem.delivery_id == delivery_id)
        ).one()
        return int(total), int(delivered)

    def _find_item(self, delivery_id: UUID, element_id: UUID) -> DeliveryItem | None:
        return self.db.execute(
            select(DeliveryItem)
            .where(DeliveryItem.delivery_id == delivery_id, DeliveryItem.element_id == element_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _load_for(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        delivery = self.get(delivery_id)
        ensure_delivery_actor(actor, delivery)
        return delivery

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_delivery(
        self,
        *,
        project_id: UUID,
        truck_registration: str,
        actor: ActorContext,
        planned_date: date | None = None,
        truck_description: str | None = None,
        driver_id: UUID | None = None,
    ) -> Delivery:
        ensure_allowed("delivery.create", actor.role)

        if self.db.get(Project, project_id) is None:
            raise NotFound(entity="Project", id=project_id)

        # a driver always owns what they create; admins may assign a driver
        if actor.role != Role.admin.value or driver_id is None:
            driver_id = actor.actor_user_id

        delivery = Delivery(
            project_id=project_id,
            driver_id=driver_id,
            truck_registration=normalize_registration(truck_registration),
            truck_description=truck_description,
            status=DeliveryStatus.planned.value,
            planned_date=planned_date or _now().date(),
            created_by=actor.actor_user_id,
        )
        self.db.add(delivery)
        with storage_errors("create delivery"):
            self.db.flush()

        logger.info("delivery_created", delivery_id=str(delivery.id), project_id=str(project_id))
        return delivery

    # ------------------------------------------------------------------
    # manifest
    # ------------------------------------------------------------------

    def load_element(
        self,
        delivery_id: UUID,
        element_id: UUID,
        actor: ActorContext,
        load_position: str | None = None,
    ) -> DeliveryItem:
        """Put one ready element on the truck.

        Item insert and element transition are two writes. The transition runs
        in its own SAVEPOINT; if it fails the item is deleted again before the
        error is re-raised, so callers never see one without the other.
        """
        _check_length(load_position, MAX_LOAD_POSITION, "Load position")

        # 1) Delivery + owner
        delivery = self._load_for(delivery_id, actor)

        # 2) Truck not departed
        delivery_status = ensure_open_for_loading(delivery.status, "load element")

        # 3) Element must be ready
        element = self.lifecycle.get(element_id)
        if element.status != ElementStatus.ready.value:
            if self._find_item(delivery_id, element_id) is not None:
                raise DuplicateItem(delivery_id=delivery_id, element_id=element_id)
            raise InvalidState(operation="load element", status=element.status)

        # 4) Same project
        if element.project_id != delivery.project_id:
            raise ProjectMismatch(
                element_id=element_id,
                element_project_id=element.project_id,
                delivery_project_id=delivery.project_id,
            )

        # 5) Not on this truck yet
        if self._find_item(delivery_id, element_id) is not None:
            raise DuplicateItem(delivery_id=delivery_id, element_id=element_id)

        # 6) Insert item, unique constraint closes the race with a parallel scan
        now = _now()
        item = DeliveryItem(
            delivery_id=delivery_id,
            element_id=element_id,
            load_position=load_position,
            loaded_at=now,
            loaded_by=actor.actor_user_id,
        )
        nested = self.db.begin_nested()
        try:
            self.db.add(item)
            self.db.flush()
            nested.commit()
        except IntegrityError as e:
            nested.rollback()
            raise DuplicateItem(delivery_id=delivery_id, element_id=element_id) from e
        except SQLAlchemyError as e:
            nested.rollback()
            raise StorageFailure(operation="load element") from e

        # 7) Element to loaded; the first item also starts loading. Both in one SAVEPOINT.
        try:
            with self.db.begin_nested():
                self.lifecycle.transition(
                    element_id,
                    ElementStatus.loaded,
                    actor,
                    delivery=delivery,
                    expected_from=ElementStatus.ready,
                )
                if delivery_status == DeliveryStatus.planned:
                    self._start_loading(delivery, now)
        except Exception:
            self._remove_item_after_failed_load(item, delivery_id, element_id)
            raise

        logger.info(
            "delivery_item_loaded",
            delivery_id=str(delivery_id),
            element_id=str(element_id),
            actor_user_id=str(actor.actor_user_id),
        )
        return item

    def _start_loading(self, delivery: Delivery, now: datetime) -> None:
        """planned -> loading. A parallel first load may have got there already: that is fine."""
        with storage_errors(Action.START_LOADING.value):
            result = self.db.execute(
                update(Delivery)
                .where(Delivery.id == delivery.id, Delivery.status == DeliveryStatus.planned.value)
                .values(status=DeliveryStatus.loading.value, loading_started_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            self.db.refresh(delivery)

        if result.rowcount == 1:
            logger.info(
                "delivery_status_changed",
                delivery_id=str(delivery.id),
                from_status=DeliveryStatus.planned.value,
                to_status=DeliveryStatus.loading.value,
            )
        elif delivery.status != DeliveryStatus.loading.value:
            raise InvalidState(operation=Action.START_LOADING.value, status=delivery.status)

    def _remove_item_after_failed_load(self, item: DeliveryItem, delivery_id: UUID, element_id: UUID) -> None:
        try:
            with self.db.begin_nested():
                self.db.execute(
                    delete(DeliveryItem)
                    .where(DeliveryItem.id == item.id)
                    .execution_options(synchronize_session=False)
                )
            self.db.expunge(item)
        except SQLAlchemyError as e:
            # Manifest and element may now disagree: report, never retry.
            logger.critical(
                "manifest_rollback_failed",
                delivery_id=str(delivery_id),
                element_id=str(element_id),
                item_id=str(item.id),
                exc_info=True,
            )
            raise StorageFailure(
                operation="compensating delete",
                delivery_id=delivery_id,
                element_id=element_id,
            ) from e

        logger.warning(
            "delivery_item_load_reverted",
            delivery_id=str(delivery_id),
            element_id=str(element_id),
        )

    def load_scanned(
        self,
        delivery_id: UUID,
        scan_token: str,
        actor: ActorContext,
        load_position: str | None = None,
    ) -> DeliveryItem:
        """Scan-driven load: resolve the QR token first, then load as usual."""
        scan = self.scanner.resolve(scan_token, actor)
        return self.load_element(delivery_id, scan.element.id, actor, load_position=load_position)

    def unload_element(self, delivery_id: UUID, element_id: UUID, actor: ActorContext) -> Element:
        delivery = self._load_for(delivery_id, actor)
        ensure_open_for_loading(delivery.status, "unload element")

        item = self._find_item(delivery_id, element_id)
        if item is None:
            raise NotFound(entity="Delivery item", delivery_id=delivery_id, element_id=element_id)

        with storage_errors("unload element"), self.db.begin_nested():
            self.db.execute(
                delete(DeliveryItem)
                .where(DeliveryItem.id == item.id)
                .execution_options(synchronize_session=False)
            )
            element = self.lifecycle.transition(
                element_id,
                ElementStatus.ready,
                actor,
                delivery=delivery,
                expected_from=ElementStatus.loaded,
            )
        self.db.expunge(item)

        logger.info("delivery_item_unloaded", delivery_id=str(delivery_id), element_id=str(element_id))
        return element

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    def depart(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        delivery = self._load_for(delivery_id, actor)

        # an empty truck is only worth reporting while it can still be loaded
        if DeliveryStatus(delivery.status) in OPEN_FOR_LOADING:
            total, _delivered = self.item_counts(delivery_id)
            if total == 0:
                raise EmptyManifest(delivery_id=delivery_id)

        return self._move(delivery, Action.DEPART, departed_at=_now())

    def arrive(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        delivery = self._load_for(delivery_id, actor)
        return self._move(delivery, Action.ARRIVE, arrived_at=_now())

    def confirm_item_delivered(
        self,
        delivery_id: UUID,
        element_id: UUID,
        actor: ActorContext,
        photo_url: str | None = None,
        notes: str | None = None,
    ) -> DeliveryItem:
        """Mark one manifest line as handed over. Never completes the delivery by itself."""
        _check_length(notes, MAX_ITEM_NOTES, "Notes")

        delivery = self._load_for(delivery_id, actor)
        if delivery.status != DeliveryStatus.arrived.value:
            raise InvalidState(operation="confirm element", status=delivery.status)

        item = self._find_item(delivery_id, element_id)
        if item is None:
            raise NotFound(entity="Delivery item", delivery_id=delivery_id, element_id=element_id)
        if item.delivered_at is not None:
            raise InvalidState(operation="confirm element", status=ElementStatus.delivered.value)

        with storage_errors("confirm element"), self.db.begin_nested():
            result = self.db.execute(
                update(DeliveryItem)
                .where(DeliveryItem.id == item.id, DeliveryItem.delivered_at.is_(None))
                .values(delivered_at=_now(), received_photo_url=photo_url, notes=notes)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState(operation="confirm element", status=ElementStatus.delivered.value)

            self.lifecycle.transition(
                element_id,
                ElementStatus.delivered,
                actor,
                delivery=delivery,
                expected_from=ElementStatus.loaded,
            )

        self.db.refresh(item)
        logger.info("delivery_item_confirmed", delivery_id=str(delivery_id), element_id=str(element_id))
        return item

    def complete(
        self,
        delivery_id: UUID,
        received_by_name: str,
        actor: ActorContext,
        signature_url: str | None = None,
        photo_url: str | None = None,
        notes: str | None = None,
    ) -> Delivery:
        delivery = self._load_for(delivery_id, actor)
        apply_transition(delivery.status, Action.COMPLETE)

        name = (received_by_name or "").strip()
        if not name:
            raise ValueError("Receiver name is required")
        _check_length(name, MAX_RECEIVER_NAME, "Receiver name")
        _check_length(notes, MAX_COMPLETION_NOTES, "Notes")

        total, delivered = self.item_counts(delivery_id)
        if total == 0:
            raise EmptyManifest(delivery_id=delivery_id)
        if delivered < total:
            raise ItemsPending(delivery_id=delivery_id, pending=total - delivered)

        delivery = self._move(
            delivery,
            Action.COMPLETE,
            completed_at=_now(),
            received_by_name=name,
            signature_url=signature_url,
            photo_url=photo_url,
            notes=notes,
        )
        logger.info("delivery_completed", delivery_id=str(delivery_id), items=total)
        return delivery

    # ------------------------------------------------------------------
    # cancel / reopen / corrections
    # ------------------------------------------------------------------

    def cancel(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        """Call off a run that has not left. Loaded elements go back to ready."""
        delivery = self._load_for(delivery_id, actor)
        apply_transition(delivery.status, Action.CANCEL)

        with storage_errors("cancel delivery"), self.db.begin_nested():
            for item in self.items(delivery_id):
                self.db.execute(
                    delete(DeliveryItem)
                    .where(DeliveryItem.id == item.id)
                    .execution_options(synchronize_session=False)
                )
                self.lifecycle.transition(
                    item.element_id,
                    ElementStatus.ready,
                    actor,
                    delivery=delivery,
                    expected_from=ElementStatus.loaded,
                )
                self.db.expunge(item)
            delivery = self._move(delivery, Action.CANCEL)

        logger.info("delivery_cancelled", delivery_id=str(delivery_id))
        return delivery

    def reopen(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        delivery = self._load_for(delivery_id, actor)
        return self._move(delivery, Action.REOPEN, loading_started_at=None)

    def step_back(self, delivery_id: UUID, actor: ActorContext) -> Delivery:
        """Undo the last status step: loading -> planned, in_transit -> loading, arrived -> in_transit."""
        delivery = self._load_for(delivery_id, actor)
        status = DeliveryStatus(delivery.status)

        if status not in _STEP_BACK:
            raise InvalidState(operation="step back", status=status.value)
        action, cleared = _STEP_BACK[status]

        total, delivered = self.item_counts(delivery_id)
        if action is Action.RESET_TO_PLANNED and total:
            raise InvalidState(operation="step back", status=status.value, reason="manifest not empty")
        if action is Action.RESUME_TRANSIT and delivered:
            raise InvalidState(operation="step back", status=status.value, reason="items already confirmed")

        return self._move(delivery, action, **{cleared: None})

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _move(self, delivery: Delivery, action: Action, **values: Any) -> Delivery:
        """FSM check + conditional status write keyed on the status we read."""
        from_status = DeliveryStatus(delivery.status)
        to_status = apply_transition(from_status, action)

        with storage_errors(action.value):
            result = self.db.execute(
                update(Delivery)
                .where(Delivery.id == delivery.id, Delivery.status == from_status.value)
                .values(status=to_status.value, updated_at=_now(), **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                current = self.db.execute(
                    select(Delivery.status).where(Delivery.id == delivery.id)
                ).scalar_one()
                raise InvalidState(operation=action.value, status=current, reason="concurrent_update")
            self.db.refresh(delivery)

        logger.info(
            "delivery_status_changed",
            delivery_id=str(delivery.id),
            from_status=from_status.value,
            to_status=to_status.value,
        )
        return delivery
