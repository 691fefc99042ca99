# app/services/batch_service.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import storage_errors
from app.core.errors import (
    ChecklistIncomplete,
    InvalidSelection,
    InvalidState,
    NotFound,
    StorageFailure,
)
from app.core.rbac import ActorContext, ensure_allowed
from app.models.element import Element, ElementStatus
from app.models.production_batch import BatchStatus, ProductionBatch
from app.models.project import Project
from app.services.element_lifecycle_service import ElementLifecycleService

logger = structlog.get_logger(__name__)

# system gate set, copied into every new batch
DEFAULT_CHECKLIST: tuple[tuple[str, str], ...] = (
    ("formwork", "Formwork checked and oiled"),
    ("rebar", "Rebar placement and cover verified"),
    ("embeds", "Embeds and lifting anchors in place"),
)

# elements that have not been poured yet
BATCHABLE = frozenset({ElementStatus.planned.value, ElementStatus.rebar.value})

METADATA_FIELDS = frozenset({"concrete_supplier", "concrete_grade", "air_temperature_c", "notes", "batch_date"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def build_checklist() -> list[dict[str, Any]]:
    return [
        {"key": key, "label": label, "checked": False, "checked_by": None, "checked_at": None}
        for key, label in DEFAULT_CHECKLIST
    ]


def unchecked_keys(checklist: list[dict[str, Any]]) -> list[str]:
    return [item["key"] for item in checklist if not item.get("checked")]


class BatchService:
    """Cast lots: selection of unpoured elements, the pre-pour checklist and the cast itself."""

    def __init__(self, db: Session, lifecycle: ElementLifecycleService | None = None):
        self.db = db
        self.lifecycle = lifecycle or ElementLifecycleService(db)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, batch_id: UUID) -> ProductionBatch:
        batch = self.db.execute(
            select(ProductionBatch)
            .where(ProductionBatch.id == batch_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise NotFound(entity="Batch", id=batch_id)
        return batch

    def members(self, batch_id: UUID) -> list[Element]:
        return list(
            self.db.execute(
                select(Element)
                .where(Element.batch_id == batch_id)
                .order_by(Element.name.asc(), Element.id.asc())
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def list_unbatched_elements(self, project_id: UUID) -> list[Element]:
        """Candidates for a new batch: not yet poured and not in any batch."""
        return list(
            self.db.execute(
                select(Element)
                .where(
                    Element.project_id == project_id,
                    Element.batch_id.is_(None),
                    Element.status.in_(BATCHABLE),
                )
                .order_by(Element.name.asc())
            ).scalars().all()
        )

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_batch(
        self,
        *,
        project_id: UUID,
        element_ids: list[UUID],
        actor: ActorContext,
        batch_date: date | None = None,
        concrete_supplier: str | None = None,
        concrete_grade: str | None = None,
        air_temperature_c: float | None = None,
        notes: str | None = None,
    ) -> ProductionBatch:
        ensure_allowed("batch.create", actor.role)

        if self.db.get(Project, project_id) is None:
            raise NotFound(entity="Project", id=project_id)

        ids = list(dict.fromkeys(element_ids or []))
        if not ids:
            raise InvalidSelection(reason="no elements selected")

        found = {
            e.id: e
            for e in self.db.execute(
                select(Element)
                .where(Element.id.in_(ids))
                .execution_options(populate_existing=True)
            ).scalars()
        }

        missing = [i for i in ids if i not in found]
        if missing:
            raise InvalidSelection(reason="unknown elements", element_ids=[str(i) for i in missing])

        foreign = [i for i in ids if found[i].project_id != project_id]
        if foreign:
            raise InvalidSelection(reason="elements from another project", element_ids=[str(i) for i in foreign])

        taken = [i for i in ids if found[i].batch_id is not None]
        if taken:
            raise InvalidSelection(reason="elements already in a batch", element_ids=[str(i) for i in taken])

        ineligible = [i for i in ids if found[i].status not in BATCHABLE]
        if ineligible:
            raise InvalidSelection(reason="elements already cast", element_ids=[str(i) for i in ineligible])

        batch_date = batch_date or _now().date()

        with storage_errors("create batch"), self.db.begin_nested():
            batch = self._insert_numbered(
                ProductionBatch(
                    project_id=project_id,
                    batch_date=batch_date,
                    concrete_supplier=concrete_supplier,
                    concrete_grade=concrete_grade,
                    air_temperature_c=air_temperature_c,
                    notes=notes,
                    checklist=build_checklist(),
                    status=BatchStatus.preparing.value,
                    created_by=actor.actor_user_id,
                )
            )

            # membership only, statuses stay planned/rebar until the cast
            result = self.db.execute(
                update(Element)
                .where(
                    Element.id.in_(ids),
                    Element.batch_id.is_(None),
                    Element.status.in_(BATCHABLE),
                )
                .values(batch_id=batch.id, updated_at=_now(), row_version=Element.row_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                raise InvalidSelection(reason="selection changed concurrently")

        for element in found.values():
            self.db.expire(element)

        logger.info(
            "batch_created",
            batch_id=str(batch.id),
            batch_number=batch.batch_number,
            elements=len(ids),
        )
        return batch

    def _next_sequence(self, prefix: str) -> int:
        count = self.db.execute(
            select(func.count()).select_from(ProductionBatch).where(
                ProductionBatch.batch_number.like(f"{prefix}-%")
            )
        ).scalar_one()
        return int(count) + 1

    def _insert_numbered(self, batch: ProductionBatch) -> ProductionBatch:
        """Insert with the next free `<prefix>-<YYYYMMDD>-<NNN>`; retry on a unique collision."""
        prefix = f"{settings.batch_number_prefix}-{batch.batch_date:%Y%m%d}"
        seq = self._next_sequence(prefix)

        for _attempt in range(settings.batch_number_attempts):
            batch.batch_number = f"{prefix}-{seq:03d}"
            nested = self.db.begin_nested()
            try:
                self.db.add(batch)
                self.db.flush()
                nested.commit()
                return batch
            except IntegrityError:
                nested.rollback()
                logger.info("batch_number_taken", batch_number=batch.batch_number)
                seq += 1

        raise StorageFailure(operation="allocate batch number")

    # ------------------------------------------------------------------
    # checklist
    # ------------------------------------------------------------------

    def set_checklist_item(
        self,
        batch_id: UUID,
        item_key: str,
        checked: bool,
        *,
        actor: ActorContext,
    ) -> ProductionBatch:
        ensure_allowed("batch.checklist", actor.role)
        batch = self.get(batch_id)

        if batch.status != BatchStatus.preparing.value:
            raise InvalidState(operation="update checklist", status=batch.status)

        keys = [item["key"] for item in batch.checklist]
        if item_key not in keys:
            raise InvalidSelection(reason="unknown checklist item", key=item_key)

        now = _now()
        checklist = []
        for item in batch.checklist:
            item = dict(item)
            if item["key"] == item_key:
                item["checked"] = bool(checked)
                item["checked_by"] = str(actor.actor_user_id) if checked else None
                item["checked_at"] = now.isoformat() if checked else None
            checklist.append(item)

        with storage_errors("update checklist"):
            result = self.db.execute(
                update(ProductionBatch)
                .where(
                    ProductionBatch.id == batch_id,
                    ProductionBatch.status == BatchStatus.preparing.value,
                )
                .values(checklist=checklist, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState(operation="update checklist", status=self._status_of(batch_id))

        return self.get(batch_id)

    # ------------------------------------------------------------------
    # cast
    # ------------------------------------------------------------------

    def complete_batch(self, batch_id: UUID, *, actor: ActorContext) -> ProductionBatch:
        """Pour: every member goes to `cast`, then the batch is closed for good.

        Member transitions share one SAVEPOINT. If any of them fails (an
        element moved concurrently), none of the casts survive and the batch
        stays `preparing`.
        """
        ensure_allowed("batch.complete", actor.role)
        batch = self.get(batch_id)

        if batch.status != BatchStatus.preparing.value:
            raise InvalidState(operation="complete batch", status=batch.status)

        unchecked = unchecked_keys(batch.checklist)
        if unchecked:
            raise ChecklistIncomplete(unchecked=len(unchecked), items=unchecked)

        members = self.members(batch_id)
        current: Element | None = None

        nested = self.db.begin_nested()
        try:
            for current in members:
                if current.status == ElementStatus.planned.value:
                    self.lifecycle.transition(current.id, ElementStatus.rebar, actor)
                self.lifecycle.transition(current.id, ElementStatus.cast, actor)
            current = None

            now = _now()
            result = self.db.execute(
                update(ProductionBatch)
                .where(
                    ProductionBatch.id == batch_id,
                    ProductionBatch.status == BatchStatus.preparing.value,
                )
                .values(
                    status=BatchStatus.completed.value,
                    completed_by=actor.actor_user_id,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState(operation="complete batch", status=self._status_of(batch_id))
            nested.commit()
        except Exception:
            nested.rollback()
            logger.error(
                "batch_cast_aborted",
                batch_id=str(batch_id),
                element_id=str(current.id) if current is not None else None,
                members=len(members),
            )
            raise

        logger.info("batch_completed", batch_id=str(batch_id), elements=len(members))
        return self.get(batch_id)

    # ------------------------------------------------------------------
    # metadata / cancel
    # ------------------------------------------------------------------

    def update_batch(self, batch_id: UUID, changes: dict[str, Any], *, actor: ActorContext) -> ProductionBatch:
        ensure_allowed("batch.update", actor.role)
        batch = self.get(batch_id)

        if batch.status == BatchStatus.cancelled.value:
            raise InvalidState(operation="update batch", status=batch.status)

        unknown = set(changes) - METADATA_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(batch, key, value)
        batch.updated_at = _now()

        with storage_errors("update batch"):
            self.db.flush()
        return batch

    def cancel_batch(self, batch_id: UUID, *, actor: ActorContext) -> ProductionBatch:
        """Drop a batch before the pour and give its elements back to the pool."""
        ensure_allowed("batch.cancel", actor.role)
        batch = self.get(batch_id)

        if batch.status != BatchStatus.preparing.value:
            raise InvalidState(operation="cancel batch", status=batch.status)

        now = _now()
        with storage_errors("cancel batch"), self.db.begin_nested():
            result = self.db.execute(
                update(ProductionBatch)
                .where(
                    ProductionBatch.id == batch_id,
                    ProductionBatch.status == BatchStatus.preparing.value,
                )
                .values(status=BatchStatus.cancelled.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState(operation="cancel batch", status=self._status_of(batch_id))

            self.db.execute(
                update(Element)
                .where(Element.batch_id == batch_id)
                .values(batch_id=None, updated_at=now, row_version=Element.row_version + 1)
                .execution_options(synchronize_session=False)
            )

        logger.info("batch_cancelled", batch_id=str(batch_id))
        return self.get(batch_id)

    def _status_of(self, batch_id: UUID) -> str:
        return self.db.execute(
            select(ProductionBatch.status).where(ProductionBatch.id == batch_id)
        ).scalar_one()
