# app/api/batches.py

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.schemas.batch import BatchCreate, BatchRead, BatchUpdate, ChecklistItemUpdate
from app.schemas.element import ElementRead
from app.services.batch_service import BatchService

router = APIRouter(prefix="/batches")


@router.post("", response_model=BatchRead, status_code=status.HTTP_201_CREATED)
def create_batch(
    data: BatchCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    batch = BatchService(db).create_batch(
        project_id=data.project_id,
        element_ids=data.element_ids,
        actor=actor,
        batch_date=data.batch_date,
        concrete_supplier=data.concrete_supplier,
        concrete_grade=data.concrete_grade,
        air_temperature_c=data.air_temperature_c,
        notes=data.notes,
    )
    db.commit()
    return batch


@router.get("/candidates", response_model=list[ElementRead])
def list_batch_candidates(project_id: UUID = Query(...), db: Session = Depends(get_db)):
    """Elements of a project that are not poured and not in a batch yet."""
    return BatchService(db).list_unbatched_elements(project_id)


@router.get("/{batch_id}", response_model=BatchRead)
def get_batch(batch_id: UUID, db: Session = Depends(get_db)):
    return BatchService(db).get(batch_id)


@router.get("/{batch_id}/elements", response_model=list[ElementRead])
def list_batch_elements(batch_id: UUID, db: Session = Depends(get_db)):
    svc = BatchService(db)
    svc.get(batch_id)
    return svc.members(batch_id)


@router.patch("/{batch_id}", response_model=BatchRead)
def update_batch(
    batch_id: UUID,
    data: BatchUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    batch = BatchService(db).update_batch(batch_id, data.model_dump(exclude_unset=True), actor=actor)
    db.commit()
    return batch


@router.put("/{batch_id}/checklist/{item_key}", response_model=BatchRead)
def set_checklist_item(
    batch_id: UUID,
    item_key: str,
    data: ChecklistItemUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    batch = BatchService(db).set_checklist_item(batch_id, item_key, data.checked, actor=actor)
    db.commit()
    return batch


@router.post("/{batch_id}/complete", response_model=BatchRead)
def complete_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Cast: all members move to `cast` and the batch is closed. Irreversible."""
    batch = BatchService(db).complete_batch(batch_id, actor=actor)
    db.commit()
    return batch


@router.post("/{batch_id}/cancel", response_model=BatchRead)
def cancel_batch(
    batch_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    batch = BatchService(db).cancel_batch(batch_id, actor=actor)
    db.commit()
    return batch
