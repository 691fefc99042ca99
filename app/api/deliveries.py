# app/api/deliveries.py

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.schemas.delivery import (
    CompleteDeliveryRequest,
    ConfirmItemRequest,
    DeliveryCreate,
    DeliveryItemRead,
    DeliveryRead,
    LoadElementRequest,
    LoadScanRequest,
)
from app.schemas.element import ElementRead
from app.services.delivery_service import DeliveryService

router = APIRouter(prefix="/deliveries")


@router.post("", response_model=DeliveryRead, status_code=status.HTTP_201_CREATED)
def create_delivery(
    data: DeliveryCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).create_delivery(
        project_id=data.project_id,
        truck_registration=data.truck_registration,
        actor=actor,
        planned_date=data.planned_date,
        truck_description=data.truck_description,
        driver_id=data.driver_id,
    )
    db.commit()
    return delivery


@router.get("/{delivery_id}", response_model=DeliveryRead)
def get_delivery(delivery_id: UUID, db: Session = Depends(get_db)):
    return DeliveryService(db).get(delivery_id)


@router.get("/{delivery_id}/items", response_model=list[DeliveryItemRead])
def list_delivery_items(delivery_id: UUID, db: Session = Depends(get_db)):
    svc = DeliveryService(db)
    svc.get(delivery_id)
    return svc.items(delivery_id)


# ---------------------------------------------------------------------------
# manifest
# ---------------------------------------------------------------------------


@router.post("/{delivery_id}/items", response_model=DeliveryItemRead, status_code=status.HTTP_201_CREATED)
def load_element(
    delivery_id: UUID,
    data: LoadElementRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    item = DeliveryService(db).load_element(delivery_id, data.element_id, actor, load_position=data.load_position)
    db.commit()
    return item


@router.post("/{delivery_id}/scan", response_model=DeliveryItemRead, status_code=status.HTTP_201_CREATED)
def load_scanned_element(
    delivery_id: UUID,
    data: LoadScanRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Resolve a QR scan and load the element in one call."""
    item = DeliveryService(db).load_scanned(delivery_id, data.scan_token, actor, load_position=data.load_position)
    db.commit()
    return item


@router.delete("/{delivery_id}/items/{element_id}", response_model=ElementRead)
def unload_element(
    delivery_id: UUID,
    element_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    element = DeliveryService(db).unload_element(delivery_id, element_id, actor)
    db.commit()
    return element


@router.post("/{delivery_id}/items/{element_id}/confirm", response_model=DeliveryItemRead)
def confirm_item_delivered(
    delivery_id: UUID,
    element_id: UUID,
    data: ConfirmItemRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    item = DeliveryService(db).confirm_item_delivered(
        delivery_id, element_id, actor, photo_url=data.photo_url, notes=data.notes
    )
    db.commit()
    return item


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@router.post("/{delivery_id}/depart", response_model=DeliveryRead)
def depart(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).depart(delivery_id, actor)
    db.commit()
    return delivery


@router.post("/{delivery_id}/arrive", response_model=DeliveryRead)
def arrive(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).arrive(delivery_id, actor)
    db.commit()
    return delivery


@router.post("/{delivery_id}/complete", response_model=DeliveryRead)
def complete(
    delivery_id: UUID,
    data: CompleteDeliveryRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).complete(
        delivery_id,
        data.received_by_name,
        actor,
        signature_url=data.signature_url,
        photo_url=data.photo_url,
        notes=data.notes,
    )
    db.commit()
    return delivery


@router.post("/{delivery_id}/cancel", response_model=DeliveryRead)
def cancel(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).cancel(delivery_id, actor)
    db.commit()
    return delivery


@router.post("/{delivery_id}/reopen", response_model=DeliveryRead)
def reopen(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    delivery = DeliveryService(db).reopen(delivery_id, actor)
    db.commit()
    return delivery


@router.post("/{delivery_id}/step-back", response_model=DeliveryRead)
def step_back(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Operator correction: undo the last status step of the run."""
    delivery = DeliveryService(db).step_back(delivery_id, actor)
    db.commit()
    return delivery
