# app/api/elements.py

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor_context
from app.core.db import get_db
from app.core.rbac import ActorContext
from app.schemas.element import (
    ElementCreate,
    ElementEventRead,
    ElementRead,
    ElementTransitionRequest,
    ElementUpdate,
)
from app.services.element_lifecycle_service import ElementLifecycleService

router = APIRouter(prefix="/elements")


@router.post("", response_model=ElementRead, status_code=status.HTTP_201_CREATED)
def create_element(
    data: ElementCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    fields = data.model_dump(exclude={"project_id"})
    element = ElementLifecycleService(db).create_element(project_id=data.project_id, actor=actor, **fields)
    db.commit()
    return element


@router.get("/{element_id}", response_model=ElementRead)
def get_element(element_id: UUID, db: Session = Depends(get_db)):
    return ElementLifecycleService(db).get(element_id)


@router.patch("/{element_id}", response_model=ElementRead)
def update_element(
    element_id: UUID,
    data: ElementUpdate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    element = ElementLifecycleService(db).update_element(
        element_id, data.model_dump(exclude_unset=True), actor=actor
    )
    db.commit()
    return element


@router.delete("/{element_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_element(
    element_id: UUID,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    ElementLifecycleService(db).delete_element(element_id, actor=actor)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{element_id}/transitions", response_model=ElementRead)
def transition_element(
    element_id: UUID,
    payload: ElementTransitionRequest,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor_context),
):
    """Production status change by factory staff (one FSM edge per call)."""
    element = ElementLifecycleService(db).transition(element_id, payload.status, actor, payload.notes)
    db.commit()
    return element


@router.get("/{element_id}/events", response_model=list[ElementEventRead])
def list_element_events(element_id: UUID, db: Session = Depends(get_db)):
    """Status history, oldest first."""
    return ElementLifecycleService(db).list_events(element_id)
