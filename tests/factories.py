# tests/factories.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from app.core.rbac import ActorContext, Role
from app.models.delivery import Delivery, DeliveryStatus
from app.models.element import Element, ElementStatus
from app.models.profile import Profile
from app.models.project import Project


def make_actor(role: str | Role = Role.admin, actor_user_id: uuid.UUID | None = None) -> ActorContext:
    role = role.value if isinstance(role, Role) else role
    return ActorContext(actor_user_id=actor_user_id or uuid.uuid4(), role=role)


def make_project(
    db,
    *,
    company_id: uuid.UUID | None = None,
    flush: bool = True,
    **overrides: Any,
) -> Project:
    project = Project(
        id=overrides.pop("id", uuid.uuid4()),
        company_id=company_id,
        name=overrides.pop("name", f"Project {uuid.uuid4().hex[:6]}"),
        address=overrides.pop("address", None),
        **overrides,
    )
    db.add(project)
    if flush:
        db.flush()
    return project


def make_profile(
    db,
    *,
    role: str = "buyer",
    company_id: uuid.UUID | None = None,
    is_active: bool = True,
    flush: bool = True,
    **overrides: Any,
) -> Profile:
    profile = Profile(
        id=overrides.pop("id", uuid.uuid4()),
        full_name=overrides.pop("full_name", "Test User"),
        role=role,
        company_id=company_id,
        is_active=is_active,
        **overrides,
    )
    db.add(profile)
    if flush:
        db.flush()
    return profile


def make_element(
    db,
    *,
    project_id: uuid.UUID,
    status: str | ElementStatus = ElementStatus.planned,
    flush: bool = True,
    **overrides: Any,
) -> Element:
    """
    Element inserted directly in the given status (bypasses the FSM on purpose:
    tests need elements parked anywhere on the path).
    By default flush=True; pass flush=False to catch IntegrityError yourself.
    """
    status = status.value if isinstance(status, ElementStatus) else status
    element = Element(
        id=overrides.pop("id", uuid.uuid4()),
        project_id=project_id,
        name=overrides.pop("name", f"E-{uuid.uuid4().hex[:6]}"),
        element_type=overrides.pop("element_type", "wall"),
        status=status,
        priority=overrides.pop("priority", 0),
        row_version=overrides.pop("row_version", 1),
        **overrides,
    )
    db.add(element)
    if flush:
        db.flush()
    return element


def make_delivery(
    db,
    *,
    project_id: uuid.UUID,
    driver_id: uuid.UUID | None = None,
    status: str | DeliveryStatus = DeliveryStatus.planned,
    flush: bool = True,
    **overrides: Any,
) -> Delivery:
    status = status.value if isinstance(status, DeliveryStatus) else status
    delivery = Delivery(
        id=overrides.pop("id", uuid.uuid4()),
        project_id=project_id,
        driver_id=driver_id or uuid.uuid4(),
        truck_registration=overrides.pop("truck_registration", "AB-123"),
        status=status,
        planned_date=overrides.pop("planned_date", date.today()),
        **overrides,
    )
    db.add(delivery)
    if flush:
        db.flush()
    return delivery
