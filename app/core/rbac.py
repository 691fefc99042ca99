# app/core/rbac.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Set
from uuid import UUID

from app.core.errors import Forbidden

if TYPE_CHECKING:
    from app.models.delivery import Delivery


class Role(str, enum.Enum):
    admin = "admin"
    factory_manager = "factory_manager"
    driver = "driver"
    buyer = "buyer"


@dataclass(frozen=True)
class ActorContext:
    actor_user_id: UUID
    role: str


_PRODUCTION = {Role.admin.value, Role.factory_manager.value}
_FIELD = {Role.admin.value, Role.driver.value}

# permission -> roles. Delivery mutations are additionally owner-scoped,
# see ensure_delivery_actor.
ALLOW: Mapping[str, Set[str]] = {
    # ---- Elements ----
    "element.create": {Role.admin.value},
    "element.update": {Role.admin.value},
    "element.delete": {Role.admin.value},
    "element.transition": _PRODUCTION,

    # ---- Cast lots ----
    "batch.create": _PRODUCTION,
    "batch.update": _PRODUCTION,
    "batch.checklist": _PRODUCTION,
    "batch.complete": _PRODUCTION,
    "batch.cancel": _PRODUCTION,

    # ---- Deliveries / scanning ----
    "delivery.create": _FIELD,
    "scan.resolve": _FIELD,
}


def ensure_allowed(permission: str, role: str) -> None:
    allowed = ALLOW.get(permission, set())
    if role not in allowed:
        raise Forbidden(permission=permission, role=role)


def is_delivery_actor(actor: ActorContext, delivery: "Delivery") -> bool:
    if actor.role == Role.admin.value:
        return True
    return actor.role == Role.driver.value and delivery.driver_id == actor.actor_user_id


def ensure_delivery_actor(actor: ActorContext, delivery: "Delivery") -> None:
    """Admin, or the driver who owns the delivery."""
    if not is_delivery_actor(actor, delivery):
        raise Forbidden(permission="delivery.mutate", role=actor.role, delivery_id=delivery.id)
