# app/api/deps.py
from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException

from app.core.rbac import ActorContext

# -----------------------------------------------------------------------------
# MVP auth headers
# -----------------------------------------------------------------------------


def get_current_user_id(
    x_actor_user_id: str | None = Header(
        default=None,
        alias="X-Actor-User-Id",
        description="UUID of the acting user. Temporary header auth until a real session layer exists.",
        examples=["33333333-3333-3333-3333-333333333333"],
    ),
) -> UUID:
    """MVP auth: X-Actor-User-Id header."""
    if not x_actor_user_id:
        raise HTTPException(status_code=401, detail="Missing X-Actor-User-Id header")
    try:
        return UUID(x_actor_user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid X-Actor-User-Id format (must be UUID)") from e


def get_actor_role(
    x_role: str | None = Header(
        default=None,
        alias="X-Role",
        description="Actor role: admin, factory_manager, driver or buyer.",
        examples=["admin", "factory_manager", "driver", "buyer"],
    )
) -> str:
    if not x_role or not x_role.strip():
        raise HTTPException(status_code=401, detail="Missing X-Role header")
    return x_role.strip()


def get_actor_context(
    actor_user_id: UUID = Depends(get_current_user_id),
    role: str = Depends(get_actor_role),
) -> ActorContext:
    return ActorContext(actor_user_id=actor_user_id, role=role)
