# app/fsm/delivery_fsm.py

from __future__ import annotations

from enum import Enum

from app.core.errors import InvalidState
from app.models.delivery import DeliveryStatus

"""Delivery FSM: one truck run.

  planned -> loading -> in_transit -> arrived -> completed
  planned/loading -> cancelled -> planned (reopen)

Back edges (loading -> planned, in_transit -> loading, arrived -> in_transit)
are operator corrections. completed is terminal.
"""


class Action(str, Enum):
    START_LOADING = "start_loading"  # planned -> loading (first item loaded)
    DEPART = "depart"  # loading -> in_transit
    ARRIVE = "arrive"  # in_transit -> arrived
    COMPLETE = "complete"  # arrived -> completed

    # corrections
    RESET_TO_PLANNED = "reset_to_planned"  # loading -> planned
    RETURN_TO_LOADING = "return_to_loading"  # in_transit -> loading
    RESUME_TRANSIT = "resume_transit"  # arrived -> in_transit

    CANCEL = "cancel"  # planned/loading -> cancelled
    REOPEN = "reopen"  # cancelled -> planned


# action -> allowed from statuses + to status
ACTIONS: dict[Action, tuple[frozenset[DeliveryStatus], DeliveryStatus]] = {
    Action.START_LOADING: (frozenset({DeliveryStatus.planned}), DeliveryStatus.loading),
    Action.DEPART: (frozenset({DeliveryStatus.loading}), DeliveryStatus.in_transit),
    Action.ARRIVE: (frozenset({DeliveryStatus.in_transit}), DeliveryStatus.arrived),
    Action.COMPLETE: (frozenset({DeliveryStatus.arrived}), DeliveryStatus.completed),

    Action.RESET_TO_PLANNED: (frozenset({DeliveryStatus.loading}), DeliveryStatus.planned),
    Action.RETURN_TO_LOADING: (frozenset({DeliveryStatus.in_transit}), DeliveryStatus.loading),
    Action.RESUME_TRANSIT: (frozenset({DeliveryStatus.arrived}), DeliveryStatus.in_transit),

    Action.CANCEL: (frozenset({DeliveryStatus.planned, DeliveryStatus.loading}), DeliveryStatus.cancelled),
    Action.REOPEN: (frozenset({DeliveryStatus.cancelled}), DeliveryStatus.planned),
}

# statuses in which the manifest may still change
OPEN_FOR_LOADING = frozenset({DeliveryStatus.planned, DeliveryStatus.loading})

TERMINAL = frozenset({DeliveryStatus.completed})


def _build_transitions() -> dict[DeliveryStatus, frozenset[DeliveryStatus]]:
    out: dict[DeliveryStatus, set[DeliveryStatus]] = {s: set() for s in DeliveryStatus}
    for allowed_from, to_status in ACTIONS.values():
        for s in allowed_from:
            out[s].add(to_status)
    return {s: frozenset(v) for s, v in out.items()}


# current -> allowed next (derived from ACTIONS)
TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = _build_transitions()


def apply_transition(current: DeliveryStatus | str, action: Action) -> DeliveryStatus:
    """Returns the target status or raises InvalidState."""
    status = DeliveryStatus(current)
    allowed_from, to_status = ACTIONS[action]
    if status not in allowed_from:
        raise InvalidState(
            operation=action.value,
            status=status.value,
            allowed_from=[s.value for s in allowed_from],
        )
    return to_status


def ensure_open_for_loading(current: DeliveryStatus | str, operation: str) -> DeliveryStatus:
    status = DeliveryStatus(current)
    if status not in OPEN_FOR_LOADING:
        raise InvalidState(operation=operation, status=status.value)
    return status
