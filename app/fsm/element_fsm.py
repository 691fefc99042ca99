# app/fsm/element_fsm.py

from __future__ import annotations

from app.core.errors import InvalidTransition
from app.models.element import ElementStatus

"""Element FSM: production and delivery path of one precast piece.

Forward path:
  planned -> rebar -> cast -> curing -> ready -> loaded -> delivered

Every forward step can be undone by exactly one step back (operator
correction, unload, redelivery). There are no other edges.
"""

ORDER: tuple[ElementStatus, ...] = (
    ElementStatus.planned,
    ElementStatus.rebar,
    ElementStatus.cast,
    ElementStatus.curing,
    ElementStatus.ready,
    ElementStatus.loaded,
    ElementStatus.delivered,
)

# current -> allowed next
TRANSITIONS: dict[ElementStatus, frozenset[ElementStatus]] = {
    ElementStatus.planned: frozenset({ElementStatus.rebar}),
    ElementStatus.rebar: frozenset({ElementStatus.cast, ElementStatus.planned}),
    ElementStatus.cast: frozenset({ElementStatus.curing, ElementStatus.rebar}),
    ElementStatus.curing: frozenset({ElementStatus.ready, ElementStatus.cast}),
    ElementStatus.ready: frozenset({ElementStatus.loaded, ElementStatus.curing}),
    ElementStatus.loaded: frozenset({ElementStatus.delivered, ElementStatus.ready}),
    ElementStatus.delivered: frozenset({ElementStatus.loaded}),
}


def _coerce(value: ElementStatus | str) -> ElementStatus | None:
    if isinstance(value, ElementStatus):
        return value
    try:
        return ElementStatus(str(value).strip())
    except ValueError:
        return None


def allowed_next(current: ElementStatus | str) -> frozenset[ElementStatus]:
    status = _coerce(current)
    return TRANSITIONS.get(status, frozenset()) if status else frozenset()


def is_reversal(current: ElementStatus, new: ElementStatus) -> bool:
    return ORDER.index(new) < ORDER.index(current)


def apply_transition(current: ElementStatus | str, new_raw: ElementStatus | str) -> ElementStatus:
    """Returns the validated target status or raises InvalidTransition."""
    current_status = _coerce(current)
    new_status = _coerce(new_raw)
    allowed = allowed_next(current)

    if current_status is None or new_status is None or new_status not in allowed:
        raise InvalidTransition(
            from_status=getattr(current, "value", current),
            to_status=getattr(new_raw, "value", new_raw),
            allowed=[s.value for s in allowed],
        )
    return new_status
