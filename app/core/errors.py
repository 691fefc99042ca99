# app/core/errors.py
from __future__ import annotations

from typing import Any

from app.core.messages import render


class LifecycleError(Exception):
    """Base for every typed failure of a lifecycle operation.

    `code` is stable and goes to API clients, `params` carry the details
    (ids, statuses, counts) and fill the localized message.
    """

    code: str = "lifecycle_error"
    http_status: int = 400

    def __init__(self, **params: Any) -> None:
        self.params = params
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return render(self.code, self.params)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        for k, v in self.params.items():
            if isinstance(v, (set, frozenset, tuple)):
                v = sorted(str(x) for x in v)
            elif not isinstance(v, (str, int, float, bool, list, type(None))):
                v = str(v)
            body[k] = v
        return body


class NotFound(LifecycleError):
    code = "not_found"
    http_status = 404


class Forbidden(LifecycleError):
    code = "forbidden"
    http_status = 403


class InvalidTransition(LifecycleError):
    code = "invalid_transition"
    http_status = 422


class InvalidState(LifecycleError):
    code = "invalid_state"
    http_status = 409


class InvalidSelection(LifecycleError):
    code = "invalid_selection"
    http_status = 422


class ChecklistIncomplete(LifecycleError):
    code = "checklist_incomplete"
    http_status = 409


class ProjectMismatch(LifecycleError):
    code = "project_mismatch"
    http_status = 422


class DuplicateItem(LifecycleError):
    code = "duplicate_item"
    http_status = 409


class EmptyManifest(LifecycleError):
    code = "empty_manifest"
    http_status = 409


class ItemsPending(LifecycleError):
    code = "items_pending"
    http_status = 409

    @property
    def pending(self) -> int:
        return int(self.params["pending"])


class MalformedToken(LifecycleError):
    code = "malformed_token"
    http_status = 400


class NotEligible(LifecycleError):
    code = "not_eligible"
    http_status = 422


class AlreadyDelivered(LifecycleError):
    code = "already_delivered"
    http_status = 409


class StorageFailure(LifecycleError):
    """Any SQLAlchemyError surfacing from a write."""

    code = "storage_failure"
    http_status = 500
