# app/core/messages.py
"""User-facing error messages, keyed by error code.

Every error kind has its own message so the UI can tell the operator what
happened without parsing codes. Placeholders are filled from the error's
params; a missing param leaves the template untouched.
"""

from __future__ import annotations

from typing import Any, Mapping

from app.core.config import settings

CATALOG: Mapping[str, Mapping[str, str]] = {
    "en": {
        "not_found": "{entity} not found",
        "forbidden": "Unauthorized",
        "invalid_transition": (
            "Cannot change status from '{from_status}' to '{to_status}'. Allowed: {allowed}."
        ),
        "invalid_state": "Cannot {operation}. Current status: {status}",
        "invalid_selection": "Invalid element selection: {reason}",
        "checklist_incomplete": (
            "Checklist incomplete: {unchecked} item(s) still unchecked"
        ),
        "project_mismatch": (
            "Element belongs to different project. Cannot add to this delivery."
        ),
        "duplicate_item": "Element already added to this delivery",
        "empty_manifest": "Delivery has no elements. Scan at least one element.",
        "items_pending": (
            "Please confirm all {pending} remaining elements before completing delivery"
        ),
        "malformed_token": "Invalid QR code format",
        "not_eligible": "Element status: {status}. Not ready for loading.",
        "already_delivered": "Element already delivered on {delivered_at}",
        "storage_failure": "An unexpected error occurred",
    },
    "is": {
        "not_found": "{entity} fannst ekki",
        "forbidden": "Óheimilt",
        "invalid_transition": (
            "Ekki er hægt að breyta stöðu úr '{from_status}' í '{to_status}'. Leyfilegt: {allowed}."
        ),
        "invalid_state": "Aðgerð ekki leyfð ({operation}). Núverandi staða: {status}",
        "invalid_selection": "Ógilt val á einingum: {reason}",
        "checklist_incomplete": "Gátlisti ókláraður: {unchecked} atriði óhakað",
        "project_mismatch": "Eining tilheyrir öðru verkefni",
        "duplicate_item": "Eining er þegar á þessari afhendingu",
        "empty_manifest": "Engar einingar á afhendingu",
        "items_pending": "Staðfestu allar {pending} einingar sem eftir eru áður en afhendingu er lokið",
        "malformed_token": "Ógilt QR kóða snið",
        "not_eligible": "Staða einingar: {status}. Ekki tilbúin til hleðslu.",
        "already_delivered": "Eining þegar afhent {delivered_at}",
        "storage_failure": "Óvænt villa kom upp",
    },
}


class _Params(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render(code: str, params: Mapping[str, Any] | None = None, *, locale: str | None = None) -> str:
    table = CATALOG.get(locale or settings.locale) or CATALOG["en"]
    template = table.get(code) or CATALOG["en"].get(code) or code
    return template.format_map(_Params({k: _fmt(v) for k, v in (params or {}).items()}))


def _fmt(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(sorted(str(v) for v in value)) or "-"
    return str(value)
