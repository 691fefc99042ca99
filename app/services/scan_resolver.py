# app/services/scan_resolver.py
from __future__ import annotations

import re
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import AlreadyDelivered, MalformedToken, NotEligible, NotFound
from app.core.rbac import ActorContext, ensure_allowed
from app.models.element import Element, ElementStatus
from app.models.project import Project

logger = structlog.get_logger(__name__)

# QR labels encode either the bare id or <origin>/.../element/<id>
ELEMENT_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

SCANNABLE = frozenset({ElementStatus.ready.value, ElementStatus.loaded.value})


@dataclass(frozen=True)
class ScanResult:
    element: Element
    project: Project


def extract_identifier(token: str) -> str:
    """Last path segment of a URL, or the token itself. Query and fragment are dropped."""
    raw = (token or "").strip()
    raw = raw.split("#", 1)[0].split("?", 1)[0]
    if "/" in raw:
        raw = raw.rstrip("/").rsplit("/", 1)[-1]
    return raw


def parse_scan_token(token: str) -> UUID:
    identifier = extract_identifier(token)
    if not ELEMENT_ID_RE.match(identifier):
        raise MalformedToken(token=(token or "")[:200])
    return UUID(identifier)


class ScanResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, scan_token: str, actor: ActorContext) -> ScanResult:
        """Identify a scanned element and check it can go on a truck.

        Checks run in a fixed order: role, token shape, existence, then
        status (delivered is reported apart from other ineligible statuses).
        """
        ensure_allowed("scan.resolve", actor.role)

        element_id = parse_scan_token(scan_token)

        element = self.db.execute(
            select(Element)
            .where(Element.id == element_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if element is None:
            raise NotFound(entity="Element", id=element_id)

        if element.status == ElementStatus.delivered.value:
            delivered_at = element.delivered_at.date().isoformat() if element.delivered_at else "-"
            raise AlreadyDelivered(element_id=element_id, delivered_at=delivered_at)

        if element.status not in SCANNABLE:
            raise NotEligible(element_id=element_id, status=element.status)

        project = self.db.get(Project, element.project_id)
        if project is None:
            raise NotFound(entity="Project", id=element.project_id)

        logger.info("element_scanned", element_id=str(element_id), status=element.status)
        return ScanResult(element=element, project=project)
