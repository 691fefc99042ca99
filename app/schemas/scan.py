# app/schemas/scan.py

from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.element import ElementRead


class ScanRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scan_token: str = Field(..., min_length=1, max_length=2000)


class ProjectRead(BaseModel):
    id: UUID
    name: str
    address: str | None = None
    company_id: UUID | None = None

    model_config = {"from_attributes": True}


class ScanResponse(BaseModel):
    element: ElementRead
    project: ProjectRead
