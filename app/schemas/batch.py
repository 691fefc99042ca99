# app/schemas/batch.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.production_batch import BatchStatus


class BatchMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    batch_date: Optional[date] = None
    concrete_supplier: Optional[str] = Field(default=None, max_length=200)
    concrete_grade: Optional[str] = Field(default=None, max_length=50, examples=["C35/45"])
    air_temperature_c: Optional[float] = Field(default=None, ge=-60, le=60)
    notes: Optional[str] = Field(default=None, max_length=1000)


class BatchCreate(BatchMetadata):
    project_id: UUID
    # empty list is rejected by the service with invalid_selection
    element_ids: list[UUID] = Field(default_factory=list)


class BatchUpdate(BatchMetadata):
    pass


class ChecklistItemUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    checked: bool


class ChecklistItemRead(BaseModel):
    key: str
    label: str
    checked: bool
    checked_by: UUID | None = None
    checked_at: datetime | None = None


class BatchRead(BaseModel):
    id: UUID
    project_id: UUID
    batch_number: str
    batch_date: date
    status: BatchStatus

    concrete_supplier: str | None = None
    concrete_grade: str | None = None
    air_temperature_c: float | None = None
    notes: str | None = None

    checklist: list[ChecklistItemRead]

    created_by: UUID | None = None
    completed_by: UUID | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
