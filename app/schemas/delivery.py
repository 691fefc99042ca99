# app/schemas/delivery.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.delivery import DeliveryStatus


class StrictBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DeliveryCreate(StrictBaseModel):
    project_id: UUID
    truck_registration: str = Field(..., min_length=1, max_length=20, examples=["AB-123"])
    truck_description: Optional[str] = Field(default=None, max_length=200)
    planned_date: Optional[date] = None
    driver_id: Optional[UUID] = Field(
        default=None,
        description="Admin only: assign the run to a driver. Drivers always own what they create.",
    )


class LoadElementRequest(StrictBaseModel):
    element_id: UUID
    load_position: Optional[str] = Field(default=None, max_length=100)


class LoadScanRequest(StrictBaseModel):
    scan_token: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="QR content: element id, or a URL whose last path segment is the id.",
        examples=["https://app.example.com/element/0b7d5a1e-4f0c-4c55-9a57-3f1e2b6b9d10"],
    )
    load_position: Optional[str] = Field(default=None, max_length=100)


class ConfirmItemRequest(StrictBaseModel):
    photo_url: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=1000)


class CompleteDeliveryRequest(StrictBaseModel):
    received_by_name: str = Field(..., min_length=1, max_length=100, examples=["Jón Jónsson"])
    signature_url: Optional[str] = Field(default=None, max_length=2000)
    photo_url: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class DeliveryRead(BaseModel):
    id: UUID
    project_id: UUID
    driver_id: UUID | None = None
    truck_registration: str
    truck_description: str | None = None
    status: DeliveryStatus
    planned_date: date | None = None

    loading_started_at: datetime | None = None
    departed_at: datetime | None = None
    arrived_at: datetime | None = None
    completed_at: datetime | None = None

    received_by_name: str | None = None
    signature_url: str | None = None
    photo_url: str | None = None
    notes: str | None = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DeliveryItemRead(BaseModel):
    id: UUID
    delivery_id: UUID
    element_id: UUID
    load_position: str | None = None
    loaded_at: datetime
    loaded_by: UUID | None = None
    delivered_at: datetime | None = None
    received_photo_url: str | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}
