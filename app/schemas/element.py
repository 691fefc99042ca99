# app/schemas/element.py

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.element import MAX_DIMENSION_MM, MAX_WEIGHT_KG, ElementStatus, ElementType


class StrictBaseModel(BaseModel):
    """Request models: unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class ElementFields(StrictBaseModel):
    element_type: ElementType = ElementType.other
    building_id: UUID | None = None
    priority: int = Field(default=0, ge=0)
    floor: int | None = None

    length_mm: int | None = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    width_mm: int | None = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    height_mm: int | None = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    weight_kg: float | None = Field(default=None, gt=0, le=MAX_WEIGHT_KG)

    drawing_reference: str | None = Field(default=None, max_length=200)
    position_description: str | None = Field(default=None, max_length=500)
    production_notes: str | None = Field(default=None, max_length=1000)
    delivery_notes: str | None = Field(default=None, max_length=1000)


class ElementCreate(ElementFields):
    project_id: UUID = Field(..., examples=["22222222-2222-2222-2222-222222222222"])
    name: str = Field(..., min_length=1, max_length=100, examples=["V-101"])

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class ElementUpdate(StrictBaseModel):
    """PATCH body. project_id and status are not here on purpose: use transitions."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    element_type: Optional[ElementType] = None
    building_id: Optional[UUID] = None
    priority: Optional[int] = Field(default=None, ge=0)
    floor: Optional[int] = None

    length_mm: Optional[int] = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    width_mm: Optional[int] = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    height_mm: Optional[int] = Field(default=None, gt=0, le=MAX_DIMENSION_MM)
    weight_kg: Optional[float] = Field(default=None, gt=0, le=MAX_WEIGHT_KG)

    drawing_reference: Optional[str] = Field(default=None, max_length=200)
    position_description: Optional[str] = Field(default=None, max_length=500)
    production_notes: Optional[str] = Field(default=None, max_length=1000)
    delivery_notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("name", "element_type", "priority")
    @classmethod
    def _not_null(cls, v):
        # omit the key to leave the value alone; null is not a value for these
        if v is None:
            raise ValueError("must not be null")
        return v


class ElementTransitionRequest(StrictBaseModel):
    status: ElementStatus = Field(..., description="Target status (one FSM edge).", examples=["rebar"])
    notes: Optional[str] = Field(default=None, max_length=1000)


class ElementRead(BaseModel):
    id: UUID
    project_id: UUID
    building_id: UUID | None = None
    name: str
    element_type: str
    status: ElementStatus
    priority: int
    floor: int | None = None

    length_mm: int | None = None
    width_mm: int | None = None
    height_mm: int | None = None
    weight_kg: float | None = None

    drawing_reference: str | None = None
    position_description: str | None = None
    production_notes: str | None = None
    delivery_notes: str | None = None

    batch_id: UUID | None = None

    rebar_at: datetime | None = None
    cast_at: datetime | None = None
    curing_at: datetime | None = None
    ready_at: datetime | None = None
    loaded_at: datetime | None = None
    delivered_at: datetime | None = None

    row_version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ElementEventRead(BaseModel):
    id: UUID
    element_id: UUID
    previous_status: str | None = None
    status: str
    notes: str | None = None
    created_by: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
