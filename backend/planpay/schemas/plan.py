"""Pydantic v2 request/response schemas for plan endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from planpay.models.plan import PlanName

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class PlanCreate(BaseModel):
    """Schema for creating a plan. ``price`` is in sum, ``duration`` in days."""

    name: PlanName
    price: int = Field(..., gt=0)
    duration: int = Field(..., gt=0)
    description: str | None = None


class PlanUpdate(BaseModel):
    """Schema for partially updating a plan. All fields optional."""

    name: PlanName | None = None
    price: int | None = Field(None, gt=0)
    duration: int | None = Field(None, gt=0)
    description: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PlanResponse(BaseModel):
    id: uuid.UUID
    name: str
    price: int
    duration: int
    description: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
