"""Pydantic v2 schemas for the premium avatar catalogue."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AvatarCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: int = Field(..., ge=0, description="Price in coins")


class AvatarResponse(BaseModel):
    id: uuid.UUID
    name: str
    price: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
