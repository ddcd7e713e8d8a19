"""Pydantic v2 request/response schemas for user and login endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from planpay.schemas.avatar import AvatarResponse

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Find-or-create a user by email."""

    email: EmailStr
    username: str | None = Field(None, max_length=255)


class UserUpdate(BaseModel):
    """Partial user update. Email is immutable and coins only ever grow."""

    model_config = ConfigDict(extra="forbid")

    username: str | None = Field(None, max_length=255)
    coins: int | None = Field(None, ge=0, description="Coins to add to the balance")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user information."""

    id: uuid.UUID
    email: str
    username: str | None = None
    coins: int
    status: bool
    premium_avatar_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int


class CoinRanking(BaseModel):
    rating: int
    total_coins: int


class UserStatisticsResponse(UserResponse):
    """User details with their all-time position by coins."""

    all_time: CoinRanking


# ---------------------------------------------------------------------------
# Premium avatar purchase
# ---------------------------------------------------------------------------


class PremiumUpgradeRequest(BaseModel):
    avatar_id: uuid.UUID


class PremiumUpgradeResponse(BaseModel):
    success: bool = True
    message: str = "Successfully upgraded to premium!"
    user: UserResponse
    avatar: AvatarResponse
