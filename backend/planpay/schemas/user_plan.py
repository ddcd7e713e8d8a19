"""Pydantic v2 request/response schemas for user-plan endpoints."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, field_validator

from planpay.schemas.plan import PlanResponse


class UserPlanCreate(BaseModel):
    """Manual grant of a plan to a user, same rules as a settled payment."""

    user_id: uuid.UUID
    plan_id: uuid.UUID


class UserPlanResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    status: str
    plan: PlanResponse | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserPlanListResponse(BaseModel):
    items: list[UserPlanResponse]
    total: int


class UserPremiumStatusResponse(BaseModel):
    """Derived premium flag and the plan backing it, if any."""

    user_id: uuid.UUID
    is_premium: bool
    active_plan: UserPlanResponse | None = None


class UserPlanUpdate(BaseModel):
    """Admin correction of a plan's dates (naive UTC)."""

    model_config = ConfigDict(extra="forbid")

    start_date: datetime | None = None
    end_date: datetime | None = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _to_naive_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
