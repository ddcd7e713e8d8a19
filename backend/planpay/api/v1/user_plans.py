"""User-plan admin routes — manual grants, lookups and soft cancellation."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.models.user_plan import UserPlan
from planpay.schemas.user_plan import (
    UserPlanCreate,
    UserPlanListResponse,
    UserPlanResponse,
    UserPlanUpdate,
    UserPremiumStatusResponse,
)
from planpay.services.ledger import find_user
from planpay.services.subscription_service import (
    ActivePlanExistsError,
    PlanNotFoundError,
    UserNotFoundError,
    cancel_user_plan,
    find_active_user_plan,
    get_user_plan,
    handle_successful_payment,
    list_expired_user_plans,
    list_user_plans,
    update_user_plan_dates,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/user-plans", tags=["user-plans"], dependencies=[Depends(require_admin)])


def _page(items: list[UserPlan]) -> UserPlanListResponse:
    return UserPlanListResponse(
        items=[UserPlanResponse.model_validate(up) for up in items],
        total=len(items),
    )


async def _ensure_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    if await find_user(db, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.get("", response_model=UserPlanListResponse, summary="List user plans")
async def list_all(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> UserPlanListResponse:
    return _page(await list_user_plans(db, skip=skip, limit=limit))


@router.post(
    "",
    response_model=UserPlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Grant a plan to a user",
)
async def create_user_plan(body: UserPlanCreate, db: AsyncSession = Depends(get_db)) -> UserPlanResponse:
    """Same rules as a settled payment: at most one active plan per user."""
    try:
        user_plan = await handle_successful_payment(db, body.user_id, body.plan_id)
    except (UserNotFoundError, PlanNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ActivePlanExistsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    await db.refresh(user_plan, attribute_names=["plan"])
    return UserPlanResponse.model_validate(user_plan)


@router.get("/expired/list", response_model=UserPlanListResponse, summary="List ended user plans")
async def list_expired(db: AsyncSession = Depends(get_db)) -> UserPlanListResponse:
    return _page(await list_expired_user_plans(db))


@router.get("/user/{user_id}", response_model=UserPlanListResponse, summary="List a user's plans")
async def list_for_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserPlanListResponse:
    await _ensure_user(db, user_id)
    return _page(await list_user_plans(db, user_id=user_id))


@router.get("/user/{user_id}/active", response_model=UserPlanResponse, summary="Get a user's active plan")
async def get_active_for_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserPlanResponse:
    await _ensure_user(db, user_id)
    active = await find_active_user_plan(db, user_id)
    if active is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active plan")
    return UserPlanResponse.model_validate(active)


@router.get(
    "/user/{user_id}/status",
    response_model=UserPremiumStatusResponse,
    summary="Get a user's premium status",
)
async def get_status_for_user(
    user_id: uuid.UUID, db: AsyncSession = Depends(get_db)
) -> UserPremiumStatusResponse:
    """Derived from user plans, not from the stored flag."""
    await _ensure_user(db, user_id)
    active = await find_active_user_plan(db, user_id)
    return UserPremiumStatusResponse(
        user_id=user_id,
        is_premium=active is not None,
        active_plan=UserPlanResponse.model_validate(active) if active is not None else None,
    )


@router.get("/{user_plan_id}", response_model=UserPlanResponse, summary="Get a user plan")
async def get_one(user_plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserPlanResponse:
    user_plan = await get_user_plan(db, user_plan_id)
    if user_plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User plan not found")
    return UserPlanResponse.model_validate(user_plan)


@router.patch("/{user_plan_id}", response_model=UserPlanResponse, summary="Change a user plan's dates")
async def update_one(
    user_plan_id: uuid.UUID,
    body: UserPlanUpdate,
    db: AsyncSession = Depends(get_db),
) -> UserPlanResponse:
    user_plan = await get_user_plan(db, user_plan_id)
    if user_plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User plan not found")
    try:
        user_plan = await update_user_plan_dates(db, user_plan, body.start_date, body.end_date)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return UserPlanResponse.model_validate(user_plan)


@router.delete("/{user_plan_id}", response_model=UserPlanResponse, summary="Cancel a user plan")
async def cancel_one(user_plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserPlanResponse:
    """Soft delete: the row is kept with status CANCELED."""
    user_plan = await get_user_plan(db, user_plan_id)
    if user_plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User plan not found")
    user_plan = await cancel_user_plan(db, user_plan)
    return UserPlanResponse.model_validate(user_plan)
