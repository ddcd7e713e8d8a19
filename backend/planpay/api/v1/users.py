"""User admin routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.models.user import User
from planpay.schemas.avatar import AvatarResponse
from planpay.schemas.user import (
    CoinRanking,
    PremiumUpgradeRequest,
    PremiumUpgradeResponse,
    UserListResponse,
    UserResponse,
    UserStatisticsResponse,
    UserUpdate,
)
from planpay.services.ledger import find_user
from planpay.services.wallet import (
    AvatarNotFoundError,
    InsufficientCoinsError,
    coin_rank,
    purchase_premium_avatar,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["users"], dependencies=[Depends(require_admin)])


async def _get_user_or_404(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await find_user(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


@router.get("", response_model=UserListResponse, summary="List users")
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> UserListResponse:
    total = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    result = await db.execute(select(User).order_by(User.created_at.desc()).offset(skip).limit(limit))
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in result.scalars().all()],
        total=total,
    )


@router.get("/{user_id}", response_model=UserResponse, summary="Get a user")
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserResponse:
    return UserResponse.model_validate(await _get_user_or_404(db, user_id))


@router.patch("/{user_id}", response_model=UserResponse, summary="Update a user")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Rename a user or credit coins. ``coins`` is added to the balance, never assigned."""
    user = await _get_user_or_404(db, user_id)
    data = body.model_dump(exclude_unset=True)

    if data.get("username") is not None:
        user.username = data["username"]
    if data.get("coins"):
        user.coins += data["coins"]
        logger.info("Credited %d coins to user %s (balance %d)", data["coins"], user_id, user.coins)

    await db.flush()
    await db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/{user_id}/statistics", response_model=UserStatisticsResponse, summary="User coin statistics")
async def get_user_statistics(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> UserStatisticsResponse:
    user = await _get_user_or_404(db, user_id)
    rank = await coin_rank(db, user)
    return UserStatisticsResponse(
        **UserResponse.model_validate(user).model_dump(),
        all_time=CoinRanking(rating=rank, total_coins=user.coins),
    )


@router.post(
    "/{user_id}/premium-avatar",
    response_model=PremiumUpgradeResponse,
    summary="Buy a premium avatar with coins",
)
async def upgrade_to_premium_avatar(
    user_id: uuid.UUID,
    body: PremiumUpgradeRequest,
    db: AsyncSession = Depends(get_db),
) -> PremiumUpgradeResponse:
    """Debit the avatar's price from the user's coins.

    Raises:
        HTTPException 404: Unknown user or avatar.
        HTTPException 400: Not enough coins.
    """
    try:
        purchase = await purchase_premium_avatar(db, user_id, body.avatar_id)
    except AvatarNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InsufficientCoinsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if purchase is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    user, avatar = purchase
    await db.refresh(user)
    return PremiumUpgradeResponse(
        user=UserResponse.model_validate(user),
        avatar=AvatarResponse.model_validate(avatar),
    )
