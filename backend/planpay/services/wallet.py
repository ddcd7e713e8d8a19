"""Coin wallet: premium avatar purchases and coin rankings."""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.models.avatar import Avatar
from planpay.models.user import User
from planpay.services.ledger import find_user

logger = logging.getLogger(__name__)


class WalletError(Exception):
    """A coin operation was refused."""


class AvatarNotFoundError(WalletError):
    def __init__(self, avatar_id: uuid.UUID) -> None:
        super().__init__(f"Avatar with ID {avatar_id} not found")
        self.avatar_id = avatar_id


class InsufficientCoinsError(WalletError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient coins. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


async def find_avatar(db: AsyncSession, avatar_id: uuid.UUID) -> Avatar | None:
    result = await db.execute(select(Avatar).where(Avatar.id == avatar_id))
    return result.scalar_one_or_none()


async def purchase_premium_avatar(
    db: AsyncSession, user_id: uuid.UUID, avatar_id: uuid.UUID
) -> tuple[User, Avatar] | None:
    """Debit the avatar's price from the user and set it as their premium avatar.

    The user row is locked for the check and the debit, so two purchases
    can never spend the same coins. Returns None if the user does not exist.

    Raises:
        AvatarNotFoundError: The avatar does not exist.
        InsufficientCoinsError: The balance is below the avatar's price.
    """
    async with db.begin_nested():
        user = await find_user(db, user_id, for_update=True)
        if user is None:
            return None

        avatar = await find_avatar(db, avatar_id)
        if avatar is None:
            raise AvatarNotFoundError(avatar_id)

        if user.coins < avatar.price:
            raise InsufficientCoinsError(avatar.price, user.coins)

        previous = user.coins
        user.coins = previous - avatar.price
        user.premium_avatar_id = avatar.id
        await db.flush()

    logger.info(
        "User %s bought premium avatar %s. Coins: %d -> %d",
        user_id,
        avatar_id,
        previous,
        user.coins,
    )
    return user, avatar


async def coin_rank(db: AsyncSession, user: User) -> int:
    """All-time position by coins; users with equal balances share a rank."""
    result = await db.execute(select(func.count()).select_from(User).where(User.coins > user.coins))
    return result.scalar_one() + 1
