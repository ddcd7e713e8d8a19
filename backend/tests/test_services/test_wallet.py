"""Tests for coin debits and rankings."""

import uuid

import pytest

from planpay.models.avatar import Avatar
from planpay.services.wallet import (
    AvatarNotFoundError,
    InsufficientCoinsError,
    coin_rank,
    purchase_premium_avatar,
)


async def _avatar(db, price: int) -> Avatar:
    avatar = Avatar(name="Night owl", price=price)
    db.add(avatar)
    await db.flush()
    return avatar


class TestPurchasePremiumAvatar:
    @pytest.mark.asyncio
    async def test_exact_balance_can_be_spent(self, db_session, make_user):
        user = await make_user(coins=100)
        avatar = await _avatar(db_session, price=100)

        buyer, bought = await purchase_premium_avatar(db_session, user.id, avatar.id)

        assert buyer.coins == 0
        assert buyer.premium_avatar_id == avatar.id
        assert bought is avatar

    @pytest.mark.asyncio
    async def test_second_purchase_cannot_spend_the_same_coins(self, db_session, make_user):
        user = await make_user(coins=120)
        avatar = await _avatar(db_session, price=100)

        await purchase_premium_avatar(db_session, user.id, avatar.id)
        with pytest.raises(InsufficientCoinsError) as exc:
            await purchase_premium_avatar(db_session, user.id, avatar.id)

        assert exc.value.available == 20
        assert user.coins == 20

    @pytest.mark.asyncio
    async def test_missing_avatar_leaves_balance(self, db_session, make_user):
        user = await make_user(coins=50)

        with pytest.raises(AvatarNotFoundError):
            await purchase_premium_avatar(db_session, user.id, uuid.uuid4())

        assert user.coins == 50
        assert user.premium_avatar_id is None

    @pytest.mark.asyncio
    async def test_missing_user(self, db_session):
        avatar = await _avatar(db_session, price=1)
        assert await purchase_premium_avatar(db_session, uuid.uuid4(), avatar.id) is None


class TestCoinRank:
    @pytest.mark.asyncio
    async def test_ties_share_a_rank(self, db_session, make_user):
        top = await make_user(coins=90)
        first_tie = await make_user(coins=40)
        second_tie = await make_user(coins=40)
        last = await make_user(coins=0)

        assert await coin_rank(db_session, top) == 1
        assert await coin_rank(db_session, first_tie) == 2
        assert await coin_rank(db_session, second_tie) == 2
        assert await coin_rank(db_session, last) == 4
