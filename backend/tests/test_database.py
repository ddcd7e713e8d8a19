"""Tests for the request-scoped session dependency."""

import pytest
from sqlalchemy import func, select

from planpay import database
from planpay.database import get_db
from planpay.models.user import User


async def _count_users(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(User))).scalar_one()


class TestGetDb:
    @pytest.mark.asyncio
    async def test_commits_when_route_returns(self, session_factory, monkeypatch):
        monkeypatch.setattr(database, "async_session_factory", session_factory)

        dependency = get_db()
        session = await anext(dependency)
        session.add(User(email="kept@test.com"))
        with pytest.raises(StopAsyncIteration):
            await anext(dependency)

        assert await _count_users(session_factory) == 1

    @pytest.mark.asyncio
    async def test_rolls_back_when_route_raises(self, session_factory, monkeypatch):
        monkeypatch.setattr(database, "async_session_factory", session_factory)

        dependency = get_db()
        session = await anext(dependency)
        session.add(User(email="dropped@test.com"))
        await session.flush()
        with pytest.raises(RuntimeError):
            await dependency.athrow(RuntimeError("route failed"))

        assert await _count_users(session_factory) == 0
