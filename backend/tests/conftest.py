"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets its own connection with an outer transaction that rolls back.
- Sessions join it through SAVEPOINTs, so handler commits and rollbacks stay
  inside the test.
- SQLite in memory (aiosqlite) by default; set TEST_DATABASE_URL to run the
  same suite against PostgreSQL.
"""

import base64
import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from planpay.config import settings
from planpay.database import Base, get_db
from planpay.main import app
from planpay.models.plan import Plan, PlanName
from planpay.models.user import User

TEST_CLICK_SECRET = "click-test-secret"
TEST_PAYME_PASSWORD = "payme-test-key"
TEST_PAYME_SANDBOX_PASSWORD = "payme-sandbox-key"
TEST_ADMIN_PASSWORD = "admin-test-password"

_test_db_url = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _make_engine() -> AsyncEngine:
    if not _test_db_url.startswith("sqlite"):
        return create_async_engine(_test_db_url, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        _test_db_url,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ---------------------------------------------------------------------------
# Gateway and admin credentials
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def gateway_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Known secrets for every test; restored afterwards by monkeypatch."""
    monkeypatch.setattr(settings, "click_secret", TEST_CLICK_SECRET)
    monkeypatch.setattr(settings, "click_service_id", "12345")
    monkeypatch.setattr(settings, "click_merchant_id", "67890")
    monkeypatch.setattr(settings, "click_merchant_user_id", "111")
    monkeypatch.setattr(settings, "payme_merchant_id", "payme-merchant")
    monkeypatch.setattr(settings, "payme_login", "Paycom")
    monkeypatch.setattr(settings, "payme_password", TEST_PAYME_PASSWORD)
    monkeypatch.setattr(settings, "payme_password_test", TEST_PAYME_SANDBOX_PASSWORD)
    monkeypatch.setattr(settings, "payme_transaction_timeout_minutes", 720)
    monkeypatch.setattr(settings, "admin_login", "admin")
    monkeypatch.setattr(settings, "admin_password", TEST_ADMIN_PASSWORD)


# ---------------------------------------------------------------------------
# Per-test database: schema, outer transaction, session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_connection(test_engine: AsyncEngine) -> AsyncGenerator[AsyncConnection, None]:
    """A connection whose outer transaction always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        try:
            yield connection
        finally:
            await transaction.rollback()


@pytest.fixture
def session_factory(db_connection: AsyncConnection) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test connection (for the sweeper worker)."""
    return async_sessionmaker(
        bind=db_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session whose commits only release a SAVEPOINT."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


def _basic(login: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{login}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _basic("admin", TEST_ADMIN_PASSWORD)


@pytest.fixture
def payme_headers() -> dict[str, str]:
    return _basic("Paycom", TEST_PAYME_PASSWORD)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make_user(**overrides) -> User:
        unique = uuid.uuid4().hex[:8]
        fields = {"email": f"user-{unique}@test.com", "username": f"user-{unique}"}
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


@pytest.fixture
def make_plan(db_session: AsyncSession) -> Callable[..., Awaitable[Plan]]:
    async def _make_plan(**overrides) -> Plan:
        fields = {"name": PlanName.STANDARD.value, "price": 10000, "duration": 30}
        fields.update(overrides)
        plan = Plan(**fields)
        db_session.add(plan)
        await db_session.flush()
        return plan

    return _make_plan


@pytest_asyncio.fixture
async def test_user(make_user) -> User:
    return await make_user()


@pytest_asyncio.fixture
async def test_plan(make_plan) -> Plan:
    """30-day plan priced 10000 sum (1000000 tiyin)."""
    return await make_plan()
