"""Ledger lookups shared by the gateway handlers and the reconciler."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.models.plan import Plan
from planpay.models.user import User

logger = logging.getLogger(__name__)


def parse_identifier(value: object) -> uuid.UUID | None:
    """Return ``value`` as a UUID, or None if it is not a well-formed identifier."""
    if isinstance(value, uuid.UUID):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


async def find_user(
    db: AsyncSession, user_id: uuid.UUID | None, for_update: bool = False
) -> User | None:
    """Look up a user by id.

    ``for_update`` takes a row lock (PostgreSQL) and reloads the row, so a
    user already in the session sees what the previous lock holder wrote.
    """
    if user_id is None:
        return None
    query = select(User).where(User.id == user_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def find_plan(db: AsyncSession, plan_id: uuid.UUID | None) -> Plan | None:
    """Look up a plan by id."""
    if plan_id is None:
        return None
    result = await db.execute(select(Plan).where(Plan.id == plan_id))
    return result.scalar_one_or_none()


async def update_user_status(db: AsyncSession, user_id: uuid.UUID, status: bool) -> User | None:
    """Set the premium flag of a user. Returns None if the user does not exist."""
    user = await find_user(db, user_id)
    if user is None:
        logger.warning("Cannot set premium status of missing user %s", user_id)
        return None
    if user.status != status:
        user.status = status
        await db.flush()
        logger.info("User %s premium status set to %s", user_id, status)
    return user
