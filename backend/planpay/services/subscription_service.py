"""Subscription service — turns settled payments into user plans.

``handle_successful_payment`` is the single writer of new ``UserPlan`` rows.
Both gateway handlers call it after marking a transaction PAID, and the admin
API uses it for manual grants. The rest of the module is the read side used
by the user-plans routes and the premium-flag derivation shared with the
expiration sweeper.
"""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.database import utcnow
from planpay.models.user_plan import UserPlan, UserPlanStatus
from planpay.services.ledger import find_plan, find_user, update_user_status

logger = logging.getLogger(__name__)


class SubscriptionGrantError(Exception):
    """A settled payment could not be turned into a user plan."""


class ActivePlanExistsError(SubscriptionGrantError):
    def __init__(self, user_id: uuid.UUID, user_plan_id: uuid.UUID) -> None:
        super().__init__(f"User {user_id} already has an active plan {user_plan_id}")
        self.user_id = user_id
        self.user_plan_id = user_plan_id


class PlanNotFoundError(SubscriptionGrantError):
    def __init__(self, plan_id: uuid.UUID) -> None:
        super().__init__(f"Plan with ID {plan_id} not found")
        self.plan_id = plan_id


class UserNotFoundError(SubscriptionGrantError):
    def __init__(self, user_id: uuid.UUID) -> None:
        super().__init__(f"User with ID {user_id} not found")
        self.user_id = user_id


async def find_active_user_plan(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
    exclude_id: uuid.UUID | None = None,
) -> UserPlan | None:
    """Return the user's ACTIVE plan whose end_date has not passed, if any."""
    now = now or utcnow()
    query = select(UserPlan).where(
        UserPlan.user_id == user_id,
        UserPlan.status == UserPlanStatus.ACTIVE,
        UserPlan.end_date >= now,
    )
    if exclude_id is not None:
        query = query.where(UserPlan.id != exclude_id)
    result = await db.execute(query.order_by(UserPlan.end_date.desc()).limit(1))
    return result.scalar_one_or_none()


async def refresh_user_status(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    """Recompute the premium flag from the user's plans and store it."""
    # Same lock as the reconciler, taken before reading the plans.
    await find_user(db, user_id, for_update=True)
    active = await find_active_user_plan(db, user_id, now=now, exclude_id=exclude_id)
    status = active is not None
    await update_user_status(db, user_id, status)
    return status


async def _expire_stale_user_plans(db: AsyncSession, user_id: uuid.UUID, now: datetime) -> int:
    """Mark ACTIVE plans that already ended as EXPIRED (the sweeper may lag behind)."""
    result = await db.execute(
        update(UserPlan)
        .where(
            UserPlan.user_id == user_id,
            UserPlan.status == UserPlanStatus.ACTIVE,
            UserPlan.end_date < now,
        )
        .values(status=UserPlanStatus.EXPIRED)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount:
        logger.info("Expired %d stale plan(s) of user %s", result.rowcount, user_id)
    return result.rowcount


async def handle_successful_payment(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID,
    now: datetime | None = None,
) -> UserPlan:
    """Grant ``plan_id`` to ``user_id`` after a settled payment.

    Runs in a SAVEPOINT: either the stale plans are expired, the new ACTIVE
    plan is inserted and the user is flagged premium, or nothing changes.

    Raises:
        UserNotFoundError: The user does not exist.
        ActivePlanExistsError: The user already holds an ACTIVE, unexpired plan.
        PlanNotFoundError: The plan does not exist.
    """
    logger.info("Processing successful payment for user %s and plan %s", user_id, plan_id)
    now = now or utcnow()

    async with db.begin_nested():
        # Row lock serializes concurrent grants for the same user.
        user = await find_user(db, user_id, for_update=True)
        if user is None:
            raise UserNotFoundError(user_id)

        existing = await find_active_user_plan(db, user_id, now=now)
        if existing is not None:
            raise ActivePlanExistsError(user_id, existing.id)

        await _expire_stale_user_plans(db, user_id, now)

        plan = await find_plan(db, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)

        user_plan = UserPlan(
            user_id=user_id,
            plan_id=plan_id,
            start_date=now,
            end_date=now + timedelta(days=plan.duration),
            status=UserPlanStatus.ACTIVE,
        )
        db.add(user_plan)
        user.status = True
        await db.flush()

    logger.info(
        "Created user plan %s for user %s (ends %s), user marked premium",
        user_plan.id,
        user_id,
        user_plan.end_date.isoformat(),
    )
    return user_plan


async def get_user_plan(db: AsyncSession, user_plan_id: uuid.UUID) -> UserPlan | None:
    result = await db.execute(select(UserPlan).where(UserPlan.id == user_plan_id))
    return result.scalar_one_or_none()


async def list_user_plans(
    db: AsyncSession,
    skip: int = 0,
    limit: int | None = None,
    user_id: uuid.UUID | None = None,
) -> list[UserPlan]:
    """List user plans, newest first, optionally for one user."""
    query = select(UserPlan)
    if user_id is not None:
        query = query.where(UserPlan.user_id == user_id)
    query = query.order_by(UserPlan.created_at.desc()).offset(skip)
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_expired_user_plans(db: AsyncSession, now: datetime | None = None) -> list[UserPlan]:
    """List plans whose end_date has passed, whatever their status."""
    now = now or utcnow()
    result = await db.execute(
        select(UserPlan).where(UserPlan.end_date < now).order_by(UserPlan.end_date.desc())
    )
    return list(result.scalars().all())


async def cancel_user_plan(
    db: AsyncSession, user_plan: UserPlan, now: datetime | None = None
) -> UserPlan:
    """Soft-delete a user plan (status CANCELED) and recompute the premium flag."""
    if user_plan.status == UserPlanStatus.CANCELED:
        return user_plan

    async with db.begin_nested():
        await find_user(db, user_plan.user_id, for_update=True)
        user_plan.status = UserPlanStatus.CANCELED
        await db.flush()
        await refresh_user_status(db, user_plan.user_id, now=now)

    logger.info("User plan %s of user %s canceled", user_plan.id, user_plan.user_id)
    return user_plan


async def update_user_plan_dates(
    db: AsyncSession,
    user_plan: UserPlan,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> UserPlan:
    """Move a plan's start or end date and recompute the premium flag.

    The status is left alone; an ACTIVE plan moved into the past is picked
    up by the next sweep, and stops counting as premium right away.

    Raises:
        ValueError: The resulting end_date is not after start_date.
    """
    new_start = start_date or user_plan.start_date
    new_end = end_date or user_plan.end_date
    if new_end <= new_start:
        raise ValueError("end_date must be after start_date")

    async with db.begin_nested():
        await find_user(db, user_plan.user_id, for_update=True)
        user_plan.start_date = new_start
        user_plan.end_date = new_end
        await db.flush()
        await refresh_user_status(db, user_plan.user_id, now=now)

    logger.info("User plan %s dates set to %s - %s", user_plan.id, new_start.isoformat(), new_end.isoformat())
    return user_plan


async def grant_after_settlement(
    db: AsyncSession, user_id: uuid.UUID, plan_id: uuid.UUID, source: str
) -> UserPlan | None:
    """Run ``handle_successful_payment`` for a gateway that just settled a payment.

    A ``SubscriptionGrantError`` is logged and swallowed: the payment is
    already PAID and stays PAID; the grant has to be repaired out of band.
    Store errors still propagate.
    """
    try:
        user_plan = await handle_successful_payment(db, user_id, plan_id)
    except SubscriptionGrantError as e:
        logger.error("Error handling successful payment %s: %s", source, e)
        return None
    logger.info("Successfully processed user plan for userId=%s, planId=%s (%s)", user_id, plan_id, source)
    return user_plan
