"""Plan expiration sweeper: expires ended user plans and demotes users.

The sweep runs hourly from the FastAPI lifespan, plus a daily full pass at
UTC midnight. Every plan is expired in its own session and committed on its
own, so one failure never undoes the others. It shares rows with live
webhook traffic, so the premium flag is always recomputed from user plans
instead of being toggled.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from planpay.database import utcnow
from planpay.models.user_plan import UserPlan, UserPlanStatus
from planpay.services.ledger import find_user
from planpay.services.subscription_service import refresh_user_status

logger = logging.getLogger(__name__)


async def find_stale_plan_ids(db: AsyncSession, now: datetime) -> list[uuid.UUID]:
    result = await db.execute(
        select(UserPlan.id)
        .where(UserPlan.status == UserPlanStatus.ACTIVE, UserPlan.end_date < now)
        .order_by(UserPlan.end_date)
    )
    return list(result.scalars().all())


async def expire_user_plan(db: AsyncSession, user_plan_id: uuid.UUID, now: datetime) -> bool:
    """Mark one ended plan EXPIRED and recompute its user's premium flag.

    The user row is locked before the plan, in the same order the reconciler
    uses. Returns False when the plan is no longer ACTIVE and ended (a
    payment or an admin got to it first).
    """
    result = await db.execute(select(UserPlan.user_id).where(UserPlan.id == user_plan_id))
    user_id = result.scalar_one_or_none()
    if user_id is None:
        return False

    await find_user(db, user_id, for_update=True)
    result = await db.execute(
        select(UserPlan)
        .where(
            UserPlan.id == user_plan_id,
            UserPlan.status == UserPlanStatus.ACTIVE,
            UserPlan.end_date < now,
        )
        .with_for_update()
    )
    user_plan = result.scalar_one_or_none()
    if user_plan is None:
        logger.info("Plan %s already handled, skipping", user_plan_id)
        return False

    user_plan.status = UserPlanStatus.EXPIRED
    await db.flush()

    premium = await refresh_user_status(db, user_id, now=now)
    if not premium:
        logger.info("User %s set to non-premium (no active plans remaining)", user_id)

    logger.info("Plan %s for user %s marked as EXPIRED", user_plan_id, user_id)
    return True


async def expire_stale_plans(
    session_factory: async_sessionmaker[AsyncSession], now: datetime | None = None
) -> int:
    """Expire every ACTIVE user plan whose end_date has passed.

    Each plan gets its own session and commit; a failure is logged, rolled
    back and the sweep moves on to the next plan.

    Returns:
        Number of plans marked EXPIRED.
    """
    now = now or utcnow()
    async with session_factory() as db:
        stale = await find_stale_plan_ids(db, now)

    if not stale:
        logger.info("No expired plans found")
        return 0

    logger.info("Found %d expired plans to process", len(stale))
    expired = 0
    for user_plan_id in stale:
        async with session_factory() as db:
            try:
                done = await expire_user_plan(db, user_plan_id, now)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Error processing expired plan %s", user_plan_id)
                continue
        if done:
            expired += 1

    return expired


def next_midnight(now: datetime) -> datetime:
    return datetime.combine(now.date() + timedelta(days=1), time.min)


class PlanExpirationWorker:
    """Runs ``expire_stale_plans`` hourly and at every UTC midnight until cancelled."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval_seconds: float = 3600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock
        now = clock()
        self.next_regular_run = now
        self.next_daily_run = next_midnight(now)

    def seconds_until_due(self, now: datetime) -> float:
        due = min(self.next_regular_run, self.next_daily_run)
        return max((due - now).total_seconds(), 0.0)

    def take_due(self, now: datetime) -> bool | None:
        """Advance the schedule past ``now``.

        Returns None when nothing is due yet, True for the daily pass and
        False for a regular run. A daily pass that coincides with a regular
        run covers both.
        """
        daily = now >= self.next_daily_run
        regular = now >= self.next_regular_run
        if not (daily or regular):
            return None
        if daily:
            self.next_daily_run = next_midnight(now)
        if regular:
            self.next_regular_run = now + timedelta(seconds=self.interval_seconds)
        return daily

    async def run_once(self, daily: bool = False) -> int:
        """Run one sweep; each plan commits in its own session."""
        if daily:
            logger.info("Starting daily comprehensive cleanup...")
        else:
            logger.info("Starting expired plans cleanup job...")

        expired = await expire_stale_plans(self.session_factory, now=self.clock())

        logger.info("Expired plans cleanup job completed (%d expired)", expired)
        return expired

    async def run_forever(self) -> None:
        logger.info("Plan expiration worker started (interval: %s seconds)", self.interval_seconds)
        while True:
            now = self.clock()
            daily = self.take_due(now)
            if daily is None:
                await asyncio.sleep(self.seconds_until_due(now))
                continue
            try:
                await self.run_once(daily=daily)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in expired plans cleanup job")
