"""Tests for the Click prepare/complete state machine."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.database import utcnow
from planpay.models.plan import Plan
from planpay.models.transaction import ClickTransaction, TransactionStatus
from planpay.models.user import User
from planpay.models.user_plan import UserPlan, UserPlanStatus
from planpay.payments.click import ClickAction, ClickError, handle_merchant_transaction
from planpay.payments.signature import click_sign
from planpay.schemas.click import ClickRequest

SECRET = "click-handler-secret"
SERVICE_ID = 12345
SIGN_TIME = "2024-05-01 12:00:00"


def _request(
    user_id,
    plan_id,
    action: int,
    click_trans_id: int = 1001,
    amount: Decimal | int = 10000,
    prepare_id: int | None = None,
    error: int = 0,
    secret: str = SECRET,
) -> ClickRequest:
    sign = click_sign(
        click_trans_id,
        SERVICE_ID,
        secret,
        str(plan_id),
        amount,
        action,
        SIGN_TIME,
        merchant_prepare_id=prepare_id if action == ClickAction.COMPLETE else None,
    )
    return ClickRequest(
        click_trans_id=click_trans_id,
        service_id=SERVICE_ID,
        merchant_trans_id=str(plan_id),
        merchant_prepare_id=prepare_id,
        param2=str(user_id),
        amount=Decimal(str(amount)),
        action=action,
        error=error,
        sign_time=SIGN_TIME,
        sign_string=sign,
    )


async def _prepare(db: AsyncSession, user: User, plan: Plan, **kwargs) -> dict:
    return await handle_merchant_transaction(
        db, _request(user.id, plan.id, ClickAction.PREPARE, **kwargs), secret_key=SECRET
    )


async def _complete(db: AsyncSession, user: User, plan: Plan, prepare_id: int, **kwargs) -> dict:
    return await handle_merchant_transaction(
        db,
        _request(user.id, plan.id, ClickAction.COMPLETE, prepare_id=prepare_id, **kwargs),
        secret_key=SECRET,
    )


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _user_plans(db: AsyncSession, user: User) -> list[UserPlan]:
    result = await db.execute(select(UserPlan).where(UserPlan.user_id == user.id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_action_returns_action_not_found(self, db_session, test_user, test_plan):
        request = _request(test_user.id, test_plan.id, ClickAction.PREPARE).model_copy(update={"action": 7})
        response = await handle_merchant_transaction(db_session, request, secret_key=SECRET)

        assert response == {"error": ClickError.ACTION_NOT_FOUND, "error_note": "Invalid action"}
        assert await _count(db_session, ClickTransaction) == 0


# ---------------------------------------------------------------------------
# prepare
# ---------------------------------------------------------------------------


class TestPrepare:
    """Prepare validates and opens a PENDING transaction."""

    @pytest.mark.asyncio
    async def test_creates_pending_transaction(self, db_session, test_user, test_plan):
        response = await _prepare(db_session, test_user, test_plan)

        assert response["error"] == ClickError.SUCCESS
        assert response["error_note"] == "Success"
        assert response["click_trans_id"] == 1001
        assert response["merchant_trans_id"] == str(test_plan.id)

        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PENDING
        assert txn.click_trans_id == "1001"
        assert txn.user_id == test_user.id
        assert txn.plan_id == test_plan.id
        assert int(txn.prepare_id) == response["merchant_prepare_id"]

    @pytest.mark.asyncio
    async def test_bad_signature_rejected_without_writes(self, db_session, test_user, test_plan):
        response = await _prepare(db_session, test_user, test_plan, secret="wrong-secret")

        assert response["error"] == ClickError.SIGN_FAILED
        assert await _count(db_session, ClickTransaction) == 0

    @pytest.mark.asyncio
    async def test_amount_mismatch_rejected(self, db_session, test_user, test_plan):
        response = await _prepare(db_session, test_user, test_plan, amount=9999)

        assert response["error"] == ClickError.INVALID_AMOUNT
        assert await _count(db_session, ClickTransaction) == 0

    @pytest.mark.asyncio
    async def test_amount_is_compared_without_minor_units(self, db_session, test_user, test_plan):
        response = await _prepare(db_session, test_user, test_plan, amount=test_plan.price * 100)

        assert response["error"] == ClickError.INVALID_AMOUNT

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, test_plan):
        ghost = User(id=uuid.uuid4(), email="ghost@test.com")
        response = await _prepare(db_session, ghost, test_plan)

        assert response["error"] == ClickError.USER_NOT_FOUND
        assert await _count(db_session, ClickTransaction) == 0

    @pytest.mark.asyncio
    async def test_unknown_plan(self, db_session, test_user):
        ghost = Plan(id=uuid.uuid4(), name="basic", price=10000, duration=30)
        response = await _prepare(db_session, test_user, ghost)

        assert response["error"] == ClickError.USER_NOT_FOUND
        assert response["error_note"] == "Product not found"

    @pytest.mark.asyncio
    async def test_malformed_user_id(self, db_session, test_plan):
        sign = click_sign(1001, SERVICE_ID, SECRET, str(test_plan.id), 10000, 0, SIGN_TIME)
        request = ClickRequest(
            click_trans_id=1001,
            service_id=SERVICE_ID,
            merchant_trans_id=str(test_plan.id),
            param2="not-a-uuid",
            amount=Decimal("10000"),
            action=0,
            sign_time=SIGN_TIME,
            sign_string=sign,
        )
        response = await handle_merchant_transaction(db_session, request, secret_key=SECRET)

        assert response["error"] == ClickError.USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_replay_returns_same_prepare_id(self, db_session, test_user, test_plan):
        first = await _prepare(db_session, test_user, test_plan)
        second = await _prepare(db_session, test_user, test_plan)

        assert second["error"] == ClickError.SUCCESS
        assert second["merchant_prepare_id"] == first["merchant_prepare_id"]
        assert await _count(db_session, ClickTransaction) == 1

    @pytest.mark.asyncio
    async def test_already_paid_pair_rejected(self, db_session, test_user, test_plan):
        first = await _prepare(db_session, test_user, test_plan)
        await _complete(db_session, test_user, test_plan, first["merchant_prepare_id"])

        response = await _prepare(db_session, test_user, test_plan, click_trans_id=2002)

        assert response["error"] == ClickError.ALREADY_PAID
        assert await _count(db_session, ClickTransaction) == 1

    @pytest.mark.asyncio
    async def test_canceled_pair_rejected(self, db_session, test_user, test_plan):
        first = await _prepare(db_session, test_user, test_plan)
        await _complete(db_session, test_user, test_plan, first["merchant_prepare_id"], error=5017)

        response = await _prepare(db_session, test_user, test_plan, click_trans_id=2002)

        assert response["error"] == ClickError.TRANSACTION_CANCELED


# ---------------------------------------------------------------------------
# complete
# ---------------------------------------------------------------------------


class TestComplete:
    """Complete settles the transaction and grants the plan."""

    @pytest.mark.asyncio
    async def test_prepare_then_complete_grants_plan(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"])

        assert response == {
            "click_trans_id": 1001,
            "merchant_trans_id": str(test_plan.id),
            "error": ClickError.SUCCESS,
            "error_note": "Success",
        }

        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PAID
        assert txn.action == ClickAction.COMPLETE

        plans = await _user_plans(db_session, test_user)
        assert len(plans) == 1
        assert plans[0].status == UserPlanStatus.ACTIVE
        assert plans[0].end_date - plans[0].start_date == timedelta(days=test_plan.duration)

        await db_session.refresh(test_user)
        assert test_user.status is True

    @pytest.mark.asyncio
    async def test_second_complete_is_already_paid(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"])

        response = await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"])

        assert response["error"] == ClickError.ALREADY_PAID
        assert len(await _user_plans(db_session, test_user)) == 1

    @pytest.mark.asyncio
    async def test_bad_signature_leaves_transaction_pending(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(
            db_session, test_user, test_plan, prepared["merchant_prepare_id"], secret="forged"
        )

        assert response["error"] == ClickError.SIGN_FAILED
        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PENDING
        assert await _user_plans(db_session, test_user) == []

    @pytest.mark.asyncio
    async def test_complete_without_prepare(self, db_session, test_user, test_plan):
        response = await _complete(db_session, test_user, test_plan, 1714564800000)

        assert response["error"] == ClickError.TRANSACTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_prepare_id(self, db_session, test_user, test_plan):
        await _prepare(db_session, test_user, test_plan)
        response = await _complete(db_session, test_user, test_plan, None)

        assert response["error"] == ClickError.TRANSACTION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_amount_mismatch_rejected(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(
            db_session, test_user, test_plan, prepared["merchant_prepare_id"], amount=500
        )

        assert response["error"] == ClickError.INVALID_AMOUNT
        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_gateway_error_cancels_transaction(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(
            db_session, test_user, test_plan, prepared["merchant_prepare_id"], error=5017
        )

        assert response == {"error": 5017, "error_note": "Failed"}
        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.CANCELED
        assert await _user_plans(db_session, test_user) == []
        await db_session.refresh(test_user)
        assert test_user.status is False

    @pytest.mark.asyncio
    async def test_negative_error_code_settles(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(
            db_session, test_user, test_plan, prepared["merchant_prepare_id"], error=-5017
        )

        assert response["error"] == ClickError.SUCCESS
        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PAID
        plans = await _user_plans(db_session, test_user)
        assert len(plans) == 1
        assert plans[0].status == UserPlanStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_complete_after_cancel(self, db_session, test_user, test_plan):
        prepared = await _prepare(db_session, test_user, test_plan)
        await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"], error=5017)

        response = await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"])

        assert response["error"] == ClickError.TRANSACTION_CANCELED

    @pytest.mark.asyncio
    async def test_grant_failure_keeps_payment_paid(self, db_session, test_user, test_plan, make_plan):
        """User already holds an active plan: payment settles, no second plan is granted."""
        other_plan = await make_plan(price=5000, duration=7)
        now = utcnow()
        db_session.add(
            UserPlan(
                user_id=test_user.id,
                plan_id=other_plan.id,
                start_date=now,
                end_date=now + timedelta(days=7),
                status=UserPlanStatus.ACTIVE,
            )
        )
        await db_session.flush()

        prepared = await _prepare(db_session, test_user, test_plan)
        response = await _complete(db_session, test_user, test_plan, prepared["merchant_prepare_id"])

        assert response["error"] == ClickError.SUCCESS
        txn = (await db_session.execute(select(ClickTransaction))).scalar_one()
        assert txn.status == TransactionStatus.PAID
        plans = await _user_plans(db_session, test_user)
        assert len(plans) == 1
        assert plans[0].plan_id == other_plan.id
