"""Payme merchant API — JSON-RPC transaction methods.

A transaction carries two lifecycle fields: the coarse ``status``
(PENDING/PAID/CANCELED) shared with Click, and Payme's ``state``
(1, 2, -1, -2). Answers are ``{"result": ...}`` or ``{"error": ..., "id": ...}``
where ``id`` is Payme's transaction id; the router always returns HTTP 200.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.config import settings
from planpay.database import utcnow
from planpay.models.transaction import PaymeState, PaymeTransaction, TransactionStatus
from planpay.payments import payme_errors as errors
from planpay.payments.payme_errors import CancelReason
from planpay.schemas.payme import (
    CancelTransactionParams,
    CheckPerformTransactionParams,
    CreateTransactionParams,
    GetStatementParams,
    PaymeRequest,
    TransactionIdParams,
)
from planpay.services.ledger import find_plan, find_user, parse_identifier
from planpay.services.subscription_service import grant_after_settlement

logger = logging.getLogger(__name__)

INVALID_METHOD_RESPONSE = "Invalid transaction method"

PaymeResponse = dict[str, Any]

_EPOCH = datetime(1970, 1, 1)
_ONE_MS = timedelta(milliseconds=1)


class PaymeMethod(StrEnum):
    CHECK_PERFORM_TRANSACTION = "CheckPerformTransaction"
    CREATE_TRANSACTION = "CreateTransaction"
    PERFORM_TRANSACTION = "PerformTransaction"
    CANCEL_TRANSACTION = "CancelTransaction"
    CHECK_TRANSACTION = "CheckTransaction"
    GET_STATEMENT = "GetStatement"


def to_ms(value: datetime | None) -> int | None:
    """Naive UTC datetime -> epoch milliseconds."""
    if value is None:
        return None
    return (value - _EPOCH) // _ONE_MS


def from_ms(value: int) -> datetime:
    """Epoch milliseconds -> naive UTC datetime."""
    return _EPOCH + value * _ONE_MS


def is_expired(created_at: datetime, now: datetime | None = None) -> bool:
    """True once a transaction is older than the Payme timeout (720 minutes by default)."""
    now = now or utcnow()
    timeout = timedelta(minutes=settings.payme_transaction_timeout_minutes)
    return created_at < now - timeout


def _snapshot(transaction: PaymeTransaction) -> dict[str, Any]:
    return {
        "transaction": str(transaction.id),
        "state": transaction.state,
        "create_time": to_ms(transaction.created_at),
    }


async def _find_by_payme_id(
    db: AsyncSession, payme_trans_id: str, for_update: bool = False
) -> PaymeTransaction | None:
    query = select(PaymeTransaction).where(PaymeTransaction.payme_trans_id == payme_trans_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _cancel(
    db: AsyncSession,
    transaction: PaymeTransaction,
    state: PaymeState,
    reason: int | None,
    now: datetime | None = None,
) -> PaymeTransaction:
    transaction.status = TransactionStatus.CANCELED
    transaction.state = state
    transaction.reason = reason
    transaction.cancel_at = now or utcnow()
    await db.flush()
    logger.info(
        "Payme transaction %s canceled (state=%s, reason=%s)",
        transaction.payme_trans_id,
        int(state),
        reason,
    )
    return transaction


async def _cancel_due_to_timeout(db: AsyncSession, transaction: PaymeTransaction) -> PaymeResponse:
    logger.warning("Transaction %s expired - canceling it", transaction.payme_trans_id)
    await _cancel(db, transaction, PaymeState.PENDING_CANCELED, CancelReason.CANCELED_DUE_TO_TIMEOUT)
    return {
        "error": errors.CANT_DO_OPERATION.as_dict(
            state=int(PaymeState.PENDING_CANCELED),
            reason=int(CancelReason.CANCELED_DUE_TO_TIMEOUT),
        ),
        "id": transaction.payme_trans_id,
    }


async def check_perform_transaction(
    db: AsyncSession, params: CheckPerformTransactionParams
) -> PaymeResponse:
    """Can this user buy this plan for this amount? Read-only."""
    plan_id = parse_identifier(params.account.plan_id)
    user_id = parse_identifier(params.account.user_id)
    logger.debug("CheckPerformTransaction userId=%s planId=%s", params.account.user_id, params.account.plan_id)

    if plan_id is None or user_id is None:
        logger.warning(
            "Malformed account - plan_id=%r, user_id=%r",
            params.account.plan_id,
            params.account.user_id,
        )
        return {"error": errors.PRODUCT_OR_USER_NOT_FOUND.as_dict()}

    plan = await find_plan(db, plan_id)
    user = await find_user(db, user_id)
    if plan is None or user is None:
        logger.warning("Lookup failed - plan found: %s, user found: %s", plan is not None, user is not None)
        return {"error": errors.PRODUCT_OR_USER_NOT_FOUND.as_dict()}

    if params.amount != plan.price * 100:
        logger.warning("Amount mismatch - plan.price: %s, received amount: %s", plan.price, params.amount)
        return {"error": errors.INVALID_AMOUNT.as_dict()}

    return {"result": {"allow": True}}


async def create_transaction(db: AsyncSession, params: CreateTransactionParams) -> PaymeResponse:
    """Open a PENDING transaction, or replay the stored one for the same id."""
    trans_id = params.id
    plan_id = parse_identifier(params.account.plan_id)
    user_id = parse_identifier(params.account.user_id)
    logger.info("CreateTransaction %s - planId=%s, userId=%s, amount=%s", trans_id, plan_id, user_id, params.amount)

    if plan_id is None:
        logger.warning("Invalid planId %r", params.account.plan_id)
        return {"error": errors.PRODUCT_NOT_FOUND.as_dict(), "id": trans_id}
    if user_id is None:
        logger.warning("Invalid userId %r", params.account.user_id)
        return {"error": errors.USER_NOT_FOUND.as_dict(), "id": trans_id}

    plan = await find_plan(db, plan_id)
    user = await find_user(db, user_id)
    if user is None:
        logger.warning("User %s not found", user_id)
        return {"error": errors.USER_NOT_FOUND.as_dict(), "id": trans_id}
    if plan is None:
        logger.warning("Plan %s not found", plan_id)
        return {"error": errors.PRODUCT_NOT_FOUND.as_dict(), "id": trans_id}

    if params.amount != plan.price * 100:
        logger.warning("Price mismatch - plan.price: %s, amount: %s", plan.price, params.amount)
        return {"error": errors.INVALID_AMOUNT.as_dict(), "id": trans_id}

    result = await db.execute(
        select(PaymeTransaction)
        .where(
            PaymeTransaction.user_id == user_id,
            PaymeTransaction.plan_id == plan_id,
            PaymeTransaction.status == TransactionStatus.PENDING,
        )
        .limit(1)
        .with_for_update()
    )
    pending = result.scalar_one_or_none()
    if pending is not None:
        if pending.payme_trans_id == trans_id:
            logger.info("Same transaction id %s found - returning existing transaction", trans_id)
            return {"result": _snapshot(pending)}
        logger.warning(
            "Transaction %s in process for user %s / plan %s, rejecting %s",
            pending.payme_trans_id,
            user_id,
            plan_id,
            trans_id,
        )
        return {"error": errors.TRANSACTION_IN_PROCESS.as_dict(), "id": trans_id}

    transaction = await _find_by_payme_id(db, trans_id, for_update=True)
    if transaction is not None:
        if is_expired(transaction.created_at):
            return await _cancel_due_to_timeout(db, transaction)
        logger.info("Transaction %s already exists - returning its snapshot", trans_id)
        return {"result": _snapshot(transaction)}

    # Plan or user may have changed since the checks above.
    check = await check_perform_transaction(
        db,
        CheckPerformTransactionParams(amount=plan.price * 100, account=params.account),
    )
    if "error" in check:
        logger.warning("Final authorization check failed for %s", trans_id)
        return {"error": check["error"], "id": trans_id}

    transaction = PaymeTransaction(
        payme_trans_id=trans_id,
        user_id=user_id,
        plan_id=plan_id,
        amount=params.amount,
        status=TransactionStatus.PENDING,
        state=PaymeState.PENDING,
        created_at=utcnow(),
    )
    try:
        async with db.begin_nested():
            db.add(transaction)
    except IntegrityError:
        # A concurrent CreateTransaction inserted the same id first.
        transaction = await _find_by_payme_id(db, trans_id)
        if transaction is None:
            raise
        return {"result": _snapshot(transaction)}

    logger.info("New Payme transaction %s created - id: %s", trans_id, transaction.id)
    return {"result": _snapshot(transaction)}


async def perform_transaction(db: AsyncSession, params: TransactionIdParams) -> PaymeResponse:
    """Settle a PENDING transaction and grant the subscription."""
    trans_id = params.id
    transaction = await _find_by_payme_id(db, trans_id, for_update=True)
    if transaction is None:
        logger.warning("PerformTransaction: transaction %s not found", trans_id)
        return {"error": errors.TRANSACTION_NOT_FOUND.as_dict(), "id": trans_id}

    if transaction.status == TransactionStatus.PAID:
        logger.info("Transaction %s already PAID - returning existing result", trans_id)
        return {
            "result": {
                "transaction": str(transaction.id),
                "perform_time": to_ms(transaction.perform_at),
                "state": transaction.state,
            }
        }

    if transaction.status != TransactionStatus.PENDING:
        logger.warning("Transaction %s is %s - cannot perform", trans_id, transaction.status)
        return {"error": errors.CANT_DO_OPERATION.as_dict(), "id": trans_id}

    if is_expired(transaction.created_at):
        return await _cancel_due_to_timeout(db, transaction)

    transaction.status = TransactionStatus.PAID
    transaction.state = PaymeState.PAID
    transaction.perform_at = utcnow()
    await db.flush()
    logger.info("Transaction %s updated to PAID - id: %s", trans_id, transaction.id)

    await grant_after_settlement(db, transaction.user_id, transaction.plan_id, source=f"payme:{trans_id}")

    return {
        "result": {
            "transaction": str(transaction.id),
            "perform_time": to_ms(transaction.perform_at),
            "state": int(PaymeState.PAID),
        }
    }


async def cancel_transaction(db: AsyncSession, params: CancelTransactionParams) -> PaymeResponse:
    """Cancel a transaction. A granted user plan is left in place."""
    trans_id = params.id
    transaction = await _find_by_payme_id(db, trans_id, for_update=True)
    if transaction is None:
        logger.warning("CancelTransaction: transaction %s not found", trans_id)
        return {"error": errors.TRANSACTION_NOT_FOUND.as_dict(), "id": trans_id}

    if transaction.status == TransactionStatus.PENDING:
        await _cancel(db, transaction, PaymeState.PENDING_CANCELED, params.reason)
    elif transaction.state == PaymeState.PAID:
        await _cancel(db, transaction, PaymeState.PAID_CANCELED, params.reason)
        logger.warning(
            "Paid transaction %s canceled; user plan of user %s is not revoked",
            trans_id,
            transaction.user_id,
        )
    else:
        logger.info("Transaction %s already in terminal state %s", trans_id, transaction.state)

    return {
        "result": {
            "transaction": str(transaction.id),
            "cancel_time": to_ms(transaction.cancel_at) or 0,
            "state": transaction.state,
        }
    }


async def check_transaction(db: AsyncSession, params: TransactionIdParams) -> PaymeResponse:
    """Current state of one transaction. Read-only."""
    transaction = await _find_by_payme_id(db, params.id)
    if transaction is None:
        logger.warning("CheckTransaction: transaction %s not found", params.id)
        return {"error": errors.TRANSACTION_NOT_FOUND.as_dict(), "id": params.id}

    return {
        "result": {
            "create_time": to_ms(transaction.created_at),
            "perform_time": to_ms(transaction.perform_at) or 0,
            "cancel_time": to_ms(transaction.cancel_at) or 0,
            "transaction": str(transaction.id),
            "state": transaction.state,
            "reason": transaction.reason,
        }
    }


async def get_statement(db: AsyncSession, params: GetStatementParams) -> PaymeResponse:
    """Transactions created within [from, to]. Read-only."""
    result = await db.execute(
        select(PaymeTransaction)
        .where(
            PaymeTransaction.created_at >= from_ms(params.from_),
            PaymeTransaction.created_at <= from_ms(params.to),
        )
        .order_by(PaymeTransaction.created_at)
    )
    transactions = result.scalars().all()
    logger.info("GetStatement: %d transactions between %s and %s", len(transactions), params.from_, params.to)

    return {
        "result": {
            "transactions": [
                {
                    "id": t.payme_trans_id,
                    "time": to_ms(t.created_at),
                    "amount": t.amount,
                    "account": {"user_id": str(t.user_id), "plan_id": str(t.plan_id)},
                    "create_time": to_ms(t.created_at),
                    "perform_time": to_ms(t.perform_at),
                    "cancel_time": to_ms(t.cancel_at),
                    "transaction": str(t.id),
                    "state": t.state,
                    "reason": t.reason,
                }
                for t in transactions
            ]
        }
    }


MethodHandler = Callable[[AsyncSession, Any], Awaitable[PaymeResponse]]

METHOD_HANDLERS: dict[PaymeMethod, tuple[MethodHandler, type[BaseModel]]] = {
    PaymeMethod.CHECK_PERFORM_TRANSACTION: (check_perform_transaction, CheckPerformTransactionParams),
    PaymeMethod.CREATE_TRANSACTION: (create_transaction, CreateTransactionParams),
    PaymeMethod.PERFORM_TRANSACTION: (perform_transaction, TransactionIdParams),
    PaymeMethod.CANCEL_TRANSACTION: (cancel_transaction, CancelTransactionParams),
    PaymeMethod.CHECK_TRANSACTION: (check_transaction, TransactionIdParams),
    PaymeMethod.GET_STATEMENT: (get_statement, GetStatementParams),
}


def _params_id(params: dict[str, Any]) -> Any:
    value = params.get("id")
    return value if isinstance(value, (str, int)) else None


async def handle_transaction_methods(db: AsyncSession, request: PaymeRequest) -> PaymeResponse | str:
    """Dispatch a Payme call on its ``method``.

    Unknown methods answer with a bare string, which is what Payme has
    always received from this merchant.
    """
    try:
        method = PaymeMethod(request.method)
    except ValueError:
        logger.warning("Unknown Payme method: %s", request.method)
        return INVALID_METHOD_RESPONSE

    handler, params_model = METHOD_HANDLERS[method]
    try:
        params = params_model.model_validate(request.params)
    except ValidationError as e:
        logger.warning("Invalid params for %s: %s", method, e.errors())
        return {"error": errors.INVALID_REQUEST.as_dict(), "id": _params_id(request.params)}

    logger.info("Handling Payme %s", method)
    return await handler(db, params)

