"""Click merchant API — two-phase prepare/complete protocol.

Every answer is a flat dict carrying ``error`` (0 on success) and
``error_note``; the router always returns HTTP 200. Business failures are
return values, never exceptions.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from enum import IntEnum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.config import settings
from planpay.models.transaction import ClickTransaction, TransactionStatus
from planpay.payments.signature import click_sign_params, verify
from planpay.schemas.click import ClickRequest
from planpay.services.ledger import find_plan, find_user, parse_identifier
from planpay.services.subscription_service import grant_after_settlement

logger = logging.getLogger(__name__)


class ClickAction(IntEnum):
    PREPARE = 0
    COMPLETE = 1


class ClickError(IntEnum):
    SUCCESS = 0
    SIGN_FAILED = -1
    INVALID_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    USER_NOT_FOUND = -5
    TRANSACTION_NOT_FOUND = -6
    FAILED_TO_UPDATE = -7
    BAD_REQUEST = -8
    TRANSACTION_CANCELED = -9


ClickResponse = dict[str, Any]


def error_response(code: int, note: str) -> ClickResponse:
    return {"error": int(code), "error_note": note}


def _prepare_response(request: ClickRequest, prepare_id: str) -> ClickResponse:
    return {
        "click_trans_id": request.click_trans_id,
        "merchant_trans_id": request.merchant_trans_id,
        "merchant_prepare_id": int(prepare_id),
        "error": int(ClickError.SUCCESS),
        "error_note": "Success",
    }


async def _find_by_trans_id(
    db: AsyncSession, click_trans_id: str, for_update: bool = False
) -> ClickTransaction | None:
    query = select(ClickTransaction).where(ClickTransaction.click_trans_id == click_trans_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _exists(db: AsyncSession, *criteria) -> bool:
    result = await db.execute(select(ClickTransaction.id).where(*criteria).limit(1))
    return result.first() is not None


def _new_prepare_id() -> str:
    return str(int(time.time() * 1000))


async def prepare(db: AsyncSession, request: ClickRequest, secret_key: str) -> ClickResponse:
    """Validate a prepare callback and open a PENDING transaction."""
    trans_id = str(request.click_trans_id)
    logger.debug(
        "Preparing transaction %s for user=%s, plan=%s",
        trans_id,
        request.param2,
        request.merchant_trans_id,
    )

    mac_params = click_sign_params(
        request.click_trans_id,
        request.service_id,
        secret_key,
        request.merchant_trans_id,
        request.amount,
        request.action,
        request.sign_time,
    )
    if not verify(mac_params, request.sign_string, secret_key):
        logger.warning("Invalid sign_string for transId=%s", trans_id)
        return error_response(ClickError.SIGN_FAILED, "Invalid sign_string")

    user_id = parse_identifier(request.param2)
    plan_id = parse_identifier(request.merchant_trans_id)
    if user_id is None or plan_id is None:
        logger.warning(
            "Malformed user/plan id in prepare %s: %s / %s",
            trans_id,
            request.param2,
            request.merchant_trans_id,
        )
        return error_response(ClickError.USER_NOT_FOUND, "Invalid userId")

    if await _exists(
        db,
        ClickTransaction.user_id == user_id,
        ClickTransaction.plan_id == plan_id,
        ClickTransaction.status == TransactionStatus.PAID,
    ):
        logger.warning("Transaction already paid for user=%s, plan=%s", user_id, plan_id)
        return error_response(ClickError.ALREADY_PAID, "Already paid")

    if await _exists(
        db,
        ClickTransaction.user_id == user_id,
        ClickTransaction.plan_id == plan_id,
        ClickTransaction.status == TransactionStatus.CANCELED,
    ):
        logger.warning("Transaction canceled earlier for user=%s, plan=%s", user_id, plan_id)
        return error_response(ClickError.TRANSACTION_CANCELED, "Cancelled")

    user = await find_user(db, user_id)
    if user is None:
        logger.warning("User not found: %s", user_id)
        return error_response(ClickError.USER_NOT_FOUND, "Invalid userId")

    plan = await find_plan(db, plan_id)
    if plan is None:
        logger.warning("Plan not found: %s", plan_id)
        return error_response(ClickError.USER_NOT_FOUND, "Product not found")

    if request.amount != plan.price:
        logger.warning("Amount mismatch: received=%s, expected=%s", request.amount, plan.price)
        return error_response(ClickError.INVALID_AMOUNT, "Invalid amount")

    existing = await _find_by_trans_id(db, trans_id)
    if existing is not None:
        if existing.status == TransactionStatus.CANCELED:
            logger.warning("Transaction %s already canceled", trans_id)
            return error_response(ClickError.TRANSACTION_CANCELED, "Transaction canceled")
        if existing.status == TransactionStatus.PAID:
            logger.warning("Transaction %s already paid", trans_id)
            return error_response(ClickError.ALREADY_PAID, "Already paid")
        logger.info("Replayed prepare for transId=%s, prepareId=%s", trans_id, existing.prepare_id)
        return _prepare_response(request, existing.prepare_id)

    transaction = ClickTransaction(
        click_trans_id=trans_id,
        prepare_id=_new_prepare_id(),
        merchant_trans_id=request.merchant_trans_id,
        user_id=user_id,
        plan_id=plan_id,
        amount=plan.price,
        action=int(ClickAction.PREPARE),
        status=TransactionStatus.PENDING,
        sign_time=request.sign_time,
    )
    try:
        async with db.begin_nested():
            db.add(transaction)
    except IntegrityError:
        # A concurrent prepare inserted the same click_trans_id first.
        existing = await _find_by_trans_id(db, trans_id)
        if existing is None or existing.status != TransactionStatus.PENDING:
            logger.warning("Lost insert race for transId=%s", trans_id)
            return error_response(ClickError.FAILED_TO_UPDATE, "Failed to create transaction")
        return _prepare_response(request, existing.prepare_id)

    logger.info("Prepared transaction transId=%s, prepareId=%s", trans_id, transaction.prepare_id)
    return _prepare_response(request, transaction.prepare_id)


async def complete(db: AsyncSession, request: ClickRequest, secret_key: str) -> ClickResponse:
    """Validate a complete callback, settle the transaction and grant the plan."""
    trans_id = str(request.click_trans_id)
    prepare_id = request.merchant_prepare_id
    logger.debug("Completing transaction transId=%s, prepareId=%s", trans_id, prepare_id)

    mac_params = click_sign_params(
        request.click_trans_id,
        request.service_id,
        secret_key,
        request.merchant_trans_id,
        request.amount,
        request.action,
        request.sign_time,
        merchant_prepare_id=prepare_id if prepare_id is not None else "",
    )
    if not verify(mac_params, request.sign_string, secret_key):
        logger.warning("Invalid sign_string for completion transId=%s", trans_id)
        return error_response(ClickError.SIGN_FAILED, "Invalid sign_string")

    user_id = parse_identifier(request.param2)
    plan_id = parse_identifier(request.merchant_trans_id)

    user = await find_user(db, user_id)
    if user is None:
        logger.warning("User not found: %s", request.param2)
        return error_response(ClickError.USER_NOT_FOUND, "Invalid userId")

    plan = await find_plan(db, plan_id)
    if plan is None:
        logger.warning("Plan not found: %s", request.merchant_trans_id)
        return error_response(ClickError.USER_NOT_FOUND, "Invalid planId")

    if prepare_id is None:
        logger.warning("Missing merchant_prepare_id for transId=%s", trans_id)
        return error_response(ClickError.TRANSACTION_NOT_FOUND, "Invalid merchant_prepare_id")

    # Locks the prepared row so concurrent completes are checked one at a time.
    result = await db.execute(
        select(ClickTransaction)
        .where(
            ClickTransaction.prepare_id == str(prepare_id),
            ClickTransaction.user_id == user_id,
            ClickTransaction.plan_id == plan_id,
        )
        .limit(1)
        .with_for_update()
    )
    if result.scalar_one_or_none() is None:
        logger.warning("Invalid merchant_prepare_id=%s", prepare_id)
        return error_response(ClickError.TRANSACTION_NOT_FOUND, "Invalid merchant_prepare_id")

    if await _exists(
        db,
        ClickTransaction.plan_id == plan_id,
        ClickTransaction.prepare_id == str(prepare_id),
        ClickTransaction.status == TransactionStatus.PAID,
    ):
        logger.warning("Transaction already paid plan=%s, prepareId=%s", plan_id, prepare_id)
        return error_response(ClickError.ALREADY_PAID, "Already paid")

    if request.amount != plan.price:
        logger.warning("Amount mismatch on complete: received=%s, expected=%s", request.amount, plan.price)
        return error_response(ClickError.INVALID_AMOUNT, "Invalid amount")

    transaction = await _find_by_trans_id(db, trans_id, for_update=True)
    if transaction is None or transaction.prepare_id != str(prepare_id):
        logger.warning("No prepared transaction for transId=%s", trans_id)
        return error_response(ClickError.TRANSACTION_NOT_FOUND, "Transaction not found")

    if transaction.status == TransactionStatus.CANCELED:
        logger.warning("Transaction %s already canceled", trans_id)
        return error_response(ClickError.TRANSACTION_CANCELED, "Already cancelled")

    if request.error > 0:
        logger.warning("Click reported error=%s for transaction transId=%s", request.error, trans_id)
        transaction.status = TransactionStatus.CANCELED
        await db.flush()
        return error_response(request.error, "Failed")

    transaction.status = TransactionStatus.PAID
    transaction.action = int(ClickAction.COMPLETE)
    await db.flush()
    logger.info(
        "Transaction completed successfully: transId=%s, userId=%s, planId=%s",
        trans_id,
        user_id,
        plan_id,
    )

    await grant_after_settlement(db, user.id, plan.id, source=f"click:{trans_id}")

    return {
        "click_trans_id": request.click_trans_id,
        "merchant_trans_id": request.merchant_trans_id,
        "error": int(ClickError.SUCCESS),
        "error_note": "Success",
    }


ActionHandler = Callable[[AsyncSession, ClickRequest, str], Awaitable[ClickResponse]]

ACTION_HANDLERS: dict[int, ActionHandler] = {
    ClickAction.PREPARE: prepare,
    ClickAction.COMPLETE: complete,
}


async def handle_merchant_transaction(
    db: AsyncSession, request: ClickRequest, secret_key: str | None = None
) -> ClickResponse:
    """Dispatch a Click callback on its ``action`` code."""
    secret_key = settings.click_secret if secret_key is None else secret_key
    logger.debug("Incoming Click request: %s", request.model_dump(exclude={"sign_string"}))

    handler = ACTION_HANDLERS.get(request.action)
    if handler is None:
        logger.warning("Unknown action type: %s", request.action)
        return error_response(ClickError.ACTION_NOT_FOUND, "Invalid action")

    logger.info("Handling %s action for transId=%s", ClickAction(request.action).name, request.click_trans_id)
    return await handler(db, request, secret_key)
