"""Checkout URL builders for both gateways."""

import base64
import logging
import uuid
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from planpay.config import Settings, settings
from planpay.models.plan import Plan
from planpay.services.ledger import find_plan, find_user

logger = logging.getLogger(__name__)


class LinkTargetNotFoundError(Exception):
    """The user or plan of a checkout link does not exist."""

    def __init__(self, kind: str, identifier: uuid.UUID) -> None:
        super().__init__(f"{kind.capitalize()} with ID {identifier} not found")
        self.kind = kind
        self.identifier = identifier


def build_payme_link(
    user_id: uuid.UUID, plan: Plan, config: Settings = settings
) -> tuple[str, int]:
    """Payme checkout URL and its amount in tiyin.

    The path is the base64 of ``m=<merchant>;ac.plan_id=..;ac.user_id=..;a=<amount>``.
    """
    amount = plan.price * 100
    params = f"m={config.payme_merchant_id};ac.plan_id={plan.id};ac.user_id={user_id};a={amount}"
    encoded = base64.b64encode(params.encode("utf-8")).decode("ascii")
    return f"{config.payme_checkout_url.rstrip('/')}/{encoded}", amount


def build_click_link(
    user_id: uuid.UUID, plan: Plan, config: Settings = settings
) -> tuple[str, int]:
    """Click checkout URL and its amount in sum."""
    query = urlencode(
        {
            "service_id": config.click_service_id,
            "merchant_id": config.click_merchant_id,
            "amount": plan.price,
            "transaction_param": str(plan.id),
            "additional_param3": str(user_id),
            "merchant_user_id": config.click_merchant_user_id,
        }
    )
    return f"{config.click_checkout_url}?{query}", plan.price


async def _load_plan(db: AsyncSession, user_id: uuid.UUID, plan_id: uuid.UUID) -> Plan:
    if await find_user(db, user_id) is None:
        raise LinkTargetNotFoundError("user", user_id)
    plan = await find_plan(db, plan_id)
    if plan is None:
        raise LinkTargetNotFoundError("plan", plan_id)
    return plan


async def payme_link_for(db: AsyncSession, user_id: uuid.UUID, plan_id: uuid.UUID) -> tuple[str, int]:
    plan = await _load_plan(db, user_id, plan_id)
    url, amount = build_payme_link(user_id, plan)
    logger.info("Generated Payme link for user %s, plan %s", user_id, plan_id)
    return url, amount


async def click_link_for(db: AsyncSession, user_id: uuid.UUID, plan_id: uuid.UUID) -> tuple[str, int]:
    plan = await _load_plan(db, user_id, plan_id)
    url, amount = build_click_link(user_id, plan)
    logger.info("Generated Click link for user %s, plan %s", user_id, plan_id)
    return url, amount
