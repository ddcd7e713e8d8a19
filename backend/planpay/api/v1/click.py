"""Click webhook and checkout link endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.payments.click import ClickError, error_response, handle_merchant_transaction
from planpay.payments.links import LinkTargetNotFoundError, click_link_for
from planpay.schemas.click import ClickRequest
from planpay.schemas.links import PaymentLinkRequest, PaymentLinkResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/click", tags=["click"])


async def _read_body(request: Request) -> dict[str, Any]:
    """Click posts urlencoded forms; JSON is accepted for manual testing."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        body = await request.json()
        if not isinstance(body, dict):
            raise ValueError("JSON body must be an object")
        return body
    form = await request.form()
    return dict(form)


@router.post("")
async def click_webhook(request: Request, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Receive a Click prepare or complete callback. Always answers HTTP 200."""
    try:
        click_request = ClickRequest.model_validate(await _read_body(request))
    except (ValidationError, ValueError) as e:
        logger.warning("Malformed Click request: %s", e)
        return error_response(ClickError.BAD_REQUEST, "Bad request")

    try:
        response = await handle_merchant_transaction(db, click_request)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Error processing Click transaction %s", click_request.click_trans_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Click processing failed",
        ) from e

    logger.info(
        "Click transaction %s answered with error=%s",
        click_request.click_trans_id,
        response.get("error"),
    )
    return response


@router.post("/link", response_model=PaymentLinkResponse, summary="Build a Click checkout URL")
async def click_link(
    body: PaymentLinkRequest,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
) -> PaymentLinkResponse:
    try:
        url, amount = await click_link_for(db, body.user_id, body.plan_id)
    except LinkTargetNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return PaymentLinkResponse(url=url, amount=amount)
