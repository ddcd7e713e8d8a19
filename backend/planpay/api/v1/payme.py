"""Payme JSON-RPC webhook and checkout link endpoints."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.auth.basic import is_payme_authorized
from planpay.payments import payme_errors as errors
from planpay.payments.links import LinkTargetNotFoundError, payme_link_for
from planpay.payments.payme import handle_transaction_methods
from planpay.schemas.links import PaymentLinkRequest, PaymentLinkResponse
from planpay.schemas.payme import PaymeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/payme", tags=["payme"])


@router.post("")
async def payme_webhook(request: Request, db: AsyncSession = Depends(get_db)) -> Any:
    """Receive a Payme JSON-RPC call. Always answers HTTP 200."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Payme request body is not valid JSON")
        return {"error": errors.INVALID_REQUEST.as_dict(), "id": None}

    rpc_id = body.get("id") if isinstance(body, dict) else None

    if not is_payme_authorized(request.headers.get("authorization")):
        logger.warning("Rejected Payme request with invalid authorization")
        return {"error": errors.INVALID_AUTHORIZATION.as_dict(), "id": rpc_id}

    try:
        payme_request = PaymeRequest.model_validate(body)
    except ValidationError as e:
        logger.warning("Malformed Payme request: %s", e.errors())
        return {"error": errors.INVALID_REQUEST.as_dict(), "id": rpc_id}

    try:
        response = await handle_transaction_methods(db, payme_request)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception("Error processing Payme method %s", payme_request.method)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Payme processing failed",
        ) from e

    return response


@router.post("/link", response_model=PaymentLinkResponse, summary="Build a Payme checkout URL")
async def payme_link(
    body: PaymentLinkRequest,
    db: AsyncSession = Depends(get_db),
    _admin: str = Depends(require_admin),
) -> PaymentLinkResponse:
    try:
        url, amount = await payme_link_for(db, body.user_id, body.plan_id)
    except LinkTargetNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return PaymentLinkResponse(url=url, amount=amount)
