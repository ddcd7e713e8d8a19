"""Pydantic v2 schemas for checkout link generation."""

import uuid

from pydantic import BaseModel


class PaymentLinkRequest(BaseModel):
    """User and plan to build a gateway checkout URL for."""

    user_id: uuid.UUID
    plan_id: uuid.UUID


class PaymentLinkResponse(BaseModel):
    """Checkout URL the client redirects the user to."""

    url: str
    amount: int
