"""Pydantic v2 schemas for the Payme merchant API (JSON-RPC)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaymeRequest(BaseModel):
    """Envelope of every Payme call. ``params`` is validated per method."""

    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: int | str | None = None


class PaymeAccount(BaseModel):
    model_config = ConfigDict(extra="allow")

    plan_id: str | None = None
    user_id: str | None = None


class CheckPerformTransactionParams(BaseModel):
    amount: int
    account: PaymeAccount


class CreateTransactionParams(BaseModel):
    id: str
    time: int | None = None
    amount: int
    account: PaymeAccount


class TransactionIdParams(BaseModel):
    """Params of PerformTransaction and CheckTransaction."""

    id: str


class CancelTransactionParams(BaseModel):
    id: str
    reason: int | None = None


class GetStatementParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(..., alias="from")
    to: int
