"""Pydantic v2 schemas for the Click merchant API."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator


class ClickRequest(BaseModel):
    """Prepare/complete callback body. Field names are fixed by Click."""

    model_config = ConfigDict(extra="ignore")

    click_trans_id: int
    service_id: int
    click_paydoc_id: int | None = None
    merchant_trans_id: str  # plan id
    merchant_prepare_id: int | None = None  # complete only
    param2: str | None = None  # user id
    amount: Decimal
    action: int
    error: int = 0
    error_note: str | None = None
    sign_time: str
    sign_string: str

    @field_validator("click_paydoc_id", "merchant_prepare_id", "param2", "error_note", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        """Form posts send absent optional fields as empty strings."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("error", mode="before")
    @classmethod
    def _blank_error_to_zero(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value
