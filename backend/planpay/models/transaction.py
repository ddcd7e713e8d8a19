"""Gateway transaction models — one row per gateway-side transaction id.

``user_id`` and ``plan_id`` are weak references: the handlers re-check them on
every callback, so no foreign keys are declared.
"""

import uuid
from datetime import datetime
from enum import IntEnum, StrEnum

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from planpay.database import Base, UUIDPrimaryKeyMixin, utcnow


class TransactionStatus(StrEnum):
    """Coarse settlement bucket shared by both gateways."""

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"


class PaymeState(IntEnum):
    """Payme's fine-grained transaction lifecycle code."""

    PENDING = 1
    PAID = 2
    PENDING_CANCELED = -1
    PAID_CANCELED = -2


class ClickTransaction(UUIDPrimaryKeyMixin, Base):
    """A Click transaction, created by prepare and settled by complete."""

    __tablename__ = "click_transactions"

    click_trans_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    prepare_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    merchant_trans_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    plan_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.PENDING, nullable=False)
    sign_time: Mapped[str] = mapped_column(String(32), nullable=False)
    created_date: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ClickTransaction(click_trans_id={self.click_trans_id!r}, status={self.status})>"


class PaymeTransaction(UUIDPrimaryKeyMixin, Base):
    """A Payme transaction with both ``status`` and ``state`` lifecycle fields."""

    __tablename__ = "payme_transactions"

    payme_trans_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    plan_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # tiyin
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.PENDING, nullable=False)
    state: Mapped[int] = mapped_column(Integer, default=PaymeState.PENDING, nullable=False)
    reason: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)
    perform_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None)
    cancel_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None)

    def __repr__(self) -> str:
        return (
            f"<PaymeTransaction(payme_trans_id={self.payme_trans_id!r}, status={self.status}, state={self.state})>"
        )
