"""UserPlan model — a granted subscription period."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planpay.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class UserPlanStatus(StrEnum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


class UserPlan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Ties a user to a plan for [start_date, end_date]. Never hard-deleted."""

    __tablename__ = "user_plans"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("plans.id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=UserPlanStatus.ACTIVE,
        server_default=UserPlanStatus.ACTIVE.value,
        nullable=False,
    )  # ACTIVE, EXPIRED, CANCELED

    # Relationships
    user: Mapped["User"] = relationship(back_populates="user_plans", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821
    plan: Mapped["Plan"] = relationship(lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    __table_args__ = (Index("ix_user_plans_status_end_date", "status", "end_date"),)

    def __repr__(self) -> str:
        return f"<UserPlan(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, status={self.status})>"
