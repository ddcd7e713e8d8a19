"""Plan model — purchasable subscription tiers."""

from enum import StrEnum

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from planpay.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PlanName(StrEnum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class Plan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A subscription tier with a price (smallest currency unit) and a duration in days."""

    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(String(50), nullable=False)  # basic, standard, premium
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # days
    description: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name={self.name!r}, price={self.price}, duration={self.duration})>"
