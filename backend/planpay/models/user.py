"""User model — identity, coin wallet and the derived premium flag."""

import uuid

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planpay.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """An end user of the app who can buy subscription plans."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    coins: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False, index=True)
    # Premium flag. Derived from user plans: true iff an ACTIVE plan with end_date >= now exists.
    status: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    # Weak reference to the avatar catalogue, not enforced by the database.
    premium_avatar_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, default=None)

    # Relationships
    user_plans: Mapped[list["UserPlan"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "UserPlan",
        back_populates="user",
        lazy="selectin",
        order_by="UserPlan.created_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} status={self.status}>"
