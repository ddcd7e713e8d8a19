"""Avatar model: premium avatars users can buy with coins."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from planpay.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Avatar(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Catalogue entry. Image files live outside this service."""

    __tablename__ = "avatars"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # coins

    def __repr__(self) -> str:
        return f"<Avatar(id={self.id}, name={self.name!r}, price={self.price})>"
