"""Client domain model."""

from datetime import datetime

from sqlalchemy import Boolean, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staydesk.database import Base, UUIDPrimaryKeyMixin


class Client(UUIDPrimaryKeyMixin, Base):
    """Client model: guests who hold reservations."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(255))
    # Stored lower-cased so the unique index is case-insensitive
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(50))
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    # Relationships
    reservations: Mapped[list["Reservation"]] = relationship(  # noqa: F821
        back_populates="client", lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, email={self.email!r})>"
