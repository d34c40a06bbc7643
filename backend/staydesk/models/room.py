"""Room model: the hotel's bookable inventory."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from staydesk.database import Base, UUIDPrimaryKeyMixin
from staydesk.domain.enums import RoomType, RoomView


class Room(UUIDPrimaryKeyMixin, Base):
    """A bookable room. Rooms are soft-disabled (``is_active``), never deleted."""

    __tablename__ = "rooms"

    room_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    room_type: Mapped[RoomType] = mapped_column(Enum(RoomType, name="room_type"), nullable=False, index=True)
    floor: Mapped[int] = mapped_column(Integer, default=0)
    price_per_night: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False)
    view: Mapped[RoomView | None] = mapped_column(Enum(RoomView, name="room_view"), default=None)
    features: Mapped[list[str]] = mapped_column(ARRAY(String(50)), default=list)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, number={self.room_number!r}, type={self.room_type})>"
