"""Reservation model: a client's stay plus the room holds it places."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import DATERANGE, ExcludeConstraint, Range
from sqlalchemy.orm import Mapped, mapped_column, relationship

from staydesk.database import Base, UUIDPrimaryKeyMixin
from staydesk.domain.enums import ReservationSource, ReservationStatus, Role

status_enum = Enum(ReservationStatus, name="reservation_status")


class Reservation(UUIDPrimaryKeyMixin, Base):
    """A client's booking of one or more rooms for ``[check_in, check_out)``."""

    __tablename__ = "reservations"

    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        status_enum,
        default=ReservationStatus.PENDING,
        index=True,
    )
    source: Mapped[ReservationSource] = mapped_column(
        Enum(ReservationSource, name="reservation_source"),
        default=ReservationSource.ONLINE,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_agent_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    feedback_given: Mapped[bool] = mapped_column(Boolean, default=False)
    invoice_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    checked_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    client: Mapped["Client"] = relationship(back_populates="reservations", lazy="noload")  # type: ignore[name-defined]  # noqa: F821
    holds: Mapped[list["RoomHold"]] = relationship(
        back_populates="reservation", lazy="selectin", cascade="all, delete-orphan"
    )

    # Every UPDATE checks and bumps the version (optimistic concurrency)
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_reservations_dates"),
        CheckConstraint("adults >= 1 AND children >= 0", name="ck_reservations_guests"),
        Index("ix_reservations_check_in", "check_in"),
    )

    @property
    def room_ids(self) -> tuple[uuid.UUID, ...]:
        return tuple(sorted(hold.room_id for hold in self.holds))

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, client_id={self.client_id}, status={self.status})>"


class RoomHold(UUIDPrimaryKeyMixin, Base):
    """A room occupied by a reservation for its stay range.

    ``active`` is true while the reservation is in a holding status. The GiST
    exclusion constraint forbids two active holds on one room with
    overlapping ranges, whatever the application code does.
    """

    __tablename__ = "room_holds"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    stay: Mapped[Range[date]] = mapped_column(DATERANGE, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    reservation: Mapped[Reservation] = relationship(back_populates="holds", lazy="noload")

    __table_args__ = (
        ExcludeConstraint(
            ("room_id", "="),
            ("stay", "&&"),
            name="ex_room_holds_no_overlap",
            using="gist",
            where="active",
        ),
    )

    def __repr__(self) -> str:
        return f"<RoomHold(room_id={self.room_id}, stay={self.stay}, active={self.active})>"


class ReservationStatusChange(UUIDPrimaryKeyMixin, Base):
    """Append-only audit row for every applied lifecycle transition."""

    __tablename__ = "reservation_status_changes"

    reservation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[ReservationStatus] = mapped_column(status_enum)
    to_status: Mapped[ReservationStatus] = mapped_column(status_enum)
    actor_role: Mapped[Role] = mapped_column(Enum(Role, name="actor_role"))
    actor_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
