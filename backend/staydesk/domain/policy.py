"""Hotel policy knobs and the self-service window rules derived from them."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from staydesk.config import Settings, settings
from staydesk.domain.enums import DisplayStatus, ReservationStatus
from staydesk.domain.records import Reservation

SELF_SERVICE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


@dataclass(frozen=True)
class BookingPolicy:
    tax_rate: Decimal = Decimal("0.10")
    currency: str = "MAD"
    cancel_lockout_hours: int = 24
    edit_lockout_hours: int = 48
    check_in_hour: int = 14

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "BookingPolicy":
        return cls(
            tax_rate=config.tax_rate,
            currency=config.currency,
            cancel_lockout_hours=config.cancel_lockout_hours,
            edit_lockout_hours=config.edit_lockout_hours,
            check_in_hour=config.check_in_hour,
        )

    def check_in_moment(self, reservation: Reservation) -> datetime:
        """The instant the stay starts: check-in date at the hotel's check-in hour (UTC)."""
        return datetime.combine(reservation.check_in, time(hour=self.check_in_hour), tzinfo=timezone.utc)

    def time_until_check_in(self, reservation: Reservation, now: datetime) -> timedelta:
        return self.check_in_moment(reservation) - now

    def can_cancel(self, reservation: Reservation, now: datetime) -> bool:
        """Client self-service cancellation: before check-in and outside the lockout."""
        return reservation.status in SELF_SERVICE_STATUSES and self.time_until_check_in(
            reservation, now
        ) > timedelta(hours=self.cancel_lockout_hours)

    def can_edit(self, reservation: Reservation, now: datetime) -> bool:
        return reservation.status in SELF_SERVICE_STATUSES and self.time_until_check_in(
            reservation, now
        ) > timedelta(hours=self.edit_lockout_hours)


def feedback_eligible(reservation: Reservation) -> bool:
    return (
        reservation.status in (ReservationStatus.CHECKED_OUT, ReservationStatus.COMPLETED)
        and not reservation.feedback_given
    )


def display_status(reservation: Reservation, now: datetime) -> DisplayStatus:
    if reservation.status is ReservationStatus.CANCELED:
        return DisplayStatus.CANCELLED
    if reservation.status in SELF_SERVICE_STATUSES and reservation.check_in >= now.date():
        return DisplayStatus.UPCOMING
    # Checked-in stays and self-service ones whose dates slipped by
    return DisplayStatus.COMPLETED


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
