"""Closed enumerations shared by every layer."""

from enum import Enum


class RoomType(str, Enum):
    SIMPLE = "SIMPLE"
    DOUBLE = "DOUBLE"
    DOUBLE_CONFORT = "DOUBLE_CONFORT"
    SUITE = "SUITE"
    FAMILY = "FAMILY"


class RoomView(str, Enum):
    CITY = "CITY"
    PARK = "PARK"
    COURTYARD = "COURTYARD"
    POOL = "POOL"
    GARDEN = "GARDEN"
    SEA = "SEA"
    MOUNTAIN = "MOUNTAIN"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def holds_inventory(self) -> bool:
        return self in HOLDING_STATUSES


# Statuses whose reservations occupy their rooms for [check_in, check_out)
HOLDING_STATUSES = frozenset(
    {ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN}
)
TERMINAL_STATUSES = frozenset({ReservationStatus.COMPLETED, ReservationStatus.CANCELED})


class ReservationSource(str, Enum):
    ONLINE = "ONLINE"  # client self-service
    AGENT = "AGENT"  # staff-assisted at the reception


class Role(str, Enum):
    ADMIN = "ADMIN"
    AGENT = "AGENT"
    CLIENT = "CLIENT"
    SYSTEM = "SYSTEM"


class SortKey(str, Enum):
    RECOMMENDED = "recommended"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


class DisplayStatus(str, Enum):
    """Bucket shown in a client's reservation history."""

    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStage(str, Enum):
    DATES = "DATES"
    ROOMS = "ROOMS"
    CLIENT = "CLIENT"
    REVIEW = "REVIEW"
    COMMITTED = "COMMITTED"
    ABANDONED = "ABANDONED"
