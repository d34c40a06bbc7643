"""Immutable domain records exchanged between the core and its repositories.

Repositories build these from ORM rows (``model_validate(row)`` through
``from_attributes``) or from in-memory storage, so the booking logic never
touches a session or a mapped object.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from staydesk.domain.enums import (
    BookingStage,
    ReservationSource,
    ReservationStatus,
    Role,
    RoomType,
    RoomView,
    SortKey,
)

_frozen = ConfigDict(frozen=True, from_attributes=True)


class Room(BaseModel):
    model_config = _frozen

    id: uuid.UUID
    room_number: str
    name: str
    room_type: RoomType
    floor: int = 0
    price_per_night: Decimal
    max_guests: int
    view: RoomView | None = None
    features: tuple[str, ...] = ()
    featured: bool = False
    is_active: bool = True


class Client(BaseModel):
    model_config = _frozen

    id: uuid.UUID
    name: str
    email: str
    phone: str | None = None
    is_verified: bool = False


class StagedClient(BaseModel):
    """A client captured during booking but not persisted yet."""

    model_config = _frozen

    name: str
    email: str
    phone: str | None = None
    is_verified: bool = False


class Reservation(BaseModel):
    model_config = _frozen

    id: uuid.UUID
    client_id: uuid.UUID
    room_ids: tuple[uuid.UUID, ...]
    check_in: date
    check_out: date
    adults: int
    children: int = 0
    total_price: Decimal
    currency: str
    status: ReservationStatus
    source: ReservationSource
    created_at: datetime
    updated_at: datetime | None = None
    rejection_reason: str | None = None
    created_by_agent_id: uuid.UUID | None = None
    feedback_given: bool = False
    invoice_ref: str | None = None
    checked_in_at: datetime | None = None
    checked_out_at: datetime | None = None
    version: int = 1

    @property
    def guests(self) -> int:
        return self.adults + self.children


class StatusChange(BaseModel):
    """One applied lifecycle transition (audit trail)."""

    model_config = _frozen

    reservation_id: uuid.UUID
    from_status: ReservationStatus
    to_status: ReservationStatus
    actor_role: Role
    actor_id: uuid.UUID | None = None
    reason: str | None = None
    changed_at: datetime


class Actor(BaseModel):
    """Whoever asks for an operation: a signed-in user or the system itself."""

    model_config = ConfigDict(frozen=True)

    role: Role
    user_id: uuid.UUID | None = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=Role.SYSTEM)


class Stay(BaseModel):
    """Requested dates and guest split. Validated by the availability engine."""

    model_config = ConfigDict(frozen=True)

    check_in: date
    check_out: date
    adults: int = 1
    children: int = 0

    @property
    def guests(self) -> int:
        return self.adults + self.children


class RoomFilters(BaseModel):
    """Every supported search dimension. An empty set means "no constraint"."""

    model_config = ConfigDict(frozen=True)

    room_types: frozenset[RoomType] = frozenset()
    views: frozenset[RoomView] = frozenset()
    features: frozenset[str] = frozenset()  # room must carry at least one
    max_price: Decimal | None = Field(None, gt=0)
    min_capacity: int | None = Field(None, ge=1)  # raises the guest-count floor

    @field_validator("features", mode="before")
    @classmethod
    def _normalize_features(cls, value):
        if value is None:
            return frozenset()
        return frozenset(str(tag).strip().lower() for tag in value if str(tag).strip())

    def required_capacity(self, guests: int) -> int:
        return max(guests, self.min_capacity or 0)


class RoomAvailability(BaseModel):
    """One line of the agent's availability board."""

    model_config = ConfigDict(frozen=True)

    room: Room
    available_for_entire_range: bool
    conflicting_reservation_ids: tuple[uuid.UUID, ...] = ()


class CartItem(BaseModel):
    """A priced room in the booking cart; never persisted."""

    model_config = ConfigDict(frozen=True)

    room_id: uuid.UUID
    room_number: str
    check_in: date
    check_out: date
    adults: int
    children: int
    nightly_rate: Decimal
    nights: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal


class BookingDraft(BaseModel):
    """Serializable state of the booking pipeline, passed from stage to stage."""

    model_config = ConfigDict(frozen=True)

    stage: BookingStage = BookingStage.DATES
    stay: Stay
    source: ReservationSource = ReservationSource.ONLINE
    agent_id: uuid.UUID | None = None
    filters: RoomFilters = RoomFilters()
    sort: SortKey = SortKey.RECOMMENDED
    candidate_room_ids: tuple[uuid.UUID, ...] = ()
    items: tuple[CartItem, ...] = ()
    client: Client | None = None
    staged_client: StagedClient | None = None
    reservation_id: uuid.UUID | None = None

    @property
    def room_ids(self) -> tuple[uuid.UUID, ...]:
        return tuple(item.room_id for item in self.items)

    @property
    def cart_total(self) -> Decimal:
        return sum((item.total for item in self.items), Decimal("0"))
