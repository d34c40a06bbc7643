"""Pydantic v2 request/response schemas for room search, board and quotes."""

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from staydesk.domain.enums import RoomType, RoomView, SortKey
from staydesk.domain.records import RoomFilters, Stay

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class RoomSearchRequest(BaseModel):
    """Stay plus every supported filter. Date rules are enforced by the core."""

    check_in: date
    check_out: date
    adults: int = 1
    children: int = 0
    room_types: list[RoomType] = []
    views: list[RoomView] = []
    features: list[str] = []
    max_price: Decimal | None = Field(None, gt=0)
    min_capacity: int | None = Field(None, ge=1)
    sort: SortKey = SortKey.RECOMMENDED

    def to_stay(self) -> Stay:
        return Stay(check_in=self.check_in, check_out=self.check_out, adults=self.adults, children=self.children)

    def to_filters(self) -> RoomFilters:
        return RoomFilters(
            room_types=frozenset(self.room_types),
            views=frozenset(self.views),
            features=self.features,
            max_price=self.max_price,
            min_capacity=self.min_capacity,
        )


class BoardRequest(BaseModel):
    check_in: date
    check_out: date
    room_type: RoomType | None = None


class QuoteRequest(BaseModel):
    check_in: date
    check_out: date


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class RoomResponse(BaseModel):
    id: uuid.UUID
    room_number: str
    name: str
    room_type: RoomType
    floor: int
    price_per_night: Decimal
    max_guests: int
    view: RoomView | None = None
    features: list[str] = []
    featured: bool = False

    model_config = ConfigDict(from_attributes=True)


class RoomSearchResponse(BaseModel):
    items: list[RoomResponse]
    total: int


class BoardEntryResponse(BaseModel):
    room: RoomResponse
    available_for_entire_range: bool
    conflicting_reservation_ids: list[uuid.UUID] = []

    model_config = ConfigDict(from_attributes=True)


class BoardResponse(BaseModel):
    check_in: date
    check_out: date
    items: list[BoardEntryResponse]


class QuoteResponse(BaseModel):
    room_id: uuid.UUID
    nightly_rate: Decimal
    nights: int
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    currency: str
