"""Pydantic v2 request/response schemas for the booking endpoint."""

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from staydesk.domain.records import Stay
from staydesk.schemas.reservation import ReservationResponse


class ClientDetails(BaseModel):
    """Who the booking is for, when staff book on a client's behalf."""

    email: str = Field(..., max_length=255)
    name: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)


class BookingRequest(BaseModel):
    """One-shot booking: stay, rooms from a prior search, and the client.

    Clients book for themselves; agents name the client by id or by details.
    """

    check_in: date
    check_out: date
    adults: int = 1
    children: int = 0
    room_ids: list[uuid.UUID] = Field(..., min_length=1)
    client_id: uuid.UUID | None = None
    client: ClientDetails | None = None

    @model_validator(mode="after")
    def check_client(self) -> "BookingRequest":
        if self.client_id is not None and self.client is not None:
            raise ValueError("Provide either client_id or client, not both")
        return self

    def to_stay(self) -> Stay:
        return Stay(check_in=self.check_in, check_out=self.check_out, adults=self.adults, children=self.children)


class CartItemResponse(BaseModel):
    room_id: uuid.UUID
    room_number: str
    adults: int
    children: int
    nightly_rate: Decimal
    nights: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    reservation: ReservationResponse
    items: list[CartItemResponse]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
