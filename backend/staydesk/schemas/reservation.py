"""Pydantic v2 request/response schemas for reservation endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from staydesk.domain.enums import DisplayStatus, ReservationSource, ReservationStatus, Role
from staydesk.domain.policy import BookingPolicy, display_status, feedback_eligible
from staydesk.domain.records import Reservation

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class TransitionRequest(BaseModel):
    """Optional body for lifecycle actions."""

    reason: str | None = Field(None, max_length=500)
    expected_version: int | None = Field(None, ge=1)


class ReservationUpdate(BaseModel):
    """New stay interval and guest split for an existing reservation."""

    check_in: date
    check_out: date
    adults: int
    children: int = 0
    expected_version: int | None = Field(None, ge=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ReservationResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    room_ids: list[uuid.UUID]
    check_in: date
    check_out: date
    adults: int
    children: int
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
    version: int

    # Self-service flags computed at response time
    can_edit: bool = False
    can_cancel: bool = False
    feedback_eligible: bool = False
    display_status: DisplayStatus

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, reservation: Reservation, policy: BookingPolicy, now: datetime) -> "ReservationResponse":
        return cls.model_validate(
            {
                **reservation.model_dump(),
                "can_edit": policy.can_edit(reservation, now),
                "can_cancel": policy.can_cancel(reservation, now),
                "feedback_eligible": feedback_eligible(reservation),
                "display_status": display_status(reservation, now),
            }
        )


class ReservationListResponse(BaseModel):
    items: list[ReservationResponse]
    total: int


class StatusChangeResponse(BaseModel):
    from_status: ReservationStatus
    to_status: ReservationStatus
    actor_role: Role
    actor_id: uuid.UUID | None = None
    reason: str | None = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    reservation_id: uuid.UUID
    items: list[StatusChangeResponse]
