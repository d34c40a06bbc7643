"""Collaborator interfaces the booking core depends on.

Two implementations ship with the project: the SQLAlchemy one in
``staydesk.repositories.sql`` (PostgreSQL) and an in-process one in
``staydesk.repositories.memory`` used by tests and local demos.
"""

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from staydesk.domain.enums import ReservationSource, ReservationStatus, RoomType
from staydesk.domain.records import Actor, Client, Reservation, Room, RoomFilters, StagedClient, StatusChange


@dataclass(frozen=True)
class NewReservation:
    """Everything needed to insert a reservation row and its room holds."""

    client_id: uuid.UUID
    room_ids: tuple[uuid.UUID, ...]
    check_in: date
    check_out: date
    adults: int
    children: int
    total_price: Decimal
    currency: str
    status: ReservationStatus
    source: ReservationSource
    created_by_agent_id: uuid.UUID | None = None


class RoomRepository(Protocol):
    async def search(
        self, check_in: date, check_out: date, guests: int, filters: RoomFilters
    ) -> list[Room]:
        """Active rooms that fit ``guests``, match ``filters`` and have no overlapping hold."""
        ...

    async def get_many(self, room_ids: Sequence[uuid.UUID]) -> list[Room]: ...

    async def list_rooms(self, room_type: RoomType | None = None) -> list[Room]:
        """Active rooms ordered by floor then room number."""
        ...

    async def conflicts(
        self, room_ids: Sequence[uuid.UUID], check_in: date, check_out: date
    ) -> dict[uuid.UUID, list[uuid.UUID]]:
        """Map room id -> ids of holding reservations overlapping the range."""
        ...

    async def lock_and_check_overlap(
        self,
        room_ids: Sequence[uuid.UUID],
        check_in: date,
        check_out: date,
        exclude_reservation_id: uuid.UUID | None = None,
    ) -> bool:
        """Lock the rooms for this transaction; True when any of them is already held."""
        ...


class ClientRepository(Protocol):
    async def find_by_email(self, email: str) -> Client | None: ...

    async def get(self, client_id: uuid.UUID) -> Client | None: ...

    async def create(self, profile: StagedClient) -> Client: ...


class ReservationRepository(Protocol):
    async def create(self, reservation: NewReservation) -> Reservation: ...

    async def get(self, reservation_id: uuid.UUID) -> Reservation | None: ...

    async def get_for_update(self, reservation_id: uuid.UUID) -> Reservation | None:
        """Fetch and lock the reservation row until the unit of work ends."""
        ...

    async def transition(
        self,
        reservation_id: uuid.UUID,
        new_status: ReservationStatus,
        actor: Actor,
        reason: str | None = None,
        *,
        expected_version: int,
        at: datetime,
    ) -> Reservation:
        """Apply a status change, release holds when leaving a holding status, record history."""
        ...

    async def update_interval(
        self,
        reservation_id: uuid.UUID,
        check_in: date,
        check_out: date,
        adults: int,
        children: int,
        total_price: Decimal,
        *,
        expected_version: int,
        at: datetime,
    ) -> Reservation: ...

    async def attach_invoice(self, reservation_id: uuid.UUID, invoice_ref: str) -> Reservation:
        """Store the latest invoice reference; ``version`` and ``updated_at`` are left alone."""
        ...

    async def mark_feedback_given(
        self, reservation_id: uuid.UUID, *, expected_version: int, at: datetime
    ) -> Reservation: ...

    async def list_for_client(self, client_id: uuid.UUID) -> list[Reservation]: ...

    async def history(self, reservation_id: uuid.UUID) -> list[StatusChange]: ...


class UnitOfWork(Protocol):
    """One transaction over all three repositories.

    Leaving the ``async with`` block without :meth:`commit` rolls back.
    """

    rooms: RoomRepository
    clients: ClientRepository
    reservations: ReservationRepository

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(self, exc_type, exc, tb) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


UnitOfWorkFactory = Callable[[], UnitOfWork]
