"""In-process repositories.

Used by the test-suite and for local demos (``REPOSITORY_BACKEND=memory``).
Units of work are serialized with one ``asyncio.Lock`` and the store is
snapshotted on entry, so an uncommitted unit of work leaves no trace.
"""

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal

from staydesk.domain.enums import ReservationStatus, Role, RoomType
from staydesk.domain.inventory import overlaps, room_matches
from staydesk.domain.records import Actor, Client, Reservation, Room, RoomFilters, StagedClient, StatusChange
from staydesk.domain.repositories import NewReservation
from staydesk.domain.results import ConcurrentModification, HoldConflict, PersistenceError


@dataclass(frozen=True)
class _Hold:
    reservation_id: uuid.UUID
    room_id: uuid.UUID
    check_in: date
    check_out: date
    active: bool = True


class InMemoryStore:
    """Shared state behind every in-memory unit of work."""

    def __init__(self) -> None:
        self.rooms: dict[uuid.UUID, Room] = {}
        self.clients: dict[uuid.UUID, Client] = {}
        self.reservations: dict[uuid.UUID, Reservation] = {}
        self.holds: list[_Hold] = []
        self.history: list[StatusChange] = []
        self.lock = asyncio.Lock()

    def add_room(self, room: Room) -> Room:
        self.rooms[room.id] = room
        return room

    def add_client(self, client: Client) -> Client:
        self.clients[client.id] = client
        return client

    def snapshot(self) -> tuple:
        return (dict(self.rooms), dict(self.clients), dict(self.reservations), list(self.holds), list(self.history))

    def restore(self, snapshot: tuple) -> None:
        self.rooms, self.clients, self.reservations, self.holds, self.history = snapshot

    def active_holds(self, room_ids: Sequence[uuid.UUID], check_in: date, check_out: date) -> list[_Hold]:
        wanted = set(room_ids)
        return [
            h
            for h in self.holds
            if h.active and h.room_id in wanted and overlaps(check_in, check_out, h.check_in, h.check_out)
        ]


class InMemoryRoomRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def search(self, check_in: date, check_out: date, guests: int, filters: RoomFilters) -> list[Room]:
        held = {h.room_id for h in self.store.active_holds(list(self.store.rooms), check_in, check_out)}
        return [
            room
            for room in self.store.rooms.values()
            if room.id not in held and room_matches(room, guests, filters)
        ]

    async def get_many(self, room_ids: Sequence[uuid.UUID]) -> list[Room]:
        return [self.store.rooms[rid] for rid in room_ids if rid in self.store.rooms]

    async def list_rooms(self, room_type: RoomType | None = None) -> list[Room]:
        rooms = [
            r
            for r in self.store.rooms.values()
            if r.is_active and (room_type is None or r.room_type is room_type)
        ]
        return sorted(rooms, key=lambda r: (r.floor, r.room_number))

    async def conflicts(
        self, room_ids: Sequence[uuid.UUID], check_in: date, check_out: date
    ) -> dict[uuid.UUID, list[uuid.UUID]]:
        found: dict[uuid.UUID, list[uuid.UUID]] = {rid: [] for rid in room_ids}
        for hold in self.store.active_holds(room_ids, check_in, check_out):
            found[hold.room_id].append(hold.reservation_id)
        return found

    async def lock_and_check_overlap(
        self,
        room_ids: Sequence[uuid.UUID],
        check_in: date,
        check_out: date,
        exclude_reservation_id: uuid.UUID | None = None,
    ) -> bool:
        # The unit of work already holds the store lock
        return any(
            h.reservation_id != exclude_reservation_id
            for h in self.store.active_holds(room_ids, check_in, check_out)
        )


class InMemoryClientRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def find_by_email(self, email: str) -> Client | None:
        wanted = email.strip().lower()
        return next((c for c in self.store.clients.values() if c.email.lower() == wanted), None)

    async def get(self, client_id: uuid.UUID) -> Client | None:
        return self.store.clients.get(client_id)

    async def create(self, profile: StagedClient) -> Client:
        if await self.find_by_email(profile.email) is not None:
            raise PersistenceError(f"duplicate client email {profile.email!r}")
        client = Client(id=uuid.uuid4(), **profile.model_dump())
        self.store.clients[client.id] = client
        return client


class InMemoryReservationRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def create(self, reservation: NewReservation) -> Reservation:
        if self.store.active_holds(reservation.room_ids, reservation.check_in, reservation.check_out):
            raise HoldConflict("room already held for an overlapping stay")
        now = datetime.now(timezone.utc)
        record = Reservation(
            id=uuid.uuid4(),
            client_id=reservation.client_id,
            room_ids=tuple(sorted(reservation.room_ids)),
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            adults=reservation.adults,
            children=reservation.children,
            total_price=reservation.total_price,
            currency=reservation.currency,
            status=reservation.status,
            source=reservation.source,
            created_by_agent_id=reservation.created_by_agent_id,
            created_at=now,
            updated_at=now,
        )
        self.store.reservations[record.id] = record
        self.store.holds.extend(
            _Hold(record.id, room_id, record.check_in, record.check_out) for room_id in record.room_ids
        )
        return record

    async def get(self, reservation_id: uuid.UUID) -> Reservation | None:
        return self.store.reservations.get(reservation_id)

    async def get_for_update(self, reservation_id: uuid.UUID) -> Reservation | None:
        return self.store.reservations.get(reservation_id)

    def _current(self, reservation_id: uuid.UUID, expected_version: int) -> Reservation:
        current = self.store.reservations.get(reservation_id)
        if current is None:
            raise PersistenceError(f"reservation {reservation_id} vanished")
        if current.version != expected_version:
            raise ConcurrentModification(
                f"reservation {reservation_id} is at version {current.version}, expected {expected_version}"
            )
        return current

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
        current = self._current(reservation_id, expected_version)
        changes: dict = {"status": new_status, "updated_at": at, "version": current.version + 1}
        if new_status is ReservationStatus.CANCELED and reason and actor.role is Role.ADMIN:
            changes["rejection_reason"] = reason
        if new_status is ReservationStatus.CHECKED_IN:
            changes["checked_in_at"] = at
        if new_status is ReservationStatus.CHECKED_OUT:
            changes["checked_out_at"] = at
        updated = current.model_copy(update=changes)
        self.store.reservations[reservation_id] = updated

        if not new_status.holds_inventory:
            self.store.holds = [
                replace(h, active=False) if h.reservation_id == reservation_id else h for h in self.store.holds
            ]
        self.store.history.append(
            StatusChange(
                reservation_id=reservation_id,
                from_status=current.status,
                to_status=new_status,
                actor_role=actor.role,
                actor_id=actor.user_id,
                reason=reason,
                changed_at=at,
            )
        )
        return updated

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
    ) -> Reservation:
        current = self._current(reservation_id, expected_version)
        others = [
            h
            for h in self.store.active_holds(current.room_ids, check_in, check_out)
            if h.reservation_id != reservation_id
        ]
        if others:
            raise HoldConflict("room already held for an overlapping stay")
        updated = current.model_copy(
            update={
                "check_in": check_in,
                "check_out": check_out,
                "adults": adults,
                "children": children,
                "total_price": total_price,
                "updated_at": at,
                "version": current.version + 1,
            }
        )
        self.store.reservations[reservation_id] = updated
        self.store.holds = [
            replace(h, check_in=check_in, check_out=check_out) if h.reservation_id == reservation_id else h
            for h in self.store.holds
        ]
        return updated

    async def attach_invoice(self, reservation_id: uuid.UUID, invoice_ref: str) -> Reservation:
        current = self.store.reservations.get(reservation_id)
        if current is None:
            raise PersistenceError(f"reservation {reservation_id} vanished")
        updated = current.model_copy(update={"invoice_ref": invoice_ref})
        self.store.reservations[reservation_id] = updated
        return updated

    async def mark_feedback_given(
        self, reservation_id: uuid.UUID, *, expected_version: int, at: datetime
    ) -> Reservation:
        current = self._current(reservation_id, expected_version)
        updated = current.model_copy(
            update={"feedback_given": True, "updated_at": at, "version": current.version + 1}
        )
        self.store.reservations[reservation_id] = updated
        return updated

    async def list_for_client(self, client_id: uuid.UUID) -> list[Reservation]:
        found = [r for r in self.store.reservations.values() if r.client_id == client_id]
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    async def history(self, reservation_id: uuid.UUID) -> list[StatusChange]:
        return [c for c in self.store.history if c.reservation_id == reservation_id]


class InMemoryUnitOfWork:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.rooms = InMemoryRoomRepository(store)
        self.clients = InMemoryClientRepository(store)
        self.reservations = InMemoryReservationRepository(store)
        self._snapshot: tuple | None = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.store.lock.acquire()
        self._snapshot = self.store.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._snapshot is not None:
                await self.rollback()
        finally:
            self.store.lock.release()

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.store.restore(self._snapshot)
            self._snapshot = None


def memory_uow_factory(store: InMemoryStore):
    """Return a zero-argument factory producing units of work over ``store``."""

    def factory() -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(store)

    return factory
