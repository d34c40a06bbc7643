"""SQLAlchemy (PostgreSQL) repositories and unit of work.

Double booking is guarded twice inside the writing transaction: the room rows
are locked ``FOR UPDATE`` before the overlap check, and the exclusion
constraint on ``room_holds`` rejects anything that slips through. Reservation
rows carry a ``version_id_col``, so lost updates surface as
:class:`ConcurrentModification`.
"""

from __future__ import annotations

import functools
import logging
import uuid
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import Range
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from staydesk.domain.enums import ReservationStatus, Role, RoomType
from staydesk.domain.records import Actor, Client, Reservation, Room, RoomFilters, StagedClient, StatusChange
from staydesk.domain.repositories import NewReservation
from staydesk.domain.results import ConcurrentModification, HoldConflict, PersistenceError
from staydesk.models import Client as ClientRow
from staydesk.models import Reservation as ReservationRow
from staydesk.models import ReservationStatusChange, RoomHold
from staydesk.models import Room as RoomRow

logger = logging.getLogger(__name__)

_HOLD_CONSTRAINT = "ex_room_holds_no_overlap"


def _db_errors(method):
    """Translate SQLAlchemy failures into the core's persistence errors."""

    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except StaleDataError as exc:
            raise ConcurrentModification(str(exc)) from exc
        except IntegrityError as exc:
            if _HOLD_CONSTRAINT in str(exc.orig):
                raise HoldConflict("room already held for an overlapping stay") from exc
            raise PersistenceError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    return wrapper


def _stay(check_in: date, check_out: date) -> Range[date]:
    return Range(check_in, check_out, bounds="[)")


def _overlapping_holds(check_in: date, check_out: date):
    return (RoomHold.active.is_(True), RoomHold.stay.overlaps(_stay(check_in, check_out)))


class SqlAlchemyRoomRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_db_errors
    async def search(self, check_in: date, check_out: date, guests: int, filters: RoomFilters) -> list[Room]:
        held = (
            select(RoomHold.id)
            .where(RoomHold.room_id == RoomRow.id, *_overlapping_holds(check_in, check_out))
            .exists()
        )
        query = select(RoomRow).where(
            RoomRow.is_active.is_(True),
            RoomRow.max_guests >= filters.required_capacity(guests),
            ~held,
        )
        if filters.room_types:
            query = query.where(RoomRow.room_type.in_(filters.room_types))
        if filters.views:
            query = query.where(RoomRow.view.in_(filters.views))
        if filters.max_price is not None:
            query = query.where(RoomRow.price_per_night <= filters.max_price)
        if filters.features:
            query = query.where(RoomRow.features.overlap(sorted(filters.features)))

        result = await self.session.execute(query)
        return [Room.model_validate(row) for row in result.scalars().all()]

    @_db_errors
    async def get_many(self, room_ids: Sequence[uuid.UUID]) -> list[Room]:
        if not room_ids:
            return []
        result = await self.session.execute(select(RoomRow).where(RoomRow.id.in_(room_ids)))
        return [Room.model_validate(row) for row in result.scalars().all()]

    @_db_errors
    async def list_rooms(self, room_type: RoomType | None = None) -> list[Room]:
        query = select(RoomRow).where(RoomRow.is_active.is_(True))
        if room_type is not None:
            query = query.where(RoomRow.room_type == room_type)
        query = query.order_by(RoomRow.floor.asc(), RoomRow.room_number.asc())
        result = await self.session.execute(query)
        return [Room.model_validate(row) for row in result.scalars().all()]

    @_db_errors
    async def conflicts(
        self, room_ids: Sequence[uuid.UUID], check_in: date, check_out: date
    ) -> dict[uuid.UUID, list[uuid.UUID]]:
        found: dict[uuid.UUID, list[uuid.UUID]] = {rid: [] for rid in room_ids}
        if not room_ids:
            return found
        result = await self.session.execute(
            select(RoomHold.room_id, RoomHold.reservation_id).where(
                RoomHold.room_id.in_(room_ids), *_overlapping_holds(check_in, check_out)
            )
        )
        for room_id, reservation_id in result.all():
            found[room_id].append(reservation_id)
        return found

    @_db_errors
    async def lock_and_check_overlap(
        self,
        room_ids: Sequence[uuid.UUID],
        check_in: date,
        check_out: date,
        exclude_reservation_id: uuid.UUID | None = None,
    ) -> bool:
        # Lock in a stable order so two commits on the same rooms cannot deadlock
        await self.session.execute(
            select(RoomRow.id).where(RoomRow.id.in_(room_ids)).order_by(RoomRow.id).with_for_update()
        )
        query = select(RoomHold.id).where(RoomHold.room_id.in_(room_ids), *_overlapping_holds(check_in, check_out))
        if exclude_reservation_id is not None:
            query = query.where(RoomHold.reservation_id != exclude_reservation_id)
        result = await self.session.execute(query.limit(1))
        return result.first() is not None


class SqlAlchemyClientRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @_db_errors
    async def find_by_email(self, email: str) -> Client | None:
        result = await self.session.execute(
            select(ClientRow).where(func.lower(ClientRow.email) == email.strip().lower())
        )
        row = result.scalar_one_or_none()
        return Client.model_validate(row) if row is not None else None

    @_db_errors
    async def get(self, client_id: uuid.UUID) -> Client | None:
        row = await self.session.get(ClientRow, client_id)
        return Client.model_validate(row) if row is not None else None

    @_db_errors
    async def create(self, profile: StagedClient) -> Client:
        row = ClientRow(
            name=profile.name,
            email=profile.email.strip().lower(),
            phone=profile.phone,
            is_verified=profile.is_verified,
        )
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        logger.info("Client created: %s", row.id)
        return Client.model_validate(row)


class SqlAlchemyReservationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _load(self, reservation_id: uuid.UUID, expected_version: int) -> ReservationRow:
        row = await self.session.get(ReservationRow, reservation_id)
        if row is None:
            raise PersistenceError(f"reservation {reservation_id} vanished")
        if row.version != expected_version:
            raise ConcurrentModification(
                f"reservation {reservation_id} is at version {row.version}, expected {expected_version}"
            )
        return row

    async def _saved(self, row: ReservationRow) -> Reservation:
        await self.session.flush()
        await self.session.refresh(row)
        return Reservation.model_validate(row)

    @_db_errors
    async def create(self, reservation: NewReservation) -> Reservation:
        row = ReservationRow(
            client_id=reservation.client_id,
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            adults=reservation.adults,
            children=reservation.children,
            total_price=reservation.total_price,
            currency=reservation.currency,
            status=reservation.status,
            source=reservation.source,
            created_by_agent_id=reservation.created_by_agent_id,
            holds=[
                RoomHold(room_id=room_id, stay=_stay(reservation.check_in, reservation.check_out))
                for room_id in reservation.room_ids
            ],
        )
        self.session.add(row)
        return await self._saved(row)

    @_db_errors
    async def get(self, reservation_id: uuid.UUID) -> Reservation | None:
        row = await self.session.get(ReservationRow, reservation_id)
        return Reservation.model_validate(row) if row is not None else None

    @_db_errors
    async def get_for_update(self, reservation_id: uuid.UUID) -> Reservation | None:
        result = await self.session.execute(
            select(ReservationRow)
            .where(ReservationRow.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return Reservation.model_validate(row) if row is not None else None

    @_db_errors
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
        row = await self._load(reservation_id, expected_version)
        from_status = row.status
        row.status = new_status
        row.updated_at = at
        if new_status is ReservationStatus.CANCELED and reason and actor.role is Role.ADMIN:
            row.rejection_reason = reason
        if new_status is ReservationStatus.CHECKED_IN:
            row.checked_in_at = at
        if new_status is ReservationStatus.CHECKED_OUT:
            row.checked_out_at = at
        if not new_status.holds_inventory:
            for hold in row.holds:
                hold.active = False

        self.session.add(
            ReservationStatusChange(
                reservation_id=reservation_id,
                from_status=from_status,
                to_status=new_status,
                actor_role=actor.role,
                actor_id=actor.user_id,
                reason=reason,
                changed_at=at,
            )
        )
        return await self._saved(row)

    @_db_errors
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
        row = await self._load(reservation_id, expected_version)
        row.check_in = check_in
        row.check_out = check_out
        row.adults = adults
        row.children = children
        row.total_price = total_price
        row.updated_at = at
        for hold in row.holds:
            hold.stay = _stay(check_in, check_out)
        return await self._saved(row)

    @_db_errors
    async def attach_invoice(self, reservation_id: uuid.UUID, invoice_ref: str) -> Reservation:
        # A Core UPDATE skips the version counter and the updated_at default
        await self.session.execute(
            update(ReservationRow)
            .where(ReservationRow.id == reservation_id)
            .values(invoice_ref=invoice_ref, updated_at=ReservationRow.updated_at)
            .execution_options(synchronize_session=False)
        )
        row = await self.session.get(ReservationRow, reservation_id, populate_existing=True)
        if row is None:
            raise PersistenceError(f"reservation {reservation_id} vanished")
        return Reservation.model_validate(row)

    @_db_errors
    async def mark_feedback_given(
        self, reservation_id: uuid.UUID, *, expected_version: int, at: datetime
    ) -> Reservation:
        row = await self._load(reservation_id, expected_version)
        row.feedback_given = True
        row.updated_at = at
        return await self._saved(row)

    @_db_errors
    async def list_for_client(self, client_id: uuid.UUID) -> list[Reservation]:
        result = await self.session.execute(
            select(ReservationRow)
            .where(ReservationRow.client_id == client_id)
            .order_by(ReservationRow.created_at.desc())
        )
        return [Reservation.model_validate(row) for row in result.scalars().all()]

    @_db_errors
    async def history(self, reservation_id: uuid.UUID) -> list[StatusChange]:
        result = await self.session.execute(
            select(ReservationStatusChange)
            .where(ReservationStatusChange.reservation_id == reservation_id)
            .order_by(ReservationStatusChange.changed_at.asc())
        )
        return [StatusChange.model_validate(row) for row in result.scalars().all()]


class SqlAlchemyUnitOfWork:
    """One ``AsyncSession`` transaction shared by the three repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        self.session = self.session_factory()
        self.rooms = SqlAlchemyRoomRepository(self.session)
        self.clients = SqlAlchemyClientRepository(self.session)
        self.reservations = SqlAlchemyReservationRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self.session.in_transaction():
                await self.session.rollback()
        finally:
            await self.session.close()

    @_db_errors
    async def commit(self) -> None:
        await self.session.commit()

    @_db_errors
    async def rollback(self) -> None:
        await self.session.rollback()


def sql_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Return a zero-argument factory producing units of work on ``session_factory``."""

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return factory
