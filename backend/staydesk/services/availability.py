"""Availability engine: which rooms are free for a requested stay.

Read-only: a search places no hold, so the booking commit re-checks overlap
inside its own transaction.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime

from staydesk.domain.enums import RoomType, SortKey
from staydesk.domain.inventory import sort_rooms
from staydesk.domain.policy import utcnow
from staydesk.domain.records import Room, RoomAvailability, RoomFilters, Stay
from staydesk.domain.repositories import UnitOfWorkFactory
from staydesk.domain.results import PERSISTENCE_FAILURE, Failure, Ok, PersistenceError, Result, invalid_input, not_found

logger = logging.getLogger(__name__)


def validate_stay(stay: Stay, today: date, *, allow_past: bool = False) -> Failure | None:
    """Return an ``INVALID_INPUT`` failure when the stay cannot be searched or booked."""
    if stay.check_out <= stay.check_in:
        return invalid_input(
            "check_out must be after check_in.",
            check_in=stay.check_in.isoformat(),
            check_out=stay.check_out.isoformat(),
        )
    if not allow_past and stay.check_in < today:
        return invalid_input("Check-in date cannot be in the past.", check_in=stay.check_in.isoformat())
    if stay.adults < 1:
        return invalid_input("At least one adult is required.", adults=stay.adults)
    if stay.children < 0:
        return invalid_input("Children cannot be negative.", children=stay.children)
    return None


class AvailabilityEngine:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Callable[[], datetime] = utcnow) -> None:
        self.uow_factory = uow_factory
        self.clock = clock

    async def find_available_rooms(
        self,
        stay: Stay,
        filters: RoomFilters | None = None,
        sort: SortKey = SortKey.RECOMMENDED,
    ) -> Result[list[Room]]:
        """Rooms that fit the party, match ``filters`` and are free for the whole stay.

        An empty list is a normal outcome; only malformed input fails.
        """
        failure = validate_stay(stay, self.clock().date())
        if failure is not None:
            return failure
        filters = filters or RoomFilters()

        try:
            async with self.uow_factory() as uow:
                rooms = await uow.rooms.search(stay.check_in, stay.check_out, stay.guests, filters)
        except PersistenceError:
            logger.exception("Room search failed for %s..%s", stay.check_in, stay.check_out)
            return PERSISTENCE_FAILURE

        logger.info(
            "Availability %s..%s for %d guests: %d room(s)",
            stay.check_in,
            stay.check_out,
            stay.guests,
            len(rooms),
        )
        return Ok(sort_rooms(rooms, sort))

    async def availability_board(
        self,
        check_in: date,
        check_out: date,
        room_type: RoomType | None = None,
    ) -> Result[list[RoomAvailability]]:
        """Every active room with whether it is free for the entire range.

        Staff use this to look at past and future occupancy alike, so dates
        in the past are accepted.
        """
        if check_out <= check_in:
            return invalid_input(
                "check_out must be after check_in.",
                check_in=check_in.isoformat(),
                check_out=check_out.isoformat(),
            )

        try:
            async with self.uow_factory() as uow:
                rooms = await uow.rooms.list_rooms(room_type)
                conflicts = await uow.rooms.conflicts([r.id for r in rooms], check_in, check_out)
        except PersistenceError:
            logger.exception("Availability board failed for %s..%s", check_in, check_out)
            return PERSISTENCE_FAILURE

        board = [
            RoomAvailability(
                room=room,
                available_for_entire_range=not conflicts.get(room.id),
                conflicting_reservation_ids=tuple(conflicts.get(room.id, ())),
            )
            for room in rooms
        ]
        return Ok(board)

    async def get_room(self, room_id: uuid.UUID) -> Result[Room]:
        """A single bookable room, for quoting."""
        try:
            async with self.uow_factory() as uow:
                rooms = await uow.rooms.get_many([room_id])
        except PersistenceError:
            logger.exception("Room lookup failed for %s", room_id)
            return PERSISTENCE_FAILURE
        if not rooms or not rooms[0].is_active:
            return not_found(f"Room {room_id} not found.", room_id=str(room_id))
        return Ok(rooms[0])
