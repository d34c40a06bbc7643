"""Pure inventory rules: interval overlap, filter matching and result ordering."""

from collections.abc import Iterable
from datetime import date

from staydesk.domain.enums import SortKey
from staydesk.domain.records import Room, RoomFilters


def overlaps(check_in: date, check_out: date, other_in: date, other_out: date) -> bool:
    """Half-open overlap test on ``[check_in, check_out)`` intervals."""
    return other_in < check_out and other_out > check_in


def room_matches(room: Room, guests: int, filters: RoomFilters) -> bool:
    if not room.is_active:
        return False
    if room.max_guests < filters.required_capacity(guests):
        return False
    if filters.room_types and room.room_type not in filters.room_types:
        return False
    if filters.views and room.view not in filters.views:
        return False
    if filters.max_price is not None and room.price_per_night > filters.max_price:
        return False
    if filters.features and not filters.features.intersection(tag.lower() for tag in room.features):
        return False
    return True


def sort_rooms(rooms: Iterable[Room], sort: SortKey) -> list[Room]:
    """Order search results; ties always fall back to room number then id."""
    if sort is SortKey.PRICE_ASC:
        key = lambda r: (r.price_per_night, r.room_number, str(r.id))  # noqa: E731
    elif sort is SortKey.PRICE_DESC:
        key = lambda r: (-r.price_per_night, r.room_number, str(r.id))  # noqa: E731
    else:
        key = lambda r: (not r.featured, r.price_per_night, r.room_number, str(r.id))  # noqa: E731
    return sorted(rooms, key=key)
