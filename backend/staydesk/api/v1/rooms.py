"""Room availability API router: search, the staff board, and price quotes."""

import uuid

from fastapi import APIRouter, Depends

from staydesk.api.deps import Services, get_current_actor, get_services, require_roles
from staydesk.api.errors import unwrap
from staydesk.domain.enums import Role
from staydesk.domain.records import Actor
from staydesk.schemas.room import (
    BoardEntryResponse,
    BoardRequest,
    BoardResponse,
    QuoteRequest,
    QuoteResponse,
    RoomResponse,
    RoomSearchRequest,
    RoomSearchResponse,
)

router = APIRouter(prefix="/api/v1/rooms", tags=["rooms"])


@router.post("/search", response_model=RoomSearchResponse, summary="Find rooms free for a stay")
async def search_rooms(
    body: RoomSearchRequest,
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> RoomSearchResponse:
    """Rooms that fit the party, match the filters and are free for every night."""
    rooms = unwrap(await services.availability.find_available_rooms(body.to_stay(), body.to_filters(), body.sort))
    return RoomSearchResponse(
        items=[RoomResponse.model_validate(room) for room in rooms],
        total=len(rooms),
    )


@router.post("/board", response_model=BoardResponse, summary="Occupancy board for staff")
async def availability_board(
    body: BoardRequest,
    services: Services = Depends(get_services),
    actor: Actor = Depends(require_roles(Role.AGENT, Role.ADMIN)),
) -> BoardResponse:
    entries = unwrap(await services.availability.availability_board(body.check_in, body.check_out, body.room_type))
    return BoardResponse(
        check_in=body.check_in,
        check_out=body.check_out,
        items=[BoardEntryResponse.model_validate(entry) for entry in entries],
    )


@router.post("/{room_id}/quote", response_model=QuoteResponse, summary="Price a stay in one room")
async def quote_room(
    room_id: uuid.UUID,
    body: QuoteRequest,
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> QuoteResponse:
    room = unwrap(await services.availability.get_room(room_id))
    quote = unwrap(services.pricing.price(room, body.check_in, body.check_out))
    return QuoteResponse(
        room_id=room_id,
        nightly_rate=quote.nightly_rate,
        nights=quote.nights,
        tax_rate=quote.tax_rate,
        subtotal=quote.subtotal,
        tax=quote.tax,
        total=quote.total,
        currency=services.policy.currency,
    )
