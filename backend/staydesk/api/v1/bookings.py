"""Booking API router: runs the whole booking pipeline in one request.

Clients book for themselves (``ONLINE``, awaiting admin confirmation);
agents book at the desk on a client's behalf (``AGENT``, confirmed at once).
"""

from fastapi import APIRouter, Depends, status

from staydesk.api.deps import Services, get_services, require_roles
from staydesk.api.errors import unwrap
from staydesk.domain.enums import ReservationSource, Role
from staydesk.domain.records import Actor
from staydesk.domain.results import invalid_input
from staydesk.schemas.booking import BookingRequest, BookingResponse, CartItemResponse
from staydesk.schemas.reservation import ReservationResponse
from staydesk.services.clients import ClientProfile
from staydesk.services.pricing import PricingCalculator

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book one or more rooms",
)
async def create_booking(
    body: BookingRequest,
    services: Services = Depends(get_services),
    actor: Actor = Depends(require_roles(Role.CLIENT, Role.AGENT)),
) -> BookingResponse:
    """Validate the stay, re-check the chosen rooms, resolve the client and commit.

    Returns 409 when a chosen room was taken since the search.
    """
    if actor.role is Role.CLIENT:
        outcome = await services.booking.book(
            body.to_stay(),
            body.room_ids,
            client_id=actor.user_id,
            source=ReservationSource.ONLINE,
        )
    else:
        if body.client_id is None and body.client is None:
            unwrap(invalid_input("Agents must name the client by client_id or client details."))
        profile = ClientProfile(name=body.client.name, phone=body.client.phone) if body.client else None
        outcome = await services.booking.book(
            body.to_stay(),
            body.room_ids,
            body.client.email if body.client else None,
            profile,
            client_id=body.client_id,
            source=ReservationSource.AGENT,
            agent_id=actor.user_id,
        )

    result = unwrap(outcome)
    cart = PricingCalculator.price_cart(result.draft.items)
    return BookingResponse(
        reservation=ReservationResponse.from_record(result.reservation, services.policy, services.clock()),
        items=[CartItemResponse.model_validate(item) for item in cart.items],
        subtotal=cart.subtotal,
        tax=cart.tax,
        total=cart.total,
    )
