"""Reservations API router: reads, lifecycle actions and edits.

Role rules live in the state machine: a role acting outside its transitions
gets 409, and clients only ever see their own reservations (404 otherwise).
"""

import uuid

from fastapi import APIRouter, Body, Depends, Query

from staydesk.api.deps import Services, get_current_actor, get_services, require_roles
from staydesk.api.errors import unwrap
from staydesk.domain.enums import DisplayStatus, ReservationStatus, Role
from staydesk.domain.records import Actor
from staydesk.domain.results import Result, invalid_transition
from staydesk.schemas.reservation import (
    HistoryResponse,
    ReservationListResponse,
    ReservationResponse,
    ReservationUpdate,
    StatusChangeResponse,
    TransitionRequest,
)

router = APIRouter(prefix="/api/v1/reservations", tags=["reservations"])


def _respond(services: Services, result: Result) -> ReservationResponse:
    return ReservationResponse.from_record(unwrap(result), services.policy, services.clock())


async def _transition(
    services: Services,
    reservation_id: uuid.UUID,
    new_status: ReservationStatus,
    actor: Actor,
    body: TransitionRequest | None,
) -> ReservationResponse:
    body = body or TransitionRequest()
    result = await services.reservations.transition(
        reservation_id, new_status, actor, body.reason, body.expected_version
    )
    return _respond(services, result)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("", response_model=ReservationListResponse, summary="List my reservations")
async def list_my_reservations(
    display: DisplayStatus | None = Query(None, description="upcoming, completed or cancelled"),
    services: Services = Depends(get_services),
    actor: Actor = Depends(require_roles(Role.CLIENT)),
) -> ReservationListResponse:
    reservations = unwrap(await services.reservations.list_for_client(actor.user_id, display))
    now = services.clock()
    return ReservationListResponse(
        items=[ReservationResponse.from_record(r, services.policy, now) for r in reservations],
        total=len(reservations),
    )


@router.get("/{reservation_id}", response_model=ReservationResponse, summary="Get a reservation")
async def get_reservation(
    reservation_id: uuid.UUID,
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return _respond(services, await services.reservations.get(reservation_id, actor))


@router.get("/{reservation_id}/history", response_model=HistoryResponse, summary="Status history")
async def reservation_history(
    reservation_id: uuid.UUID,
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> HistoryResponse:
    changes = unwrap(await services.reservations.history(reservation_id, actor))
    return HistoryResponse(
        reservation_id=reservation_id,
        items=[StatusChangeResponse.model_validate(change) for change in changes],
    )


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse, summary="Confirm (admin)")
async def confirm_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return await _transition(services, reservation_id, ReservationStatus.CONFIRMED, actor, body)


@router.post("/{reservation_id}/reject", response_model=ReservationResponse, summary="Reject (admin)")
async def reject_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    """Reject a pending request. A reason is required."""
    if actor.role is not Role.ADMIN:
        unwrap(invalid_transition(f"Role {actor.role.value} cannot reject a reservation.", role=actor.role.value))
    body = body or TransitionRequest()
    result = await services.reservations.reject(reservation_id, actor, body.reason or "", body.expected_version)
    return _respond(services, result)


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse, summary="Cancel (client)")
async def cancel_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return await _transition(services, reservation_id, ReservationStatus.CANCELED, actor, body)


@router.post("/{reservation_id}/check-in", response_model=ReservationResponse, summary="Check in (agent)")
async def check_in_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return await _transition(services, reservation_id, ReservationStatus.CHECKED_IN, actor, body)


@router.post("/{reservation_id}/check-out", response_model=ReservationResponse, summary="Check out (agent)")
async def check_out_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return await _transition(services, reservation_id, ReservationStatus.CHECKED_OUT, actor, body)


@router.post("/{reservation_id}/complete", response_model=ReservationResponse, summary="Complete a stay")
async def complete_reservation(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    return await _transition(services, reservation_id, ReservationStatus.COMPLETED, actor, body)


@router.post("/{reservation_id}/feedback", response_model=ReservationResponse, summary="Record feedback (client)")
async def record_feedback(
    reservation_id: uuid.UUID,
    body: TransitionRequest | None = Body(None),
    services: Services = Depends(get_services),
    actor: Actor = Depends(require_roles(Role.CLIENT)),
) -> ReservationResponse:
    """Flag a checked-out stay as reviewed. A second submission returns 409."""
    body = body or TransitionRequest()
    result = await services.reservations.record_feedback(reservation_id, actor, body.expected_version)
    return _respond(services, result)


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------


@router.put("/{reservation_id}", response_model=ReservationResponse, summary="Change dates or guests")
async def update_reservation(
    reservation_id: uuid.UUID,
    body: ReservationUpdate,
    services: Services = Depends(get_services),
    actor: Actor = Depends(get_current_actor),
) -> ReservationResponse:
    """Move the stay and/or change the party size, keeping the same rooms.

    Returns 409 when the rooms are taken for the new dates and 403 when the
    reservation can no longer be edited.
    """
    result = await services.reservations.update_interval(
        reservation_id,
        body.check_in,
        body.check_out,
        body.adults,
        body.children,
        actor,
        body.expected_version,
    )
    return _respond(services, result)
