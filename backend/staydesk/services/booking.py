"""Booking orchestrator: dates, rooms, client, review, commit.

Each stage takes a :class:`BookingDraft` and returns a new one, so the
pipeline state can be kept by whoever drives it (an HTTP session, a desk
terminal, a test). Nothing is written before :meth:`BookingOrchestrator.commit`.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from staydesk.domain.enums import BookingStage, ReservationSource, SortKey
from staydesk.domain.policy import utcnow
from staydesk.domain.records import BookingDraft, Reservation, Room, RoomFilters, Stay
from staydesk.domain.repositories import UnitOfWorkFactory
from staydesk.domain.results import (
    PERSISTENCE_FAILURE,
    DomainError,
    Failure,
    HoldConflict,
    Ok,
    PersistenceError,
    Result,
    invalid_input,
    room_unavailable,
)
from staydesk.services.availability import AvailabilityEngine, validate_stay
from staydesk.services.clients import ClientProfile, ClientResolver
from staydesk.services.pricing import PricingCalculator
from staydesk.services.reservations import ReservationStateMachine

logger = logging.getLogger(__name__)

_CLOSED_STAGES = frozenset({BookingStage.COMMITTED, BookingStage.ABANDONED})


@dataclass(frozen=True)
class BookingOutcome:
    draft: BookingDraft
    reservation: Reservation


def split_guests(rooms: Sequence[Room], adults: int, children: int) -> list[tuple[int, int]]:
    """Spread the party over ``rooms`` in order, filling each up to its capacity.

    Adults are placed first so a child is never alone in a room while an
    adult could still take the bed.
    """
    split = []
    for room in rooms:
        room_adults = min(adults, room.max_guests)
        room_children = min(children, room.max_guests - room_adults)
        adults -= room_adults
        children -= room_children
        split.append((room_adults, room_children))
    return split


def _closed(draft: BookingDraft) -> Failure | None:
    if draft.stage in _CLOSED_STAGES:
        return invalid_input(f"This booking is already {draft.stage.value.lower()}.", stage=draft.stage.value)
    return None


class BookingOrchestrator:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        availability: AvailabilityEngine,
        pricing: PricingCalculator,
        clients: ClientResolver,
        reservations: ReservationStateMachine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow_factory = uow_factory
        self.availability = availability
        self.pricing = pricing
        self.clients = clients
        self.reservations = reservations
        self.clock = clock

    def start(
        self,
        stay: Stay,
        source: ReservationSource = ReservationSource.ONLINE,
        agent_id: uuid.UUID | None = None,
    ) -> Result[BookingDraft]:
        """Stage 1: validate the dates and party size."""
        failure = validate_stay(stay, self.clock().date())
        if failure is not None:
            return failure
        return Ok(BookingDraft(stage=BookingStage.ROOMS, stay=stay, source=source, agent_id=agent_id))

    async def search(
        self,
        draft: BookingDraft,
        filters: RoomFilters | None = None,
        sort: SortKey = SortKey.RECOMMENDED,
    ) -> Result[tuple[BookingDraft, list[Room]]]:
        """Stage 2a: find candidate rooms. Searching again discards the cart."""
        failure = _closed(draft)
        if failure is not None:
            return failure
        filters = filters or RoomFilters()
        found = await self.availability.find_available_rooms(draft.stay, filters, sort)
        if isinstance(found, Failure):
            return found
        rooms = found.value
        updated = draft.model_copy(
            update={
                "stage": BookingStage.ROOMS,
                "filters": filters,
                "sort": sort,
                "candidate_room_ids": tuple(room.id for room in rooms),
                "items": (),
            }
        )
        return Ok((updated, rooms))

    async def select_rooms(self, draft: BookingDraft, room_ids: Sequence[uuid.UUID]) -> Result[BookingDraft]:
        """Stage 2b: put rooms from the last search in the cart and price them."""
        failure = _closed(draft)
        if failure is not None:
            return failure
        room_ids = tuple(room_ids)
        if not room_ids:
            return invalid_input("Select at least one room.")
        if len(set(room_ids)) != len(room_ids):
            return invalid_input("A room can only be selected once per reservation.")
        not_offered = [rid for rid in room_ids if rid not in draft.candidate_room_ids]
        if not_offered:
            return room_unavailable(
                "One or more rooms are not available for these dates.",
                room_ids=[str(rid) for rid in not_offered],
            )

        try:
            async with self.uow_factory() as uow:
                fetched = {room.id: room for room in await uow.rooms.get_many(room_ids)}
        except PersistenceError:
            logger.exception("Room lookup failed while building cart")
            return PERSISTENCE_FAILURE
        if len(fetched) != len(room_ids):
            return room_unavailable("One or more rooms cannot be booked.")
        rooms = [fetched[rid] for rid in room_ids]

        stay = draft.stay
        capacity = sum(room.max_guests for room in rooms)
        if stay.guests > capacity:
            return invalid_input(
                f"The selected rooms sleep {capacity} but {stay.guests} guests were requested.",
                capacity=capacity,
                guests=stay.guests,
            )

        items = []
        for room, (adults, children) in zip(rooms, split_guests(rooms, stay.adults, stay.children)):
            item = self.pricing.cart_item(room, stay.check_in, stay.check_out, adults, children)
            if isinstance(item, Failure):
                return item
            items.append(item.value)
        return Ok(draft.model_copy(update={"stage": BookingStage.CLIENT, "items": tuple(items)}))

    async def resolve_client(
        self,
        draft: BookingDraft,
        email: str,
        profile: ClientProfile | None = None,
    ) -> Result[BookingDraft]:
        """Stage 3: attach an existing client or stage a new one."""
        failure = _closed(draft)
        if failure is not None:
            return failure
        if not draft.items:
            return invalid_input("Select rooms before choosing the client.")
        resolved = await self.clients.resolve(
            email, profile, staged_by_staff=draft.source is ReservationSource.AGENT
        )
        if isinstance(resolved, Failure):
            return resolved
        resolution = resolved.value
        return Ok(
            draft.model_copy(
                update={
                    "stage": BookingStage.REVIEW,
                    "client": resolution.existing,
                    "staged_client": resolution.staged,
                }
            )
        )

    async def use_client(self, draft: BookingDraft, client_id: uuid.UUID) -> Result[BookingDraft]:
        """Stage 3, staff variant: pick an existing client by id."""
        failure = _closed(draft)
        if failure is not None:
            return failure
        if not draft.items:
            return invalid_input("Select rooms before choosing the client.")
        found = await self.clients.resolve_by_id(client_id)
        if isinstance(found, Failure):
            return found
        return Ok(draft.model_copy(update={"stage": BookingStage.REVIEW, "client": found.value, "staged_client": None}))

    async def commit(self, draft: BookingDraft) -> Result[BookingOutcome]:
        """Stage 4: write the client (if staged) and the reservation in one transaction.

        Availability is re-checked under lock and the price recomputed from
        current room rates, so a cart that went stale since the search fails
        with ``ROOM_UNAVAILABLE`` instead of double booking.
        """
        failure = _closed(draft)
        if failure is not None:
            return failure
        if draft.stage is not BookingStage.REVIEW or not draft.items:
            return invalid_input("The booking is not ready to be confirmed.", stage=draft.stage.value)
        if draft.client is None and draft.staged_client is None:
            return invalid_input("A client is required to confirm the booking.")

        try:
            async with self.uow_factory() as uow:
                client = draft.client or await ClientResolver.persist(uow.clients, draft.staged_client)
                created = await self.reservations.create(
                    client.id,
                    draft.room_ids,
                    draft.stay,
                    draft.source,
                    draft.agent_id,
                    uow=uow,
                )
                reservation = created.value
                await uow.commit()
        except DomainError as exc:
            return exc.failure
        except HoldConflict:
            return room_unavailable("One or more rooms were just booked for these dates.")
        except PersistenceError:
            logger.exception("Booking commit failed")
            return PERSISTENCE_FAILURE

        if reservation.total_price != draft.cart_total:
            logger.info(
                "Reservation %s repriced from %s to %s at commit",
                reservation.id,
                draft.cart_total,
                reservation.total_price,
            )
        committed = draft.model_copy(
            update={
                "stage": BookingStage.COMMITTED,
                "client": client,
                "staged_client": None,
                "reservation_id": reservation.id,
            }
        )
        return Ok(BookingOutcome(draft=committed, reservation=reservation))

    @staticmethod
    def abandon(draft: BookingDraft) -> BookingDraft:
        """Drop the draft. Nothing was persisted, so there is nothing to undo."""
        if draft.stage is BookingStage.COMMITTED:
            return draft
        return draft.model_copy(update={"stage": BookingStage.ABANDONED, "items": ()})

    async def book(
        self,
        stay: Stay,
        room_ids: Sequence[uuid.UUID],
        email: str | None = None,
        profile: ClientProfile | None = None,
        *,
        client_id: uuid.UUID | None = None,
        source: ReservationSource = ReservationSource.ONLINE,
        agent_id: uuid.UUID | None = None,
        filters: RoomFilters | None = None,
    ) -> Result[BookingOutcome]:
        """Run the four stages in one call.

        The client is named either by ``client_id`` or by ``email`` (plus a
        profile when they are new).
        """
        started = self.start(stay, source, agent_id)
        if isinstance(started, Failure):
            return started
        searched = await self.search(started.value, filters)
        if isinstance(searched, Failure):
            return searched
        draft, _ = searched.value
        selected = await self.select_rooms(draft, room_ids)
        if isinstance(selected, Failure):
            return selected
        if client_id is not None:
            resolved = await self.use_client(selected.value, client_id)
        else:
            resolved = await self.resolve_client(selected.value, email or "", profile)
        if isinstance(resolved, Failure):
            return resolved
        return await self.commit(resolved.value)
