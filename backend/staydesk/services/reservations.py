"""Reservation state machine: creation, lifecycle transitions and edits.

Every write runs in one unit of work: the reservation row is read for update,
guards are evaluated against that locked copy, and the repository applies the
change (bumping ``version``, releasing room holds, appending history). A guard
failure is raised as :class:`DomainError` so the unit of work rolls back, then
returned to the caller as a :class:`Failure`.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import date, datetime
from decimal import Decimal

from staydesk.domain.enums import DisplayStatus, ReservationSource, ReservationStatus, Role
from staydesk.domain.policy import SELF_SERVICE_STATUSES, BookingPolicy, display_status, feedback_eligible, utcnow
from staydesk.domain.records import Actor, Reservation, Room, Stay, StatusChange
from staydesk.domain.repositories import NewReservation, UnitOfWork, UnitOfWorkFactory
from staydesk.domain.results import (
    PERSISTENCE_FAILURE,
    ConcurrentModification,
    DomainError,
    Failure,
    HoldConflict,
    Ok,
    PersistenceError,
    Result,
    edit_not_allowed,
    invalid_input,
    invalid_transition,
    not_found,
    room_unavailable,
    stale_version,
)
from staydesk.services.availability import validate_stay
from staydesk.services.notifications import InvoiceIssuer, LoggingInvoiceIssuer, LoggingNotifier, Notifier
from staydesk.services.pricing import PricingCalculator

logger = logging.getLogger(__name__)

S = ReservationStatus

# (from, to) -> roles allowed to request it
TRANSITIONS: dict[tuple[ReservationStatus, ReservationStatus], frozenset[Role]] = {
    (S.PENDING, S.CONFIRMED): frozenset({Role.ADMIN}),
    (S.PENDING, S.CANCELED): frozenset({Role.ADMIN, Role.CLIENT}),
    (S.CONFIRMED, S.CANCELED): frozenset({Role.CLIENT}),
    (S.CONFIRMED, S.CHECKED_IN): frozenset({Role.AGENT}),
    (S.CHECKED_IN, S.CHECKED_OUT): frozenset({Role.AGENT}),
    (S.CHECKED_OUT, S.COMPLETED): frozenset({Role.SYSTEM, Role.AGENT}),
}

INVOICED_STATUSES = frozenset({S.CHECKED_OUT, S.COMPLETED})


def initial_status(source: ReservationSource) -> ReservationStatus:
    """Online requests wait for an admin; desk bookings are confirmed at once."""
    return S.CONFIRMED if source is ReservationSource.AGENT else S.PENDING


class ReservationStateMachine:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        pricing: PricingCalculator,
        policy: BookingPolicy,
        notifier: Notifier | None = None,
        invoices: InvoiceIssuer | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.uow_factory = uow_factory
        self.pricing = pricing
        self.policy = policy
        self.notifier = notifier or LoggingNotifier()
        self.invoices = invoices or LoggingInvoiceIssuer()
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create(
        self,
        client_id: uuid.UUID,
        room_ids: Sequence[uuid.UUID],
        stay: Stay,
        source: ReservationSource,
        agent_id: uuid.UUID | None = None,
        *,
        uow: UnitOfWork | None = None,
    ) -> Result[Reservation]:
        """Insert a reservation holding ``room_ids`` for ``stay``.

        With ``uow`` the insert joins the caller's transaction: nothing is
        committed and guard failures are raised as :class:`DomainError` for
        the caller to handle. Without it the call is self-contained.
        """
        if uow is not None:
            return Ok(await self._insert(uow, client_id, room_ids, stay, source, agent_id))

        try:
            async with self.uow_factory() as own:
                reservation = await self._insert(own, client_id, room_ids, stay, source, agent_id)
                await own.commit()
        except DomainError as exc:
            return exc.failure
        except HoldConflict:
            return room_unavailable("One or more rooms were just booked for these dates.")
        except PersistenceError:
            logger.exception("Reservation create failed for client %s", client_id)
            return PERSISTENCE_FAILURE
        return Ok(reservation)

    async def _insert(
        self,
        uow: UnitOfWork,
        client_id: uuid.UUID,
        room_ids: Sequence[uuid.UUID],
        stay: Stay,
        source: ReservationSource,
        agent_id: uuid.UUID | None,
    ) -> Reservation:
        failure = validate_stay(stay, self.clock().date())
        if failure is not None:
            failure.raise_()
        room_ids = tuple(room_ids)
        if not room_ids:
            invalid_input("Select at least one room.").raise_()
        if len(set(room_ids)) != len(room_ids):
            invalid_input("A room can only be selected once per reservation.").raise_()

        rooms = await self._bookable_rooms(uow, room_ids)
        capacity = sum(room.max_guests for room in rooms)
        if stay.guests > capacity:
            invalid_input(
                f"The selected rooms sleep {capacity} but {stay.guests} guests were requested.",
                capacity=capacity,
                guests=stay.guests,
            ).raise_()
        if await uow.rooms.lock_and_check_overlap(room_ids, stay.check_in, stay.check_out):
            room_unavailable(
                "One or more rooms are no longer available for these dates.",
                room_ids=[str(rid) for rid in room_ids],
            ).raise_()

        reservation = await uow.reservations.create(
            NewReservation(
                client_id=client_id,
                room_ids=room_ids,
                check_in=stay.check_in,
                check_out=stay.check_out,
                adults=stay.adults,
                children=stay.children,
                total_price=self._total(rooms, stay.check_in, stay.check_out),
                currency=self.policy.currency,
                status=initial_status(source),
                source=source,
                created_by_agent_id=agent_id,
            )
        )
        logger.info(
            "Reservation %s created (%s, %s) for client %s",
            reservation.id,
            reservation.status.value,
            source.value,
            client_id,
        )
        return reservation

    async def _bookable_rooms(self, uow: UnitOfWork, room_ids: tuple[uuid.UUID, ...]) -> list[Room]:
        found = {room.id: room for room in await uow.rooms.get_many(room_ids) if room.is_active}
        missing = [rid for rid in room_ids if rid not in found]
        if missing:
            room_unavailable(
                "One or more rooms cannot be booked.",
                room_ids=[str(rid) for rid in missing],
            ).raise_()
        return [found[rid] for rid in room_ids]

    def _total(self, rooms: Sequence[Room], check_in: date, check_out: date) -> Decimal:
        quotes = [self.pricing.price(room, check_in, check_out) for room in rooms]
        for quote in quotes:
            if isinstance(quote, Failure):
                quote.raise_()
        return sum((q.value.total for q in quotes), Decimal("0"))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def transition(
        self,
        reservation_id: uuid.UUID,
        new_status: ReservationStatus,
        actor: Actor,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Result[Reservation]:
        """Move a reservation to ``new_status`` if ``actor`` may do so now."""
        now = self.clock()
        reason = (reason or "").strip() or None
        try:
            async with self.uow_factory() as uow:
                current = await self._locked(uow, reservation_id, actor, expected_version)
                failure = self._guard(current, new_status, actor, reason, now)
                if failure is not None:
                    failure.raise_()
                updated = await uow.reservations.transition(
                    reservation_id,
                    new_status,
                    actor,
                    reason,
                    expected_version=current.version,
                    at=now,
                )
                await uow.commit()
        except DomainError as exc:
            return exc.failure
        except ConcurrentModification:
            return stale_version(reservation_id=str(reservation_id))
        except PersistenceError:
            logger.exception("Transition of reservation %s to %s failed", reservation_id, new_status.value)
            return PERSISTENCE_FAILURE

        logger.info(
            "Reservation %s: %s -> %s by %s",
            reservation_id,
            current.status.value,
            new_status.value,
            actor.role.value,
        )
        change = StatusChange(
            reservation_id=reservation_id,
            from_status=current.status,
            to_status=new_status,
            actor_role=actor.role,
            actor_id=actor.user_id,
            reason=reason,
            changed_at=now,
        )
        return Ok(await self._after_commit(updated, change))

    def _guard(
        self,
        current: Reservation,
        new_status: ReservationStatus,
        actor: Actor,
        reason: str | None,
        now: datetime,
    ) -> Failure | None:
        if current.status.is_terminal:
            return invalid_transition(
                f"Reservation is {current.status.value} and can no longer change.",
                current=current.status.value,
                requested=new_status.value,
            )
        roles = TRANSITIONS.get((current.status, new_status))
        if roles is None:
            return invalid_transition(
                f"Cannot move a reservation from {current.status.value} to {new_status.value}.",
                current=current.status.value,
                requested=new_status.value,
            )
        if actor.role not in roles:
            return invalid_transition(
                f"Role {actor.role.value} cannot move a reservation from "
                f"{current.status.value} to {new_status.value}.",
                current=current.status.value,
                requested=new_status.value,
                role=actor.role.value,
            )

        if new_status is S.CANCELED and actor.role is Role.ADMIN and not reason:
            return invalid_input("A reason is required to reject a reservation.")
        if new_status is S.CANCELED and actor.role is Role.CLIENT and not self.policy.can_cancel(current, now):
            return edit_not_allowed(
                f"Reservations can only be cancelled more than "
                f"{self.policy.cancel_lockout_hours} hours before check-in.",
            )
        if new_status is S.CHECKED_IN and now.date() < current.check_in:
            return invalid_transition(
                f"Check-in opens on {current.check_in.isoformat()}.",
                current=current.status.value,
                requested=new_status.value,
            )
        if new_status is S.CHECKED_OUT and current.checked_in_at is not None and now < current.checked_in_at:
            return invalid_transition(
                "Check-out cannot precede check-in.",
                current=current.status.value,
                requested=new_status.value,
            )
        return None

    async def _locked(
        self,
        uow: UnitOfWork,
        reservation_id: uuid.UUID,
        actor: Actor,
        expected_version: int | None,
    ) -> Reservation:
        current = await uow.reservations.get_for_update(reservation_id)
        # Clients never learn whether someone else's reservation exists
        if current is None or (actor.role is Role.CLIENT and current.client_id != actor.user_id):
            not_found(f"Reservation {reservation_id} not found.", reservation_id=str(reservation_id)).raise_()
        if expected_version is not None and current.version != expected_version:
            stale_version(
                reservation_id=str(reservation_id),
                expected_version=expected_version,
                current_version=current.version,
            ).raise_()
        return current

    async def _after_commit(self, reservation: Reservation, change: StatusChange) -> Reservation:
        try:
            await self.notifier.reservation_changed(reservation, change)
        except Exception:
            logger.exception("Notifier failed for reservation %s", reservation.id)
        if change.to_status not in INVOICED_STATUSES:
            return reservation
        try:
            invoice_ref = await self.invoices.issue(reservation)
        except Exception:
            logger.exception("Invoice issuing failed for reservation %s", reservation.id)
            return reservation
        if not invoice_ref:
            return reservation
        try:
            async with self.uow_factory() as uow:
                invoiced = await uow.reservations.attach_invoice(reservation.id, invoice_ref)
                await uow.commit()
        except PersistenceError:
            logger.exception("Could not store invoice %s on reservation %s", invoice_ref, reservation.id)
            return reservation
        return invoiced

    async def confirm(self, reservation_id: uuid.UUID, actor: Actor, expected_version: int | None = None):
        return await self.transition(reservation_id, S.CONFIRMED, actor, expected_version=expected_version)

    async def reject(
        self, reservation_id: uuid.UUID, actor: Actor, reason: str, expected_version: int | None = None
    ):
        return await self.transition(reservation_id, S.CANCELED, actor, reason, expected_version)

    async def cancel(
        self,
        reservation_id: uuid.UUID,
        actor: Actor,
        reason: str | None = None,
        expected_version: int | None = None,
    ):
        return await self.transition(reservation_id, S.CANCELED, actor, reason, expected_version)

    async def check_in(self, reservation_id: uuid.UUID, actor: Actor, expected_version: int | None = None):
        return await self.transition(reservation_id, S.CHECKED_IN, actor, expected_version=expected_version)

    async def check_out(self, reservation_id: uuid.UUID, actor: Actor, expected_version: int | None = None):
        return await self.transition(reservation_id, S.CHECKED_OUT, actor, expected_version=expected_version)

    async def complete(
        self, reservation_id: uuid.UUID, actor: Actor | None = None, expected_version: int | None = None
    ):
        return await self.transition(
            reservation_id, S.COMPLETED, actor or Actor.system(), expected_version=expected_version
        )

    async def record_feedback(
        self, reservation_id: uuid.UUID, actor: Actor, expected_version: int | None = None
    ) -> Result[Reservation]:
        """Mark that the owning client has left feedback for a finished stay.

        Feedback is accepted once, and only after check-out.
        """
        now = self.clock()
        try:
            async with self.uow_factory() as uow:
                if actor.role is not Role.CLIENT:
                    invalid_transition(
                        f"Role {actor.role.value} cannot leave feedback.", role=actor.role.value
                    ).raise_()
                current = await self._locked(uow, reservation_id, actor, expected_version)
                if current.feedback_given:
                    invalid_transition("Feedback was already submitted for this reservation.").raise_()
                if not feedback_eligible(current):
                    invalid_transition(
                        f"Feedback opens after check-out; the reservation is {current.status.value}.",
                        current=current.status.value,
                    ).raise_()
                updated = await uow.reservations.mark_feedback_given(
                    reservation_id, expected_version=current.version, at=now
                )
                await uow.commit()
        except DomainError as exc:
            return exc.failure
        except ConcurrentModification:
            return stale_version(reservation_id=str(reservation_id))
        except PersistenceError:
            logger.exception("Recording feedback for reservation %s failed", reservation_id)
            return PERSISTENCE_FAILURE

        logger.info("Feedback recorded for reservation %s", reservation_id)
        return Ok(updated)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def update_interval(
        self,
        reservation_id: uuid.UUID,
        check_in: date,
        check_out: date,
        adults: int,
        children: int,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Result[Reservation]:
        """Replace the stay dates and guest split, re-checking and re-pricing the rooms.

        Clients may only edit outside the edit lockout window; staff may edit
        any reservation that has not been checked in.
        """
        now = self.clock()
        stay = Stay(check_in=check_in, check_out=check_out, adults=adults, children=children)
        try:
            async with self.uow_factory() as uow:
                current = await self._locked(uow, reservation_id, actor, expected_version)
                if current.status not in SELF_SERVICE_STATUSES:
                    edit_not_allowed(
                        f"A {current.status.value} reservation can no longer be edited.",
                        status=current.status.value,
                    ).raise_()
                if actor.role is Role.CLIENT and not self.policy.can_edit(current, now):
                    edit_not_allowed(
                        f"Reservations can only be edited more than "
                        f"{self.policy.edit_lockout_hours} hours before check-in.",
                    ).raise_()
                if (current.check_in, current.check_out, current.adults, current.children) == (
                    check_in,
                    check_out,
                    adults,
                    children,
                ):
                    return Ok(current)

                failure = validate_stay(stay, now.date())
                if failure is not None:
                    failure.raise_()
                rooms = await uow.rooms.get_many(current.room_ids)
                capacity = sum(room.max_guests for room in rooms)
                if stay.guests > capacity:
                    invalid_input(
                        f"The reserved rooms sleep {capacity} but {stay.guests} guests were requested.",
                        capacity=capacity,
                        guests=stay.guests,
                    ).raise_()
                if await uow.rooms.lock_and_check_overlap(
                    current.room_ids, check_in, check_out, exclude_reservation_id=reservation_id
                ):
                    room_unavailable(
                        "The reserved rooms are not available for the new dates.",
                        check_in=check_in.isoformat(),
                        check_out=check_out.isoformat(),
                    ).raise_()

                updated = await uow.reservations.update_interval(
                    reservation_id,
                    check_in,
                    check_out,
                    adults,
                    children,
                    self._total(rooms, check_in, check_out),
                    expected_version=current.version,
                    at=now,
                )
                await uow.commit()
        except DomainError as exc:
            return exc.failure
        except HoldConflict:
            return room_unavailable("The reserved rooms are not available for the new dates.")
        except ConcurrentModification:
            return stale_version(reservation_id=str(reservation_id))
        except PersistenceError:
            logger.exception("Edit of reservation %s failed", reservation_id)
            return PERSISTENCE_FAILURE

        logger.info("Reservation %s moved to %s..%s", reservation_id, check_in, check_out)
        return Ok(updated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, reservation_id: uuid.UUID, actor: Actor) -> Result[Reservation]:
        try:
            async with self.uow_factory() as uow:
                reservation = await uow.reservations.get(reservation_id)
        except PersistenceError:
            logger.exception("Reservation lookup failed for %s", reservation_id)
            return PERSISTENCE_FAILURE
        if reservation is None or (actor.role is Role.CLIENT and reservation.client_id != actor.user_id):
            return not_found(f"Reservation {reservation_id} not found.", reservation_id=str(reservation_id))
        return Ok(reservation)

    async def list_for_client(
        self, client_id: uuid.UUID, display: DisplayStatus | None = None
    ) -> Result[list[Reservation]]:
        """The client's reservations, newest first, optionally narrowed to one display bucket."""
        try:
            async with self.uow_factory() as uow:
                reservations = await uow.reservations.list_for_client(client_id)
        except PersistenceError:
            logger.exception("Reservation listing failed for client %s", client_id)
            return PERSISTENCE_FAILURE
        if display is not None:
            now = self.clock()
            reservations = [r for r in reservations if display_status(r, now) is display]
        return Ok(reservations)

    async def history(self, reservation_id: uuid.UUID, actor: Actor) -> Result[list[StatusChange]]:
        found = await self.get(reservation_id, actor)
        if isinstance(found, Failure):
            return found
        try:
            async with self.uow_factory() as uow:
                return Ok(await uow.reservations.history(reservation_id))
        except PersistenceError:
            logger.exception("History lookup failed for %s", reservation_id)
            return PERSISTENCE_FAILURE
