"""Tests for the reservation state machine: create, transitions, edits and reads."""

import uuid
from decimal import Decimal

import pytest

from factories import BrokenInvoiceIssuer, BrokenNotifier, day
from staydesk.domain.enums import DisplayStatus, ReservationSource, ReservationStatus, Role
from staydesk.domain.policy import BookingPolicy
from staydesk.domain.records import Actor, Stay
from staydesk.domain.results import ConcurrentModification, ErrorCode, Failure, Ok, PersistenceError
from staydesk.repositories.memory import InMemoryReservationRepository
from staydesk.services.pricing import PricingCalculator
from staydesk.services.reservations import TRANSITIONS, ReservationStateMachine

pytestmark = pytest.mark.asyncio

S = ReservationStatus


def _ok(result):
    assert isinstance(result, Ok), result
    return result.value


@pytest.fixture
def admin() -> Actor:
    return Actor(role=Role.ADMIN, user_id=uuid.uuid4())


@pytest.fixture
def agent() -> Actor:
    return Actor(role=Role.AGENT, user_id=uuid.uuid4())


@pytest.fixture
def owner(amina) -> Actor:
    return Actor(role=Role.CLIENT, user_id=amina.id)


@pytest.fixture
def drive(services, reserve, amina, admin, agent):
    """Factory: a reservation of Amina's for room 102, starting today, walked to ``target``."""

    async def _drive(target: ReservationStatus):
        sm = services.reservations
        reservation = await reserve(amina, ["102"], start=0, nights=2)
        if target is S.PENDING:
            return reservation
        if target is S.CANCELED:
            return _ok(await sm.reject(reservation.id, admin, "overbooked"))
        reservation = _ok(await sm.confirm(reservation.id, admin))
        if target is S.CONFIRMED:
            return reservation
        reservation = _ok(await sm.check_in(reservation.id, agent))
        if target is S.CHECKED_IN:
            return reservation
        reservation = _ok(await sm.check_out(reservation.id, agent))
        if target is S.CHECKED_OUT:
            return reservation
        return _ok(await sm.complete(reservation.id))

    return _drive


def _actor_for(role: Role, amina_id: uuid.UUID) -> Actor:
    if role is Role.CLIENT:
        return Actor(role=role, user_id=amina_id)
    if role is Role.SYSTEM:
        return Actor.system()
    return Actor(role=role, user_id=uuid.uuid4())


FORBIDDEN = [
    (current, requested, role)
    for current in S
    for requested in S
    for role in Role
    if role not in TRANSITIONS.get((current, requested), frozenset())
]


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreate:
    async def test_online_booking_is_pending(self, services, rooms, amina):
        stay = Stay(check_in=day(10), check_out=day(13), adults=2)
        reservation = _ok(
            await services.reservations.create(amina.id, [rooms["102"].id], stay, ReservationSource.ONLINE)
        )
        assert reservation.status is S.PENDING
        assert reservation.version == 1
        assert reservation.room_ids == (rooms["102"].id,)
        assert reservation.total_price == Decimal("495.00")
        assert reservation.currency == "MAD"

    async def test_agent_booking_is_confirmed(self, services, rooms, amina, agent):
        stay = Stay(check_in=day(10), check_out=day(13))
        reservation = _ok(
            await services.reservations.create(
                amina.id, [rooms["102"].id], stay, ReservationSource.AGENT, agent.user_id
            )
        )
        assert reservation.status is S.CONFIRMED
        assert reservation.created_by_agent_id == agent.user_id

    async def test_multi_room_total_includes_tax_per_room(self, services, rooms, amina):
        stay = Stay(check_in=day(10), check_out=day(12), adults=3)
        reservation = _ok(
            await services.reservations.create(
                amina.id, [rooms["102"].id, rooms["201"].id], stay, ReservationSource.ONLINE
            )
        )
        # (150 * 2) * 1.1 + (90 * 2) * 1.1
        assert reservation.total_price == Decimal("528.00")

    async def test_overlap_rejected_and_nothing_written(self, services, store, rooms, amina, lucas, reserve):
        await reserve(amina, ["102"], start=10, nights=4)
        stay = Stay(check_in=day(12), check_out=day(16))
        result = await services.reservations.create(lucas.id, [rooms["102"].id], stay, ReservationSource.ONLINE)
        assert result.code is ErrorCode.ROOM_UNAVAILABLE
        assert len(store.reservations) == 1

    async def test_inactive_room_rejected(self, services, rooms, amina):
        stay = Stay(check_in=day(10), check_out=day(12))
        result = await services.reservations.create(amina.id, [rooms["401"].id], stay, ReservationSource.ONLINE)
        assert result.code is ErrorCode.ROOM_UNAVAILABLE

    async def test_party_larger_than_rooms_rejected(self, services, rooms, amina):
        stay = Stay(check_in=day(10), check_out=day(12), adults=2, children=1)
        result = await services.reservations.create(amina.id, [rooms["102"].id], stay, ReservationSource.ONLINE)
        assert result.code is ErrorCode.INVALID_INPUT

    async def test_no_rooms_or_duplicate_rooms_rejected(self, services, rooms, amina):
        stay = Stay(check_in=day(10), check_out=day(12))
        empty = await services.reservations.create(amina.id, [], stay, ReservationSource.ONLINE)
        twice = await services.reservations.create(
            amina.id, [rooms["102"].id, rooms["102"].id], stay, ReservationSource.ONLINE
        )
        assert empty.code is ErrorCode.INVALID_INPUT
        assert twice.code is ErrorCode.INVALID_INPUT

    async def test_past_stay_rejected(self, services, rooms, amina):
        stay = Stay(check_in=day(-2), check_out=day(1))
        result = await services.reservations.create(amina.id, [rooms["102"].id], stay, ReservationSource.AGENT)
        assert result.code is ErrorCode.INVALID_INPUT


# ---------------------------------------------------------------------------
# transition: the allowed paths
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_full_happy_path(self, services, drive, notifier, invoices):
        completed = await drive(S.COMPLETED)
        assert completed.status is S.COMPLETED
        assert completed.version == 5
        assert completed.checked_in_at is not None
        assert completed.checked_out_at is not None
        assert [c.to_status for c in notifier.changes] == [S.CONFIRMED, S.CHECKED_IN, S.CHECKED_OUT, S.COMPLETED]
        # Invoiced at check-out and again at completion
        assert invoices.issued == [completed.id, completed.id]
        assert completed.invoice_ref == "INV-2"

    async def test_agent_may_complete(self, services, drive, agent):
        checked_out = await drive(S.CHECKED_OUT)
        done = _ok(await services.reservations.complete(checked_out.id, agent))
        assert done.status is S.COMPLETED

    async def test_history_records_each_change(self, services, drive, admin):
        reservation = await drive(S.CHECKED_IN)
        history = _ok(await services.reservations.history(reservation.id, admin))
        assert [(h.from_status, h.to_status) for h in history] == [
            (S.PENDING, S.CONFIRMED),
            (S.CONFIRMED, S.CHECKED_IN),
        ]
        assert history[0].actor_role is Role.ADMIN

    async def test_reject_requires_reason(self, services, rooms, amina, reserve, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=4)

        for reason in ("", "   "):
            result = await services.reservations.reject(reservation.id, admin, reason)
            assert result.code is ErrorCode.INVALID_INPUT
            assert "reason" in result.message

        rejected = _ok(await services.reservations.reject(reservation.id, admin, "no availability"))
        assert rejected.status is S.CANCELED
        assert rejected.rejection_reason == "no availability"

        search = _ok(
            await services.availability.find_available_rooms(Stay(check_in=day(10), check_out=day(14)))
        )
        assert rooms["102"].id in {room.id for room in search}

    async def test_client_cancel_outside_lockout(self, services, amina, reserve, owner):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        cancelled = _ok(await services.reservations.cancel(reservation.id, owner, "change of plans"))
        assert cancelled.status is S.CANCELED
        assert cancelled.rejection_reason is None
        history = _ok(await services.reservations.history(reservation.id, owner))
        assert history[-1].reason == "change of plans"

    async def test_client_cancel_two_hours_before_check_in(self, services, clock, amina, reserve, owner):
        reservation = await reserve(amina, ["102"], start=0, nights=2)
        clock.advance(hours=3)  # 12:00, check-in at 14:00
        result = await services.reservations.cancel(reservation.id, owner)
        assert result.code is ErrorCode.EDIT_NOT_ALLOWED
        assert _ok(await services.reservations.get(reservation.id, owner)).status is S.PENDING

    async def test_client_cancels_confirmed_reservation(self, services, amina, reserve, owner, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        _ok(await services.reservations.confirm(reservation.id, admin))
        assert _ok(await services.reservations.cancel(reservation.id, owner)).status is S.CANCELED

    async def test_check_in_before_arrival_date(self, services, amina, reserve, admin, agent):
        reservation = await reserve(amina, ["102"], start=2, nights=2)
        _ok(await services.reservations.confirm(reservation.id, admin))
        result = await services.reservations.check_in(reservation.id, agent)
        assert result.code is ErrorCode.INVALID_TRANSITION

    async def test_check_in_releases_nothing(self, services, rooms, drive):
        await drive(S.CHECKED_IN)
        search = _ok(await services.availability.find_available_rooms(Stay(check_in=day(0), check_out=day(2))))
        assert rooms["102"].id not in {room.id for room in search}

    async def test_check_out_releases_room(self, services, rooms, drive):
        await drive(S.CHECKED_OUT)
        search = _ok(await services.availability.find_available_rooms(Stay(check_in=day(0), check_out=day(2))))
        assert rooms["102"].id in {room.id for room in search}


# ---------------------------------------------------------------------------
# transition: everything else is refused
# ---------------------------------------------------------------------------


class TestForbiddenTransitions:
    @pytest.mark.parametrize(("current", "requested", "role"), FORBIDDEN)
    async def test_refused_and_unchanged(self, services, drive, amina, notifier, current, requested, role):
        reservation = await drive(current)
        seen = len(notifier.changes)

        result = await services.reservations.transition(
            reservation.id, requested, _actor_for(role, amina.id), reason="because"
        )

        assert isinstance(result, Failure)
        assert result.code is ErrorCode.INVALID_TRANSITION
        after = _ok(await services.reservations.get(reservation.id, Actor.system()))
        assert after == reservation
        assert len(notifier.changes) == seen

    async def test_wrong_role_is_named(self, services, amina, reserve, agent):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        result = await services.reservations.confirm(reservation.id, agent)
        assert result.code is ErrorCode.INVALID_TRANSITION
        assert "AGENT" in result.message

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.CANCELED])
    async def test_terminal_states_absorb(self, services, drive, admin, terminal):
        reservation = await drive(terminal)
        for requested in S:
            result = await services.reservations.transition(reservation.id, requested, admin, "x")
            assert result.code is ErrorCode.INVALID_TRANSITION

    async def test_same_transition_never_applied_twice(self, services, amina, reserve, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        _ok(await services.reservations.confirm(reservation.id, admin))
        again = await services.reservations.confirm(reservation.id, admin)
        assert again.code is ErrorCode.INVALID_TRANSITION


# ---------------------------------------------------------------------------
# transition: identity and concurrency
# ---------------------------------------------------------------------------


class TestTransitionGuards:
    async def test_unknown_reservation(self, services, admin):
        result = await services.reservations.confirm(uuid.uuid4(), admin)
        assert result.code is ErrorCode.NOT_FOUND

    async def test_other_clients_reservation_is_not_found(self, services, amina, lucas, reserve):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        result = await services.reservations.cancel(reservation.id, Actor(role=Role.CLIENT, user_id=lucas.id))
        assert result.code is ErrorCode.NOT_FOUND

    async def test_expected_version_mismatch(self, services, amina, reserve, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        result = await services.reservations.confirm(reservation.id, admin, expected_version=7)
        assert result.code is ErrorCode.STALE_VERSION

    async def test_expected_version_match(self, services, amina, reserve, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        confirmed = _ok(await services.reservations.confirm(reservation.id, admin, expected_version=1))
        assert confirmed.version == 2

    async def test_store_detected_conflict_is_stale_version(self, services, amina, reserve, admin, monkeypatch):
        reservation = await reserve(amina, ["102"], start=10, nights=2)

        async def lost_update(*args, **kwargs):
            raise ConcurrentModification("version moved")

        monkeypatch.setattr(InMemoryReservationRepository, "transition", lost_update)
        result = await services.reservations.confirm(reservation.id, admin)
        assert result.code is ErrorCode.STALE_VERSION

    async def test_notifier_failure_does_not_roll_back(self, uow_factory, clock, amina, reserve, admin):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        sm = ReservationStateMachine(
            uow_factory, PricingCalculator(), BookingPolicy(), notifier=BrokenNotifier(), clock=clock
        )
        confirmed = _ok(await sm.confirm(reservation.id, admin))
        assert confirmed.status is S.CONFIRMED
        assert _ok(await sm.get(reservation.id, admin)).status is S.CONFIRMED

    async def test_invoice_reference_is_stored_without_version_bump(self, services, drive, admin):
        checked_out = await drive(S.CHECKED_OUT)
        assert checked_out.invoice_ref == "INV-1"
        assert checked_out.version == 4
        assert _ok(await services.reservations.get(checked_out.id, admin)).invoice_ref == "INV-1"

    async def test_invoice_failure_does_not_roll_back(self, uow_factory, clock, amina, reserve, admin, agent):
        reservation = await reserve(amina, ["102"], start=0, nights=2)
        sm = ReservationStateMachine(
            uow_factory, PricingCalculator(), BookingPolicy(), invoices=BrokenInvoiceIssuer(), clock=clock
        )
        _ok(await sm.confirm(reservation.id, admin))
        _ok(await sm.check_in(reservation.id, agent))
        checked_out = _ok(await sm.check_out(reservation.id, agent))
        assert checked_out.status is S.CHECKED_OUT
        assert checked_out.invoice_ref is None
        assert _ok(await sm.get(reservation.id, admin)).status is S.CHECKED_OUT

    async def test_invoice_store_failure_is_logged(self, services, drive, admin, monkeypatch, caplog):
        async def store_down(*args, **kwargs):
            raise PersistenceError("connection reset")

        monkeypatch.setattr(InMemoryReservationRepository, "attach_invoice", store_down)
        checked_out = await drive(S.CHECKED_OUT)
        assert checked_out.status is S.CHECKED_OUT
        assert checked_out.invoice_ref is None
        assert "Could not store invoice INV-1" in caplog.text
        assert _ok(await services.reservations.get(checked_out.id, admin)).status is S.CHECKED_OUT


# ---------------------------------------------------------------------------
# record_feedback
# ---------------------------------------------------------------------------


class TestFeedback:
    @pytest.mark.parametrize("status", [S.CHECKED_OUT, S.COMPLETED])
    async def test_owner_leaves_feedback_once(self, services, drive, owner, status):
        finished = await drive(status)
        recorded = _ok(await services.reservations.record_feedback(finished.id, owner))
        assert recorded.feedback_given is True
        assert recorded.version == finished.version + 1

        again = await services.reservations.record_feedback(finished.id, owner)
        assert again.code is ErrorCode.INVALID_TRANSITION
        assert "already" in again.message

    @pytest.mark.parametrize("status", [S.PENDING, S.CONFIRMED, S.CHECKED_IN, S.CANCELED])
    async def test_not_before_check_out(self, services, drive, owner, status):
        reservation = await drive(status)
        result = await services.reservations.record_feedback(reservation.id, owner)
        assert result.code is ErrorCode.INVALID_TRANSITION
        assert _ok(await services.reservations.get(reservation.id, owner)).feedback_given is False

    async def test_other_client_gets_not_found(self, services, drive, lucas):
        finished = await drive(S.COMPLETED)
        result = await services.reservations.record_feedback(finished.id, Actor(role=Role.CLIENT, user_id=lucas.id))
        assert result.code is ErrorCode.NOT_FOUND

    async def test_staff_cannot_leave_feedback(self, services, drive, agent):
        finished = await drive(S.COMPLETED)
        result = await services.reservations.record_feedback(finished.id, agent)
        assert result.code is ErrorCode.INVALID_TRANSITION
        assert result.context == {"role": "AGENT"}

    async def test_stale_version(self, services, drive, owner):
        finished = await drive(S.COMPLETED)
        result = await services.reservations.record_feedback(finished.id, owner, expected_version=1)
        assert result.code is ErrorCode.STALE_VERSION


# ---------------------------------------------------------------------------
# update_interval
# ---------------------------------------------------------------------------


class TestUpdateInterval:
    async def test_round_trip_restores_interval_and_total(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        moved = _ok(await services.reservations.update_interval(original.id, day(20), day(22), 2, 0, owner))
        assert (moved.check_in, moved.check_out, moved.adults) == (day(20), day(22), 2)
        assert moved.total_price == Decimal("330.00")
        assert moved.version == original.version + 1

        back = _ok(await services.reservations.update_interval(original.id, day(10), day(13), 1, 0, owner))
        assert (back.check_in, back.check_out) == (original.check_in, original.check_out)
        assert back.total_price == original.total_price

    async def test_identical_edit_is_a_no_op(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        same = _ok(await services.reservations.update_interval(original.id, day(10), day(13), 1, 0, owner))
        assert same == original

    async def test_overlapping_own_dates_is_fine(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        shifted = _ok(await services.reservations.update_interval(original.id, day(11), day(14), 1, 0, owner))
        assert shifted.check_in == day(11)

    async def test_conflict_with_other_reservation(self, services, amina, lucas, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        await reserve(lucas, ["102"], start=20, nights=3)
        result = await services.reservations.update_interval(original.id, day(19), day(21), 1, 0, owner)
        assert result.code is ErrorCode.ROOM_UNAVAILABLE
        assert _ok(await services.reservations.get(original.id, owner)).check_in == day(10)

    async def test_client_inside_edit_lockout(self, services, amina, reserve, owner, agent):
        original = await reserve(amina, ["102"], start=1, nights=3)
        result = await services.reservations.update_interval(original.id, day(5), day(7), 1, 0, owner)
        assert result.code is ErrorCode.EDIT_NOT_ALLOWED

        # Staff are not bound by the self-service window
        moved = _ok(await services.reservations.update_interval(original.id, day(5), day(7), 1, 0, agent))
        assert moved.check_in == day(5)

    async def test_checked_in_cannot_be_edited(self, services, drive, agent):
        reservation = await drive(S.CHECKED_IN)
        result = await services.reservations.update_interval(reservation.id, day(0), day(5), 1, 0, agent)
        assert result.code is ErrorCode.EDIT_NOT_ALLOWED

    async def test_new_party_must_fit(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        result = await services.reservations.update_interval(original.id, day(10), day(13), 3, 0, owner)
        assert result.code is ErrorCode.INVALID_INPUT

    async def test_invalid_dates(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        reversed_ = await services.reservations.update_interval(original.id, day(13), day(10), 1, 0, owner)
        past = await services.reservations.update_interval(original.id, day(-1), day(3), 1, 0, owner)
        assert reversed_.code is ErrorCode.INVALID_INPUT
        assert past.code is ErrorCode.INVALID_INPUT

    async def test_stale_version(self, services, amina, reserve, owner):
        original = await reserve(amina, ["102"], start=10, nights=3)
        result = await services.reservations.update_interval(
            original.id, day(20), day(22), 1, 0, owner, expected_version=3
        )
        assert result.code is ErrorCode.STALE_VERSION


# ---------------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------------


class TestReads:
    async def test_list_for_client_only_returns_own(self, services, amina, lucas, reserve):
        mine = await reserve(amina, ["102"], start=10, nights=2)
        await reserve(lucas, ["101"], start=10, nights=2)
        listed = _ok(await services.reservations.list_for_client(amina.id))
        assert [r.id for r in listed] == [mine.id]

    async def test_list_for_client_by_display_status(self, services, drive, amina, reserve, owner):
        finished = await drive(S.COMPLETED)
        upcoming = await reserve(amina, ["101"], start=10, nights=2)
        cancelled = await reserve(amina, ["305"], start=10, nights=2)
        _ok(await services.reservations.cancel(cancelled.id, owner))

        sm = services.reservations
        assert [r.id for r in _ok(await sm.list_for_client(amina.id, DisplayStatus.UPCOMING))] == [upcoming.id]
        assert [r.id for r in _ok(await sm.list_for_client(amina.id, DisplayStatus.COMPLETED))] == [finished.id]
        assert [r.id for r in _ok(await sm.list_for_client(amina.id, DisplayStatus.CANCELLED))] == [cancelled.id]
        assert len(_ok(await sm.list_for_client(amina.id))) == 3

    async def test_staff_can_read_any(self, services, amina, reserve, agent):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        assert _ok(await services.reservations.get(reservation.id, agent)).id == reservation.id

    async def test_history_hidden_from_other_clients(self, services, amina, lucas, reserve):
        reservation = await reserve(amina, ["102"], start=10, nights=2)
        result = await services.reservations.history(reservation.id, Actor(role=Role.CLIENT, user_id=lucas.id))
        assert result.code is ErrorCode.NOT_FOUND
