"""Shared test configuration and fixtures.

Core and API tests run against the in-memory repositories with a fixed,
adjustable clock, so they need no database. SQL repository tests live in
``tests/test_repositories`` and bring their own PostgreSQL fixtures.
"""

import uuid
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from factories import (
    FIXED_NOW,
    FakeClock,
    RecordingInvoiceIssuer,
    RecordingNotifier,
    auth_headers_for,
    day,
    make_room,
)

from staydesk.api.deps import Services, build_services, get_services
from staydesk.domain.enums import ReservationSource, Role, RoomType, RoomView
from staydesk.domain.records import Client, Reservation, Room, Stay
from staydesk.main import app
from staydesk.repositories.memory import InMemoryStore, memory_uow_factory

# ---------------------------------------------------------------------------
# Core wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store: InMemoryStore):
    return memory_uow_factory(store)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def invoices() -> RecordingInvoiceIssuer:
    return RecordingInvoiceIssuer()


@pytest.fixture
def services(uow_factory, clock, notifier, invoices) -> Services:
    return build_services(uow_factory, clock=clock, notifier=notifier, invoices=invoices)


# ---------------------------------------------------------------------------
# Inventory and clients
# ---------------------------------------------------------------------------


@pytest.fixture
def rooms(store: InMemoryStore) -> dict[str, Room]:
    """A small hotel keyed by room number. Room 401 is soft-disabled."""
    inventory = [
        make_room("101", RoomType.SUITE, "250.00", 2, RoomView.CITY, ("internet", "ac", "balcony"), featured=True),
        make_room("102", RoomType.DOUBLE, "150.00", 2, RoomView.PARK, ("internet", "tv")),
        make_room("201", RoomType.SIMPLE, "90.00", 1, RoomView.COURTYARD, ("internet",), floor=2),
        make_room("305", RoomType.FAMILY, "350.00", 4, RoomView.POOL, ("ac", "bathtub"), featured=True, floor=3),
        make_room("401", RoomType.DOUBLE, "150.00", 2, RoomView.SEA, ("internet",), floor=4, is_active=False),
    ]
    return {room.room_number: store.add_room(room) for room in inventory}


@pytest.fixture
def amina(store: InMemoryStore) -> Client:
    return store.add_client(
        Client(id=uuid.uuid4(), name="Amina Benali", email="amina@example.com", phone="+212600000001", is_verified=True)
    )


@pytest.fixture
def lucas(store: InMemoryStore) -> Client:
    return store.add_client(Client(id=uuid.uuid4(), name="Lucas Moreau", email="lucas@example.com"))


@pytest.fixture
def reserve(services: Services, rooms: dict[str, Room]):
    """Factory: book room numbers for a client straight through the state machine."""

    async def _reserve(
        client: Client,
        numbers: list[str],
        start: int = 10,
        nights: int = 3,
        adults: int = 1,
        children: int = 0,
        source: ReservationSource = ReservationSource.ONLINE,
    ) -> Reservation:
        stay = Stay(check_in=day(start), check_out=day(start + nights), adults=adults, children=children)
        result = await services.reservations.create(
            client.id, [rooms[n].id for n in numbers], stay, source
        )
        assert result.ok, result
        return result.value

    return _reserve


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the in-memory services."""
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def agent_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def admin_headers(admin_id) -> dict[str, str]:
    return auth_headers_for(admin_id, Role.ADMIN)


@pytest.fixture
def agent_headers(agent_id) -> dict[str, str]:
    return auth_headers_for(agent_id, Role.AGENT)


@pytest.fixture
def client_headers(amina: Client) -> dict[str, str]:
    return auth_headers_for(amina.id, Role.CLIENT)
