"""Seed the database with a sample room inventory, clients and reservations.

Creates the schema if needed, wipes existing rows, inserts the rooms below,
books a few stays through the reservation core, and prints bearer tokens for
one user of each role.

Run from ``backend/``:
    python -m scripts.seed_data
"""

import asyncio
import uuid
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import delete

from staydesk.api.deps import build_services
from staydesk.auth.jwt import create_access_token
from staydesk.database import async_session_factory, create_schema, engine
from staydesk.domain.enums import ReservationSource, Role, RoomType, RoomView
from staydesk.domain.records import Actor, StagedClient, Stay
from staydesk.models import Client, Reservation, ReservationStatusChange, Room, RoomHold
from staydesk.repositories.sql import sql_uow_factory

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

ROOMS = [
    {
        "room_number": "101",
        "name": "Deluxe King with City View",
        "description": "A spacious deluxe room offering city views and a king-size bed.",
        "room_type": RoomType.SUITE,
        "floor": 1,
        "price_per_night": Decimal("250.00"),
        "max_guests": 2,
        "view": RoomView.CITY,
        "features": ["internet", "ac", "balcony", "tv", "minibar"],
        "featured": True,
    },
    {
        "room_number": "102",
        "name": "Twin Room with Park View",
        "description": "Comfortable room with two twin beds and a peaceful park view.",
        "room_type": RoomType.DOUBLE,
        "floor": 1,
        "price_per_night": Decimal("150.00"),
        "max_guests": 2,
        "view": RoomView.PARK,
        "features": ["internet", "tv", "ac"],
    },
    {
        "room_number": "105",
        "name": "Accessible Queen Room",
        "description": "A comfortable and accessible room with a queen bed.",
        "room_type": RoomType.DOUBLE_CONFORT,
        "floor": 1,
        "price_per_night": Decimal("180.00"),
        "max_guests": 2,
        "view": RoomView.GARDEN,
        "features": ["internet", "ac", "accessible_bathroom"],
    },
    {
        "room_number": "201",
        "name": "Cozy Single Room",
        "description": "Perfect for solo travellers, a cozy room with all essentials.",
        "room_type": RoomType.SIMPLE,
        "floor": 2,
        "price_per_night": Decimal("90.00"),
        "max_guests": 1,
        "view": RoomView.COURTYARD,
        "features": ["internet", "tv"],
    },
    {
        "room_number": "305",
        "name": "Family Suite with Pool View",
        "description": "Large suite ideal for families, overlooking the pool.",
        "room_type": RoomType.FAMILY,
        "floor": 3,
        "price_per_night": Decimal("350.00"),
        "max_guests": 4,
        "view": RoomView.POOL,
        "features": ["internet", "ac", "balcony", "tv", "minibar", "bathtub"],
        "featured": True,
    },
]

CLIENTS = [
    StagedClient(name="Amina Benali", email="client@example.com", phone="+212600000001", is_verified=True),
    StagedClient(name="Lucas Moreau", email="lucas.moreau@example.com", phone="+33600000002"),
]

ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-00000000a001")
AGENT_ID = uuid.UUID("00000000-0000-0000-0000-00000000a002")


async def seed() -> None:
    """Populate the database with sample data. Safe to re-run: existing rows are wiped first."""
    await create_schema(engine)

    async with async_session_factory() as session:
        for model in (ReservationStatusChange, RoomHold, Reservation, Client, Room):
            await session.execute(delete(model))
        session.add_all(Room(**data) for data in ROOMS)
        await session.commit()
    print(f"✅ Created {len(ROOMS)} rooms")

    services = build_services(sql_uow_factory(async_session_factory))
    async with services.availability.uow_factory() as uow:
        clients = [await uow.clients.create(profile) for profile in CLIENTS]
        rooms = {room.room_number: room for room in await uow.rooms.list_rooms()}
        await uow.commit()
    print(f"✅ Created {len(clients)} clients")

    today = date.today()
    amina, lucas = clients
    bookings = [
        (amina, ["101"], Stay(check_in=today + timedelta(days=10), check_out=today + timedelta(days=13), adults=2), ReservationSource.ONLINE),
        (lucas, ["305"], Stay(check_in=today + timedelta(days=3), check_out=today + timedelta(days=7), adults=2, children=2), ReservationSource.AGENT),
        (amina, ["102", "201"], Stay(check_in=today + timedelta(days=20), check_out=today + timedelta(days=22), adults=3), ReservationSource.AGENT),
    ]
    for client, numbers, stay, source in bookings:
        result = await services.reservations.create(
            client.id,
            [rooms[n].id for n in numbers],
            stay,
            source,
            AGENT_ID if source is ReservationSource.AGENT else None,
        )
        if not result.ok:
            raise SystemExit(f"Seeding reservation failed: {result.message}")
        print(f"   🛏  {', '.join(numbers)} for {client.name}: {stay.check_in} → {stay.check_out} ({result.value.status.value})")

    # One pending request approved by the admin, to have some history
    pending = await services.reservations.list_for_client(amina.id)
    for reservation in pending.value:
        if reservation.source is ReservationSource.ONLINE:
            await services.reservations.confirm(reservation.id, Actor(role=Role.ADMIN, user_id=ADMIN_ID))

    await engine.dispose()

    print()
    print("=" * 60)
    print("📊 Bearer tokens")
    print("=" * 60)
    print(f"   ADMIN:  {create_access_token(str(ADMIN_ID), Role.ADMIN)}")
    print(f"   AGENT:  {create_access_token(str(AGENT_ID), Role.AGENT)}")
    print(f"   CLIENT: {create_access_token(str(amina.id), Role.CLIENT)}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed())
