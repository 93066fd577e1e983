"""Pytest configuration and fixtures for reservation tests."""
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from roomkeeper.core.database import Base, create_session_factory, get_db
from roomkeeper.core.events import EventBus
from roomkeeper.core.locks import RoomLocks
from roomkeeper.db_models import Hotel, Room, RoomCategory, RoomStatus
from roomkeeper.main import app
from roomkeeper.routers.reservations import get_reservation_service
from roomkeeper.services.reservation_service import ReservationService


@dataclass(frozen=True)
class Inventory:
    hotel_id: int
    standard_category_id: int
    suite_category_id: int
    room_id: int
    second_room_id: int
    suite_room_id: int
    maintenance_room_id: int


# Point at a PostgreSQL test database to exercise the row locks; defaults to a
# throwaway SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema per test; NullPool gives each session its own connection."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'roomkeeper_test.db'}"
    engine = create_async_engine(url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(ttl_seconds=3600)


@pytest.fixture
def reservation_service(event_bus: EventBus) -> ReservationService:
    return ReservationService(locks=RoomLocks(timeout_seconds=30), event_bus=event_bus)


@pytest_asyncio.fixture
async def inventory(session_factory) -> Inventory:
    """One hotel: two standard rooms (capacity 2, 100/night), a suite, a room under maintenance."""
    async with session_factory() as session:
        hotel = Hotel(name="Harbour View", city="Dubai")
        session.add(hotel)
        await session.flush()

        standard = RoomCategory(hotel_id=hotel.id, name="Standard", capacity=2, base_price=Decimal("100.00"))
        suite = RoomCategory(hotel_id=hotel.id, name="Suite", capacity=4, base_price=Decimal("250.00"))
        session.add_all([standard, suite])
        await session.flush()

        room = Room(hotel_id=hotel.id, category_id=standard.id, number="101", floor=1,
                    status=RoomStatus.AVAILABLE.value)
        second_room = Room(hotel_id=hotel.id, category_id=standard.id, number="102", floor=1,
                           status=RoomStatus.AVAILABLE.value)
        suite_room = Room(hotel_id=hotel.id, category_id=suite.id, number="401", floor=4,
                          status=RoomStatus.AVAILABLE.value)
        maintenance_room = Room(hotel_id=hotel.id, category_id=standard.id, number="103", floor=1,
                                status=RoomStatus.MAINTENANCE.value)
        session.add_all([room, second_room, suite_room, maintenance_room])
        await session.commit()

        return Inventory(
            hotel_id=hotel.id,
            standard_category_id=standard.id,
            suite_category_id=suite.id,
            room_id=room.id,
            second_room_id=second_room.id,
            suite_room_id=suite_room.id,
            maintenance_room_id=maintenance_room.id,
        )


@pytest_asyncio.fixture
async def test_client(session_factory, reservation_service) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and reservation engine overrides."""
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reservation_service] = lambda: reservation_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
