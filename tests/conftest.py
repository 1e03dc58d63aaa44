"""Pytest configuration and shared fixtures."""

import asyncio
import os
import tempfile

# Must be set before config is imported
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="halls-"), "app.db"),
)

from datetime import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from database import build_engine, create_tables, get_session
from main import app
from models import SlotCode, TimeSlot
from slots import seed_reference_data

ACTOR = "user-1"


@pytest.fixture
def catalog() -> list[TimeSlot]:
    return [
        TimeSlot(id=1, code=SlotCode.morning, name="Morning", start_time=time(8), end_time=time(12)),
        TimeSlot(id=2, code=SlotCode.afternoon, name="Afternoon", start_time=time(13), end_time=time(17)),
        TimeSlot(id=3, code=SlotCode.night, name="Night", start_time=time(18), end_time=time(22)),
    ]


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'halls.db'}", poolclass=NullPool)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def setup():
        await create_tables(engine)
        async with factory() as session:
            await seed_reference_data(session)

    asyncio.run(setup())
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory) -> TestClient:
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    test_client = TestClient(app)
    test_client.headers.update({"X-Actor-Id": ACTOR})
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def anon_client(client) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_booking():
    def build(**overrides) -> dict:
        payload = {
            "title": "Family gathering",
            "booking_type": "wedding",
            "event_start_date": "2024-01-10",
            "event_days": 1,
            "pre_days": 0,
            "post_days": 0,
            "hall_ids": [1],
            "event_slot_codes": ["night"],
        }
        payload.update(overrides)
        return payload

    return build
