"""Test fixtures for the scheduling engine."""
from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from agenda_engine.core.config import get_settings
from agenda_engine.db.base import Base
from agenda_engine.db.session import dispose_engine, get_sessionmaker
from agenda_engine.main import app
from agenda_engine.models import Agenda, AgendaType, PromotionPolicy, Slot
from agenda_engine.schemas.agenda import AgendaCreate
from agenda_engine.services.scheduling_service import SchedulingService

BASE_START = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest.fixture()
def owner_id() -> str:
    return str(uuid.uuid4())


@pytest_asyncio.fixture()
async def scheduler(reset_database: None, db_url: str) -> SchedulingService:
    return SchedulingService(get_sessionmaker(db_url), settings=get_settings())


@pytest.fixture()
def make_agenda(
    scheduler: SchedulingService, owner_id: str
) -> Callable[..., Awaitable[Agenda]]:
    async def _make(**overrides: Any) -> Agenda:
        fields: dict[str, Any] = {
            "owner_id": uuid.UUID(owner_id),
            "service_ref": "svc-yoga",
            "title": "Morning Yoga",
            "agenda_type": AgendaType.CLASS,
            "duration_minutes": 60,
            "capacity_per_slot": 2,
            "promotion_policy": PromotionPolicy.AUTO,
        }
        fields.update(overrides)
        return await scheduler.create_agenda(
            actor_id=owner_id, payload=AgendaCreate(**fields)
        )

    return _make


@pytest.fixture()
def make_slot(
    scheduler: SchedulingService, owner_id: str
) -> Callable[..., Awaitable[Slot]]:
    async def _make(
        agenda: Agenda,
        *,
        offset_hours: int = 0,
        capacity_override: int | None = None,
    ) -> Slot:
        start = BASE_START + timedelta(hours=offset_hours)
        return await scheduler.create_slot(
            agenda.id,
            actor_id=owner_id,
            start_at=start,
            end_at=start + timedelta(minutes=agenda.duration_minutes),
            capacity_override=capacity_override,
        )

    return _make


@pytest_asyncio.fixture()
async def client(reset_database: None) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
