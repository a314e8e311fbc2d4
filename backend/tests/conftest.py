"""Pytest configuration and fixtures for the harvest ledger tests.

Each test gets its own on-disk SQLite database (aiosqlite) so that the
separate sessions opened by the ledger see each other's commits, the way
they would against PostgreSQL.
"""

from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from farmvault.config import Settings, settings
from farmvault.context import Actor, WalletKey
from farmvault.database import Base, build_session_factory
from farmvault.deps import get_ledger
from farmvault.main import app
from farmvault.models import *  # noqa: F401,F403  (registers every table on Base)
from farmvault.services.ledger import HarvestLedger

COMPANY_ID = "company-1"
PROJECT_ID = "project-1"
CROP_TYPE = "french-beans"


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Keep the dashboard cache out of the tests."""
    monkeypatch.setattr(settings, "cache_enabled", False)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Fresh SQLite file per test, all tables created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        cache_enabled=False,
        transaction_retry_attempts=8,
        transaction_retry_backoff=0.01,
    )


@pytest.fixture
def ledger(session_factory, test_settings) -> HarvestLedger:
    return HarvestLedger(session_factory, test_settings)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for inspecting what the ledger committed."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(ledger) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, with the ledger on the test database."""
    app.dependency_overrides[get_ledger] = lambda: ledger

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest.fixture
def actor() -> Actor:
    return Actor(id="user-1", name="Farm Manager")


@pytest.fixture
def wallet_key() -> WalletKey:
    return WalletKey(COMPANY_ID, PROJECT_ID, CROP_TYPE)


@pytest.fixture
def headers() -> dict[str, str]:
    return {
        "X-Company-Id": COMPANY_ID,
        "X-Actor-Id": "user-1",
        "X-Actor-Name": "Farm Manager",
    }


@pytest_asyncio.fixture
async def collection(ledger, actor):
    """Open collection for french beans at 20/kg for pickers."""
    return await ledger.create_collection(
        actor,
        company_id=COMPANY_ID,
        project_id=PROJECT_ID,
        crop_type=CROP_TYPE,
        name="Block A morning",
        harvest_date=date(2026, 3, 14),
        price_per_kg_picker=20.0,
    )


@pytest.fixture
def weigh(ledger, actor):
    """weigh(collection, picker, *kg) records one weigh entry per weight."""

    async def _weigh(collection, picker, *weights):
        for w in weights:
            await ledger.record_weigh_entry(actor, picker.id, collection.id, w)

    return _weigh


@pytest.fixture
def weighed_picker(ledger, actor, weigh):
    """weighed_picker(collection, name, kg) adds a picker and weighs them in."""

    async def _add(collection, name, kg):
        picker = await ledger.add_picker(actor, collection.id, name)
        await weigh(collection, picker, kg)
        return picker

    return _add
