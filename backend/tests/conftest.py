"""Shared fixtures.

Tests run against a file-backed SQLite database (aiosqlite) so the
conditional UPDATEs, unique constraints and savepoints behave like they do in
Postgres. Every transaction starts with BEGIN IMMEDIATE, which serializes
writers the way row locks would.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./prizepool-test.db")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("PAYOUT_MODE", "simulated")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from prizepool.config import Settings  # noqa: E402
from prizepool.models import Base  # noqa: E402
from prizepool.services.notifications import NullJoinNotifier  # noqa: E402
from prizepool.tournament.event_bus import TournamentEventBus  # noqa: E402


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        app_env="test",
        app_debug=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'settings.db'}",
        payout_mode="simulated",
        payout_timeout_seconds=2.0,
        gateway_access_token="test-token",
        gateway_webhook_secret=None,
        redis_url=None,
    )


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'prizepool.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN so SAVEPOINT works
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def event_bus() -> TournamentEventBus:
    return TournamentEventBus()


@pytest.fixture
def notifier() -> NullJoinNotifier:
    return NullJoinNotifier()

