"""pytest fixtures for the sync daemon tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- engine: Function-scoped SQLite (aiosqlite) engine with all tables created
- session: Function-scoped database session for model/repository tests
- uow_factory: Function-scoped UnitOfWork factory bound to the same database
- settings: Test settings with zero delays
- rpc: In-memory fake of the node JSON-RPC client
- sleeps: Recorder used in place of asyncio.sleep
"""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from builders import FakeRPC, SleepRecorder
from rtm_sync.core.config import Settings
from rtm_sync.core.database import create_engine_for_url, init_db
from rtm_sync.uow import create_uow_factory


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'rtm_sync_test.db'}"


@pytest_asyncio.fixture(scope="function")
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh database per test with every table created."""
    engine = create_engine_for_url(database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session.

    Uncommitted changes are rolled back after the test.
    """
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(engine: AsyncEngine):
    """Provide function-scoped UnitOfWork factory.

    Returns a callable that creates UoW instances on the test database.
    """
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    return create_uow_factory(session_factory)


@pytest.fixture
def settings(database_url: str) -> Settings:
    """Settings for a daemon that syncs immediately and never really sleeps."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        APP_ENV="test",
        DATABASE_URL=database_url,
        SYNC_ENABLED=True,
        SYNC_BATCH_SIZE=10,
        SYNC_START_HEIGHT=99,
        SYNC_RETRY_ATTEMPTS=2,
        SYNC_RETRY_DELAY_SECONDS=30,
        SYNC_MAX_RESTARTS=1,
        SYNC_BLOCK_RETRY_DELAY_SECONDS=5,
        SYNC_CHECKPOINT_INTERVAL=100,
        SYNC_HEARTBEAT_SECONDS=30,
        SYNC_BATCH_PAUSE_SECONDS=0,
        SYNC_PAUSE_POLL_SECONDS=10,
        IPFS_LOCAL_GATEWAY="http://ipfs.local:8080",
        IPFS_PUBLIC_GATEWAY="https://ipfs.public",
    )


@pytest.fixture
def rpc() -> FakeRPC:
    return FakeRPC()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()
