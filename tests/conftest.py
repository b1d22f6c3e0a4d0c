import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Registers models with Base.metadata
import urlredir.models  # noqa: F401
from tests.factories import ClientFactory
from urlredir.config import Settings
from urlredir.db.session import Base
from urlredir.db.store import SQLTransactionStore
from urlredir.main import create_app

# Pytest only picks up fixtures from conftest.py files. Fixtures defined in other
# modules (like tests/seeds.py) are registered through pytest_plugins.
pytest_plugins = ["tests.seeds"]

os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_CACHE", "false")

# A throwaway SQLite file by default; point this at Postgres to run against the real thing
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///./urlredir_test.db")

engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)
async_session = async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db() -> AsyncIterator[AsyncSession]:
    """Create tables and yield a session, then drop tables after test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def store(db: AsyncSession) -> SQLTransactionStore:
    """A store on the test database; sessions are independent of ``db``."""
    return SQLTransactionStore(async_session)


@pytest.fixture
def make_app(store: SQLTransactionStore) -> Callable[..., FastAPI]:
    """Build an app on the test store, configured with the given settings."""

    def factory(**overrides: object) -> FastAPI:
        settings = Settings(database_url=TEST_DATABASE_URL, **overrides)  # type: ignore[arg-type]
        return create_app(settings, store)

    return factory


@pytest.fixture
def make_client(make_app: Callable[..., FastAPI]) -> ClientFactory:
    """Build an HTTP client for an app configured with the given settings."""

    @asynccontextmanager
    async def factory(**overrides: object) -> AsyncIterator[AsyncClient]:
        app = make_app(**overrides)
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client

    return factory


@pytest_asyncio.fixture
async def client(make_client: ClientFactory) -> AsyncIterator[AsyncClient]:
    """HTTP client for the default app: static user "test", no proxy headers."""
    async with make_client() as client:
        yield client
