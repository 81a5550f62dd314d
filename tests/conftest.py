"""
Shared test configuration and fixtures for the connect service tests.

Provides the PostgreSQL database setup used by the SQL store tests (skipped when no server is
reachable), a fakeredis client, an in-process fake OAuth provider, and in-memory stores.
"""

import os
import uuid

import aiohttp
import fakeredis.aioredis
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer
from cryptography.fernet import Fernet
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from social.graze.connect.model.base import Base
from tests.test_helpers import (
    FakeClock,
    FakeProvider,
    InMemoryConnectionStore,
    InMemoryOAuthStateStore,
    RecordingMetricsClient,
)


# Test database configuration
TEST_DB_HOST = os.getenv("TEST_DB_HOST", "postgres")
TEST_DB_PORT = os.getenv("TEST_DB_PORT", "5432")
TEST_DB_USER = os.getenv("TEST_DB_USER", "postgres")
TEST_DB_PASSWORD = os.getenv("TEST_DB_PASSWORD", "password")

# Admin URL for database creation/deletion (connects to postgres database)
ADMIN_DATABASE_URL = f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@{TEST_DB_HOST}:{TEST_DB_PORT}/postgres"


async def check_postgres_available():
    """Check if PostgreSQL is available for testing."""
    admin_engine = create_async_engine(ADMIN_DATABASE_URL, echo=False)
    try:
        async with admin_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
    finally:
        await admin_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_database():
    """Create and clean up a uniquely named test database for each test function."""
    if not await check_postgres_available():
        pytest.skip("PostgreSQL database not available for testing")

    unique_db_name = f"connect_test_{uuid.uuid4().hex[:8]}"
    unique_db_url = (
        f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@"
        f"{TEST_DB_HOST}:{TEST_DB_PORT}/{unique_db_name}"
    )

    admin_engine = create_async_engine(
        ADMIN_DATABASE_URL, echo=False, isolation_level="AUTOCOMMIT"
    )

    try:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"CREATE DATABASE {unique_db_name}"))

        yield unique_db_url

    finally:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"DROP DATABASE IF EXISTS {unique_db_name}"))
        await admin_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def engine(test_database):
    """Create async SQLAlchemy engine with every table created."""
    engine = create_async_engine(test_database, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fernet():
    return Fernet(Fernet.generate_key())


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return RecordingMetricsClient()


@pytest.fixture
def connection_store(clock):
    return InMemoryConnectionStore(clock)


@pytest.fixture
def state_store(clock):
    return InMemoryOAuthStateStore(clock)


@pytest_asyncio.fixture
async def http_session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest_asyncio.fixture
async def fake_provider():
    """An in-process OAuth provider with token and identity endpoints."""
    provider = FakeProvider()
    server = TestServer(provider.make_app())
    await server.start_server()
    provider.server = server
    yield provider
    await server.close()
