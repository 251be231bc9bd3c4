"""
Integration Test Fixtures

Provides fixtures for integration tests that need a running PostgreSQL.
The concurrency guarantees (partial unique index, row locks, conditional
updates) only exist in the database, so these tests cannot use mocks.

IMPORTANT: All integration tests use the TEST database only (via
POSTGRES_TEST_* env vars). Tables are dropped and recreated once per test
session and truncated before every test.

When PostgreSQL is unreachable the tests are skipped.
"""

import os
from typing import AsyncGenerator
from urllib.parse import quote_plus

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

pytestmark = pytest.mark.integration

TABLES = [
    "goal_rewards",
    "goal_milestones",
    "goals",
    "session_interruptions",
    "study_sessions",
]

_schema_ready = False


# =============================================================================
# Safety Check - Runs before any integration tests
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def verify_test_database():
    """
    Fail fast if the configured database looks like production.

    Set ALLOW_PROD_DB_TESTS=1 to skip this check (for local development only).
    """
    if os.environ.get("ALLOW_PROD_DB_TESTS", "").lower() in ("1", "true", "yes"):
        return

    db_name = os.environ.get("POSTGRES_DB", "")
    for indicator in ("prod", "production"):
        assert indicator not in db_name.lower(), (
            f"SAFETY CHECK FAILED: Database name '{db_name}' looks like production! "
            "Set POSTGRES_TEST_DB environment variable or ALLOW_PROD_DB_TESTS=1."
        )


# =============================================================================
# Database Configuration
# =============================================================================


def get_test_db_url() -> str:
    """Build the asyncpg URL from the test environment."""
    password = quote_plus(os.environ.get("POSTGRES_PASSWORD", "testpass"))
    return (
        f"postgresql+asyncpg://{os.environ.get('POSTGRES_USER', 'testuser')}:{password}"
        f"@{os.environ.get('POSTGRES_HOST', 'localhost')}:{os.environ.get('POSTGRES_PORT', '5432')}"
        f"/{os.environ.get('POSTGRES_DB', 'testdb')}"
    )


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine for one test.

    Created per test so connections never outlive the test's event loop.
    """
    global _schema_ready

    from studytrack.db.base import Base

    test_engine = create_async_engine(get_test_db_url(), poolclass=NullPool)
    try:
        async with test_engine.begin() as conn:
            if not _schema_ready:
                await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
                _schema_ready = True
            await conn.execute(
                text(f"TRUNCATE {', '.join(TABLES)} RESTART IDENTITY CASCADE")
            )
    except (OSError, DBAPIError) as e:
        await test_engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Factory for independent sessions.

    Each concurrent writer in a test opens its own session, i.e. its own
    connection and transaction.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session
