"""
Pytest configuration and fixtures.

This module provides the core testing infrastructure:
- An in-memory SQLite database built from the SQLModel metadata
- Session fixtures for database access
- In-memory collaborators for the roster service
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from guild_planner.db import base  # noqa: F401  # ensure models are imported for metadata
from guild_planner.testing import (
    InMemoryInstanceLookup,
    InMemoryMembershipLookup,
    InMemoryOverrideStore,
    InMemoryRosterStore,
)

TEST_DATABASE_URL = "sqlite+aiosqlite://"


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(scope="function")
async def engine():
    """Create a fresh in-memory database with every table."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(test_engine.sync_engine, "connect", _enable_foreign_keys)
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean AsyncSession; the database is discarded with the engine."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as test_session:
        yield test_session


@pytest.fixture
def memberships() -> InMemoryMembershipLookup:
    return InMemoryMembershipLookup()


@pytest.fixture
def overrides() -> InMemoryOverrideStore:
    return InMemoryOverrideStore()


@pytest.fixture
def rosters() -> InMemoryRosterStore:
    return InMemoryRosterStore()


@pytest.fixture
def instances() -> InMemoryInstanceLookup:
    return InMemoryInstanceLookup()
