"""Fixtures for repository tests against in-memory SQLite."""

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from searchsync.config import DatabaseConfig
from searchsync.infrastructure.persistence.database import (
    create_db_engine,
    create_session_factory,
)
from searchsync.infrastructure.persistence.tables import metadata


@pytest_asyncio.fixture
async def engine():
    """Per-test in-memory database with every table created."""
    engine = create_db_engine(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine):
    return create_session_factory(engine)
