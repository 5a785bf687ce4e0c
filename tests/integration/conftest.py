"""Fixtures for PostgreSQL integration tests."""

import os

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from searchsync.config import DatabaseConfig
from searchsync.infrastructure.persistence.database import (
    create_db_engine,
    create_session_factory,
)
from searchsync.infrastructure.persistence.tables import metadata


def _get_pg_url() -> str:
    url = os.environ.get("SEARCHSYNC_DATABASE__URL", "")
    if "postgresql" not in url:
        pytest.skip("SEARCHSYNC_DATABASE__URL not set to PostgreSQL")
    return url


@pytest_asyncio.fixture
async def pg_engine():
    """Per-test async engine with the schema created."""
    engine = create_db_engine(DatabaseConfig(url=_get_pg_url()))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine

    # Truncate all tables after each test
    async with engine.begin() as conn:
        await conn.execute(
            text("TRUNCATE TABLE reindex_locks, search_coverage, queue_jobs, search_records")
        )
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_session_factory(pg_engine: AsyncEngine):
    return create_session_factory(pg_engine)
