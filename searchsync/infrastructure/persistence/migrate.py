"""Database migration utilities.

Alembic runs synchronously; async startup pushes it to a worker thread.
"""

import asyncio
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.ext.asyncio import AsyncEngine

from searchsync.config import DatabaseConfig
from searchsync.infrastructure.persistence.database import expand_sqlite_path
from searchsync.infrastructure.persistence.tables import metadata

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def to_sync_url(database_url: str) -> str:
    """Convert async database URL to sync equivalent for migrations.

    Alembic runs synchronously, so we need sync drivers:
    - sqlite+aiosqlite:/// -> sqlite:///
    - postgresql+asyncpg:// -> postgresql+psycopg://
    """
    url = expand_sqlite_path(database_url)
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg")


def get_alembic_config(database_url: str) -> AlembicConfig:
    """Alembic config pointing at the packaged migrations."""
    config = AlembicConfig()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # ConfigParser treats % as interpolation
    config.set_main_option("sqlalchemy.url", to_sync_url(database_url).replace("%", "%%"))
    return config


def run_migrations(database_url: str) -> None:
    """Run pending Alembic migrations.

    This is synchronous and should be called before the async server starts.
    """
    if ":memory:" in database_url:
        raise ValueError("In-memory databases cannot be migrated; create tables directly")
    command.upgrade(get_alembic_config(database_url), "head")
    logger.info("Database migrations complete")


async def prepare_database(engine: AsyncEngine, config: DatabaseConfig) -> None:
    """Bring the schema up to date before serving.

    In-memory SQLite has no history to migrate, so its tables are created
    directly from the metadata.
    """
    if ":memory:" in config.url:
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        return
    if config.auto_migrate:
        await asyncio.to_thread(run_migrations, config.url)
