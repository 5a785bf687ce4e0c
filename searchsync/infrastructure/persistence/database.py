"""Database engine and session factory creation."""

import os
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from searchsync.config import DatabaseConfig


def expand_sqlite_path(url: str) -> str:
    """Expand ~ in SQLite file URLs and ensure the parent directory exists."""
    if not url.startswith("sqlite") or ":memory:" in url or "///" not in url:
        return url

    prefix_end = url.index("///") + 3
    prefix, path = url[:prefix_end], url[prefix_end:]
    abs_path = os.path.abspath(os.path.expanduser(path))
    Path(abs_path).parent.mkdir(parents=True, exist_ok=True)
    return f"{prefix}{abs_path}"


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_db_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create async database engine for SQLite or PostgreSQL."""
    url = expand_sqlite_path(config.url)

    if is_sqlite(url) and ":memory:" in url:
        engine_kwargs: dict[str, Any] = {
            "echo": config.echo,
            # The in-memory database lives only as long as its one connection
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    elif is_sqlite(url):
        # Lock, queue and coverage writes run in concurrent short transactions,
        # so each needs its own connection; SQLite serialises the writers
        engine_kwargs = {
            "echo": config.echo,
            "poolclass": NullPool,
            "connect_args": {"timeout": 30},
        }
    else:
        engine_kwargs = {
            "echo": config.echo,
            "pool_pre_ping": True,
            "pool_size": 10,
            "max_overflow": 20,
        }

    return create_async_engine(url, **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
