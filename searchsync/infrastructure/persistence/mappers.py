"""Small conversions shared by the repositories."""

from datetime import UTC, datetime

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from searchsync.infrastructure.persistence.tables import TENANT_WIDE_SCOPE


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def to_scope_key(organization_id: str | None) -> str:
    return organization_id if organization_id is not None else TENANT_WIDE_SCOPE


def from_scope_key(scope_key: str) -> str | None:
    return None if scope_key == TENANT_WIDE_SCOPE else scope_key


def dialect_insert(session: AsyncSession):
    """The dialect's insert(), which supports ON CONFLICT DO UPDATE."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upserts are not supported on {dialect}")
