"""SQLAlchemy adapter implementing ReindexLockRepository."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from searchsync.domain.index.model.lock import LockAcquisition, ReindexLock, SearchBackend
from searchsync.domain.index.port.lock_repository import ReindexLockRepository
from searchsync.infrastructure.persistence.mappers import as_utc
from searchsync.infrastructure.persistence.tables import reindex_locks_table as locks

logger = logging.getLogger(__name__)

# Attempts when the conflicting holder vanishes before it can be read back
_ACQUIRE_ATTEMPTS = 3


class SQLAlchemyReindexLockRepository(ReindexLockRepository):
    """Lock rows keyed by (lock_type, tenant_id).

    The primary key is what makes acquire atomic: a stale row is deleted and
    the new one inserted in one transaction, and a concurrent acquirer hits
    the key conflict. Every call commits on its own so a lock is visible to
    other processes as soon as it is taken.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def acquire(self, lock: ReindexLock, stale_before: datetime) -> LockAcquisition:
        for _ in range(_ACQUIRE_ATTEMPTS):
            try:
                async with self._session_factory.begin() as session:
                    await session.execute(
                        delete(locks).where(
                            locks.c.lock_type == lock.type.value,
                            locks.c.tenant_id == lock.tenant_id,
                            locks.c.heartbeat_at < stale_before,
                        )
                    )
                    await session.execute(insert(locks).values(**_to_row(lock)))
                return LockAcquisition(acquired=True, lock=lock)
            except IntegrityError:
                existing = await self.get(lock.type, lock.tenant_id)
                if existing is not None:
                    return LockAcquisition(acquired=False, lock=existing)
                logger.debug("Lock holder for %s/%s vanished, retrying", lock.type, lock.tenant_id)

        raise RuntimeError(f"Could not settle {lock.type} lock for tenant {lock.tenant_id}")

    async def get(self, type: SearchBackend, tenant_id: str) -> ReindexLock | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(locks).where(
                    locks.c.lock_type == type.value,
                    locks.c.tenant_id == tenant_id,
                )
            )
            row = result.mappings().first()
        return _to_lock(row) if row is not None else None

    async def delete(
        self, type: SearchBackend, tenant_id: str, started_at: datetime | None = None
    ) -> bool:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(locks).where(*_key(type, tenant_id, started_at))
            )
        return result.rowcount > 0

    async def record_progress(
        self,
        type: SearchBackend,
        tenant_id: str,
        processed_delta: int = 0,
        total_count: int | None = None,
        started_at: datetime | None = None,
    ) -> bool:
        values: dict[str, Any] = {
            "processed_count": locks.c.processed_count + processed_delta,
            "heartbeat_at": datetime.now(UTC),
        }
        if total_count is not None:
            values["total_count"] = total_count

        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(locks)
                .where(*_key(type, tenant_id, started_at))
                .values(**values)
            )
        return result.rowcount > 0


def _key(type: SearchBackend, tenant_id: str, started_at: datetime | None) -> list[Any]:
    clauses = [locks.c.lock_type == type.value, locks.c.tenant_id == tenant_id]
    if started_at is not None:
        clauses.append(locks.c.started_at == started_at)
    return clauses


def _to_row(lock: ReindexLock) -> dict[str, Any]:
    return {
        "lock_type": lock.type.value,
        "tenant_id": lock.tenant_id,
        "organization_id": lock.organization_id,
        "action": lock.action,
        "started_at": lock.started_at,
        "heartbeat_at": lock.heartbeat_at,
        "processed_count": lock.processed_count,
        "total_count": lock.total_count,
    }


def _to_lock(row: Any) -> ReindexLock:
    return ReindexLock(
        type=SearchBackend(row["lock_type"]),
        action=row["action"],
        tenant_id=row["tenant_id"],
        organization_id=row["organization_id"],
        started_at=as_utc(row["started_at"]),
        heartbeat_at=as_utc(row["heartbeat_at"]),
        processed_count=row["processed_count"],
        total_count=row["total_count"],
    )
