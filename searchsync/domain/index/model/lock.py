"""Reindex lock model."""

from datetime import UTC, datetime, timedelta
from enum import StrEnum

from searchsync.domain.shared.model.value import ValueObject


class SearchBackend(StrEnum):
    """Kinds of search backend. Also the lock type for reindexing one of them."""

    FULLTEXT = "fulltext"
    VECTOR = "vector"


class ReindexLock(ValueObject):
    """One active reindex per (type, tenant).

    `heartbeat_at` starts equal to `started_at` and moves forward with every
    progress update; staleness is measured from it.
    """

    type: SearchBackend
    action: str
    tenant_id: str
    organization_id: str | None = None
    started_at: datetime
    heartbeat_at: datetime
    processed_count: int = 0
    total_count: int = 0

    @classmethod
    def start(
        cls,
        type: SearchBackend,
        action: str,
        tenant_id: str,
        organization_id: str | None = None,
        now: datetime | None = None,
    ) -> "ReindexLock":
        now = now or datetime.now(UTC)
        return cls(
            type=type,
            action=action,
            tenant_id=tenant_id,
            organization_id=organization_id,
            started_at=now,
            heartbeat_at=now,
        )

    def elapsed(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(UTC)) - self.started_at

    def is_stale(self, stale_after: timedelta, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) - self.heartbeat_at > stale_after


class LockStatus(ValueObject):
    """A live lock plus the time it has been held."""

    lock: ReindexLock
    elapsed_seconds: float

    @property
    def elapsed_minutes(self) -> float:
        return self.elapsed_seconds / 60

    def to_payload(self) -> dict:
        """Conflict payload for callers that reject a new request."""
        return {
            "type": self.lock.type.value,
            "action": self.lock.action,
            "started_at": self.lock.started_at.isoformat(),
            "elapsed_minutes": round(self.elapsed_minutes),
            "processed_count": self.lock.processed_count,
            "total_count": self.lock.total_count,
        }


class LockAcquisition(ValueObject):
    """Result of an acquire attempt.

    When `acquired` is False, `lock` is the holder's lock exactly as stored.
    """

    acquired: bool
    lock: ReindexLock
