"""In-memory fakes for the index domain ports, exposed as fixtures."""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from searchsync.domain.index.model.coverage import CoverageCounts, CoverageScope, CoverageSnapshot
from searchsync.domain.index.model.entity_config import (
    EntityConfig,
    EntityConfigRegistry,
    SearchModuleConfig,
)
from searchsync.domain.index.model.lock import LockAcquisition, ReindexLock, SearchBackend
from searchsync.domain.index.model.record import IndexableRecord
from searchsync.domain.index.port.query_engine import QueryOptions, QueryResult, partition_key_for
from searchsync.domain.index.service.coverage import CoverageTracker
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.search import SearchService
from searchsync.domain.shared.job import ClaimResult, Job, JobCounts, JobId
from searchsync.domain.shared.queue import JobQueue, JobQueues

FULLTEXT_QUEUE = "fulltext-indexing"
VECTOR_QUEUE = "vector-indexing"


class FakeQueryEngine:
    """Pages through in-memory records, keyed by entity id."""

    def __init__(self, records: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.records: dict[str, list[dict[str, Any]]] = records or {}
        self.calls: list[tuple[str, QueryOptions]] = []
        self.fail_pages: set[int] = set()

    async def query(self, entity_id: str, options: QueryOptions) -> QueryResult:
        self.calls.append((entity_id, options))
        if options.page.page in self.fail_pages:
            raise RuntimeError("query engine down")

        items = self.records.get(entity_id, [])
        if options.organization_id is not None:
            items = [i for i in items if i.get("organization_id") == options.organization_id]
        for key, value in options.filters.items():
            items = [i for i in items if str(i.get(key)) == str(value)]
        if options.partition is not None:
            count, index = options.partition.count, options.partition.index
            items = [i for i in items if partition_key_for(str(i.get("id", ""))) % count == index]

        start = (options.page.page - 1) * options.page.page_size
        page = items[start : start + options.page.page_size]
        return QueryResult(items=[dict(i) for i in page], total=len(items))


class FakeStrategy:
    """Records every call; `fail_record_ids` and `fail_bulk_calls` inject failures."""

    id = "fake"

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.indexed: list[IndexableRecord] = []
        self.bulk_calls: list[list[IndexableRecord]] = []
        self.deleted: list[tuple[str, str, str]] = []
        self.purged: list[tuple[str, str]] = []
        self.fail_record_ids: set[str] = set()
        self.fail_bulk_calls: set[int] = set()

    async def is_available(self) -> bool:
        return self.available

    async def index(self, record: IndexableRecord) -> None:
        if record.record_id in self.fail_record_ids:
            raise RuntimeError(f"cannot index {record.record_id}")
        self.indexed.append(record)

    async def bulk_index(self, records: list[IndexableRecord]) -> None:
        call = len(self.bulk_calls)
        self.bulk_calls.append(records)
        if call in self.fail_bulk_calls:
            raise RuntimeError("bulk rejected")
        self.indexed.extend(records)

    async def delete(self, entity_id: str, record_id: str, tenant_id: str) -> None:
        self.deleted.append((entity_id, record_id, tenant_id))

    async def purge(self, entity_id: str, tenant_id: str) -> None:
        self.purged.append((entity_id, tenant_id))


class FakeFulltextStrategy(FakeStrategy):
    id = "fulltext"

    def __init__(self, available: bool = True) -> None:
        super().__init__(available)
        self.recreated: list[str] = []
        self.fail_recreate = False

    async def recreate_index(self, tenant_id: str) -> None:
        if self.fail_recreate:
            raise RuntimeError("index locked")
        self.recreated.append(tenant_id)


class FakeVectorStrategy(FakeStrategy):
    id = "vector"

    async def list_entries(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        return [
            {"id": f"{r.tenant_id}:{r.entity_id}:{r.record_id}"}
            for r in self.indexed
            if r.tenant_id == tenant_id
            and (entity_id is None or r.entity_id == entity_id)
            and (organization_id is None or r.organization_id in (organization_id, None))
        ][offset : offset + limit]


class FakeJobRepository:
    """Dict-backed queue storage with the same status transitions as the real one."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}

    async def add(self, queue: str, job: Job) -> None:
        self.rows[str(job.id)] = {
            "queue": queue,
            "job": job,
            "status": "pending",
            "retry_count": 0,
            "error": None,
        }

    async def claim(self, queue: str, limit: int) -> ClaimResult:
        claimed: list[Job] = []
        for row in self.rows.values():
            if len(claimed) >= limit:
                break
            if row["queue"] == queue and row["status"] == "pending":
                row["status"] = "claimed"
                claimed.append(row["job"])
        return ClaimResult(jobs=claimed, claimed_at=datetime.now(UTC))

    async def mark_completed(self, job_id: JobId, note: str | None = None) -> None:
        self.rows[str(job_id)].update(status="completed", error=note)

    async def mark_failed_with_retry(self, job_id: JobId, error: str, max_retries: int) -> None:
        row = self.rows[str(job_id)]
        row["retry_count"] += 1
        row["error"] = error
        row["status"] = "failed" if row["retry_count"] >= max_retries else "pending"

    async def reset_stale_claims(self, queue: str | None, timeout_seconds: float) -> int:
        return 0

    async def clear(self, queue: str) -> int:
        doomed = [
            job_id
            for job_id, row in self.rows.items()
            if row["queue"] == queue and row["status"] in ("pending", "claimed")
        ]
        for job_id in doomed:
            del self.rows[job_id]
        return len(doomed)

    async def counts(self, queue: str) -> JobCounts:
        statuses = [row["status"] for row in self.rows.values() if row["queue"] == queue]
        return JobCounts(
            pending=statuses.count("pending"),
            claimed=statuses.count("claimed"),
            completed=statuses.count("completed"),
            failed=statuses.count("failed"),
        )

    def jobs(self, queue: str) -> list[Job]:
        return [row["job"] for row in self.rows.values() if row["queue"] == queue]


class FakeLockRepository:
    """Lock rows in a dict. Acquire never awaits, so it is atomic under asyncio."""

    def __init__(self) -> None:
        self.locks: dict[tuple[SearchBackend, str], ReindexLock] = {}

    async def acquire(self, lock: ReindexLock, stale_before: datetime) -> LockAcquisition:
        key = (lock.type, lock.tenant_id)
        existing = self.locks.get(key)
        if existing is not None and existing.heartbeat_at >= stale_before:
            return LockAcquisition(acquired=False, lock=existing)
        self.locks[key] = lock
        return LockAcquisition(acquired=True, lock=lock)

    async def get(self, type: SearchBackend, tenant_id: str) -> ReindexLock | None:
        return self.locks.get((type, tenant_id))

    async def delete(
        self, type: SearchBackend, tenant_id: str, started_at: datetime | None = None
    ) -> bool:
        lock = self.locks.get((type, tenant_id))
        if lock is None or (started_at is not None and lock.started_at != started_at):
            return False
        del self.locks[(type, tenant_id)]
        return True

    async def record_progress(
        self,
        type: SearchBackend,
        tenant_id: str,
        processed_delta: int = 0,
        total_count: int | None = None,
        started_at: datetime | None = None,
    ) -> bool:
        lock = self.locks.get((type, tenant_id))
        if lock is None or (started_at is not None and lock.started_at != started_at):
            return False
        update: dict[str, Any] = {
            "processed_count": lock.processed_count + processed_delta,
            "heartbeat_at": datetime.now(UTC),
        }
        if total_count is not None:
            update["total_count"] = total_count
        self.locks[(type, tenant_id)] = lock.model_copy(update=update)
        return True

    def backdate(self, type: SearchBackend, tenant_id: str, by: timedelta) -> None:
        """Move a lock's heartbeat into the past."""
        lock = self.locks[(type, tenant_id)]
        self.locks[(type, tenant_id)] = lock.model_copy(
            update={"heartbeat_at": lock.heartbeat_at - by, "started_at": lock.started_at - by}
        )


class FakeCoverageRepository:
    def __init__(self) -> None:
        self.rows: dict[CoverageScope, dict[str, int | None]] = {}

    async def upsert(self, scope: CoverageScope, counts: CoverageCounts) -> None:
        row = self.rows.setdefault(
            scope, {"base_count": None, "fulltext_count": None, "vector_count": None}
        )
        row.update(counts.provided())

    async def get(self, scope: CoverageScope) -> CoverageSnapshot | None:
        row = self.rows.get(scope)
        if row is None:
            return None
        return CoverageSnapshot(scope=scope, refreshed_at=datetime.now(UTC), **row)

    async def list_organizations(
        self, entity_type: str, tenant_id: str, with_deleted: bool = False
    ) -> list[str | None]:
        return [
            scope.organization_id
            for scope in self.rows
            if scope.entity_type == entity_type
            and scope.tenant_id == tenant_id
            and scope.with_deleted == with_deleted
        ]


def make_items(count: int, prefix: str = "r", **fields: Any) -> list[dict[str, Any]]:
    return [{"id": f"{prefix}-{i:04d}", "name": f"Item {i}", **fields} for i in range(count)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def query_engine() -> FakeQueryEngine:
    return FakeQueryEngine()


@pytest.fixture
def fulltext() -> FakeFulltextStrategy:
    return FakeFulltextStrategy()


@pytest.fixture
def vector() -> FakeVectorStrategy:
    return FakeVectorStrategy()


@pytest.fixture
def search_service(fulltext: FakeFulltextStrategy, vector: FakeVectorStrategy) -> SearchService:
    return SearchService([fulltext, vector])


@pytest.fixture
def job_repo() -> FakeJobRepository:
    return FakeJobRepository()


@pytest.fixture
def queues(job_repo: FakeJobRepository) -> JobQueues:
    return JobQueues(
        queues={
            FULLTEXT_QUEUE: JobQueue(name=FULLTEXT_QUEUE, repo=job_repo),
            VECTOR_QUEUE: JobQueue(name=VECTOR_QUEUE, repo=job_repo),
        }
    )


@pytest.fixture
def lock_repo() -> FakeLockRepository:
    return FakeLockRepository()


@pytest.fixture
def lock_service(lock_repo: FakeLockRepository) -> ReindexLockService:
    return ReindexLockService(repo=lock_repo, stale_after=timedelta(minutes=10))


@pytest.fixture
def coverage_repo() -> FakeCoverageRepository:
    return FakeCoverageRepository()


@pytest.fixture
def coverage(coverage_repo: FakeCoverageRepository) -> CoverageTracker:
    return CoverageTracker(repo=coverage_repo)


@pytest.fixture
def registry() -> EntityConfigRegistry:
    return EntityConfigRegistry.register(
        [
            SearchModuleConfig(
                module_id="catalog",
                entities=(EntityConfig(entity_id="dataset"), EntityConfig(entity_id="sample")),
            )
        ]
    )


@pytest.fixture
def indexer(
    search_service: SearchService,
    registry: EntityConfigRegistry,
    query_engine: FakeQueryEngine,
    queues: JobQueues,
    coverage: CoverageTracker,
) -> SearchIndexer:
    return SearchIndexer(
        search_service=search_service,
        registry=registry,
        query_engine=query_engine,
        fulltext_queue=queues[FULLTEXT_QUEUE],
        vector_queue=queues[VECTOR_QUEUE],
        coverage=coverage,
    )


@pytest.fixture
def items():
    """Factory for record dicts with ids "{prefix}-0000", "{prefix}-0001", ..."""
    return make_items
