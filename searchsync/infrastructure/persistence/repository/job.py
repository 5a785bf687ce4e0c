"""SQLAlchemy adapter implementing JobRepository."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from searchsync.domain.shared.job import ClaimResult, Job, JobCounts, JobId
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.infrastructure.persistence.tables import queue_jobs_table as jobs

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30


def backoff_seconds(retry_count: int) -> int:
    """Backoff formula: min(30, 5^retry_count) seconds."""
    return min(MAX_BACKOFF_SECONDS, 5**retry_count)


class SQLAlchemyJobRepository(JobRepository):
    """SQLAlchemy-backed job queue.

    Jobs are stored as JSON payloads tagged with their class name. Claims use
    FOR UPDATE SKIP LOCKED so concurrent workers never receive the same job;
    on SQLite the clause is dropped and the database-wide write lock gives
    the same guarantee.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, queue: str, job: Job) -> None:
        now = datetime.now(UTC)
        stmt = insert(jobs).values(
            id=str(job.id),
            queue=queue,
            job_type=type(job).__name__,
            payload=job.model_dump(mode="json"),
            status="pending",
            retry_count=0,
            available_at=now,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory.begin() as session:
            await session.execute(stmt)

    async def claim(self, queue: str, limit: int) -> ClaimResult:
        now = datetime.now(UTC)

        stmt = (
            select(jobs.c.id, jobs.c.job_type, jobs.c.payload, jobs.c.retry_count)
            .where(
                jobs.c.queue == queue,
                jobs.c.status == "pending",
                jobs.c.available_at <= now,
            )
            .order_by(jobs.c.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        async with self._session_factory.begin() as session:
            rows = (await session.execute(stmt)).fetchall()
            if not rows:
                return ClaimResult(jobs=[], claimed_at=now)

            await session.execute(
                update(jobs)
                .where(jobs.c.id.in_([row[0] for row in rows]))
                .values(status="claimed", claimed_at=now, updated_at=now)
            )

        claimed: list[Job] = []
        for job_id, job_type, payload, retry_count in rows:
            job = self._deserialize(job_type, payload)
            if job is None:
                await self.mark_failed_with_retry(
                    JobId(job_id), f"Unknown job type '{job_type}'", max_retries=0
                )
                continue
            job._attempt = retry_count or 0
            claimed.append(job)

        return ClaimResult(jobs=claimed, claimed_at=now)

    async def mark_completed(self, job_id: JobId, note: str | None = None) -> None:
        now = datetime.now(UTC)
        values: dict[str, Any] = {"status": "completed", "completed_at": now, "updated_at": now}
        if note is not None:
            values["error"] = note
        async with self._session_factory.begin() as session:
            await session.execute(update(jobs).where(jobs.c.id == str(job_id)).values(**values))

    async def mark_failed_with_retry(self, job_id: JobId, error: str, max_retries: int) -> None:
        now = datetime.now(UTC)

        async with self._session_factory.begin() as session:
            result = await session.execute(
                select(jobs.c.retry_count).where(jobs.c.id == str(job_id))
            )
            row = result.first()
            if row is None:
                logger.warning(f"Job {job_id} not found for mark_failed_with_retry")
                return

            new_retry_count = (row[0] or 0) + 1

            if new_retry_count >= max_retries:
                # Exceeded max retries - mark as permanently failed
                values: dict[str, Any] = {
                    "status": "failed",
                    "completed_at": now,
                }
            else:
                values = {
                    "status": "pending",
                    "claimed_at": None,
                    "available_at": now + timedelta(seconds=backoff_seconds(new_retry_count)),
                }

            await session.execute(
                update(jobs)
                .where(jobs.c.id == str(job_id))
                .values(error=error, retry_count=new_retry_count, updated_at=now, **values)
            )

    async def reset_stale_claims(self, queue: str | None, timeout_seconds: float) -> int:
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=timeout_seconds)

        stmt = update(jobs).where(jobs.c.status == "claimed", jobs.c.claimed_at < cutoff)
        if queue is not None:
            stmt = stmt.where(jobs.c.queue == queue)

        async with self._session_factory.begin() as session:
            result = await session.execute(
                stmt.values(status="pending", claimed_at=None, available_at=now, updated_at=now)
            )

        count = result.rowcount
        if count > 0:
            logger.info(f"Reset {count} stale claims (older than {timeout_seconds}s)")
        return count

    async def clear(self, queue: str) -> int:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                delete(jobs).where(
                    jobs.c.queue == queue,
                    jobs.c.status.in_(("pending", "claimed")),
                )
            )
        return result.rowcount

    async def counts(self, queue: str) -> JobCounts:
        async with self._session_factory() as session:
            result = await session.execute(
                select(jobs.c.status, func.count())
                .where(jobs.c.queue == queue)
                .group_by(jobs.c.status)
            )
            by_status = {status: count for status, count in result.all()}

        return JobCounts(
            pending=by_status.get("pending", 0),
            claimed=by_status.get("claimed", 0),
            completed=by_status.get("completed", 0),
            failed=by_status.get("failed", 0),
        )

    def _deserialize(self, job_type: str, payload: dict | str) -> Job | None:
        """Rebuild a job from its stored payload."""
        job_cls = Job._registry.get(job_type)
        if job_cls is None:
            logger.warning(f"Unknown job type '{job_type}' - skipping")
            return None

        try:
            if isinstance(payload, str):
                return job_cls.model_validate_json(payload)
            return job_cls.model_validate(payload)
        except Exception as e:
            logger.error(f"Failed to deserialize job type '{job_type}': {e}")
            return None
