"""JobRepository port - durable storage for queued jobs."""

from typing import Protocol

from searchsync.domain.shared.job import ClaimResult, Job, JobCounts, JobId


class JobRepository(Protocol):
    """Repository for queued jobs.

    Each operation runs in its own short transaction so that enqueued jobs are
    visible to workers immediately and claims do not hold locks while a job is
    being processed.
    """

    async def add(self, queue: str, job: Job) -> None:
        """Persist a job as pending on the named queue."""
        ...

    async def claim(self, queue: str, limit: int) -> ClaimResult:
        """Claim up to `limit` pending jobs whose backoff has elapsed."""
        ...

    async def mark_completed(self, job_id: JobId, note: str | None = None) -> None:
        """Mark a job as completed, optionally recording a note (e.g. a skip reason)."""
        ...

    async def mark_failed_with_retry(self, job_id: JobId, error: str, max_retries: int) -> None:
        """Return a job to pending with backoff, or fail it after max_retries."""
        ...

    async def reset_stale_claims(self, queue: str | None, timeout_seconds: float) -> int:
        """Return jobs claimed longer than the timeout to pending."""
        ...

    async def clear(self, queue: str) -> int:
        """Delete pending and claimed jobs on the queue. Returns rows removed."""
        ...

    async def counts(self, queue: str) -> JobCounts:
        """Count jobs on the queue by status."""
        ...
