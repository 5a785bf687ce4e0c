"""JobQueue - domain service for a named durable queue."""

from dataclasses import dataclass

from searchsync.domain.shared.job import ClaimResult, Job, JobCounts, JobId
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.domain.shared.service import Service


class JobQueue(Service):
    """A named queue backed by a JobRepository.

    Producers call enqueue(); workers claim, then mark each job completed or
    failed. Claims are taken with FOR UPDATE SKIP LOCKED where the database
    supports it, so any number of workers can share one queue.
    """

    name: str
    repo: JobRepository

    async def enqueue(self, job: Job) -> None:
        await self.repo.add(self.name, job)

    async def claim(self, limit: int) -> ClaimResult:
        return await self.repo.claim(self.name, limit)

    async def mark_completed(self, job_id: JobId) -> None:
        await self.repo.mark_completed(job_id)

    async def mark_skipped(self, job_id: JobId, reason: str) -> None:
        await self.repo.mark_completed(job_id, note=reason)

    async def mark_failed_with_retry(self, job_id: JobId, error: str, max_retries: int) -> None:
        """Mark a job as failed, with retry logic.

        If the retry count stays below max_retries the job goes back to pending
        with an exponential backoff; otherwise it is failed permanently.
        """
        await self.repo.mark_failed_with_retry(job_id, error=error, max_retries=max_retries)

    async def reset_stale_claims(self, timeout_seconds: float) -> int:
        """Reset jobs whose claim outlived the timeout (crashed workers)."""
        return await self.repo.reset_stale_claims(self.name, timeout_seconds)

    async def clear(self) -> int:
        """Drop every waiting and active job. Returns the number removed."""
        return await self.repo.clear(self.name)

    async def counts(self) -> JobCounts:
        return await self.repo.counts(self.name)


@dataclass(frozen=True)
class JobQueues:
    """All queues known to the process, by name."""

    queues: dict[str, JobQueue]

    def get(self, name: str) -> JobQueue | None:
        return self.queues.get(name)

    def __getitem__(self, name: str) -> JobQueue:
        return self.queues[name]

    def __iter__(self):
        return iter(self.queues.values())
