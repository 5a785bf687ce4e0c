"""Workers' side of queued reindexing: index each referenced record."""

import logging
from typing import ClassVar

from searchsync.domain.index.event.reindex_job import ReindexJob
from searchsync.domain.index.model.lock import SearchBackend
from searchsync.domain.index.service.indexer import SearchIndexer
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.shared.job import JobHandler

logger = logging.getLogger(__name__)

FULLTEXT_QUEUE = "fulltext-indexing"
VECTOR_QUEUE = "vector-indexing"


class BatchIndexHandler(JobHandler[ReindexJob]):
    """Reloads and indexes every record a ReindexJob references.

    Records are re-read at processing time, so the order jobs run in does
    not matter. Each processed batch heartbeats the backend's reindex lock.
    If any record fails, the job is raised back to the worker for retry;
    re-indexing the records that did succeed is harmless.
    """

    __backend__: ClassVar[SearchBackend]

    indexer: SearchIndexer
    locks: ReindexLockService

    async def handle(self, job: ReindexJob) -> None:
        backend = self.__backend__
        indexed = skipped = 0
        failures: list[str] = []

        for ref in job.records:
            try:
                outcome = await self.indexer.index_record_by_id(
                    ref.entity_id,
                    ref.record_id,
                    job.tenant_id,
                    job.organization_id,
                    strategies=(backend.value,),
                )
            except Exception as e:
                failures.append(f"{ref.entity_id}:{ref.record_id}: {e}")
                continue
            if outcome.action == "indexed":
                indexed += 1
            else:
                skipped += 1

        await self.locks.heartbeat(backend, job.tenant_id, processed=indexed + skipped)
        logger.debug(
            "%s job %s: %d indexed, %d skipped, %d failed",
            backend,
            job.id,
            indexed,
            skipped,
            len(failures),
        )

        if failures:
            raise RuntimeError(
                f"{len(failures)} of {len(job.records)} records failed: " + "; ".join(failures[:5])
            )


class FulltextBatchIndexHandler(BatchIndexHandler):
    __queue__ = FULLTEXT_QUEUE
    __backend__ = SearchBackend.FULLTEXT
    __batch_size__ = 5


class VectorBatchIndexHandler(BatchIndexHandler):
    __queue__ = VECTOR_QUEUE
    __backend__ = SearchBackend.VECTOR
    __max_retries__ = 5
