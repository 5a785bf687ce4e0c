"""ReindexJob - queue payload for background batch indexing."""

from typing import Literal

from searchsync.domain.index.model.record import RecordRef
from searchsync.domain.shared.job import Job


class ReindexJob(Job):
    """A batch of record references to (re)index.

    Carries references only. Workers reload each record when they process
    the job, so they never index a snapshot taken at enqueue time.
    """

    job_type: Literal["batch-index"] = "batch-index"
    tenant_id: str
    organization_id: str | None = None
    records: list[RecordRef]
