"""Queued jobs, job handlers, and worker state."""

from abc import ABCMeta
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import (
    Any,
    ClassVar,
    Generic,
    Iterator,
    NewType,
    TypeVar,
    dataclass_transform,
    get_args,
    get_origin,
)
from uuid import uuid4

from pydantic import BaseModel, Field, PrivateAttr

JobId = NewType("JobId", str)

J = TypeVar("J", bound="Job")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_job_id() -> JobId:
    return JobId(str(uuid4()))


class Job(BaseModel):
    """Base class for queue payloads.

    Subclasses are automatically registered by name in Job._registry so the
    queue can rebuild them from stored JSON.
    """

    id: JobId = Field(default_factory=new_job_id)
    created_at: datetime = Field(default_factory=_utc_now)

    # Set by the repository on claim; mirrors the stored retry count
    _attempt: int = PrivateAttr(default=0)

    _registry: ClassVar[dict[str, type["Job"]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._registry[cls.__name__] = cls

    @property
    def attempt(self) -> int:
        """Zero-based attempt number of the current delivery."""
        return self._attempt


# --- Worker Infrastructure ---


@dataclass(frozen=True)
class WorkerConfig:
    """Configuration for a single worker instance.

    Attributes:
        name: Unique worker identifier.
        queue: Queue name to claim from.
        job_type: Job type the handler accepts.
        batch_size: Max jobs per claim (default: 1).
        poll_interval: Seconds between polls when idle (default: 0.5).
        max_retries: Max retry attempts before marking failed (default: 3).
        claim_timeout: Seconds before claim considered stale (default: 300.0).
    """

    name: str
    queue: str
    job_type: type[Job]
    batch_size: int = 1
    poll_interval: float = 0.5
    max_retries: int = 3
    claim_timeout: float = 300.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.queue:
            raise ValueError("queue must not be empty")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.claim_timeout <= 0:
            raise ValueError("claim_timeout must be > 0")


class WorkerStatus(Enum):
    """Status of a running worker."""

    IDLE = "idle"
    CLAIMING = "claiming"
    PROCESSING = "processing"
    STOPPING = "stopping"


@dataclass
class WorkerState:
    """Runtime state for a running worker (not persisted)."""

    config: WorkerConfig
    status: WorkerStatus = WorkerStatus.IDLE
    current_batch: list[Job] = field(default_factory=list)
    last_claim_at: datetime | None = None
    processed_count: int = 0
    failed_count: int = 0
    error: Exception | None = None


@dataclass(frozen=True)
class ClaimResult:
    """Jobs claimed in one poll, plus the claim timestamp."""

    jobs: list[Job]
    claimed_at: datetime

    def __bool__(self) -> bool:
        return len(self.jobs) > 0

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(self.jobs)


@dataclass(frozen=True)
class JobCounts:
    """Queue depth by status."""

    pending: int = 0
    claimed: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def outstanding(self) -> int:
        """Jobs that are waiting or being worked on."""
        return self.pending + self.claimed


# --- JobHandler ---


def _extract_job_type(cls: type) -> type[Job] | None:
    """Extract the job type J from JobHandler[J] in class bases."""
    for base in getattr(cls, "__orig_bases__", []):
        origin = get_origin(base)
        if origin is not None and getattr(origin, "__name__", None) == "JobHandler":
            args = get_args(base)
            if args and isinstance(args[0], type) and issubclass(args[0], Job):
                return args[0]
    return None


@dataclass_transform()
class _JobHandlerMeta(ABCMeta):
    """Metaclass that applies @dataclass and extracts __job_type__ from JobHandler[J]."""

    def __new__(mcs, name: str, bases: tuple[type, ...], namespace: dict[str, Any]) -> type:
        cls = super().__new__(mcs, name, bases, namespace)
        if any(isinstance(b, mcs) for b in bases):
            cls = dataclass(cls)
            job_type = _extract_job_type(cls)
            if job_type is not None:
                cls.__job_type__ = job_type
        return cls


class JobHandler(Generic[J], metaclass=_JobHandlerMeta):
    """Base class for queue consumers.

    Workers claim jobs from a named queue and delegate to handlers for
    processing. Subclasses are dataclasses whose fields are injected by the
    DI container; the job type comes from the generic parameter.

    Configuration is via class variables:
        __queue__: Queue to consume (required)
        __batch_size__: Max jobs to claim at once (default: 1)
        __poll_interval__: Seconds between polls when idle (default: 0.5)
        __max_retries__: Max retry attempts before marking failed (default: 3)
        __claim_timeout__: Seconds before claim considered stale (default: 300.0)

    Example:
        class FulltextBatchIndexHandler(JobHandler[ReindexJob]):
            __queue__ = "fulltext-indexing"

            indexer: SearchIndexer

            async def handle(self, job: ReindexJob) -> None:
                for ref in job.records:
                    await self.indexer.index_record_by_id(...)
    """

    __job_type__: ClassVar[type[Job]]
    __queue__: ClassVar[str]
    __batch_size__: ClassVar[int] = 1
    __poll_interval__: ClassVar[float] = 0.5
    __max_retries__: ClassVar[int] = 3
    __claim_timeout__: ClassVar[float] = 300.0

    async def handle(self, job: J) -> None:
        """Handle a single job."""
        raise NotImplementedError(f"{type(self).__name__} must implement handle()")
