"""Error hierarchy for searchsync.

Error layers:
- SearchSyncError: Base class for all searchsync errors
- DomainError: Business rule violations, validation failures (4xx responses)
- InfrastructureError: System-level failures like storage/network issues (5xx responses)

These errors are mapped to HTTP responses by the exception handler in app.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from searchsync.domain.index.model.lock import LockStatus


class SearchSyncError(Exception):
    """Base class for all searchsync errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


# =============================================================================
# Domain Errors (business logic violations - typically 4xx)
# =============================================================================


class DomainError(SearchSyncError):
    """Base class for domain/business errors."""


class NotFoundError(DomainError):
    """Resource not found."""


class ValidationError(DomainError):
    """Input validation failed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class ConflictError(DomainError):
    """Resource already exists or is held by someone else."""


class ReindexInProgressError(ConflictError):
    """A reindex of the same kind is already running for the tenant."""

    def __init__(self, status: LockStatus) -> None:
        lock = status.lock
        super().__init__(
            f"{lock.type.value} reindex already in progress for tenant {lock.tenant_id} "
            f"({lock.processed_count}/{lock.total_count} after "
            f"{status.elapsed_minutes:.1f} min)",
            code="REINDEX_IN_PROGRESS",
        )
        self.status = status


# =============================================================================
# Infrastructure Errors (system-level failures - typically 5xx)
# =============================================================================


class InfrastructureError(SearchSyncError):
    """Base class for infrastructure/system errors."""


class StorageUnavailableError(InfrastructureError):
    """Storage backend (database) is unavailable."""


class ExternalServiceError(InfrastructureError):
    """External service (search engine, embedding store) is unavailable or failed."""


class ConfigurationError(InfrastructureError):
    """System misconfiguration detected."""


# =============================================================================
# Worker control flow
# =============================================================================


class SkippedJobs(SearchSyncError):
    """Raised by a handler to mark jobs as done without processing them."""

    def __init__(self, job_ids: list[str], reason: str) -> None:
        super().__init__(reason, code="SKIPPED")
        self.job_ids = job_ids
        self.reason = reason
