"""Unit tests for the error hierarchy."""

from datetime import UTC, datetime, timedelta

from searchsync.domain.index.model.lock import LockStatus, ReindexLock, SearchBackend
from searchsync.domain.shared.error import (
    ConflictError,
    DomainError,
    ReindexInProgressError,
    SearchSyncError,
    SkippedJobs,
    ValidationError,
)


class TestErrors:
    def test_code_defaults_to_class_name(self):
        error = DomainError("nope")

        assert error.code == "DomainError"
        assert error.message == "nope"
        assert str(error) == "nope"

    def test_validation_error_carries_field(self):
        error = ValidationError("bad page size", field="page_size")

        assert error.code == "VALIDATION_ERROR"
        assert error.field == "page_size"

    def test_reindex_in_progress_describes_holder(self):
        # Arrange
        started = datetime.now(UTC) - timedelta(minutes=3)
        lock = ReindexLock(
            type=SearchBackend.FULLTEXT,
            action="reindex",
            tenant_id="acme",
            started_at=started,
            heartbeat_at=started,
            processed_count=10,
            total_count=40,
        )
        status = LockStatus(lock=lock, elapsed_seconds=180)

        # Act
        error = ReindexInProgressError(status)

        # Assert
        assert isinstance(error, ConflictError)
        assert error.status is status
        assert "fulltext reindex already in progress for tenant acme" in error.message
        assert "(10/40 after 3.0 min)" in error.message

    def test_skipped_jobs(self):
        error = SkippedJobs(["j1"], "entity removed")

        assert isinstance(error, SearchSyncError)
        assert error.job_ids == ["j1"]
        assert error.reason == "entity removed"
