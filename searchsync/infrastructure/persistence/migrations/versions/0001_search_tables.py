"""search_tables

Reindex locks, search coverage, the job queue, and the search_records read model.

Revision ID: 0001_search_tables
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_search_tables"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # REINDEX LOCKS
    op.create_table(
        "reindex_locks",
        sa.Column("lock_type", sa.String(32), nullable=False),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("organization_id", sa.String(128), nullable=True),
        sa.Column("action", sa.String(255), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("heartbeat_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_count", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("lock_type", "tenant_id", name="pk_reindex_locks"),
    )

    # SEARCH COVERAGE
    op.create_table(
        "search_coverage",
        sa.Column("entity_type", sa.String(128), nullable=False),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("organization_scope", sa.String(128), nullable=False),
        sa.Column("with_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("base_count", sa.Integer(), nullable=True),
        sa.Column("fulltext_count", sa.Integer(), nullable=True),
        sa.Column("vector_count", sa.Integer(), nullable=True),
        sa.Column("refreshed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint(
            "entity_type",
            "tenant_id",
            "organization_scope",
            "with_deleted",
            name="pk_search_coverage",
        ),
    )

    # QUEUE JOBS
    op.create_table(
        "queue_jobs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("queue", sa.String(128), nullable=False),
        sa.Column("job_type", sa.String(128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_queue_jobs_claim", "queue_jobs", ["queue", "status", "available_at"]
    )
    op.create_index(
        "idx_queue_jobs_stale",
        "queue_jobs",
        ["claimed_at"],
        postgresql_where=sa.text("status = 'claimed'"),
    )

    # SEARCH RECORDS
    op.create_table(
        "search_records",
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("record_id", sa.String(255), nullable=False),
        sa.Column("tenant_id", sa.String(128), nullable=False),
        sa.Column("organization_id", sa.String(128), nullable=True),
        sa.Column("partition_key", sa.BigInteger(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("entity_id", "tenant_id", "record_id", name="pk_search_records"),
    )
    op.create_index(
        "idx_search_records_scope",
        "search_records",
        ["entity_id", "tenant_id", "organization_id"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_search_records_scope", table_name="search_records")
    op.drop_table("search_records")
    op.drop_index("idx_queue_jobs_stale", table_name="queue_jobs")
    op.drop_index("idx_queue_jobs_claim", table_name="queue_jobs")
    op.drop_table("queue_jobs")
    op.drop_table("search_coverage")
    op.drop_table("reindex_locks")
