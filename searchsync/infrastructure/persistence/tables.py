"""SQLAlchemy table definitions - dialect-agnostic (works with SQLite and PostgreSQL)."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.types import JSON

metadata = MetaData()

# Stored in place of a NULL organization so the scope can be part of a key
TENANT_WIDE_SCOPE = ""

# ============================================================================
# REINDEX LOCKS TABLE (one row per lock type and tenant)
# ============================================================================
reindex_locks_table = Table(
    "reindex_locks",
    metadata,
    Column("lock_type", String(32), nullable=False),  # SearchBackend value
    Column("tenant_id", String(128), nullable=False),
    Column("organization_id", String(128), nullable=True),
    Column("action", String(255), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("heartbeat_at", DateTime(timezone=True), nullable=False),
    Column("processed_count", Integer, nullable=False, server_default=text("0")),
    Column("total_count", Integer, nullable=False, server_default=text("0")),
    PrimaryKeyConstraint("lock_type", "tenant_id", name="pk_reindex_locks"),
)


# ============================================================================
# SEARCH COVERAGE TABLE (one row per entity/tenant/organization scope)
# ============================================================================
search_coverage_table = Table(
    "search_coverage",
    metadata,
    Column("entity_type", String(128), nullable=False),
    Column("tenant_id", String(128), nullable=False),
    Column("organization_scope", String(128), nullable=False),  # TENANT_WIDE_SCOPE for null
    Column("with_deleted", Boolean, nullable=False, server_default=text("false")),
    Column("base_count", Integer, nullable=True),
    Column("fulltext_count", Integer, nullable=True),
    Column("vector_count", Integer, nullable=True),
    Column("refreshed_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint(
        "entity_type",
        "tenant_id",
        "organization_scope",
        "with_deleted",
        name="pk_search_coverage",
    ),
)


# ============================================================================
# QUEUE JOBS TABLE
# ============================================================================
queue_jobs_table = Table(
    "queue_jobs",
    metadata,
    Column("id", String, primary_key=True),
    Column("queue", String(128), nullable=False),
    Column("job_type", String(128), nullable=False),
    Column("payload", JSON, nullable=False),
    Column("status", String(32), nullable=False, server_default=text("'pending'")),
    Column("retry_count", Integer, nullable=False, server_default=text("0")),
    Column("available_at", DateTime(timezone=True), nullable=False),  # Backoff gate
    Column("claimed_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("error", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# Primary worker polling index
Index(
    "idx_queue_jobs_claim",
    queue_jobs_table.c.queue,
    queue_jobs_table.c.status,
    queue_jobs_table.c.available_at,
)

# Stale claim detection
Index(
    "idx_queue_jobs_stale",
    queue_jobs_table.c.claimed_at,
    postgresql_where=text("status = 'claimed'"),
)


# ============================================================================
# SEARCH RECORDS TABLE (read model served by the paging query engine)
# ============================================================================
search_records_table = Table(
    "search_records",
    metadata,
    Column("entity_id", String(128), nullable=False),
    Column("record_id", String(255), nullable=False),
    Column("tenant_id", String(128), nullable=False),
    Column("organization_id", String(128), nullable=True),
    Column("partition_key", BigInteger, nullable=False),  # crc32(record_id)
    Column("data", JSON, nullable=False),
    Column("custom_fields", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    PrimaryKeyConstraint("entity_id", "tenant_id", "record_id", name="pk_search_records"),
)

Index(
    "idx_search_records_scope",
    search_records_table.c.entity_id,
    search_records_table.c.tenant_id,
    search_records_table.c.organization_id,
)
