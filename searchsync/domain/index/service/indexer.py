"""SearchIndexer - builds indexable records and drives reindex sweeps."""

import inspect
import logging
from collections.abc import Callable, Sequence
from typing import Any

from searchsync.domain.index.event.reindex_job import ReindexJob
from searchsync.domain.index.model.entity_config import EntityConfig, EntityConfigRegistry
from searchsync.domain.index.model.lock import LockAcquisition, LockStatus, SearchBackend
from searchsync.domain.index.model.record import (
    IndexableRecord,
    IndexRecordParams,
    RecordRef,
    SearchBuildContext,
    SearchBuildSource,
    extract_custom_fields,
    record_id_of,
)
from searchsync.domain.index.model.result import (
    IndexOutcome,
    ProgressCallback,
    ReindexPhase,
    ReindexProgress,
    ReindexResult,
)
from searchsync.domain.index.port.query_engine import (
    NoReindexQueryEngine,
    Page,
    Partition,
    QueryEngine,
    QueryOptions,
    QueryResult,
)
from searchsync.domain.index.port.search import FullTextStrategy, SearchStrategy, VectorStrategy
from searchsync.domain.index.service.coverage import CoverageTracker
from searchsync.domain.index.service.lock import ReindexLockService
from searchsync.domain.index.service.search import SearchService
from searchsync.domain.shared.error import ConfigurationError
from searchsync.domain.shared.queue import JobQueue
from searchsync.domain.shared.service import Service

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200
MAX_PAGES = 10_000

FULLTEXT = SearchBackend.FULLTEXT.value
VECTOR = SearchBackend.VECTOR.value


class SearchIndexer(Service):
    """Translates domain records into IndexableRecords and runs reindex sweeps.

    The registry is injected and never mutated, so any number of indexers
    (one per partition, one per test) can share it. Queues are optional;
    asking for queue dispatch without one is a configuration error, never a
    silent fallback to direct indexing.
    """

    search_service: SearchService
    registry: EntityConfigRegistry
    query_engine: QueryEngine | None = None
    fulltext_queue: JobQueue | None = None
    vector_queue: JobQueue | None = None
    coverage: CoverageTracker | None = None
    locks: ReindexLockService | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = MAX_PAGES

    # -------------------------------------------------------------------------
    # Registry access
    # -------------------------------------------------------------------------

    def list_enabled_entities(self) -> list[str]:
        return self.registry.list_enabled()

    def get_entity_config(self, entity_id: str) -> EntityConfig | None:
        return self.registry.get(entity_id)

    def is_entity_enabled(self, entity_id: str) -> bool:
        return self.registry.is_enabled(entity_id)

    # -------------------------------------------------------------------------
    # Reindex lock
    # -------------------------------------------------------------------------

    async def acquire_reindex_lock(
        self,
        type: SearchBackend,
        action: str,
        tenant_id: str,
        organization_id: str | None = None,
    ) -> LockAcquisition:
        return await self._lock_service().acquire(type, action, tenant_id, organization_id)

    async def get_reindex_lock_status(
        self, type: SearchBackend, tenant_id: str
    ) -> LockStatus | None:
        return await self._lock_service().get_status(type, tenant_id)

    async def clear_reindex_lock(self, type: SearchBackend, tenant_id: str) -> bool:
        return await self._lock_service().clear(type, tenant_id)

    def _lock_service(self) -> ReindexLockService:
        if self.locks is None:
            raise ConfigurationError("No reindex lock service is bound to this indexer")
        return self.locks

    # -------------------------------------------------------------------------
    # Record building
    # -------------------------------------------------------------------------

    async def build_indexable_record(
        self,
        config: EntityConfig,
        tenant_id: str,
        organization_id: str | None,
        item: dict[str, Any],
        custom_fields: dict[str, Any] | None = None,
        record_id: str | None = None,
    ) -> IndexableRecord | None:
        """Build one record through the entity's hooks.

        Returns None when the item has no usable identifier. Hook failures
        are logged and the failing hook contributes nothing.
        """
        record_id = record_id or record_id_of(item)
        if record_id is None:
            return None

        ctx = SearchBuildContext(
            entity_id=config.entity_id,
            record_id=record_id,
            tenant_id=tenant_id,
            organization_id=organization_id,
            record=item,
            custom_fields=(
                custom_fields if custom_fields is not None else extract_custom_fields(item)
            ),
            query_engine=self._hook_query_engine(),
        )

        record = IndexableRecord(
            entity_id=config.entity_id,
            record_id=record_id,
            tenant_id=tenant_id,
            organization_id=organization_id,
            fields=item,
        )

        if config.build_source is not None:
            source = await self._call_hook("build_source", config.build_source, ctx)
            if isinstance(source, SearchBuildSource):
                record.text = source.text
                record.presenter = source.presenter
                record.links = source.links
                record.checksum_source = source.checksum_source

        await self._apply_display_hooks(record, config, ctx, level=logging.WARNING)
        return record

    async def _build_batch(
        self,
        config: EntityConfig,
        tenant_id: str,
        organization_id: str | None,
        items: list[dict[str, Any]],
    ) -> tuple[list[IndexableRecord], int]:
        records: list[IndexableRecord] = []
        dropped = 0
        for item in items:
            record = await self.build_indexable_record(config, tenant_id, organization_id, item)
            if record is None:
                dropped += 1
                continue
            records.append(record)
        return records, dropped

    async def _apply_display_hooks(
        self,
        record: IndexableRecord,
        config: EntityConfig,
        ctx: SearchBuildContext,
        level: int,
    ) -> None:
        if record.presenter is None and config.format_result is not None:
            record.presenter = await self._call_hook(
                "format_result", config.format_result, ctx, level
            )
        if record.url is None and config.resolve_url is not None:
            record.url = await self._call_hook("resolve_url", config.resolve_url, ctx, level)
        if record.links is None and config.resolve_links is not None:
            record.links = await self._call_hook("resolve_links", config.resolve_links, ctx, level)

    async def _call_hook(
        self,
        name: str,
        hook: Callable[[SearchBuildContext], Any],
        ctx: SearchBuildContext,
        level: int = logging.WARNING,
    ) -> Any:
        """Run a hook; on failure log it and return None."""
        try:
            result = hook(ctx)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.log(
                level,
                "Search hook %s failed for %s:%s: %s",
                name,
                ctx.entity_id,
                ctx.record_id,
                e,
            )
            return None

    def _hook_query_engine(self) -> QueryEngine | None:
        if self.query_engine is None:
            return None
        return NoReindexQueryEngine(self.query_engine)

    # -------------------------------------------------------------------------
    # Single-record operations
    # -------------------------------------------------------------------------

    async def index_record(
        self, params: IndexRecordParams, strategies: Sequence[str] | None = None
    ) -> bool:
        """Build and index one record. Returns False if the entity is not enabled."""
        config = self.registry.get(params.entity_id)
        if config is None:
            logger.debug("Not indexing %s: entity not configured", params.entity_id)
            return False

        record = await self.build_indexable_record(
            config,
            params.tenant_id,
            params.organization_id,
            params.record,
            custom_fields=params.custom_fields,
            record_id=params.record_id or None,
        )
        if record is None:
            return False
        await self.search_service.index(record, strategies=strategies)
        return True

    async def index_record_by_id(
        self,
        entity_id: str,
        record_id: str,
        tenant_id: str,
        organization_id: str | None = None,
        strategies: Sequence[str] | None = None,
    ) -> IndexOutcome:
        """Reload one record from the query engine and index it.

        Expected misses come back as a skipped outcome; load or index
        failures are logged and re-raised.
        """
        if self.query_engine is None:
            return IndexOutcome.skipped("query engine not available")
        if not self.registry.is_enabled(entity_id):
            return IndexOutcome.skipped("entity not configured")

        try:
            result = await self.query_engine.query(
                entity_id,
                QueryOptions(
                    tenant_id=tenant_id,
                    organization_id=organization_id,
                    filters={"id": record_id},
                    page=Page(page=1, page_size=1),
                    include_custom_fields=True,
                    skip_auto_reindex=True,
                ),
            )
            if not result.items:
                return IndexOutcome.skipped("record not found")

            item = result.items[0]
            await self.index_record(
                IndexRecordParams(
                    entity_id=entity_id,
                    record_id=record_id,
                    tenant_id=tenant_id,
                    organization_id=organization_id,
                    record=item,
                    custom_fields=extract_custom_fields(item),
                ),
                strategies=strategies,
            )
            return IndexOutcome.indexed()
        except Exception as e:
            logger.error("Failed to index %s:%s: %s", entity_id, record_id, e)
            raise

    async def delete_record(self, entity_id: str, record_id: str, tenant_id: str) -> None:
        await self.search_service.delete(entity_id, record_id, tenant_id)

    async def purge_entity(
        self,
        entity_id: str,
        tenant_id: str,
        organization_id: str | None = None,
        strategies: Sequence[str] | None = None,
    ) -> None:
        """Purge an entity from the backends and zero its coverage counts."""
        await self.search_service.purge(entity_id, tenant_id, strategies=strategies)
        if self.coverage is not None:
            backends = tuple(
                backend
                for backend in SearchBackend
                if strategies is None or backend.value in strategies
            )
            await self.coverage.reset_after_purge(
                entity_id, tenant_id, organization_id, backends=backends
            )

    async def purge_vector_index(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        entity_id: str | None = None,
    ) -> list[str]:
        """Purge one entity, or every enabled entity, from the vector strategy.

        Returns the entity ids purged.
        """
        entity_ids = [entity_id] if entity_id is not None else self.list_enabled_entities()
        for target in entity_ids:
            await self.purge_entity(target, tenant_id, organization_id, strategies=(VECTOR,))
        logger.info("Purged vectors for %d entities in tenant %s", len(entity_ids), tenant_id)
        return entity_ids

    async def list_vector_entries(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        entity_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        strategy = self.search_service.get_strategy(VECTOR)
        if strategy is None or not isinstance(strategy, VectorStrategy):
            raise ConfigurationError("Vector strategy not configured")
        if not await strategy.is_available():
            raise ConfigurationError("Vector strategy not available")
        return await strategy.list_entries(
            tenant_id,
            organization_id=organization_id,
            entity_id=entity_id,
            limit=limit,
            offset=offset,
        )

    async def bulk_index_records(
        self, params: list[IndexRecordParams], strategies: Sequence[str] | None = None
    ) -> int:
        """Index pre-built inputs in one facade call.

        Only the display hooks run here, best effort. Returns records sent.
        """
        records: list[IndexableRecord] = []
        for item in params:
            config = self.registry.get(item.entity_id)
            if config is None or not item.record_id:
                continue
            custom_fields = (
                item.custom_fields
                if item.custom_fields is not None
                else extract_custom_fields(item.record)
            )
            ctx = SearchBuildContext(
                entity_id=item.entity_id,
                record_id=item.record_id,
                tenant_id=item.tenant_id,
                organization_id=item.organization_id,
                record=item.record,
                custom_fields=custom_fields,
                query_engine=self._hook_query_engine(),
            )
            record = IndexableRecord(
                entity_id=item.entity_id,
                record_id=item.record_id,
                tenant_id=item.tenant_id,
                organization_id=item.organization_id,
                fields=item.record,
            )
            await self._apply_display_hooks(record, config, ctx, level=logging.DEBUG)
            records.append(record)

        if records:
            await self.search_service.bulk_index(records, strategies=strategies)
        return len(records)

    # -------------------------------------------------------------------------
    # General sweep (all strategies)
    # -------------------------------------------------------------------------

    async def reindex_entity(
        self,
        entity_id: str,
        tenant_id: str,
        organization_id: str | None = None,
        purge_first: bool = False,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        """Sweep one entity into every strategy, record by record."""
        if self.query_engine is None:
            return ReindexResult.failure(entity_id, "Query engine not available")
        config = self.registry.get(entity_id)
        if config is None:
            return ReindexResult.failure(entity_id, "Entity not configured or disabled")

        result = ReindexResult()
        if purge_first:
            try:
                await self.purge_entity(entity_id, tenant_id, organization_id)
            except Exception as e:
                logger.warning("Purge before reindex of %s failed: %s", entity_id, e)

        processed = 0
        page = 1
        self._report(on_progress, entity_id, ReindexPhase.STARTING, 0)
        while page <= self.max_pages:
            self._report(on_progress, entity_id, ReindexPhase.FETCHING, processed)
            try:
                batch = await self._fetch_page(
                    entity_id, tenant_id, organization_id, page, partition
                )
            except Exception as e:
                result.success = False
                result.add_error(entity_id, f"Query failed on page {page}: {e}")
                break
            if not batch.items:
                break

            self._report(on_progress, entity_id, ReindexPhase.INDEXING, processed, batch.total)
            records, dropped = await self._build_batch(
                config, tenant_id, organization_id, batch.items
            )
            result.records_dropped += dropped
            for record in records:
                try:
                    await self.search_service.index(record)
                    result.records_indexed += 1
                except Exception as e:
                    result.add_error(entity_id, f"Record {record.record_id}: {e}")
            processed += len(records)

            if len(batch.items) < self.page_size:
                break
            page += 1

        self._report(on_progress, entity_id, ReindexPhase.COMPLETE, processed, processed)
        result.entities_processed = 1
        return result

    async def reindex_all(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        purge_first: bool = False,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        result = ReindexResult()
        for entity_id in self.registry.list_enabled():
            result.merge(
                await self.reindex_entity(
                    entity_id,
                    tenant_id,
                    organization_id,
                    purge_first=purge_first,
                    partition=partition,
                    on_progress=on_progress,
                )
            )
        return result

    # -------------------------------------------------------------------------
    # Full-text sweep
    # -------------------------------------------------------------------------

    async def reindex_entity_to_fulltext(
        self,
        entity_id: str,
        tenant_id: str,
        organization_id: str | None = None,
        recreate_index: bool = True,
        use_queue: bool = False,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        """Sweep one entity into the full-text strategy.

        Direct mode bulk-indexes each page; a failed page is recorded and
        the sweep moves on. Queue mode enqueues one ReindexJob per page.
        """
        fulltext, error = await self._fulltext_strategy()
        if error is None and use_queue and self.fulltext_queue is None:
            error = "Fulltext queue not configured for queue-based reindexing"
        if error is None:
            error = self._sweep_precondition(entity_id)
        if error is not None:
            return ReindexResult.failure(entity_id, error)

        config = self.registry.get(entity_id)
        assert config is not None and fulltext is not None
        result = ReindexResult()
        processed = 0
        try:
            self._report(on_progress, entity_id, ReindexPhase.STARTING, 0)
            if recreate_index:
                await fulltext.recreate_index(tenant_id)

            page = 1
            while page <= self.max_pages:
                self._report(on_progress, entity_id, ReindexPhase.FETCHING, processed)
                try:
                    batch = await self._fetch_page(
                        entity_id, tenant_id, organization_id, page, partition
                    )
                except Exception as e:
                    # Recorded like a failed batch; success is left as is
                    result.add_error(entity_id, f"Query failed on page {page}: {e}")
                    break
                if not batch.items:
                    break

                self._report(
                    on_progress, entity_id, ReindexPhase.INDEXING, processed, batch.total
                )
                records, dropped = await self._build_batch(
                    config, tenant_id, organization_id, batch.items
                )
                result.records_dropped += dropped

                if records:
                    try:
                        if use_queue:
                            await self._enqueue(
                                self.fulltext_queue,
                                tenant_id,
                                organization_id,
                                [record.ref for record in records],
                                result,
                            )
                        else:
                            await fulltext.bulk_index(records)
                            result.records_indexed += len(records)
                    except Exception as e:
                        logger.error("Fulltext batch %d of %s failed: %s", page, entity_id, e)
                        result.add_error(entity_id, f"Batch {page} failed: {e}")
                processed += len(records)

                if len(batch.items) < self.page_size:
                    break
                page += 1

            self._report(on_progress, entity_id, ReindexPhase.COMPLETE, processed, processed)
            result.entities_processed = 1
        except Exception as e:
            logger.error("Fulltext reindex of %s failed: %s", entity_id, e)
            result.success = False
            result.add_error(entity_id, str(e))

        if use_queue and result.jobs_enqueued:
            logger.info(
                "Queued %d fulltext jobs (%d records) for %s",
                result.jobs_enqueued,
                result.records_enqueued,
                entity_id,
            )
        return result

    async def reindex_all_to_fulltext(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        recreate_index: bool = True,
        use_queue: bool = False,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        """Recreate the tenant index once, then sweep every enabled entity."""
        fulltext, error = await self._fulltext_strategy()
        if error is None and use_queue and self.fulltext_queue is None:
            error = "Fulltext queue not configured for queue-based reindexing"
        if error is None and self.query_engine is None:
            error = "Query engine not available"
        if error is not None:
            return ReindexResult.failure("*", error)
        assert fulltext is not None

        if recreate_index:
            try:
                await fulltext.recreate_index(tenant_id)
            except Exception as e:
                logger.error("Failed to recreate fulltext index for %s: %s", tenant_id, e)
                return ReindexResult.failure("*", f"Recreate index failed: {e}")

        result = ReindexResult()
        for entity_id in self.registry.list_enabled():
            result.merge(
                await self.reindex_entity_to_fulltext(
                    entity_id,
                    tenant_id,
                    organization_id,
                    recreate_index=False,
                    use_queue=use_queue,
                    partition=partition,
                    on_progress=on_progress,
                )
            )
        return result

    # -------------------------------------------------------------------------
    # Vector sweep
    # -------------------------------------------------------------------------

    async def reindex_entity_to_vector(
        self,
        entity_id: str,
        tenant_id: str,
        organization_id: str | None = None,
        purge_first: bool = False,
        use_queue: bool = True,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        """Sweep one entity into the vector strategy.

        Queue mode (the default) enqueues record references only. Direct
        mode reloads and indexes record by record; a failed record is
        recorded and the sweep moves on.
        """
        vector = self.search_service.get_strategy(VECTOR)
        error: str | None = None
        if vector is None or not await vector.is_available():
            error = "Vector strategy not available"
        elif use_queue and self.vector_queue is None:
            error = "Vector queue not configured for queue-based reindexing"
        else:
            error = self._sweep_precondition(entity_id)
        if error is not None:
            return ReindexResult.failure(entity_id, error)

        result = ReindexResult()
        processed = 0
        try:
            self._report(on_progress, entity_id, ReindexPhase.STARTING, 0)
            if purge_first:
                try:
                    await self.purge_entity(
                        entity_id, tenant_id, organization_id, strategies=(VECTOR,)
                    )
                except Exception as e:
                    logger.warning("Vector purge of %s failed: %s", entity_id, e)

            page = 1
            while page <= self.max_pages:
                self._report(on_progress, entity_id, ReindexPhase.FETCHING, processed)
                try:
                    batch = await self._fetch_page(
                        entity_id, tenant_id, organization_id, page, partition
                    )
                except Exception as e:
                    result.success = False
                    result.add_error(entity_id, f"Query failed on page {page}: {e}")
                    break
                if not batch.items:
                    break

                self._report(
                    on_progress, entity_id, ReindexPhase.INDEXING, processed, batch.total
                )
                refs: list[RecordRef] = []
                for item in batch.items:
                    record_id = record_id_of(item)
                    if record_id is None:
                        result.records_dropped += 1
                        continue
                    refs.append(RecordRef(entity_id=entity_id, record_id=record_id))

                if refs and use_queue:
                    await self._enqueue(
                        self.vector_queue, tenant_id, organization_id, refs, result
                    )
                elif refs:
                    await self._index_refs_directly(refs, tenant_id, organization_id, result)
                processed += len(refs)

                if len(batch.items) < self.page_size:
                    break
                page += 1

            self._report(on_progress, entity_id, ReindexPhase.COMPLETE, processed, processed)
            result.entities_processed = 1
        except Exception as e:
            logger.error("Vector reindex of %s failed: %s", entity_id, e)
            result.success = False
            result.add_error(entity_id, str(e))

        if use_queue and result.jobs_enqueued:
            logger.info(
                "Queued %d vector jobs (%d records) for %s",
                result.jobs_enqueued,
                result.records_enqueued,
                entity_id,
            )
        return result

    async def reindex_all_to_vector(
        self,
        tenant_id: str,
        organization_id: str | None = None,
        purge_first: bool = False,
        use_queue: bool = True,
        partition: Partition | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        result = ReindexResult()
        for entity_id in self.registry.list_enabled():
            result.merge(
                await self.reindex_entity_to_vector(
                    entity_id,
                    tenant_id,
                    organization_id,
                    purge_first=purge_first,
                    use_queue=use_queue,
                    partition=partition,
                    on_progress=on_progress,
                )
            )
        return result

    async def _index_refs_directly(
        self,
        refs: list[RecordRef],
        tenant_id: str,
        organization_id: str | None,
        result: ReindexResult,
    ) -> None:
        for ref in refs:
            try:
                outcome = await self.index_record_by_id(
                    ref.entity_id,
                    ref.record_id,
                    tenant_id,
                    organization_id,
                    strategies=(VECTOR,),
                )
            except Exception as e:
                logger.warning(
                    "Vector index of %s:%s failed: %s", ref.entity_id, ref.record_id, e
                )
                result.add_error(ref.entity_id, f"Record {ref.record_id}: {e}")
                continue
            if outcome.action == "indexed":
                result.records_indexed += 1
            else:
                logger.debug(
                    "Skipped %s:%s: %s", ref.entity_id, ref.record_id, outcome.reason
                )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _fulltext_strategy(self) -> tuple[FullTextStrategy | None, str | None]:
        strategy: SearchStrategy | None = self.search_service.get_strategy(FULLTEXT)
        if strategy is None or not await strategy.is_available():
            return None, "Fulltext strategy not available"
        if not isinstance(strategy, FullTextStrategy):
            return None, "Fulltext strategy does not support index recreation"
        return strategy, None

    def _sweep_precondition(self, entity_id: str) -> str | None:
        if self.query_engine is None:
            return "Query engine not available"
        if not self.registry.is_enabled(entity_id):
            return "Entity not configured or disabled"
        return None

    async def _fetch_page(
        self,
        entity_id: str,
        tenant_id: str,
        organization_id: str | None,
        page: int,
        partition: Partition | None,
    ) -> QueryResult:
        assert self.query_engine is not None
        return await self.query_engine.query(
            entity_id,
            QueryOptions(
                tenant_id=tenant_id,
                organization_id=organization_id,
                page=Page(page=page, page_size=self.page_size),
                include_custom_fields=True,
                skip_auto_reindex=True,
                partition=partition,
            ),
        )

    async def _enqueue(
        self,
        queue: JobQueue | None,
        tenant_id: str,
        organization_id: str | None,
        refs: list[RecordRef],
        result: ReindexResult,
    ) -> None:
        assert queue is not None
        await queue.enqueue(
            ReindexJob(tenant_id=tenant_id, organization_id=organization_id, records=refs)
        )
        result.jobs_enqueued += 1
        result.records_enqueued += len(refs)

    @staticmethod
    def _report(
        on_progress: ProgressCallback | None,
        entity_id: str,
        phase: ReindexPhase,
        processed: int,
        total: int | None = None,
    ) -> None:
        if on_progress is None:
            return
        try:
            on_progress(
                ReindexProgress(entity_id=entity_id, phase=phase, processed=processed, total=total)
            )
        except Exception as e:
            logger.debug("Progress callback failed for %s: %s", entity_id, e)
