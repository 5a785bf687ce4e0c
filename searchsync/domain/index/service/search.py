"""SearchService - facade over the configured search strategies."""

import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from searchsync.domain.index.model.record import IndexableRecord
from searchsync.domain.index.port.search import SearchStrategy
from searchsync.domain.shared.error import ExternalServiceError

logger = logging.getLogger(__name__)


class SearchService:
    """Fans index operations out to every available strategy.

    Operations accept an optional `strategies` subset (by id). A failure in
    one strategy does not stop the others; once all have been tried, any
    failures are raised together as ExternalServiceError.
    """

    def __init__(self, strategies: Iterable[SearchStrategy] = ()) -> None:
        self._strategies: dict[str, SearchStrategy] = {}
        for strategy in strategies:
            self._strategies[strategy.id] = strategy

    def get_strategy(self, name: str) -> SearchStrategy | None:
        return self._strategies.get(name)

    def get_strategies(self) -> list[SearchStrategy]:
        return list(self._strategies.values())

    async def index(
        self, record: IndexableRecord, strategies: Sequence[str] | None = None
    ) -> None:
        await self._fan_out("index", lambda s: s.index(record), strategies)

    async def bulk_index(
        self, records: list[IndexableRecord], strategies: Sequence[str] | None = None
    ) -> None:
        if not records:
            return
        await self._fan_out("bulk_index", lambda s: s.bulk_index(records), strategies)

    async def delete(
        self,
        entity_id: str,
        record_id: str,
        tenant_id: str,
        strategies: Sequence[str] | None = None,
    ) -> None:
        await self._fan_out(
            "delete", lambda s: s.delete(entity_id, record_id, tenant_id), strategies
        )

    async def purge(
        self, entity_id: str, tenant_id: str, strategies: Sequence[str] | None = None
    ) -> None:
        await self._fan_out("purge", lambda s: s.purge(entity_id, tenant_id), strategies)

    async def _fan_out(
        self,
        operation: str,
        call: Callable[[SearchStrategy], Awaitable[None]],
        names: Sequence[str] | None,
    ) -> None:
        failures: list[str] = []
        for strategy in self._select(names):
            if not await strategy.is_available():
                logger.debug("Strategy '%s' unavailable, skipping %s", strategy.id, operation)
                continue
            try:
                await call(strategy)
            except Exception as e:
                logger.error("Strategy '%s' failed to %s: %s", strategy.id, operation, e)
                failures.append(f"{strategy.id}: {e}")

        if failures:
            raise ExternalServiceError(f"{operation} failed for " + "; ".join(failures))

    def _select(self, names: Sequence[str] | None) -> list[SearchStrategy]:
        if names is None:
            return list(self._strategies.values())
        return [self._strategies[name] for name in names if name in self._strategies]
