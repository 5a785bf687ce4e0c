"""Per-entity indexing configuration and the registry built from it."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from searchsync.domain.index.model.record import (
    SearchBuildContext,
    SearchBuildSource,
    SearchResultLink,
    SearchResultPresenter,
)

# Hooks may be plain functions or coroutines
type MaybeAwaitable[T] = T | Awaitable[T]

BuildSourceHook = Callable[[SearchBuildContext], MaybeAwaitable[SearchBuildSource | None]]
FormatResultHook = Callable[[SearchBuildContext], MaybeAwaitable[SearchResultPresenter | None]]
ResolveUrlHook = Callable[[SearchBuildContext], MaybeAwaitable[str | None]]
ResolveLinksHook = Callable[[SearchBuildContext], MaybeAwaitable[list[SearchResultLink] | None]]


@dataclass(frozen=True)
class EntityConfig:
    """Indexing configuration for one entity type.

    Every hook is optional. A missing hook contributes nothing; a failing hook
    is logged by the indexer and treated the same as a missing one.
    """

    entity_id: str
    enabled: bool = True
    build_source: BuildSourceHook | None = None
    format_result: FormatResultHook | None = None
    resolve_url: ResolveUrlHook | None = None
    resolve_links: ResolveLinksHook | None = None


@dataclass(frozen=True)
class SearchModuleConfig:
    """The entity configs one application module contributes."""

    module_id: str
    entities: tuple[EntityConfig, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any iterable but store an immutable tuple
        object.__setattr__(self, "entities", tuple(self.entities))


class EntityConfigRegistry:
    """Immutable map from entity id to EntityConfig.

    Disabled entities are left out entirely, so "unknown" and "disabled"
    look the same to every caller. Later modules win when two modules
    configure the same entity.
    """

    def __init__(self, configs: Iterable[EntityConfig] = ()) -> None:
        entries: dict[str, EntityConfig] = {}
        for config in configs:
            if config.enabled is False:
                entries.pop(config.entity_id, None)
                continue
            entries[config.entity_id] = config
        self._configs: Mapping[str, EntityConfig] = MappingProxyType(entries)

    @classmethod
    def register(cls, module_configs: Iterable[SearchModuleConfig]) -> "EntityConfigRegistry":
        """Build a registry from module-supplied configs."""
        return cls(config for module in module_configs for config in module.entities)

    def get(self, entity_id: str) -> EntityConfig | None:
        return self._configs.get(entity_id)

    def list_enabled(self) -> list[str]:
        return list(self._configs)

    def is_enabled(self, entity_id: str) -> bool:
        return entity_id in self._configs

    def __contains__(self, entity_id: Any) -> bool:
        return entity_id in self._configs

    def __iter__(self) -> Iterator[EntityConfig]:
        return iter(self._configs.values())

    def __len__(self) -> int:
        return len(self._configs)

    def __repr__(self) -> str:
        return f"EntityConfigRegistry({sorted(self._configs)!r})"
