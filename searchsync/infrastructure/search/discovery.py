"""Discovery of module-supplied search configs via entry points and dotted paths."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable
from importlib.metadata import entry_points
from typing import Any

from searchsync.domain.index.model.entity_config import EntityConfigRegistry, SearchModuleConfig

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "searchsync.modules"


def discover_modules() -> list[SearchModuleConfig]:
    """Load module configs registered in the 'searchsync.modules' group.

    Each entry point should resolve to a SearchModuleConfig, or to a
    zero-argument callable returning one.

    Example pyproject.toml entry:
        [project.entry-points."searchsync.modules"]
        catalog = "catalog.search:search_config"
    """
    modules: list[SearchModuleConfig] = []
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            modules.append(_coerce(ep.load(), ep.name))
            logger.debug("Discovered search module: %s", ep.name)
        except Exception as e:
            logger.warning("Failed to load search module '%s': %s", ep.name, e)
    return modules


def load_module(path: str) -> SearchModuleConfig:
    """Load a module config from "package.module:attribute".

    Raises:
        ValueError: If the path is malformed.
        TypeError: If the attribute is not a SearchModuleConfig.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Module path '{path}' must look like 'package.module:attribute'")
    module = importlib.import_module(module_name)
    return _coerce(getattr(module, attribute), path)


def build_registry(paths: Iterable[str] = (), discover: bool = True) -> EntityConfigRegistry:
    """Registry from discovered modules first, then explicitly configured ones."""
    modules = discover_modules() if discover else []
    modules.extend(load_module(path) for path in paths)
    registry = EntityConfigRegistry.register(modules)
    logger.info(
        "Search registry: %d enabled entities from %d modules", len(registry), len(modules)
    )
    return registry


def _coerce(obj: Any, name: str) -> SearchModuleConfig:
    if callable(obj) and not isinstance(obj, SearchModuleConfig):
        obj = obj()
    if not isinstance(obj, SearchModuleConfig):
        raise TypeError(
            f"Search module {name} must be a SearchModuleConfig, got {type(obj).__name__}"
        )
    return obj
