"""Custom Dishka scopes for searchsync."""

from dishka import BaseScope, new_scope


class Scope(BaseScope):  # type: ignore[misc]  # BaseScope is designed to be subclassed
    """Dependency injection scopes.

    Hierarchy: APP -> UOW

    - APP: Process lifetime (engine, search strategies, registry, queues)
    - UOW: Unit of Work (one HTTP request, one worker poll, one sweep partition)
    """

    APP = new_scope("APP")
    UOW = new_scope("UOW")
