from searchsync.util.di.base import Provider
from searchsync.util.di.scope import Scope

__all__ = ["Provider", "Scope"]
