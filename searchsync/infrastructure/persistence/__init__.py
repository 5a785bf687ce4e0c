from searchsync.infrastructure.persistence.di import PersistenceProvider

__all__ = ["PersistenceProvider"]
