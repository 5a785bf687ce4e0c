from typing import AsyncIterable

from dishka import provide
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from searchsync.config import Config
from searchsync.domain.index.port.coverage_repository import CoverageRepository
from searchsync.domain.index.port.lock_repository import ReindexLockRepository
from searchsync.domain.index.port.query_engine import QueryEngine
from searchsync.domain.shared.port.job_repository import JobRepository
from searchsync.infrastructure.persistence.database import (
    create_db_engine,
    create_session_factory,
)
from searchsync.infrastructure.persistence.repository.coverage import (
    SQLAlchemyCoverageRepository,
)
from searchsync.infrastructure.persistence.repository.job import SQLAlchemyJobRepository
from searchsync.infrastructure.persistence.repository.lock import (
    SQLAlchemyReindexLockRepository,
)
from searchsync.infrastructure.persistence.repository.query_engine import SQLAlchemyQueryEngine
from searchsync.util.di.base import Provider
from searchsync.util.di.scope import Scope


class PersistenceProvider(Provider):
    # APP-scoped factories
    @provide(scope=Scope.APP)
    async def get_engine(self, config: Config) -> AsyncIterable[AsyncEngine]:
        engine = create_db_engine(config.database)
        yield engine
        await engine.dispose()

    @provide(scope=Scope.APP)
    def get_session_factory(self, engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return create_session_factory(engine)

    # UOW-scoped session (one per unit of work)
    @provide(scope=Scope.UOW)
    async def get_session(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> AsyncIterable[AsyncSession]:
        async with session_factory() as session:
            yield session
            await session.commit()

    # Repositories that commit per call share the session factory
    job_repo = provide(SQLAlchemyJobRepository, scope=Scope.APP, provides=JobRepository)
    lock_repo = provide(
        SQLAlchemyReindexLockRepository, scope=Scope.APP, provides=ReindexLockRepository
    )
    coverage_repo = provide(
        SQLAlchemyCoverageRepository, scope=Scope.APP, provides=CoverageRepository
    )

    # Paging reads ride on the unit-of-work session
    query_engine = provide(SQLAlchemyQueryEngine, scope=Scope.UOW, provides=QueryEngine)
