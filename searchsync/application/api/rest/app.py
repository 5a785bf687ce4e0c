import logging
from contextlib import AsyncExitStack, asynccontextmanager

import logfire
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from searchsync.application.api.v1.errors import map_error
from searchsync.application.api.v1.routes import embeddings, health, index, records, reindex
from searchsync.application.di import create_container, create_worker_pool
from searchsync.config import Config, configure_logging
from searchsync.domain.shared.error import SearchSyncError
from searchsync.infrastructure.persistence.migrate import prepare_database
from searchsync.util.di.fastapi import setup_dishka

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = app.state.dishka_container
    config = await container.get(Config)

    engine = await container.get(AsyncEngine)
    await prepare_database(engine, config.database)

    async with AsyncExitStack() as stack:
        # Optionally run the batch-index workers inside the API process
        if config.worker.enabled:
            await stack.enter_async_context(create_worker_pool(container, config))
        yield

    await container.close()


def create_app(config: Config | None = None) -> FastAPI:
    """Create FastAPI application."""
    # Pydantic Settings populates from env vars at runtime
    config = config or Config()  # type: ignore[call-arg]

    configure_logging(config.logging)
    logger.info("Starting %s v%s", config.server.name, config.server.version)

    app_instance = FastAPI(
        title=config.server.name,
        version=config.server.version,
        lifespan=lifespan,
    )

    # Only ships spans when LOGFIRE_TOKEN is set
    logfire.configure(send_to_logfire="if-token-present", service_name=config.server.name)
    logfire.instrument_fastapi(app_instance)

    container = create_container(config)
    setup_dishka(container, app_instance)
    configure_app(app_instance)

    return app_instance


def configure_app(app_instance: FastAPI) -> None:
    """Mount the v1 routers and the error handlers."""
    app_instance.include_router(health.router, prefix="/api/v1")
    app_instance.include_router(reindex.router, prefix="/api/v1")
    app_instance.include_router(embeddings.router, prefix="/api/v1")
    app_instance.include_router(records.router, prefix="/api/v1")
    app_instance.include_router(index.router, prefix="/api/v1")

    # Maps domain and infrastructure errors to HTTP responses
    @app_instance.exception_handler(SearchSyncError)
    async def searchsync_error_handler(request: Request, exc: SearchSyncError):
        http_exc = map_error(exc)
        return JSONResponse(status_code=http_exc.status_code, content=http_exc.detail)

    # Logs all unhandled exceptions
    @app_instance.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
