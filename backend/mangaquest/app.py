"""Application entry point for MangaQuest."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mangaquest.core.config import get_settings
from mangaquest.core.database import (
    create_database_engine,
    create_session_factory,
    init_database,
)
from mangaquest.core.enrichment.scheduled import create_enrichment_scheduler
from mangaquest.core.logging import setup_logging
from mangaquest.core.metrics import setup_metrics
from mangaquest.core.middleware import TracingMiddleware
from mangaquest.core.routes import create_app_router, register_exception_handlers

logger = structlog.get_logger("mangaquest.app")

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "Starting MangaQuest application",
        version=APP_VERSION,
        env=settings.env,
        host=settings.host_bind_address,
        port=settings.host_port,
    )

    # Engine and session factory are created in create_app()
    engine = app.state.engine
    await init_database(engine)
    logger.info("Database schema ready")

    scheduler = create_enrichment_scheduler(app.state.async_session_factory, settings)
    if scheduler is not None:
        scheduler.start()
        app.state.scheduler = scheduler
        logger.info("Scheduler started")

    yield

    if getattr(app.state, "scheduler", None) is not None:
        app.state.scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")

    logger.info("Shutting down MangaQuest application")
    if getattr(app.state, "engine", None) is not None:
        await app.state.engine.dispose()
        logger.info("Database engine disposed")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    # Setup logging first (use settings)
    setup_logging(debug=settings.is_debug, logs_dir=settings.logs_dir)

    app = FastAPI(
        title="MangaQuest",
        description="MangaDex metadata enrichment for the MangaQuest catalogue",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    engine = create_database_engine(settings.database_file, echo=settings.is_debug)
    async_session_factory = create_session_factory(engine)

    app.state.engine = engine
    app.state.async_session_factory = async_session_factory
    logger.info("Database engine and session factory created")

    # FastAPI dependency for database sessions (closure over async_session_factory)
    async def get_db_session() -> AsyncIterator[SQLModelAsyncSession]:
        """FastAPI dependency for database sessions."""
        async with async_session_factory() as session:
            yield session

    app.state.get_db_session = get_db_session

    # Tracing middleware first so every request carries a trace id
    app.add_middleware(TracingMiddleware)

    setup_metrics(app, APP_VERSION)
    register_exception_handlers(app)

    app_router = create_app_router(app, get_db_session)
    app.include_router(app_router)

    return app


def main() -> None:
    """Main entry point."""
    from mangaquest.core.config import reload_settings

    current_settings = reload_settings()
    app = create_app()

    import uvicorn

    logger.info(
        "Starting uvicorn server",
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
    )

    uvicorn.run(
        app,
        host=current_settings.host_bind_address,
        port=current_settings.host_port,
        log_config=None,  # We use structlog
        reload=False,
    )


if __name__ == "__main__":
    main()
