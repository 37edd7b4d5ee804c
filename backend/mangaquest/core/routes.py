"""Application routes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from mangaquest.core.exceptions import (
    ConfigurationError,
    MangaNotFoundError,
    MangaQuestError,
)
from mangaquest.routes import general

logger = structlog.get_logger("mangaquest.routes")


def create_app_router(
    app: FastAPI | None = None,
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]] | None = None,
) -> APIRouter:
    """Create and configure main application router.

    Args:
        app: FastAPI app instance
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()

    router.include_router(general.router, tags=["general"])

    # Include routers that need database if get_db_session is available
    if app and get_db_session:
        from mangaquest.routes.mangadex import create_mangadex_router

        mangadex_router = create_mangadex_router(get_db_session)
        router.include_router(mangadex_router, tags=["mangadex"])
        logger.debug("Included mangadex router in app_router")

    return router


def register_exception_handlers(app: FastAPI) -> None:
    """Translate application errors into ``{"error": ...}`` JSON responses."""

    @app.exception_handler(MangaNotFoundError)
    async def handle_not_found(request: Request, exc: MangaNotFoundError) -> JSONResponse:
        logger.info(
            "Manga not found",
            path=request.url.path,
            manga_id=exc.manga_id,
            api_id=exc.api_id,
        )
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        logger.error("Configuration error", path=request.url.path, error=str(exc))
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(MangaQuestError)
    async def handle_application_error(request: Request, exc: MangaQuestError) -> JSONResponse:
        logger.error(
            "Request failed",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse({"error": str(exc)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()))
            message = f"Invalid request: {location} {errors[0].get('msg', '')}".strip()
        return JSONResponse(
            {"error": message},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
