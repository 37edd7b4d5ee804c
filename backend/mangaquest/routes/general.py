"""General API routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mangaquest.core.tracing import get_trace_id

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api")
logger = structlog.get_logger("mangaquest.routes.general")


@router.get("/")
async def root() -> JSONResponse:
    """Service banner."""
    trace_id = get_trace_id()
    logger.info("Root endpoint accessed")
    return JSONResponse(
        {
            "message": "MangaQuest metadata enrichment",
            "version": APP_VERSION,
            "status": "ok",
            "trace_id": trace_id,
        }
    )


@router.get("/health")
async def health() -> JSONResponse:
    """Liveness check (enrichment coverage lives under /api/manga/enrichment/health)."""
    return JSONResponse(
        {
            "status": "healthy",
            "trace_id": get_trace_id(),
        }
    )
