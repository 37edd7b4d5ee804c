"""MangaDex enrichment routes.

``/api/mangadex-sync`` is the action-dispatch endpoint used by cron jobs and
the content-sync job (``{action, params}`` body, ``?action=`` override). The
``/api/manga/...`` routes expose the same operations as plain REST calls.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mangaquest.core.dependencies import (
    get_mangadex_client,
    get_matching_config,
    require_sync_secret,
)
from mangaquest.core.enrichment import EnrichmentService, MangaStore, format_timestamp
from mangaquest.core.mangadex.client import MangaDexClient
from mangaquest.core.matching import MatchingConfig
from mangaquest.core.tracing import get_trace_id
from mangaquest.db.models import EnrichmentRun, Manga

logger = structlog.get_logger("mangaquest.routes.mangadex")

SYNC_ACTIONS = ("enrichSingle", "enrichBatch", "health")
READ_ONLY_ACTIONS = ("health",)


# Request/Response Models
class EnrichSingleParams(BaseModel):
    """Params of the enrichSingle action."""

    model_config = ConfigDict(populate_by_name=True)

    manga_id: str | None = Field(default=None, alias="mangaId")
    api_id: str | None = Field(default=None, alias="apiId")
    force: bool = False


class EnrichBatchParams(BaseModel):
    """Params of the enrichBatch action."""

    model_config = ConfigDict(populate_by_name=True)

    limit: int | None = None
    force_refresh: bool = Field(default=False, alias="forceRefresh")


class SyncRequest(BaseModel):
    """Action-dispatch request body."""

    action: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseModel):
    """Request model for the REST batch endpoint."""

    limit: int | None = Field(default=None, description="Maximum number of manga to enrich")
    force_refresh: bool = Field(default=False, description="Include already attempted manga")


class MangaUpsert(BaseModel):
    """Request model for registering or updating a local manga row."""

    api_id: str = Field(..., min_length=1, description="ID in the primary content API")
    title: str = Field(..., min_length=1, description="Display title")
    description: str | None = None
    cover_url: str | None = None
    status: str | None = None
    latest_chapter_number: float | None = None
    last_fetched_at: int | None = Field(default=None, description="Content sync time (Unix seconds)")


class MangaResponse(BaseModel):
    """Manga response model."""

    id: str
    api_id: str
    title: str
    status: str | None
    mangadex_id: str | None
    alt_titles: list[dict[str, Any]] | None
    authors: list[str] | None
    artists: list[str] | None
    tags: list[dict[str, Any]] | None
    original_language: str | None
    publication_demographic: str | None
    content_rating: str | None
    mangadex_description: str | None
    mangadex_last_synced_at: str | None
    last_fetched_at: int | None
    created_at: int
    updated_at: int


class EnrichmentRunResponse(BaseModel):
    """Enrichment run history entry."""

    id: str
    trigger: str
    status: str
    force_refresh: bool
    batch_limit: int
    processed: int
    matched: int
    failed: int
    error: str | None
    started_at: str | None
    completed_at: str | None


def _manga_response(manga: Manga) -> MangaResponse:
    return MangaResponse(
        id=manga.id,
        api_id=manga.api_id,
        title=manga.title,
        status=manga.status,
        mangadex_id=manga.mangadex_id,
        alt_titles=manga.alt_titles,
        authors=manga.authors,
        artists=manga.artists,
        tags=manga.tags,
        original_language=manga.original_language,
        publication_demographic=manga.publication_demographic,
        content_rating=manga.content_rating,
        mangadex_description=manga.mangadex_description,
        mangadex_last_synced_at=format_timestamp(manga.mangadex_last_synced_at),
        last_fetched_at=manga.last_fetched_at,
        created_at=manga.created_at,
        updated_at=manga.updated_at,
    )


def _run_response(run: EnrichmentRun) -> EnrichmentRunResponse:
    return EnrichmentRunResponse(
        id=run.id,
        trigger=run.trigger,
        status=run.status,
        force_refresh=run.force_refresh,
        batch_limit=run.batch_limit,
        processed=run.processed,
        matched=run.matched,
        failed=run.failed,
        error=run.error,
        started_at=format_timestamp(run.started_at),
        completed_at=format_timestamp(run.completed_at),
    )


def _error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid params: {location} {first.get('msg', '')}".strip()


async def dispatch_action(
    service: EnrichmentService,
    action: str,
    params: dict[str, Any],
) -> JSONResponse:
    """Run one sync action and build its JSON response.

    MangaQuestError subclasses propagate to the app's exception handlers.
    """
    if action not in SYNC_ACTIONS:
        return _error("Invalid action", available=list(SYNC_ACTIONS))

    try:
        if action == "enrichSingle":
            single = EnrichSingleParams.model_validate(params)
            result = await service.enrich_single(
                manga_id=single.manga_id,
                api_id=single.api_id,
                force=single.force,
            )
            return JSONResponse(result.to_response())

        if action == "enrichBatch":
            batch = EnrichBatchParams.model_validate(params)
            batch_result = await service.enrich_batch(
                limit=batch.limit,
                force_refresh=batch.force_refresh,
            )
            return JSONResponse(batch_result.to_response())
    except ValidationError as e:
        return _error(_validation_message(e))
    except ValueError as e:
        return _error(str(e))

    report = await service.health()
    return JSONResponse(report.to_response())


def create_mangadex_router(
    get_db_session: Callable[[], AsyncIterator[SQLModelAsyncSession]],
) -> APIRouter:
    """Create MangaDex enrichment router.

    Args:
        get_db_session: Dependency function for database sessions

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter(prefix="/api", tags=["mangadex"])

    def get_enrichment_service(
        session: SQLModelAsyncSession = Depends(get_db_session),
        client: MangaDexClient = Depends(get_mangadex_client),
        config: MatchingConfig = Depends(get_matching_config),
    ) -> EnrichmentService:
        return EnrichmentService(MangaStore(session), client, config)

    @router.post("/mangadex-sync")
    async def mangadex_sync(
        payload: SyncRequest | None = Body(default=None),
        action: str | None = Query(default=None),
        _: bool = Depends(require_sync_secret),
        service: EnrichmentService = Depends(get_enrichment_service),
    ) -> JSONResponse:
        """Dispatch a sync action (enrichSingle, enrichBatch or health).

        The ``action`` query parameter takes precedence over the body.
        """
        body = payload or SyncRequest()
        selected = action or body.action or "enrichSingle"
        logger.info(
            "MangaDex sync requested",
            action=selected,
            params=body.params,
            trace_id=get_trace_id(),
        )
        return await dispatch_action(service, selected, body.params)

    @router.get("/mangadex-sync")
    async def mangadex_sync_read(
        action: str = Query(default="health"),
        service: EnrichmentService = Depends(get_enrichment_service),
    ) -> JSONResponse:
        """Read-only actions over GET."""
        if action not in READ_ONLY_ACTIONS:
            return _error("Invalid action", available=list(READ_ONLY_ACTIONS))
        return await dispatch_action(service, action, {})

    @router.post("/manga/{manga_id}/enrich")
    async def enrich_manga(
        manga_id: str,
        force: bool = Query(default=False, description="Ignore the sync cooldown"),
        _: bool = Depends(require_sync_secret),
        service: EnrichmentService = Depends(get_enrichment_service),
    ) -> JSONResponse:
        """Enrich one manga by its internal ID."""
        result = await service.enrich_single(manga_id=manga_id, force=force)
        return JSONResponse(result.to_response())

    @router.post("/manga/enrich-batch")
    async def enrich_batch(
        payload: BatchRequest | None = Body(default=None),
        _: bool = Depends(require_sync_secret),
        service: EnrichmentService = Depends(get_enrichment_service),
    ) -> JSONResponse:
        """Enrich manga that have never been attempted."""
        body = payload or BatchRequest()
        result = await service.enrich_batch(limit=body.limit, force_refresh=body.force_refresh)
        return JSONResponse(result.to_response())

    @router.get("/manga/enrichment/health")
    async def enrichment_health(
        service: EnrichmentService = Depends(get_enrichment_service),
    ) -> JSONResponse:
        """Enrichment coverage statistics."""
        report = await service.health()
        return JSONResponse(report.to_response())

    @router.get("/manga/enrichment/runs", response_model=list[EnrichmentRunResponse])
    async def list_enrichment_runs(
        limit: int = Query(default=20, ge=1, le=100),
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> list[EnrichmentRunResponse]:
        """Most recent batch runs, newest first."""
        runs = await MangaStore(session).list_runs(limit=limit)
        return [_run_response(run) for run in runs]

    @router.put("/manga", response_model=MangaResponse)
    async def upsert_manga(
        payload: MangaUpsert,
        _: bool = Depends(require_sync_secret),
        session: SQLModelAsyncSession = Depends(get_db_session),
    ) -> MangaResponse:
        """Register or update a local manga row by its content API ID."""
        manga = await MangaStore(session).upsert_manga(**payload.model_dump())
        logger.info("Manga upserted", manga_id=manga.id, api_id=manga.api_id)
        return _manga_response(manga)

    return router
