"""Scheduled task for automatic batch enrichment."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mangaquest.core.config import Settings
from mangaquest.core.enrichment.service import EnrichmentService
from mangaquest.core.enrichment.store import MangaStore
from mangaquest.core.mangadex.client import MangaDexClient
from mangaquest.core.matching import MatchingConfig
from mangaquest.core.tracing import trace_context

logger = structlog.get_logger("mangaquest.enrichment.scheduled")

JOB_ID = "mangadex_batch_enrichment"


async def run_scheduled_enrichment(
    session_factory: Callable[[], Any],
    settings: Settings,
) -> None:
    """Run one batch enrichment as the scheduler.

    Designed to be called by APScheduler: failures are logged, never raised.

    Args:
        session_factory: Async session factory
        settings: Application settings
    """
    with trace_context(job=JOB_ID):
        try:
            client = MangaDexClient.from_settings(settings)
            async with session_factory() as session:
                service = EnrichmentService(
                    MangaStore(session),
                    client,
                    MatchingConfig.from_settings(settings),
                )
                result = await service.enrich_batch(
                    limit=settings.schedule_batch_size,
                    trigger="schedule",
                )
            logger.info(
                "Scheduled enrichment completed",
                processed=result.processed,
                matched=result.matched,
                failed=result.failed,
            )
        except Exception as e:
            logger.error("Scheduled enrichment failed", error=str(e), exc_info=True)


def create_enrichment_scheduler(
    session_factory: Callable[[], Any],
    settings: Settings,
) -> AsyncIOScheduler | None:
    """Create a scheduler with the batch enrichment job, if enabled in settings.

    Returns:
        Unstarted scheduler, or None when scheduled enrichment is disabled
    """
    if not settings.schedule_enabled:
        logger.info("Scheduled MangaDex enrichment is disabled")
        return None

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_scheduled_enrichment,
        trigger=IntervalTrigger(hours=settings.schedule_interval_hours),
        args=[session_factory, settings],
        id=JOB_ID,
        name="Enrich pending manga from MangaDex",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Scheduled MangaDex enrichment",
        interval_hours=settings.schedule_interval_hours,
        batch_size=settings.schedule_batch_size,
    )
    return scheduler
