"""MangaDex enrichment driver: single, batch and health modes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from mangaquest.core.enrichment.models import (
    BatchItemResult,
    BatchResult,
    EnrichmentResult,
    HealthReport,
    HealthStats,
    MetadataSummary,
)
from mangaquest.core.enrichment.store import MangaStore
from mangaquest.core.exceptions import MangaNotFoundError, PersistenceError
from mangaquest.core.mangadex.client import MangaDexClient
from mangaquest.core.matching import (
    MatchingConfig,
    extract_metadata,
    find_best_candidate,
    metadata_summary,
)
from mangaquest.core.metrics import enrichment_batch_duration_seconds, enrichment_total
from mangaquest.db.models import EnrichmentRun, Manga

logger = structlog.get_logger("mangaquest.enrichment.service")


def format_timestamp(value: float | None) -> str | None:
    """Unix seconds to an ISO 8601 UTC string."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, UTC).isoformat().replace("+00:00", "Z")


def format_coverage(enriched: int, total: int) -> str:
    """Enriched share as a one-decimal percentage, halves rounded up."""
    if not total:
        return "0%"
    percent = (Decimal(enriched) * 100 / Decimal(total)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{percent}%"


class EnrichmentService:
    """Enrich local manga rows with MangaDex metadata.

    The store and the MangaDex client are passed in explicitly; the service
    holds no state between calls. ``sleep`` and ``clock`` are injectable so
    batch pacing and the cooldown can be tested without waiting.
    """

    def __init__(
        self,
        store: MangaStore,
        client: MangaDexClient,
        config: MatchingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.client = client
        self.config = config or MatchingConfig()
        self._sleep = sleep
        self._clock = clock

    async def enrich_single(
        self,
        manga_id: str | None = None,
        api_id: str | None = None,
        force: bool = False,
    ) -> EnrichmentResult:
        """Enrich one manga by internal ID or content API ID.

        Skips the lookup if the manga was synced within the cooldown window,
        unless ``force`` is set.

        Raises:
            ValueError: If neither manga_id nor api_id is given
            MangaNotFoundError: If the manga is not in the store
            PersistenceError: If the store rejects the write
        """
        if not manga_id and not api_id:
            raise ValueError("mangaId or apiId required")

        if manga_id:
            manga = await self.store.get_by_id(manga_id)
        else:
            manga = await self.store.get_by_api_id(api_id)  # type: ignore[arg-type]

        if manga is None:
            raise MangaNotFoundError(manga_id=manga_id, api_id=api_id)

        last_synced = manga.mangadex_last_synced_at
        if not force and last_synced is not None:
            elapsed = self._clock() - last_synced
            if elapsed < self.config.cooldown_seconds:
                logger.debug(
                    "Skipping recently synced manga",
                    manga_id=manga.id,
                    hours_since_sync=round(elapsed / 3600, 2),
                )
                enrichment_total.labels(outcome="skipped").inc()
                return EnrichmentResult(
                    manga_id=manga.id,
                    title=manga.title,
                    skipped=True,
                    reason="Recently synced",
                    last_synced=format_timestamp(last_synced),
                )

        return await self._enrich(manga)

    async def _enrich(self, manga: Manga) -> EnrichmentResult:
        """Look up one manga and persist the outcome (metadata, or sync time only)."""
        match = await find_best_candidate(manga.title, self.client, self.config)
        now = self._clock()

        if match is None:
            # Stamp even without a match so failed lookups wait out the cooldown
            await self.store.mark_synced(manga, int(now))
            enrichment_total.labels(outcome="not_matched").inc()
            return EnrichmentResult(
                manga_id=manga.id,
                title=manga.title,
                matched=False,
                reason="No match found on MangaDex",
                last_synced=format_timestamp(int(now)),
            )

        metadata = extract_metadata(match.candidate, now=now)
        await self.store.apply_metadata(manga, metadata)
        enrichment_total.labels(outcome="matched").inc()

        logger.info(
            "Enriched manga from MangaDex",
            manga_id=manga.id,
            title=manga.title,
            mangadex_id=metadata["mangadex_id"],
            score=round(match.score, 2),
        )

        return EnrichmentResult(
            manga_id=manga.id,
            title=manga.title,
            matched=True,
            mangadex_id=metadata["mangadex_id"],
            score=match.score,
            last_synced=format_timestamp(metadata["mangadex_last_synced_at"]),
            metadata=MetadataSummary(**metadata_summary(metadata)),
        )

    def _resolve_limit(self, limit: int | None) -> int:
        if not limit or limit < 1:
            return self.config.default_batch_limit
        if limit > self.config.max_batch_limit:
            logger.info(
                "Batch limit capped",
                requested=limit,
                max_batch_limit=self.config.max_batch_limit,
            )
            return self.config.max_batch_limit
        return limit

    async def _start_run(self, trigger: str, limit: int, force_refresh: bool) -> EnrichmentRun | None:
        """Record a new run. Run history is best-effort and never blocks enrichment."""
        try:
            return await self.store.create_run(trigger, limit, force_refresh)
        except PersistenceError as e:
            logger.warning("Could not record enrichment run", trigger=trigger, error=str(e))
            return None

    async def _finish_run(self, run: EnrichmentRun | None, status: str, **counts: Any) -> None:
        if run is None:
            return
        try:
            await self.store.finish_run(run, status=status, **counts)
        except PersistenceError as e:
            logger.warning("Could not finalize enrichment run", status=status, error=str(e))

    async def enrich_batch(
        self,
        limit: int | None = None,
        force_refresh: bool = False,
        trigger: str = "api",
    ) -> BatchResult:
        """Enrich up to ``limit`` manga that have never been attempted.

        Items run one at a time with a fixed delay before each lookup to stay
        under the MangaDex rate limit. A failure on one item is recorded and
        the run continues with the next.

        Args:
            limit: Maximum number of manga (defaults to config.default_batch_limit)
            force_refresh: Include manga already enriched or attempted
            trigger: Who started the run ("api" or "schedule")
        """
        limit = self._resolve_limit(limit)
        mangas = await self.store.list_pending(limit, force_refresh=force_refresh)

        if not mangas:
            logger.info("No manga needing enrichment", force_refresh=force_refresh)
            return BatchResult(processed=0, message="No manga needing enrichment")

        # Snapshot before any write: a failed commit expires loaded rows
        pending = [(manga.id, manga.title) for manga in mangas]
        run = await self._start_run(trigger, limit, force_refresh)
        run_id = run.id if run is not None else None
        started = time.monotonic()

        logger.info(
            "Starting batch enrichment",
            run_id=run_id,
            count=len(pending),
            force_refresh=force_refresh,
            trigger=trigger,
        )

        matched = 0
        failed = 0
        results: list[BatchItemResult] = []

        try:
            for manga_id, title in pending:
                await self._sleep(self.config.batch_delay_seconds)
                try:
                    manga = await self.store.get_by_id(manga_id)
                    if manga is None:
                        raise MangaNotFoundError(manga_id=manga_id)
                    outcome = await self._enrich(manga)
                except Exception as e:
                    failed += 1
                    enrichment_total.labels(outcome="failed").inc()
                    logger.error(
                        "Error enriching manga",
                        manga_id=manga_id,
                        title=title,
                        error=str(e),
                        exc_info=True,
                    )
                    results.append(BatchItemResult(id=manga_id, title=title, error=True, reason=str(e)))
                    continue

                if outcome.matched:
                    matched += 1
                results.append(BatchItemResult(id=manga_id, title=title, matched=outcome.matched))
        except BaseException as e:
            logger.error("Batch enrichment aborted", run_id=run_id, processed=len(results), error=repr(e))
            await self._finish_run(
                run,
                status="failed",
                processed=len(results),
                matched=matched,
                failed=failed,
                error=str(e) or type(e).__name__,
            )
            raise

        await self._finish_run(
            run,
            status="completed",
            processed=len(pending),
            matched=matched,
            failed=failed,
        )
        enrichment_batch_duration_seconds.observe(time.monotonic() - started)

        logger.info(
            "Batch enrichment completed",
            run_id=run_id,
            processed=len(pending),
            matched=matched,
            failed=failed,
        )

        return BatchResult(
            run_id=run_id,
            processed=len(pending),
            matched=matched,
            failed=failed,
            results=results,
        )

    async def health(self) -> HealthReport:
        """Enrichment coverage counts. Read-only."""
        total = await self.store.count_total()
        enriched = await self.store.count_enriched()
        pending = await self.store.count_pending()
        coverage = format_coverage(enriched, total)

        return HealthReport(
            status="healthy",
            timestamp=format_timestamp(self._clock()) or "",
            stats=HealthStats(
                total_manga=total,
                enriched=enriched,
                pending=pending,
                coverage=coverage,
            ),
        )
