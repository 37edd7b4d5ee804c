"""Local manga record store used by the enrichment service."""

from __future__ import annotations

import time
from typing import Any

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from mangaquest.core.database import retry_db_operation
from mangaquest.core.exceptions import PersistenceError
from mangaquest.core.matching.titles import normalize_title
from mangaquest.db.models import EnrichmentRun, Manga

logger = structlog.get_logger("mangaquest.enrichment.store")

# Columns extract_metadata() may write
ENRICHMENT_COLUMNS = frozenset(
    {
        "mangadex_id",
        "alt_titles",
        "authors",
        "artists",
        "tags",
        "original_language",
        "publication_demographic",
        "content_rating",
        "mangadex_description",
        "mangadex_last_synced_at",
    }
)


class MangaStore:
    """Reads and writes manga rows through one database session.

    Writes commit immediately and are keyed by the row's own ID, so a batch run
    interrupted part-way leaves processed rows persisted and the rest untouched.
    """

    def __init__(self, session: SQLModelAsyncSession):
        self.session = session

    async def _exec(self, statement: Any) -> Any:
        return await retry_db_operation(
            lambda: self.session.exec(statement),
            session=self.session,
            operation_type="query",
        )

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Store write failed: {e}") from e

    # Reads

    async def get_by_id(self, manga_id: str) -> Manga | None:
        result = await self._exec(select(Manga).where(Manga.id == manga_id))
        return result.one_or_none()

    async def get_by_api_id(self, api_id: str) -> Manga | None:
        result = await self._exec(select(Manga).where(Manga.api_id == api_id))
        return result.one_or_none()

    async def list_pending(self, limit: int, force_refresh: bool = False) -> list[Manga]:
        """Manga needing enrichment, most recently content-synced first.

        Unless force_refresh is set, only rows never attempted (no MangaDex ID
        and no sync timestamp) are returned.
        """
        statement = select(Manga)
        if not force_refresh:
            statement = statement.where(
                col(Manga.mangadex_id).is_(None),
                col(Manga.mangadex_last_synced_at).is_(None),
            )
        statement = statement.order_by(
            col(Manga.last_fetched_at).desc(),
            col(Manga.created_at).desc(),
        ).limit(limit)

        result = await self._exec(statement)
        return list(result.all())

    async def _count(self, *conditions: Any) -> int:
        statement = select(func.count()).select_from(Manga)
        if conditions:
            statement = statement.where(*conditions)
        result = await self._exec(statement)
        return int(result.one() or 0)

    async def count_total(self) -> int:
        return await self._count()

    async def count_enriched(self) -> int:
        return await self._count(col(Manga.mangadex_id).is_not(None))

    async def count_pending(self) -> int:
        return await self._count(
            col(Manga.mangadex_id).is_(None),
            col(Manga.mangadex_last_synced_at).is_(None),
        )

    # Writes

    async def apply_metadata(self, manga: Manga, metadata: dict[str, Any]) -> Manga:
        """Overwrite the enrichment columns of ``manga`` with extracted metadata.

        Raises:
            PersistenceError: If the store rejects the write
        """
        for key, value in metadata.items():
            if key in ENRICHMENT_COLUMNS:
                setattr(manga, key, value)
        manga.updated_at = int(time.time())
        self.session.add(manga)
        await self._commit()
        logger.debug("Applied MangaDex metadata", manga_id=manga.id, mangadex_id=manga.mangadex_id)
        return manga

    async def mark_synced(self, manga: Manga, synced_at: int) -> Manga:
        """Stamp the sync time only, leaving the MangaDex ID untouched.

        Raises:
            PersistenceError: If the store rejects the write
        """
        manga.mangadex_last_synced_at = synced_at
        manga.updated_at = int(time.time())
        self.session.add(manga)
        await self._commit()
        return manga

    async def upsert_manga(
        self,
        api_id: str,
        title: str,
        description: str | None = None,
        cover_url: str | None = None,
        status: str | None = None,
        latest_chapter_number: float | None = None,
        last_fetched_at: int | None = None,
    ) -> Manga:
        """Insert or update a manga by its content API ID.

        Enrichment columns are never touched here.
        """
        manga = await self.get_by_api_id(api_id)
        if manga is None:
            manga = Manga(api_id=api_id, title=title)

        manga.title = title
        manga.normalized_title = normalize_title(title)
        manga.description = description
        manga.cover_url = cover_url
        manga.status = status
        manga.latest_chapter_number = latest_chapter_number
        manga.last_fetched_at = last_fetched_at if last_fetched_at is not None else int(time.time())
        manga.updated_at = int(time.time())

        self.session.add(manga)
        await self._commit()
        return manga

    # Run history

    async def create_run(self, trigger: str, batch_limit: int, force_refresh: bool) -> EnrichmentRun:
        run = EnrichmentRun(trigger=trigger, batch_limit=batch_limit, force_refresh=force_refresh)
        self.session.add(run)
        await self._commit()
        return run

    async def finish_run(
        self,
        run: EnrichmentRun,
        status: str,
        processed: int = 0,
        matched: int = 0,
        failed: int = 0,
        error: str | None = None,
    ) -> EnrichmentRun:
        run.status = status
        run.processed = processed
        run.matched = matched
        run.failed = failed
        run.error = error
        run.completed_at = int(time.time())
        self.session.add(run)
        await self._commit()
        return run

    async def list_runs(self, limit: int = 20) -> list[EnrichmentRun]:
        result = await self._exec(
            select(EnrichmentRun).order_by(col(EnrichmentRun.started_at).desc()).limit(limit)
        )
        return list(result.all())
