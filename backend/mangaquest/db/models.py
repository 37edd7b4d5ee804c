"""Database models for MangaQuest.

All SQLModel models should be defined here and imported in db/__init__.py.

Models follow these patterns:
- Singular class names, plural snake_case table names
- uuid.uuid4().hex for IDs (32 character hex strings)
- Timestamps are Unix epoch seconds (int)
- JSON columns for list-valued enrichment data
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy import JSON, Column, Index, Text
from sqlmodel import Field, SQLModel

metadata = SQLModel.metadata


class Manga(SQLModel, table=True):
    """Locally cached manga, registered by content sync and enriched from MangaDex.

    A manga is "enriched" iff mangadex_id is set, and "attempted" iff
    mangadex_last_synced_at is set (whether or not a match was found).
    """

    __tablename__ = "mangas"  # type: ignore[assignment]

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    api_id: str = Field(unique=True, index=True)  # ID in the primary content API
    title: str
    normalized_title: str | None = Field(default=None)
    description: str | None = Field(default=None, sa_column=Column(Text))
    cover_url: str | None = Field(default=None)
    status: str | None = Field(default=None)
    latest_chapter_number: float | None = Field(default=None)
    last_fetched_at: int | None = Field(default=None)  # Last content sync

    # MangaDex enrichment columns, all nullable and independently overwritable
    mangadex_id: str | None = Field(default=None)
    # [{"lang": "ja-ro", "title": "..."}]
    alt_titles: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSON))
    authors: list[str] | None = Field(default=None, sa_column=Column(JSON))
    artists: list[str] | None = Field(default=None, sa_column=Column(JSON))
    # [{"id": "...", "name": "Action", "group": "genre"}]
    tags: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSON))
    original_language: str | None = Field(default=None)
    publication_demographic: str | None = Field(default=None)
    content_rating: str | None = Field(default=None)
    mangadex_description: str | None = Field(default=None, sa_column=Column(Text))
    mangadex_last_synced_at: int | None = Field(default=None)

    created_at: int = Field(default_factory=lambda: int(time.time()))
    updated_at: int = Field(default_factory=lambda: int(time.time()))

    __table_args__ = (
        Index("idx_mangas_mangadex_id", "mangadex_id"),
        Index("idx_mangas_mangadex_last_synced_at", "mangadex_last_synced_at"),
        Index("idx_mangas_last_fetched_at", "last_fetched_at"),
    )


class EnrichmentRun(SQLModel, table=True):
    """One batch enrichment run, for operational history."""

    __tablename__ = "enrichment_runs"  # type: ignore[assignment]

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    trigger: str = Field(default="api", index=True)  # api, schedule
    status: str = Field(default="running", index=True)  # running, completed, failed
    force_refresh: bool = Field(default=False)
    batch_limit: int = Field(default=0)
    processed: int = Field(default=0)
    matched: int = Field(default=0)
    failed: int = Field(default=0)
    error: str | None = Field(default=None)
    started_at: int = Field(default_factory=lambda: int(time.time()))
    completed_at: int | None = Field(default=None)
