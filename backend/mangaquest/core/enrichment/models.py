"""Pydantic models for enrichment results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataSummary(BaseModel):
    """Short description of what a match contributed."""

    authors: list[str] = Field(default_factory=list, description="Author names")
    artists: list[str] = Field(default_factory=list, description="Artist names")
    tags: int = Field(default=0, description="Number of tags")
    alt_titles: int = Field(default=0, description="Number of alternate titles")


class EnrichmentResult(BaseModel):
    """Outcome of enriching one manga: skipped, matched or not matched."""

    success: bool = True
    manga_id: str = Field(..., description="Local manga ID")
    title: str = Field(..., description="Local title used as the search query")
    skipped: bool = Field(default=False, description="True if skipped because of the cooldown")
    matched: bool = Field(default=False, description="True if a MangaDex match was applied")
    reason: str | None = Field(default=None, description="Why nothing was applied")
    mangadex_id: str | None = Field(default=None, description="Matched MangaDex ID")
    score: float | None = Field(default=None, description="Similarity of the matched title")
    last_synced: str | None = Field(default=None, description="Sync timestamp (ISO 8601)")
    metadata: MetadataSummary | None = None

    @property
    def outcome(self) -> str:
        if self.skipped:
            return "skipped"
        return "matched" if self.matched else "not_matched"

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class BatchItemResult(BaseModel):
    """Per-manga entry of a batch run."""

    id: str
    title: str
    matched: bool = False
    error: bool = False
    reason: str | None = None


class BatchResult(BaseModel):
    """Outcome of a batch enrichment run."""

    success: bool = True
    run_id: str | None = None
    processed: int = 0
    matched: int = 0
    failed: int = 0
    results: list[BatchItemResult] = Field(default_factory=list)
    message: str | None = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class HealthStats(BaseModel):
    total_manga: int = 0
    enriched: int = 0
    pending: int = 0
    coverage: str = "0%"


class HealthReport(BaseModel):
    """Read-only enrichment coverage report."""

    status: str = "healthy"
    timestamp: str
    stats: HealthStats

    def to_response(self) -> dict[str, Any]:
        return self.model_dump()
