"""MangaDex metadata enrichment for locally cached manga."""

from __future__ import annotations

from mangaquest.core.enrichment.models import (
    BatchItemResult,
    BatchResult,
    EnrichmentResult,
    HealthReport,
    HealthStats,
    MetadataSummary,
)
from mangaquest.core.enrichment.service import EnrichmentService, format_timestamp
from mangaquest.core.enrichment.store import MangaStore

__all__ = [
    "EnrichmentService",
    "MangaStore",
    "EnrichmentResult",
    "BatchResult",
    "BatchItemResult",
    "HealthReport",
    "HealthStats",
    "MetadataSummary",
    "format_timestamp",
]
