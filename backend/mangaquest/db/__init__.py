"""Database models and utilities.

This module exports all database models.
"""

from __future__ import annotations

from mangaquest.db.models import EnrichmentRun, Manga, metadata

__all__ = [
    "metadata",
    "Manga",
    "EnrichmentRun",
]
