"""Matching configuration - thresholds, limits and pacing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mangaquest.core.config import Settings


@dataclass(frozen=True)
class MatchingConfig:
    """Configuration for MangaDex matching and enrichment runs."""

    # A wrong automatic merge corrupts metadata silently, so favour precision
    match_threshold: float = 0.6

    # Search limits
    search_limit: int = 10

    # A manga synced within this window is not looked up again unless forced
    cooldown_hours: float = 24.0

    # Batch pacing: MangaDex allows 5 requests per second
    batch_delay_seconds: float = 0.25
    default_batch_limit: int = 20
    max_batch_limit: int = 100

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_hours * 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> MatchingConfig:
        """Build the matching config from application settings."""
        return cls(
            match_threshold=settings.match_threshold,
            search_limit=settings.search_limit,
            cooldown_hours=settings.cooldown_hours,
            batch_delay_seconds=settings.batch_delay_seconds,
            default_batch_limit=settings.default_batch_limit,
            max_batch_limit=settings.max_batch_limit,
        )


DEFAULT_CONFIG = MatchingConfig()
