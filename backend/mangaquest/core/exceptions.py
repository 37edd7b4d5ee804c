"""Exception types raised by the enrichment service."""

from __future__ import annotations


class MangaQuestError(Exception):
    """Base class for application errors."""


class ConfigurationError(MangaQuestError):
    """Required configuration (credentials, client identification) is missing."""


class MangaNotFoundError(MangaQuestError):
    """Requested manga is not present in the local store."""

    def __init__(self, manga_id: str | None = None, api_id: str | None = None) -> None:
        self.manga_id = manga_id
        self.api_id = api_id
        super().__init__("Manga not found")


class PersistenceError(MangaQuestError):
    """The local store rejected a write."""
