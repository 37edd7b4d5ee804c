"""Extract enrichment metadata from a MangaDex manga record.

Every rule here is total: missing or malformed optional fields degrade to empty
lists or None instead of raising.
"""

from __future__ import annotations

import time
from typing import Any


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _related_names(relationships: list[Any], relation_type: str) -> list[str]:
    """Names of related entities of one type, falling back to their IDs."""
    names: list[str] = []
    for relation in relationships:
        if not isinstance(relation, dict) or relation.get("type") != relation_type:
            continue
        name = _as_dict(relation.get("attributes")).get("name") or relation.get("id")
        if name:
            names.append(str(name))
    return names


def _extract_tags(tags: list[Any]) -> list[dict[str, Any]]:
    extracted: list[dict[str, Any]] = []
    for tag in tags:
        if not isinstance(tag, dict):
            continue
        attributes = _as_dict(tag.get("attributes"))
        names = _as_dict(attributes.get("name"))
        extracted.append(
            {
                "id": tag.get("id"),
                "name": names.get("en") or names.get("ja") or "Unknown",
                "group": attributes.get("group") or "unknown",
            }
        )
    return extracted


def _extract_alt_titles(alt_titles: list[Any]) -> list[dict[str, str]]:
    extracted: list[dict[str, str]] = []
    for entry in alt_titles:
        if not isinstance(entry, dict) or not entry:
            continue
        lang, value = next(iter(entry.items()))
        extracted.append({"lang": lang, "title": value})
    return extracted


def _pick_description(description: dict[str, Any]) -> str | None:
    """English, then Japanese, then the first available language."""
    text = description.get("en") or description.get("ja")
    if not text:
        text = next(iter(description.values()), None)
    return text or None


def extract_metadata(candidate: dict[str, Any], now: float | None = None) -> dict[str, Any]:
    """Flatten a MangaDex manga record into the local enrichment columns.

    Args:
        candidate: Manga record from the MangaDex search response
        now: Sync time as Unix seconds (defaults to the current time)

    Returns:
        Dict keyed by Manga column names, ready to apply to the local row
    """
    attributes = _as_dict(candidate.get("attributes"))
    relationships = _as_list(candidate.get("relationships"))
    synced_at = int(now if now is not None else time.time())

    return {
        "mangadex_id": candidate.get("id"),
        "alt_titles": _extract_alt_titles(_as_list(attributes.get("altTitles"))),
        "authors": _related_names(relationships, "author"),
        "artists": _related_names(relationships, "artist"),
        "tags": _extract_tags(_as_list(attributes.get("tags"))),
        "original_language": attributes.get("originalLanguage") or None,
        "publication_demographic": attributes.get("publicationDemographic") or None,
        "content_rating": attributes.get("contentRating") or None,
        "mangadex_description": _pick_description(_as_dict(attributes.get("description"))),
        "mangadex_last_synced_at": synced_at,
    }


def metadata_summary(metadata: dict[str, Any]) -> dict[str, Any]:
    """Short summary of extracted metadata for API responses."""
    return {
        "authors": metadata.get("authors") or [],
        "artists": metadata.get("artists") or [],
        "tags": len(metadata.get("tags") or []),
        "alt_titles": len(metadata.get("alt_titles") or []),
    }
