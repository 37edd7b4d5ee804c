"""Candidate search and best-match selection against the MangaDex catalog."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from .config import DEFAULT_CONFIG, MatchingConfig
from .titles import normalize_title, title_similarity

if TYPE_CHECKING:
    from mangaquest.core.mangadex.client import MangaDexClient

logger = structlog.get_logger("mangaquest.matching.candidates")

# Primary title languages compared, in this order, before alternate titles
PRIMARY_TITLE_LANGUAGES = ("en", "ja", "ja-ro")


@dataclass(frozen=True)
class CandidateMatch:
    """Best candidate found for a local title."""

    candidate: dict[str, Any]
    score: float
    matched_title: str

    @property
    def mangadex_id(self) -> str | None:
        return self.candidate.get("id")


def candidate_titles(candidate: dict[str, Any]) -> list[str]:
    """List every title of a candidate worth comparing.

    Primary English, Japanese and romanized Japanese titles first, then the
    single value of each alternate-title entry. Empty values are skipped.
    """
    attributes = candidate.get("attributes")
    if not isinstance(attributes, dict):
        return []

    titles: list[str] = []

    primary = attributes.get("title")
    if isinstance(primary, dict):
        for lang in PRIMARY_TITLE_LANGUAGES:
            value = primary.get(lang)
            if value and isinstance(value, str):
                titles.append(value)

    alt_titles = attributes.get("altTitles")
    if isinstance(alt_titles, list):
        for entry in alt_titles:
            if not isinstance(entry, dict) or not entry:
                continue
            value = next(iter(entry.values()))
            if value and isinstance(value, str):
                titles.append(value)

    return titles


def select_best_candidate(
    title: str,
    candidates: Iterable[dict[str, Any]],
    config: MatchingConfig | None = None,
) -> CandidateMatch | None:
    """Pick the candidate whose best title is most similar to ``title``.

    Every title of every candidate is scored; the highest score wins. On ties
    the first candidate reaching the maximum (in provider order) is kept.
    The winner is accepted only if its score reaches ``config.match_threshold``.

    Args:
        title: Raw local title
        candidates: Candidate records in provider relevance order
        config: Matching configuration (defaults to DEFAULT_CONFIG)

    Returns:
        CandidateMatch, or None if nothing clears the threshold
    """
    if config is None:
        config = DEFAULT_CONFIG

    normalized_search = normalize_title(title)

    best: CandidateMatch | None = None
    best_score = 0.0

    for candidate in candidates:
        if not isinstance(candidate, dict):
            continue
        for candidate_title in candidate_titles(candidate):
            score = title_similarity(normalized_search, normalize_title(candidate_title))
            if score > best_score:
                best_score = score
                best = CandidateMatch(
                    candidate=candidate, score=score, matched_title=candidate_title
                )

    if best is not None and best.score >= config.match_threshold:
        logger.info(
            "Found MangaDex match",
            title=title,
            mangadex_id=best.mangadex_id,
            matched_title=best.matched_title,
            score=round(best.score, 2),
        )
        return best

    logger.info("No confident MangaDex match", title=title, best_score=round(best_score, 2))
    return None


async def find_best_candidate(
    title: str,
    client: MangaDexClient,
    config: MatchingConfig | None = None,
) -> CandidateMatch | None:
    """Search MangaDex for ``title`` and return the accepted best candidate.

    Lookup failures (network errors, non-2xx responses, malformed bodies) are
    handled by the client and come back as an empty candidate list, so they
    read as "no match" here.
    """
    if config is None:
        config = DEFAULT_CONFIG

    candidates = await client.search_manga(title, limit=config.search_limit)
    if not candidates:
        logger.info("No MangaDex results", title=title)
        return None

    return select_best_candidate(title, candidates, config)
