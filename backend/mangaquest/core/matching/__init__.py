"""Title matching against the MangaDex catalog.

Normalization and similarity scoring, best-candidate selection, and
metadata extraction for accepted candidates.
"""

from .candidates import CandidateMatch, candidate_titles, find_best_candidate, select_best_candidate
from .config import DEFAULT_CONFIG, MatchingConfig
from .extract import extract_metadata, metadata_summary
from .titles import normalize_title, title_similarity, title_tokens

__all__ = [
    "MatchingConfig",
    "DEFAULT_CONFIG",
    "normalize_title",
    "title_tokens",
    "title_similarity",
    "CandidateMatch",
    "candidate_titles",
    "select_best_candidate",
    "find_best_candidate",
    "extract_metadata",
    "metadata_summary",
]
