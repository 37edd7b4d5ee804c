"""Title normalization and word-set similarity.

Normalized titles are comparison keys only; they are never displayed or stored
as the canonical title.
"""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_title(title: str | None) -> str:
    """Normalize a title into a comparison key.

    Lowercases, drops every character that is not a-z, 0-9 or whitespace,
    collapses whitespace runs to a single space and trims.

    Examples:
        "Attack On Titan!" -> "attack on titan"
        "Kaguya-sama: Love Is War" -> "kaguyasama love is war"
        "!!!" -> ""
    """
    if not title:
        return ""
    text = _NON_ALNUM.sub("", title.lower())
    return _WHITESPACE.sub(" ", text).strip()


def title_tokens(normalized: str) -> set[str]:
    """Split a normalized title into its set of words longer than one character."""
    return {word for word in normalized.split(" ") if len(word) > 1}


def title_similarity(normalized_a: str, normalized_b: str) -> float:
    """Jaccard similarity of the word sets of two normalized titles.

    Single-character words are ignored. Returns 0.0 if either side has no
    remaining words, otherwise |A & B| / |A | B| in [0, 1].
    """
    words_a = title_tokens(normalized_a)
    words_b = title_tokens(normalized_b)

    if not words_a or not words_b:
        return 0.0

    return len(words_a & words_b) / len(words_a | words_b)
