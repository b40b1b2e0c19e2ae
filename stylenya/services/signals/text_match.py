"""Term normalization and phrase matching for keyword relevance."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

_NON_ALNUM_PATTERN = re.compile(r"[^\w\s]|_")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Lowercase, fold diacritics, replace punctuation with spaces, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text))
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM_PATTERN.sub(" ", folded.lower())
    return _WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def phrase_match(haystack_norm: str, needle_norm: str) -> bool:
    """Substring match on already-normalized text.

    Not token-aware: "unicorn party" matches "corn".
    """
    if not haystack_norm or not needle_norm:
        return False
    return needle_norm in haystack_norm


def normalize_terms(terms: Iterable[str | None]) -> list[str]:
    """Normalize terms, dropping empties and duplicates while keeping order."""
    seen: set[str] = set()
    out: list[str] = []
    for term in terms:
        normalized = normalize(term)
        if normalized and normalized not in seen:
            seen.add(normalized)
            out.append(normalized)
    return out


def matches_any(keyword_norm: str, terms_norm: Iterable[str]) -> bool:
    return any(phrase_match(keyword_norm, term) for term in terms_norm)
