"""Composite research score for evidence-backed keyword rows."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from stylenya.services.signals.scoring import finite_or_none

MENTIONS_CAP = 6
DIVERSITY_FLOOR = 3

BASE_WEIGHT = 0.10
MENTIONS_WEIGHT = 0.60
RECENCY_WEIGHT = 0.25
DIVERSITY_WEIGHT = 0.05

DEFAULT_RECENCY = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def normalize_mentions(mentions: Any, cap: int = MENTIONS_CAP) -> float:
    count = finite_or_none(mentions) or 0.0
    return clamp(clamp(count, 0.0, cap) / cap)


def compute_research_score(
    mentions: Any,
    recency_score: Any = DEFAULT_RECENCY,
    sources_count: Any = 1,
    domains_count: Any = 1,
) -> float:
    """Score in [0, 1]: 0.10 base + 0.60 mentions + 0.25 recency + 0.05 diversity."""
    mentions_norm = normalize_mentions(mentions)

    recency_value = finite_or_none(recency_score)
    recency = clamp(DEFAULT_RECENCY if recency_value is None else recency_value)

    domains = max(1.0, finite_or_none(domains_count) or 1.0)
    sources = max(1.0, finite_or_none(sources_count) or 1.0)
    diversity = clamp(domains / max(DIVERSITY_FLOOR, sources))

    score = (
        BASE_WEIGHT
        + MENTIONS_WEIGHT * mentions_norm
        + RECENCY_WEIGHT * recency
        + DIVERSITY_WEIGHT * diversity
    )
    return clamp(score)


def _number(row: Mapping[str, Any], key: str, default: float) -> float:
    value = finite_or_none(row.get(key))
    return default if value is None else value


def score_and_sort_rows(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Annotate copies of the rows with ``researchScore``; best first, then most mentions."""
    scored: list[dict[str, Any]] = []
    for row in rows:
        annotated = dict(row)
        annotated["researchScore"] = compute_research_score(
            mentions=_number(row, "mentions", 0),
            recency_score=_number(row, "recencyScore", DEFAULT_RECENCY),
            sources_count=_number(row, "sourcesCount", 1),
            domains_count=_number(row, "domainsCount", 1),
        )
        scored.append(annotated)

    scored.sort(key=lambda r: (-r["researchScore"], -_number(r, "mentions", 0)))
    return scored
