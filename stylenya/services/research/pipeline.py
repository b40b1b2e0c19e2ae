"""Web research pipeline: search, shape evidence, extract rows, score and rank."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, Protocol

from stylenya.services.research.evidence import (
    EVIDENCE_CAPS,
    Evidence,
    ResearchMode,
    SearchHit,
    build_evidence,
    build_result_bundle,
    cap_evidence_by_domain,
    derive_cluster_bundles,
)
from stylenya.services.research.ranking import add_cluster_rank
from stylenya.services.research.scoring import score_and_sort_rows

logger = logging.getLogger(__name__)

MAX_CLUSTERS: dict[str, int] = {"quick": 4, "deep": 7}
SEARCH_PLANS: dict[str, tuple[int, str]] = {
    "quick": (8, "basic"),
    "deep": (10, "advanced"),
}


@dataclass(frozen=True, slots=True)
class ResearchInput:
    query: str
    mode: ResearchMode = "quick"
    market: str | None = None
    locale: str | None = None
    geo: str | None = None
    language: str | None = None
    topic: str | None = None

    @property
    def resolved_market(self) -> str:
        return self.market or self.locale or self.geo or "global"


class SearchClient(Protocol):
    async def search(
        self,
        query: str,
        *,
        max_results: int,
        search_depth: str,
        mode: ResearchMode = "quick",
    ) -> list[SearchHit]: ...


class RowExtractor(Protocol):
    """Turns evidence into keyword rows (the LLM step)."""

    async def __call__(
        self,
        research_input: ResearchInput,
        evidence: Sequence[Evidence],
    ) -> list[dict[str, Any]]: ...


@dataclass(slots=True)
class ResearchPipelineResult:
    rows: list[dict[str, Any]]
    cluster_bundles: list[dict[str, Any]]
    result_bundle: dict[str, Any]
    evidence: list[Evidence] = field(default_factory=list)
    timings_ms: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "clusterBundles": self.cluster_bundles,
            "resultBundle": self.result_bundle,
            "evidence": [e.to_dict() for e in self.evidence],
            "timingsMs": self.timings_ms,
        }


def build_queries(research_input: ResearchInput) -> list[str]:
    base = research_input.query.strip()
    market = research_input.resolved_market
    if research_input.mode == "deep":
        return [
            f"{base} party decorations trends themes {market}",
            f"{base} party decor best sellers Etsy keywords {market}",
        ]
    return [f"{base} party decorations trends {market}"]


def _elapsed_ms(started: float) -> float:
    return round((monotonic() - started) * 1000, 2)


async def run_research_pipeline(
    research_input: ResearchInput,
    *,
    search_client: SearchClient,
    extract_rows: RowExtractor,
) -> ResearchPipelineResult:
    """Run one research pass and return scored, cluster-ranked rows."""
    timings: dict[str, float] = {}
    mode = research_input.mode
    max_results, search_depth = SEARCH_PLANS[mode]
    queries = build_queries(research_input)

    started = monotonic()
    results = await asyncio.gather(
        *(
            search_client.search(q, max_results=max_results, search_depth=search_depth, mode=mode)
            for q in queries
        )
    )
    timings["search"] = _elapsed_ms(started)

    evidence: list[Evidence] = []
    for query, hits in zip(queries, results):
        evidence.extend(build_evidence(hits or [], query=query))
    max_total, max_per_domain = EVIDENCE_CAPS[mode]
    capped = cap_evidence_by_domain(evidence, max_total, max_per_domain)
    logger.info(
        "Research evidence collected",
        extra={"queries": len(queries), "evidence_raw": len(evidence), "evidence_capped": len(capped)},
    )

    started = monotonic()
    raw_rows = await extract_rows(research_input, capped)
    timings["extract"] = _elapsed_ms(started)

    started = monotonic()
    rows = add_cluster_rank(score_and_sort_rows(raw_rows or []))
    bundles = derive_cluster_bundles(rows, MAX_CLUSTERS[mode])
    timings["rank"] = _elapsed_ms(started)

    return ResearchPipelineResult(
        rows=rows,
        cluster_bundles=bundles,
        result_bundle=build_result_bundle(bundles, research_input.query),
        evidence=capped,
        timings_ms=timings,
    )
