"""Unit tests for evidence shaping and the research pipeline."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import pytest

from stylenya.services.research.evidence import (
    Evidence,
    SearchHit,
    build_evidence,
    build_result_bundle,
    cap_evidence_by_domain,
    derive_cluster_bundles,
    truncate,
)
from stylenya.services.research.pipeline import ResearchInput, build_queries, run_research_pipeline


def _evidence(url: str, domain: str) -> Evidence:
    return Evidence(url=url, domain=domain, title=url, snippet="", published_at=None, query="q")


def test_build_evidence_skips_invalid_urls_and_truncates() -> None:
    hits = [
        SearchHit(url="https://www.etsy.com/listing/1", title="  Pink   banner ", content="x" * 600),
        SearchHit(url="ftp://files.example.com/a"),
        SearchHit(url="not a url"),
        SearchHit(url="http://blog.example.com/post", title=None, published_date="2024-01-01"),
    ]
    captured = datetime(2024, 5, 1, tzinfo=timezone.utc)

    evidence = build_evidence(hits, query="pink party", captured_at=captured)

    assert [e.domain for e in evidence] == ["www.etsy.com", "blog.example.com"]
    assert evidence[0].title == "Pink banner"
    assert evidence[0].snippet == "x" * 500 + "…"
    assert evidence[1].title == "blog.example.com"
    assert evidence[1].published_at == "2024-01-01"
    assert evidence[1].captured_at == captured.isoformat()
    assert evidence[0].to_prompt_dict()["query"] == "pink party"


def test_truncate_collapses_whitespace() -> None:
    assert truncate(" a \n\n b ", 10) == "a b"
    assert truncate(None) == ""
    assert truncate("abcdef", 3) == "abc…"


def test_cap_evidence_by_domain_round_robins() -> None:
    items = [_evidence(f"https://a.com/{i}", "a.com") for i in range(5)]
    items += [_evidence(f"https://b.com/{i}", "b.com") for i in range(2)]

    capped = cap_evidence_by_domain(items, max_total=5, max_per_domain=3)

    assert [e.url for e in capped] == [
        "https://a.com/0",
        "https://b.com/0",
        "https://a.com/1",
        "https://b.com/1",
        "https://a.com/2",
    ]


def test_derive_cluster_bundles_orders_by_mentions_and_fills_defaults() -> None:
    rows = [
        {"keyword": "boho banner", "cluster": "Boho", "mentions": 2},
        {
            "keyword": "boho cake topper",
            "cluster": "Boho",
            "mentions": 3,
            "recommendedActions": [{"title": "Write a boho guide", "priority": "P9"}],
            "topEvidence": [{"url": "https://a.com", "title": "A"}],
        },
        {"keyword": "dino plates", "cluster": "Dinosaur", "mentions": 1},
        {"keyword": "misc", "mentions": 0},
    ]

    bundles = derive_cluster_bundles(rows, max_clusters=2)

    assert [b["cluster"] for b in bundles] == ["Boho", "Dinosaur"]
    assert bundles[0]["topKeywords"] == ["boho banner", "boho cake topper"]
    assert bundles[0]["recommendedActions"] == [{"title": "Write a boho guide", "priority": "P1"}]
    assert bundles[0]["topEvidence"] == [{"url": "https://a.com", "title": "A"}]
    assert bundles[1]["recommendedActions"] == [
        {"title": "Create Etsy/Shopify listing SEO set for: Dinosaur", "priority": "P1"}
    ]

    bundle = build_result_bundle(bundles, "party themes")
    assert bundle["title"] == "Web Research: party themes"
    assert bundle["summary"].startswith("• Boho: boho banner, boho cake topper")
    assert bundle["sources"] == [{"url": "https://a.com", "title": "A"}]


def test_build_result_bundle_without_clusters() -> None:
    bundle = build_result_bundle([], "x")
    assert bundle["summary"] == "No strong clusters were found from the provided evidence."
    assert bundle["nextSteps"] == []


def test_build_queries_by_mode() -> None:
    assert build_queries(ResearchInput(query=" unicorn ", locale="US")) == [
        "unicorn party decorations trends US"
    ]
    assert len(build_queries(ResearchInput(query="unicorn", mode="deep"))) == 2


class _FakeSearchClient:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def search(self, query: str, *, max_results: int, search_depth: str, mode: str = "quick") -> list[SearchHit]:
        self.calls.append({"query": query, "max_results": max_results, "search_depth": search_depth})
        return [
            SearchHit(url=f"https://shop{i}.com/{len(self.calls)}", title=f"Hit {i}", content="ideas")
            for i in range(3)
        ]


@pytest.mark.asyncio
async def test_run_research_pipeline_scores_and_ranks_extracted_rows() -> None:
    search_client = _FakeSearchClient()
    seen_evidence: list[Evidence] = []

    async def extract_rows(research_input: ResearchInput, evidence: Sequence[Evidence]) -> list[dict[str, Any]]:
        seen_evidence.extend(evidence)
        return [
            {"keyword": "dino banner", "cluster": "Dinosaur", "mentions": 1},
            {"keyword": "dino cake", "cluster": "Dinosaur", "mentions": 5, "recencyScore": 0.9},
            {"keyword": "space balloons", "cluster": "Space", "mentions": 2},
        ]

    result = await run_research_pipeline(
        ResearchInput(query="kids birthday", mode="deep"),
        search_client=search_client,
        extract_rows=extract_rows,
    )

    assert [call["search_depth"] for call in search_client.calls] == ["advanced", "advanced"]
    assert all(call["max_results"] == 10 for call in search_client.calls)
    assert len(seen_evidence) == 6
    assert [(r["clusterId"], r["rank"], r["keyword"]) for r in result.rows] == [
        ("dinosaur", 1, "dino cake"),
        ("dinosaur", 2, "dino banner"),
        ("space", 1, "space balloons"),
    ]
    assert [b["cluster"] for b in result.cluster_bundles] == ["Dinosaur", "Space"]
    assert set(result.timings_ms) == {"search", "extract", "rank"}

    payload = result.to_dict()
    assert payload["resultBundle"]["title"] == "Web Research: kids birthday"
    assert len(payload["evidence"]) == 6
    assert set(payload["evidence"][0]) == {"url", "domain", "title", "snippet", "publishedAt", "query", "capturedAt"}
