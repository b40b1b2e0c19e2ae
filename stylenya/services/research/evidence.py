"""Shaping search hits into evidence and rows into cluster bundles."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal
from urllib.parse import urlparse

ResearchMode = Literal["quick", "deep"]

TITLE_MAX_CHARS = 140
SNIPPET_MAX_CHARS = 500

# (max evidence items, max items per domain)
EVIDENCE_CAPS: dict[str, tuple[int, int]] = {
    "quick": (10, 3),
    "deep": (25, 4),
}

VALID_PRIORITIES = {"P0", "P1", "P2"}


@dataclass(frozen=True, slots=True)
class SearchHit:
    """One raw result from the search provider."""

    url: str
    title: str | None = None
    content: str | None = None
    score: float | None = None
    published_date: str | None = None


@dataclass(frozen=True, slots=True)
class Evidence:
    url: str
    domain: str
    title: str
    snippet: str
    published_at: str | None
    query: str
    captured_at: str | None = None

    def to_prompt_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "domain": self.domain,
            "title": self.title,
            "snippet": self.snippet,
            "publishedAt": self.published_at,
            "query": self.query,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.to_prompt_dict(), "capturedAt": self.captured_at}


def truncate(text: str | None, max_chars: int = SNIPPET_MAX_CHARS) -> str:
    clean = re.sub(r"\s+", " ", text or "").strip()
    return clean[:max_chars] + "…" if len(clean) > max_chars else clean


def build_evidence(
    hits: Iterable[SearchHit],
    *,
    query: str,
    captured_at: datetime | None = None,
) -> list[Evidence]:
    """Convert hits to evidence, skipping anything without an http(s) host."""
    captured = (captured_at or datetime.now(timezone.utc)).isoformat()
    evidence: list[Evidence] = []
    for hit in hits:
        parsed = urlparse(hit.url or "")
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            continue
        evidence.append(
            Evidence(
                url=hit.url,
                domain=parsed.hostname,
                title=truncate(hit.title or parsed.hostname, TITLE_MAX_CHARS),
                snippet=truncate(hit.content, SNIPPET_MAX_CHARS),
                published_at=hit.published_date or None,
                query=query,
                captured_at=captured,
            )
        )
    return evidence


def cap_evidence_by_domain(
    items: Sequence[Evidence],
    max_total: int,
    max_per_domain: int,
) -> list[Evidence]:
    """Take items round-robin across domains so no single site dominates."""
    by_domain: dict[str, list[Evidence]] = {}
    for item in items:
        by_domain.setdefault(item.domain, []).append(item)

    queues = [list(domain_items[:max_per_domain]) for domain_items in by_domain.values()]
    out: list[Evidence] = []
    while len(out) < max_total and any(queues):
        for queue in queues:
            if queue and len(out) < max_total:
                out.append(queue.pop(0))
    return out


def _cluster_label(row: Mapping[str, Any], fallback: str) -> str:
    cluster = row.get("cluster")
    if isinstance(cluster, str) and cluster.strip():
        return cluster.strip()
    return fallback


def _mentions(row: Mapping[str, Any]) -> float:
    try:
        return float(row.get("mentions") or 0)
    except (TypeError, ValueError):
        return 0.0


def _evidence_links(items: Iterable[Mapping[str, Any]], limit: int) -> list[dict[str, str]]:
    links: list[dict[str, str]] = []
    for item in items:
        for entry in item.get("topEvidence") or []:
            if isinstance(entry, Mapping) and entry.get("url") and entry.get("title"):
                links.append({"url": str(entry["url"]), "title": str(entry["title"])})
                if len(links) >= limit:
                    return links
    return links


def derive_cluster_bundles(
    rows: Iterable[Mapping[str, Any]],
    max_clusters: int,
) -> list[dict[str, Any]]:
    """Summarize rows per cluster; clusters with the most mentions come first."""
    by_cluster: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        by_cluster.setdefault(_cluster_label(row, "Unclustered"), []).append(row)

    ordered = sorted(
        by_cluster.items(),
        key=lambda item: (-sum(_mentions(r) for r in item[1]), -len(item[1])),
    )[: max(0, max_clusters)]

    bundles: list[dict[str, Any]] = []
    for cluster, items in ordered:
        actions = [
            action
            for item in items
            for action in item.get("recommendedActions") or []
            if isinstance(action, Mapping)
        ][:3]
        if not actions:
            actions = [{"title": f"Create Etsy/Shopify listing SEO set for: {cluster}", "priority": "P1"}]

        bundles.append(
            {
                "cluster": cluster,
                "topKeywords": [str(i["keyword"]) for i in items if i.get("keyword")][:5],
                "recommendedActions": [
                    {
                        "title": str(action.get("title") or "").strip()
                        or f"Create SEO content for {cluster}",
                        "priority": action.get("priority")
                        if action.get("priority") in VALID_PRIORITIES
                        else "P1",
                    }
                    for action in actions
                ],
                "topEvidence": _evidence_links(items, 2),
            }
        )
    return bundles


def build_result_bundle(cluster_bundles: Sequence[Mapping[str, Any]], prompt: str) -> dict[str, Any]:
    """Headline summary built from the top three clusters."""
    top = list(cluster_bundles[:3])
    summary = "\n".join(
        f"• {c['cluster']}: {', '.join(list(c.get('topKeywords') or [])[:3])}" for c in top
    ).strip()

    return {
        "title": f"Web Research: {prompt}",
        "summary": summary or "No strong clusters were found from the provided evidence.",
        "nextSteps": [a["title"] for c in top for a in c.get("recommendedActions") or []][:5],
        "sources": [
            {"url": e["url"], "title": e["title"]} for c in top for e in c.get("topEvidence") or []
        ][:5],
    }
