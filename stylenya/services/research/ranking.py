"""Per-cluster ranking of scored research rows."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Any

from stylenya.services.signals.scoring import finite_or_none

UNKNOWN_CLUSTER = "unknown"


def slugify(value: str | None) -> str:
    slug = (value or "").lower().strip()
    slug = re.sub(r"['\"]", "", slug)
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


def _rank_key(row: Mapping[str, Any]) -> tuple[float, float]:
    return (
        -(finite_or_none(row.get("researchScore")) or 0.0),
        -(finite_or_none(row.get("mentions")) or 0.0),
    )


def add_cluster_rank(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Assign ``clusterId`` and a 1-based ``rank`` inside each cluster.

    Rows are grouped by cluster slug, so labels that differ only in case or
    punctuation share one ranking. Output is ordered by clusterId, then rank.
    """
    groups: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        cluster = row.get("cluster")
        label = cluster if isinstance(cluster, str) else UNKNOWN_CLUSTER
        cluster_id = slugify(label) or UNKNOWN_CLUSTER
        groups.setdefault(cluster_id, []).append(dict(row))

    ranked: list[dict[str, Any]] = []
    for cluster_id in sorted(groups):
        members = sorted(groups[cluster_id], key=_rank_key)
        for rank, member in enumerate(members, start=1):
            member["clusterId"] = cluster_id
            member["rank"] = rank
            ranked.append(member)
    return ranked
