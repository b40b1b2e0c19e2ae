"""Dedupe keys for logged decisions, bucketed by ISO week."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any


def stable_stringify(value: Any) -> str:
    """JSON-like rendering with sorted object keys at every depth."""
    if isinstance(value, Mapping):
        items = (f"{json.dumps(str(k), ensure_ascii=False)}: {stable_stringify(value[k])}" for k in sorted(value, key=str))
        return "{" + ", ".join(items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(stable_stringify(v) for v in value) + "]"
    return json.dumps(value, default=str, ensure_ascii=False)


def week_bucket(as_of: datetime | date) -> str:
    """Monday (UTC) of the week containing ``as_of``, as ``YYYY-MM-DD``."""
    if isinstance(as_of, datetime):
        if as_of.tzinfo is not None:
            as_of = as_of.astimezone(timezone.utc)
        day = as_of.date()
    else:
        day = as_of
    return (day - timedelta(days=day.weekday())).isoformat()


def build_dedupe_key(
    *,
    action_type: str,
    target_type: str | None = None,
    target_id: str | None = None,
    sources: Iterable[Any] | None = None,
    as_of: datetime | date | None = None,
) -> str:
    """Key identifying one logical decision per week; source order is irrelevant."""
    normalized_sources = sorted(stable_stringify(source) for source in sources or [])
    bucket = week_bucket(as_of or datetime.now(timezone.utc))
    return "|".join(
        [
            action_type,
            target_type or "",
            target_id or "",
            bucket,
            ", ".join(normalized_sources),
        ]
    )
