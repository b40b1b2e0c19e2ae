"""Human summary of a keyword's monthly search curve."""

from __future__ import annotations

from collections.abc import Mapping

from stylenya.services.signals.scoring import finite_or_none


def summarize_seasonality(monthly_searches: Mapping[str, float] | None) -> str | None:
    """Describe peak month, low month and overall direction.

    Keys are ``YYYY-MM`` and sort chronologically. Ties keep the earliest month.
    """
    if not monthly_searches:
        return None

    entries = sorted(
        (month, volume)
        for month, raw in monthly_searches.items()
        if (volume := finite_or_none(raw)) is not None
    )
    if not entries:
        return None

    best = worst = entries[0]
    for entry in entries:
        if entry[1] > best[1]:
            best = entry
        if entry[1] < worst[1]:
            worst = entry

    delta = entries[-1][1] - entries[0][1]
    trend = "up" if delta > 0 else "down" if delta < 0 else "flat"
    return f"Peak {best[0]}, low {worst[0]}, trend {trend}."
