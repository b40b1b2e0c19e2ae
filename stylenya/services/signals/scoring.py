"""Keyword signal opportunity scoring."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class CompetitionLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    UNKNOWN = "UNKNOWN"

    @property
    def label(self) -> str:
        return "UNK" if self is CompetitionLevel.UNKNOWN else self.value


COMPETITION_PENALTY: dict[CompetitionLevel, float] = {
    CompetitionLevel.LOW: 0.0,
    CompetitionLevel.MEDIUM: -1.0,
    CompetitionLevel.HIGH: -2.0,
    CompetitionLevel.UNKNOWN: -1.0,
}

TREND_STEP = 0.5
TREND_DROP_THRESHOLD = -0.5


def finite_or_none(value: Any) -> float | None:
    """Coerce to float; None for missing, non-numeric, NaN or infinite values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def js_round(value: float) -> int:
    """Round half up, matching how the dashboard rounds numbers."""
    return math.floor(value + 0.5)


def parse_competition(value: Any) -> CompetitionLevel:
    """Map free-text competition labels onto the closed enum.

    Case-insensitive prefix match on low/med/high; anything else is UNKNOWN.
    """
    if isinstance(value, CompetitionLevel):
        return value
    if not isinstance(value, str):
        return CompetitionLevel.UNKNOWN
    lowered = value.strip().lower()
    if lowered.startswith("low"):
        return CompetitionLevel.LOW
    if lowered.startswith("med"):
        return CompetitionLevel.MEDIUM
    if lowered.startswith("high"):
        return CompetitionLevel.HIGH
    return CompetitionLevel.UNKNOWN


@dataclass(frozen=True, slots=True)
class Signal:
    """A single keyword/market metric."""

    keyword: str
    avg_monthly_searches: float | None = None
    competition_level: str | CompetitionLevel | None = None
    cpc_high: float | None = None
    change_3m_pct: float | None = None
    change_yoy_pct: float | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Signal:
        """Build from snake_case or camelCase keys."""

        def pick(*names: str) -> Any:
            for name in names:
                if name in data:
                    return data[name]
            return None

        return cls(
            keyword=str(pick("keyword") or ""),
            avg_monthly_searches=pick("avg_monthly_searches", "avgMonthlySearches"),
            competition_level=pick("competition_level", "competitionLevel"),
            cpc_high=pick("cpc_high", "cpcHigh"),
            change_3m_pct=pick("change_3m_pct", "change3mPct"),
            change_yoy_pct=pick("change_yoy_pct", "changeYoYPct"),
        )


@dataclass(frozen=True, slots=True)
class SignalScore:
    score: float
    reasons: str


def format_volume(avg_monthly_searches: Any) -> str:
    volume = finite_or_none(avg_monthly_searches)
    if volume is None:
        return "-"
    if volume >= 1000:
        return f"{js_round(volume / 1000)}k"
    return str(js_round(volume))


def format_pct(value: Any) -> str:
    """Positive changes render as a bare "+"; the magnitude is not shown."""
    pct = finite_or_none(value)
    if pct is None:
        return "-"
    if pct > 0:
        return "+"
    return f"{js_round(pct * 100)}%"


def format_cpc(value: Any) -> str:
    cpc = finite_or_none(value)
    if cpc is None:
        return "-"
    return f"${cpc:.2f}"


def compute_volume_score(avg_monthly_searches: Any) -> float:
    volume = finite_or_none(avg_monthly_searches)
    if volume is None or volume <= -1:
        return 0.0
    return math.log(volume + 1)


def compute_intent_score(cpc_high: Any) -> float:
    cpc = finite_or_none(cpc_high)
    return 1.0 if cpc is not None and cpc > 0 else 0.0


def compute_trend_score(change_3m_pct: Any, change_yoy_pct: Any) -> float:
    score = 0.0
    for raw in (change_3m_pct, change_yoy_pct):
        change = finite_or_none(raw)
        if change is None:
            continue
        if change > 0:
            score += TREND_STEP
        elif change < TREND_DROP_THRESHOLD:
            score -= TREND_STEP
    return score


def compute_signal_score(signal: Signal | Mapping[str, Any]) -> SignalScore:
    """Additive opportunity score (unbounded) plus a display string of its inputs."""
    if not isinstance(signal, Signal):
        signal = Signal.from_mapping(signal)

    competition = parse_competition(signal.competition_level)
    score = (
        compute_volume_score(signal.avg_monthly_searches)
        + COMPETITION_PENALTY[competition]
        + compute_intent_score(signal.cpc_high)
        + compute_trend_score(signal.change_3m_pct, signal.change_yoy_pct)
    )

    reasons = " | ".join(
        [
            f"V:{format_volume(signal.avg_monthly_searches)}",
            f"C:{competition.label}",
            f"CPC:{format_cpc(signal.cpc_high)}",
            f"3M:{format_pct(signal.change_3m_pct)}",
            f"YoY:{format_pct(signal.change_yoy_pct)}",
        ]
    )
    return SignalScore(score=score, reasons=reasons)
