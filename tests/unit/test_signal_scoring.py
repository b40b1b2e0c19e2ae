"""Unit tests for keyword signal scoring and seasonality summaries."""

import math

import pytest

from stylenya.services.signals.scoring import (
    CompetitionLevel,
    Signal,
    compute_signal_score,
    compute_trend_score,
    format_volume,
    js_round,
    parse_competition,
)
from stylenya.services.signals.seasonality import summarize_seasonality


def test_compute_signal_score_combines_components_and_formats_reasons() -> None:
    result = compute_signal_score(
        {
            "keyword": "birthday banner",
            "avgMonthlySearches": 1200,
            "competitionLevel": "LOW",
            "cpcHigh": 1.2,
            "change3mPct": 0.1,
            "changeYoYPct": -0.6,
        }
    )

    assert result.score == pytest.approx(math.log(1201) + 1)
    assert result.reasons == "V:1k | C:LOW | CPC:$1.20 | 3M:+ | YoY:-60%"


def test_intent_term_depends_on_positive_cpc() -> None:
    base = {"keyword": "k", "avgMonthlySearches": 99, "competitionLevel": "LOW"}

    with_cpc = compute_signal_score({**base, "cpcHigh": 0.01}).score
    zero_cpc = compute_signal_score({**base, "cpcHigh": 0}).score
    no_cpc = compute_signal_score(base).score

    assert zero_cpc == pytest.approx(math.log(100))
    assert no_cpc == pytest.approx(math.log(100))
    assert with_cpc == pytest.approx(math.log(100) + 1)


def test_compute_signal_score_treats_missing_and_non_finite_as_unknown() -> None:
    result = compute_signal_score(
        Signal(
            keyword="x",
            avg_monthly_searches=float("nan"),
            competition_level="bogus",
            cpc_high=float("inf"),
            change_3m_pct=None,
            change_yoy_pct=float("nan"),
        )
    )

    assert result.score == pytest.approx(-1.0)
    assert result.reasons == "V:- | C:UNK | CPC:- | 3M:- | YoY:-"
    assert math.isfinite(result.score)


def test_competition_penalty_orders_levels() -> None:
    scores = {
        level: compute_signal_score(Signal(keyword="k", avg_monthly_searches=100, competition_level=level)).score
        for level in ("LOW", "MEDIUM", "HIGH")
    }

    assert scores["LOW"] - scores["MEDIUM"] == pytest.approx(1.0)
    assert scores["MEDIUM"] - scores["HIGH"] == pytest.approx(1.0)


def test_trend_score_is_bounded() -> None:
    assert compute_trend_score(0.2, 3.0) == 1.0
    assert compute_trend_score(-0.9, -0.51) == -1.0
    assert compute_trend_score(-0.5, 0.0) == 0.0


def test_parse_competition_prefix_matching() -> None:
    assert parse_competition("Low") is CompetitionLevel.LOW
    assert parse_competition("medium") is CompetitionLevel.MEDIUM
    assert parse_competition(" HIGH ") is CompetitionLevel.HIGH
    assert parse_competition(None) is CompetitionLevel.UNKNOWN
    assert parse_competition(3) is CompetitionLevel.UNKNOWN


def test_format_volume_rounds_half_up() -> None:
    assert format_volume(1500) == "2k"
    assert format_volume(999.5) == "1000"
    assert format_volume(12) == "12"
    assert js_round(-0.5) == 0
    assert js_round(2.5) == 3


def test_summarize_seasonality_reports_peak_low_and_trend() -> None:
    monthly = {"2024-03": 300, "2024-01": 100, "2024-02": 900, "2024-04": 50}

    assert summarize_seasonality(monthly) == "Peak 2024-02, low 2024-04, trend down."
    assert summarize_seasonality({"2024-01": 10, "2024-02": 10}) == "Peak 2024-01, low 2024-01, trend flat."
    assert summarize_seasonality({}) is None
    assert summarize_seasonality({"2024-01": float("nan")}) is None
