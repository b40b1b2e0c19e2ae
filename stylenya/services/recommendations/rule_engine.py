"""First-match decision table that assigns each product a weekly focus action.

Rules are evaluated in order and the first matching rule decides the action:

1. MIGRATE: strong 90-day Etsy demand, not yet listed on Shopify.
2. RETIRE: weak 180-day performance and the product is not seasonal.
3. BOOST: strong 90-day demand and already listed on Shopify.
4. PAUSE: seasonal product whose 90-day demand is under half the boost threshold.
5. KEEP: nothing above matched.

Customer requests never change the action; they only add a reason and raise
the priority score.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stylenya.services.recommendations.types import (
    EngineSettings,
    FocusAction,
    ProductSignals,
    Seasonality,
    WeeklyFocusItem,
)

BASE_SCORES: dict[FocusAction, int] = {
    FocusAction.MIGRATE: 60,
    FocusAction.BOOST: 45,
    FocusAction.RETIRE: 35,
    FocusAction.KEEP: 15,
    FocusAction.PAUSE: 10,
}

D90_WEIGHT = 2
REQUEST_WEIGHT = 10
NOT_IN_SHOPIFY_BONUS = 8

KEEP_FALLBACK_WHY = "Stable signals; keep as-is for now."


@dataclass(frozen=True, slots=True)
class Rule:
    action: FocusAction
    matches: Callable[[ProductSignals, EngineSettings], bool]
    reason: Callable[[ProductSignals], str]


def pause_threshold(settings: EngineSettings) -> int:
    return max(1, settings.boost_sales_threshold_d90 // 2)


def _is_seasonal(signals: ProductSignals) -> bool:
    return signals.seasonality != Seasonality.NONE


RULES: tuple[Rule, ...] = (
    Rule(
        action=FocusAction.MIGRATE,
        matches=lambda s, cfg: not s.in_shopify and s.d90_units >= cfg.boost_sales_threshold_d90,
        reason=lambda s: f"Strong Etsy demand (D90={s.d90_units}) and not yet in Shopify",
    ),
    Rule(
        action=FocusAction.RETIRE,
        matches=lambda s, cfg: s.d180_units <= cfg.retire_sales_threshold_d180 and not _is_seasonal(s),
        reason=lambda s: f"Low Etsy performance (D180={s.d180_units}) and not seasonal",
    ),
    Rule(
        action=FocusAction.BOOST,
        matches=lambda s, cfg: s.in_shopify and s.d90_units >= cfg.boost_sales_threshold_d90,
        reason=lambda s: f"Strong Etsy demand (D90={s.d90_units}) and already in Shopify",
    ),
    Rule(
        action=FocusAction.PAUSE,
        matches=lambda s, cfg: _is_seasonal(s) and s.d90_units < pause_threshold(cfg),
        reason=lambda s: (
            f"Seasonal item with low recent demand (Season={s.seasonality.value}, D90={s.d90_units})"
        ),
    ),
)


def _count(value: Any) -> int:
    """Coerce a unit count; non-finite or negative input counts as zero."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def sanitize_signals(signals: ProductSignals) -> ProductSignals:
    return ProductSignals(
        in_shopify=bool(signals.in_shopify),
        d90_units=_count(signals.d90_units),
        d180_units=_count(signals.d180_units),
        requests_30d=_count(signals.requests_30d),
        seasonality=signals.seasonality,
    )


def base_score(action: FocusAction) -> int:
    return BASE_SCORES[action]


def select_action(signals: ProductSignals, settings: EngineSettings) -> tuple[FocusAction, list[str]]:
    """Return the winning action and the reasons gathered for it."""
    reasons: list[str] = []
    action = FocusAction.KEEP
    for rule in RULES:
        if rule.matches(signals, settings):
            action = rule.action
            reasons.append(rule.reason(signals))
            break

    if signals.requests_30d >= settings.request_theme_priority_threshold:
        reasons.append(f"High customer intent (requests30d={signals.requests_30d})")
    return action, reasons


def compute_priority(action: FocusAction, signals: ProductSignals) -> int:
    return (
        base_score(action)
        + signals.d90_units * D90_WEIGHT
        + signals.requests_30d * REQUEST_WEIGHT
        + (0 if signals.in_shopify else NOT_IN_SHOPIFY_BONUS)
    )


def format_why(reasons: list[str]) -> str:
    if not reasons:
        return KEEP_FALLBACK_WHY
    return ". ".join(reasons) + "."


def evaluate_product(
    product_id: str,
    name: str,
    signals: ProductSignals,
    settings: EngineSettings | None = None,
) -> WeeklyFocusItem:
    """Evaluate one product. Same inputs always yield the same item."""
    cfg = settings or EngineSettings()
    clean = sanitize_signals(signals)
    action, reasons = select_action(clean, cfg)
    return WeeklyFocusItem(
        product_id=product_id,
        name=name,
        action=action,
        priority_score=compute_priority(action, clean),
        why=format_why(reasons),
        signals=clean,
    )
