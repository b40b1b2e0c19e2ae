"""Rank a catalogue of products into this week's focus list."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from stylenya.config import settings as app_settings
from stylenya.services.recommendations.rule_engine import evaluate_product
from stylenya.services.recommendations.types import EngineSettings, ProductSignals, WeeklyFocusItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProductInput:
    product_id: str
    name: str
    signals: ProductSignals


def clamp_limit(limit: int | None, *, default: int | None = None, maximum: int | None = None) -> int:
    """Resolve a requested list size to ``[1, maximum]``; ``None`` means the default."""
    maximum = app_settings.weekly_focus_max_limit if maximum is None else maximum
    if limit is None:
        limit = app_settings.weekly_focus_default_limit if default is None else default
    return max(1, min(maximum, int(limit)))


def rank_weekly_focus(
    products: Iterable[ProductInput],
    settings: EngineSettings | None = None,
    limit: int | None = None,
) -> list[WeeklyFocusItem]:
    """Evaluate every product and return the top items by priority.

    Ties keep input order, so the ranking is stable for identical input.
    """
    engine_settings = settings or app_settings.engine_settings()
    items = [evaluate_product(p.product_id, p.name, p.signals, engine_settings) for p in products]
    items.sort(key=lambda item: -item.priority_score)
    top = items[: clamp_limit(limit)]
    logger.info("Weekly focus ranked", extra={"products": len(items), "returned": len(top)})
    return top
