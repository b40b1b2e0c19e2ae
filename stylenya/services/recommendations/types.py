"""Inputs and outputs of the weekly focus recommendation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FocusAction(str, Enum):
    MIGRATE = "MIGRATE"
    BOOST = "BOOST"
    RETIRE = "RETIRE"
    PAUSE = "PAUSE"
    KEEP = "KEEP"


class Seasonality(str, Enum):
    NONE = "NONE"
    VALENTINES = "VALENTINES"
    EASTER = "EASTER"
    BACK_TO_SCHOOL = "BACK_TO_SCHOOL"
    HALLOWEEN = "HALLOWEEN"
    CHRISTMAS = "CHRISTMAS"
    CUSTOM = "CUSTOM"


def parse_seasonality(value: Any) -> Seasonality:
    """Unrecognized values fall back to CUSTOM: seasonal, season unknown."""
    if isinstance(value, Seasonality):
        return value
    if value is None:
        return Seasonality.NONE
    try:
        return Seasonality(str(value).strip().upper())
    except ValueError:
        return Seasonality.CUSTOM


@dataclass(frozen=True, slots=True)
class EngineSettings:
    boost_sales_threshold_d90: int = 10
    retire_sales_threshold_d180: int = 2
    request_theme_priority_threshold: int = 3


@dataclass(frozen=True, slots=True)
class ProductSignals:
    in_shopify: bool
    d90_units: int = 0
    d180_units: int = 0
    requests_30d: int = 0
    seasonality: Seasonality = Seasonality.NONE

    def __post_init__(self) -> None:
        object.__setattr__(self, "seasonality", parse_seasonality(self.seasonality))

    def to_dict(self) -> dict[str, Any]:
        return {
            "inShopify": self.in_shopify,
            "d90Units": self.d90_units,
            "d180Units": self.d180_units,
            "requests30d": self.requests_30d,
            "seasonality": self.seasonality.value,
        }


@dataclass(frozen=True, slots=True)
class WeeklyFocusItem:
    product_id: str
    name: str
    action: FocusAction
    priority_score: float
    why: str
    signals: ProductSignals

    def to_dict(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "action": self.action.value,
            "priorityScore": self.priority_score,
            "why": self.why,
            "signals": self.signals.to_dict(),
        }
