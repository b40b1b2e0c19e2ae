"""Keyword relevance filtering against product-type, occasion and exclude terms."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

from stylenya.services.signals.text_match import normalize, normalize_terms, phrase_match

logger = logging.getLogger(__name__)

RelevanceMode = Literal["strict", "broad", "all"]

SignalT = TypeVar("SignalT")


@dataclass(frozen=True, slots=True)
class ProductTypeMatch:
    """Match vocabulary for one product type."""

    key: str
    synonyms: frozenset[str]


@dataclass(frozen=True, slots=True)
class RelevanceContext:
    """Filtering configuration snapshot for one filter invocation."""

    product_types: tuple[ProductTypeMatch, ...] = ()
    occasion_terms: tuple[str, ...] = ()
    exclude_terms: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        product_types: Iterable[ProductTypeMatch] = (),
        occasion_terms: Iterable[str] = (),
        exclude_terms: Iterable[str] = (),
    ) -> RelevanceContext:
        return cls(
            product_types=tuple(product_types),
            occasion_terms=tuple(occasion_terms),
            exclude_terms=tuple(exclude_terms),
        )


@dataclass(slots=True)
class RelevanceResult(Generic[SignalT]):
    filtered_signals: list[SignalT] = field(default_factory=list)
    filtered_out_count: int = 0
    matched_product_type_keys: set[str] = field(default_factory=set)
    matched_occasion_terms: set[str] = field(default_factory=set)
    matched_exclude_terms: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "filteredSignals": list(self.filtered_signals),
            "filteredOutCount": self.filtered_out_count,
            "matchedProductTypeKeys": sorted(self.matched_product_type_keys),
            "matchedOccasionTerms": sorted(self.matched_occasion_terms),
            "matchedExcludeTerms": sorted(self.matched_exclude_terms),
        }


def build_product_type_matches(definitions: Iterable[Mapping[str, Any]]) -> list[ProductTypeMatch]:
    """Turn product-type definitions (key, label, synonyms) into match vocabularies.

    The key itself (underscores read as spaces) and the label always count as
    synonyms. Definitions without a usable key are skipped.
    """
    matches: list[ProductTypeMatch] = []
    for definition in definitions:
        key = str(definition.get("key") or "").strip()
        if not key:
            continue
        raw_terms: list[str] = [key.replace("_", " "), str(definition.get("label") or "")]
        raw_terms.extend(str(term) for term in definition.get("synonyms") or [])
        synonyms = frozenset(normalize_terms(raw_terms))
        if synonyms:
            matches.append(ProductTypeMatch(key=key, synonyms=synonyms))
    return matches


def match_terms(keyword_norm: str, terms_norm: Iterable[str]) -> list[str]:
    """Return every normalized term contained in the keyword."""
    return [term for term in terms_norm if phrase_match(keyword_norm, term)]


def match_product_types(keyword_norm: str, product_types: Iterable[ProductTypeMatch]) -> list[str]:
    """Return keys of product types with at least one synonym in the keyword."""
    return [
        product_type.key
        for product_type in product_types
        if any(phrase_match(keyword_norm, synonym) for synonym in product_type.synonyms)
    ]


def _keyword_of(signal: Any) -> str:
    if isinstance(signal, Mapping):
        value = signal.get("keyword")
    else:
        value = getattr(signal, "keyword", None)
    return value if isinstance(value, str) else ""


def filter_signals(
    signals: Sequence[SignalT],
    context: RelevanceContext,
    mode: RelevanceMode = "strict",
) -> RelevanceResult[SignalT]:
    """Keep signals that match a product type or occasion term and no exclude term.

    ``strict`` and ``broad`` run the same algorithm; they differ only in which
    terms the caller loads into ``context``. ``all`` passes everything through.
    """
    result: RelevanceResult[SignalT] = RelevanceResult()
    if mode == "all":
        result.filtered_signals = list(signals)
        return result

    product_types = [
        ProductTypeMatch(key=pt.key, synonyms=frozenset(normalize_terms(pt.synonyms)))
        for pt in context.product_types
    ]
    occasion_terms = normalize_terms(context.occasion_terms)
    exclude_terms = normalize_terms(context.exclude_terms)

    for signal in signals:
        keyword_norm = normalize(_keyword_of(signal))

        excluded = match_terms(keyword_norm, exclude_terms)
        if excluded:
            result.filtered_out_count += 1
            result.matched_exclude_terms.update(excluded)
            continue

        product_keys = match_product_types(keyword_norm, product_types)
        occasions = match_terms(keyword_norm, occasion_terms)
        if product_keys or occasions:
            result.filtered_signals.append(signal)
            result.matched_product_type_keys.update(product_keys)
            result.matched_occasion_terms.update(occasions)
        else:
            result.filtered_out_count += 1

    logger.debug(
        "Relevance filter applied",
        extra={
            "mode": mode,
            "input_count": len(signals),
            "kept_count": len(result.filtered_signals),
            "filtered_out_count": result.filtered_out_count,
        },
    )
    return result
