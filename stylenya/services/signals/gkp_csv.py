"""Parser for Google Keyword Planner CSV exports.

Keyword Planner exports are usually UTF-16 and tab separated, start with two
metadata lines, and put the header on line 3. Columns are matched by
normalized header aliases (English and Spanish), numbers may use either
decimal convention, and optional ``Searches: Mon YYYY`` columns carry the
monthly curve.
"""

from __future__ import annotations

import csv
import hashlib
import logging
import re
import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from stylenya.core.exceptions import CsvImportError
from stylenya.services.signals.scoring import (
    CompetitionLevel,
    Signal,
    compute_signal_score,
    js_round,
    parse_competition,
)

logger = logging.getLogger(__name__)

KEYWORD_HEADERS = (
    "keyword",
    "keyword text",
    "search term",
    "palabra clave",
    "termino de busqueda",
)
AVG_MONTHLY_HEADERS = ("avg monthly searches", "avg. monthly searches")
COMPETITION_HEADERS = ("competition",)
COMPETITION_INDEX_HEADERS = ("competition (indexed value)",)
CPC_LOW_HEADERS = ("top of page bid (low range)",)
CPC_HIGH_HEADERS = ("top of page bid (high range)",)
CHANGE_3M_HEADERS = ("three month change", "3 month change", "3-month change")
CHANGE_YOY_HEADERS = ("yoy change", "yo y change", "yo/y change", "yoy (change)")
CURRENCY_HEADERS = ("currency", "currency code")
GEO_HEADERS = ("geo", "location", "country")
LANGUAGE_HEADERS = ("language",)

EMPTY_VALUES = frozenset({"", "-", "—", "–", "n/a"})

MONTHS = {
    "jan": "01", "january": "01",
    "feb": "02", "february": "02",
    "mar": "03", "march": "03",
    "apr": "04", "april": "04",
    "may": "05",
    "jun": "06", "june": "06",
    "jul": "07", "july": "07",
    "aug": "08", "august": "08",
    "sep": "09", "sept": "09", "september": "09",
    "oct": "10", "october": "10",
    "nov": "11", "november": "11",
    "dec": "12", "december": "12",
}

_MONTHLY_HEADER_PATTERN = re.compile(r"searches:\s*([A-Za-z]+)\s+(\d{4})", re.IGNORECASE)
_RANGE_PATTERN = re.compile(r"([0-9.,]+\s*[KkMm]?)\s*[–-]\s*([0-9.,]+\s*[KkMm]?)")
_SCALED_PATTERN = re.compile(r"^([0-9.,]+)\s*([KkMm])$")
_SCALE = {"k": 1_000, "m": 1_000_000}
_NUMBER_CHARS_PATTERN = re.compile(r"[^0-9,.\-]")


@dataclass(slots=True)
class ParsedSignalRow:
    keyword: str
    keyword_normalized: str
    avg_monthly_searches: int | None
    competition_level: str | None
    competition_index: float | None
    cpc_low: float | None
    cpc_high: float | None
    change_3m_pct: float | None
    change_yoy_pct: float | None
    currency: str | None
    geo: str | None
    language: str | None
    monthly_searches: dict[str, int] | None
    raw_row_hash: str
    raw_row: dict[str, str | None]
    score: float = 0.0
    score_reasons: str = ""

    def to_signal(self) -> Signal:
        return Signal(
            keyword=self.keyword,
            avg_monthly_searches=self.avg_monthly_searches,
            competition_level=self.competition_level,
            cpc_high=self.cpc_high,
            change_3m_pct=self.change_3m_pct,
            change_yoy_pct=self.change_yoy_pct,
        )


@dataclass(slots=True)
class ParsedGkpCsv:
    rows: list[ParsedSignalRow]
    total_rows: int
    skipped_rows: int
    duplicate_rows: int
    columns_detected: list[str]
    warnings: list[str] = field(default_factory=list)
    encoding: str = "utf-8"
    delimiter: str = "\t"


def normalize_header(value: str) -> str:
    cleaned = value.lstrip("\ufeff").strip().lower()
    decomposed = unicodedata.normalize("NFD", cleaned)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", " ", ascii_only).strip()


def normalize_keyword(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().lower())


def decode_bytes(data: bytes) -> tuple[str, str]:
    """Decode using the BOM when present, sniffing NUL bytes for BOM-less UTF-16."""
    if data[:2] == b"\xff\xfe":
        return data[2:].decode("utf-16-le", errors="replace"), "utf-16-le"
    if data[:2] == b"\xfe\xff":
        return data[2:].decode("utf-16-be", errors="replace"), "utf-16-be"
    if b"\x00" in data[:100]:
        return data.decode("utf-16-le", errors="replace"), "utf-16-le"
    return data.decode("utf-8-sig", errors="replace"), "utf-8"


def is_empty_value(value: str | None) -> bool:
    return value is None or value.strip() in EMPTY_VALUES


def parse_locale_number(raw: str) -> float | None:
    """Parse ``1,234.5`` and ``1.234,5`` style numbers.

    A single comma followed by exactly three digits is a thousands separator.
    """
    value = _NUMBER_CHARS_PATTERN.sub("", raw.strip())
    if not value:
        return None

    comma_count = value.count(",")
    dot_count = value.count(".")
    if comma_count and dot_count:
        if value.rfind(",") > value.rfind("."):
            value = value.replace(".", "").replace(",", ".")
        else:
            value = value.replace(",", "")
    elif comma_count > 1:
        value = value.replace(",", "")
    elif comma_count == 1:
        left, right = value.split(",")
        value = f"{left}{right}" if len(right) == 3 else f"{left}.{right}"
    elif dot_count > 1:
        int_part, decimals = value.rsplit(".", 1)
        value = f"{int_part.replace('.', '')}.{decimals}"

    try:
        return float(value)
    except ValueError:
        return None


def parse_scaled_number(raw: str) -> float | None:
    """Like ``parse_locale_number`` but also reads ``1K`` and ``2.5M``."""
    match = _SCALED_PATTERN.match(raw.strip())
    if match is None:
        return parse_locale_number(raw)
    base = parse_locale_number(match.group(1))
    return None if base is None else base * _SCALE[match.group(2).lower()]


def parse_nullable_number(value: str | None) -> float | None:
    """Numbers, ``<10`` style upper bounds (halved) and ``a - b`` ranges (midpoint)."""
    if value is None or is_empty_value(value):
        return None
    trimmed = value.strip()
    if trimmed.startswith("<"):
        threshold = parse_scaled_number(trimmed[1:])
        return None if threshold is None else threshold / 2

    match = _RANGE_PATTERN.search(trimmed)
    if match:
        low = parse_scaled_number(match.group(1))
        high = parse_scaled_number(match.group(2))
        if low is not None and high is not None:
            return (low + high) / 2

    return parse_scaled_number(trimmed)


def parse_nullable_int(value: str | None) -> int | None:
    parsed = parse_nullable_number(value)
    return None if parsed is None else js_round(parsed)


def parse_nullable_percent(value: str | None) -> float | None:
    """``-90%`` becomes ``-0.9``."""
    if value is None or is_empty_value(value):
        return None
    parsed = parse_locale_number(value.replace("%", ""))
    return None if parsed is None else parsed / 100


def parse_competition_label(value: str | None) -> str | None:
    if value is None or is_empty_value(value):
        return None
    level = parse_competition(value)
    return None if level is CompetitionLevel.UNKNOWN else level.value


def extract_monthly_key(header: str) -> str | None:
    match = _MONTHLY_HEADER_PATTERN.search(header)
    if not match:
        return None
    month = MONTHS.get(match.group(1).lower())
    if month is None:
        return None
    return f"{match.group(2)}-{month}"


def _find_header_index(headers: Sequence[str], candidates: Sequence[str]) -> int:
    wanted = {normalize_header(candidate) for candidate in candidates}
    for index, header in enumerate(headers):
        if normalize_header(header) in wanted:
            return index
    return -1


def _cell(values: Sequence[str], index: int) -> str | None:
    if index < 0 or index >= len(values):
        return None
    return values[index]


def _text_cell(values: Sequence[str], index: int) -> str | None:
    value = _cell(values, index)
    if value is None:
        return None
    return value.strip() or None


def parse_gkp_csv(data: bytes) -> ParsedGkpCsv:
    """Parse and score a Keyword Planner export.

    Raises:
        CsvImportError: when the header is missing, no keyword column exists,
            or no usable keyword rows remain.
    """
    text, encoding = decode_bytes(data)
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    if len(lines) < 3:
        raise CsvImportError("CSV_MALFORMED", "GKP CSV is missing header rows.")

    data_lines = lines[2:]
    header_offset = next((i for i, line in enumerate(data_lines) if line.strip()), None)
    if header_offset is None:
        raise CsvImportError("CSV_MALFORMED", "GKP CSV is missing header rows.")

    header_line = data_lines[header_offset]
    delimiter = "\t" if "\t" in header_line else ","
    headers = [h.lstrip("\ufeff").strip() for h in next(csv.reader([header_line], delimiter=delimiter))]

    keyword_index = _find_header_index(headers, KEYWORD_HEADERS)
    if keyword_index < 0:
        raise CsvImportError(
            "CSV_MISSING_KEYWORD",
            "CSV missing keyword column.",
            {"columns_detected": headers},
        )

    avg_index = _find_header_index(headers, AVG_MONTHLY_HEADERS)
    competition_index = _find_header_index(headers, COMPETITION_HEADERS)
    competition_value_index = _find_header_index(headers, COMPETITION_INDEX_HEADERS)
    cpc_low_index = _find_header_index(headers, CPC_LOW_HEADERS)
    cpc_high_index = _find_header_index(headers, CPC_HIGH_HEADERS)
    change_3m_index = _find_header_index(headers, CHANGE_3M_HEADERS)
    change_yoy_index = _find_header_index(headers, CHANGE_YOY_HEADERS)
    currency_index = _find_header_index(headers, CURRENCY_HEADERS)
    geo_index = _find_header_index(headers, GEO_HEADERS)
    language_index = _find_header_index(headers, LANGUAGE_HEADERS)
    monthly_columns = [
        (index, key)
        for index, header in enumerate(headers)
        if (key := extract_monthly_key(header)) is not None
    ]

    body_lines = [line for line in data_lines[header_offset + 1 :] if line.strip()]
    rows_by_keyword: dict[str, ParsedSignalRow] = {}
    skipped = 0
    duplicates = 0

    for values in csv.reader(body_lines, delimiter=delimiter):
        keyword_raw = (_cell(values, keyword_index) or "").strip()
        keyword_normalized = normalize_keyword(keyword_raw)
        if is_empty_value(keyword_raw) or not keyword_normalized:
            skipped += 1
            continue
        if keyword_normalized in rows_by_keyword:
            duplicates += 1
            continue

        raw_row = {header: _cell(values, i) for i, header in enumerate(headers)}
        monthly = {
            key: parsed
            for index, key in monthly_columns
            if (parsed := parse_nullable_int(_cell(values, index))) is not None
        }
        row_for_hash = "\u0001".join(raw_row[header] or "" for header in headers)

        row = ParsedSignalRow(
            keyword=keyword_raw,
            keyword_normalized=keyword_normalized,
            avg_monthly_searches=parse_nullable_int(_cell(values, avg_index)),
            competition_level=parse_competition_label(_cell(values, competition_index)),
            competition_index=parse_nullable_number(_cell(values, competition_value_index)),
            cpc_low=parse_nullable_number(_cell(values, cpc_low_index)),
            cpc_high=parse_nullable_number(_cell(values, cpc_high_index)),
            change_3m_pct=parse_nullable_percent(_cell(values, change_3m_index)),
            change_yoy_pct=parse_nullable_percent(_cell(values, change_yoy_index)),
            currency=_text_cell(values, currency_index),
            geo=_text_cell(values, geo_index),
            language=_text_cell(values, language_index),
            monthly_searches=monthly or None,
            raw_row_hash=hashlib.sha256(row_for_hash.encode("utf-8")).hexdigest(),
            raw_row=raw_row,
        )
        scored = compute_signal_score(row.to_signal())
        row.score = scored.score
        row.score_reasons = scored.reasons
        rows_by_keyword[keyword_normalized] = row

    if not rows_by_keyword:
        raise CsvImportError("CSV_EMPTY", "No valid keyword rows found in CSV.")

    warnings: list[str] = []
    if not monthly_columns:
        warnings.append("No monthly search columns detected.")

    logger.info(
        "Parsed keyword planner export",
        extra={
            "encoding": encoding,
            "rows": len(rows_by_keyword),
            "skipped_rows": skipped,
            "duplicate_rows": duplicates,
        },
    )
    return ParsedGkpCsv(
        rows=list(rows_by_keyword.values()),
        total_rows=len(body_lines),
        skipped_rows=skipped,
        duplicate_rows=duplicates,
        columns_detected=headers,
        warnings=warnings,
        encoding=encoding,
        delimiter=delimiter,
    )


def summarize_import(parsed: ParsedGkpCsv) -> dict[str, Any]:
    """Counts reported back after an import; duplicates count as skipped."""
    return {
        "importedRows": len(parsed.rows),
        "skippedRows": parsed.skipped_rows + parsed.duplicate_rows,
        "totalRows": parsed.total_rows,
        "warnings": list(parsed.warnings),
    }
