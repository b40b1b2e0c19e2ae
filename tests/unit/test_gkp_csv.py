"""Unit tests for the Keyword Planner CSV parser."""

import pytest

from stylenya.core.exceptions import CsvImportError
from stylenya.services.signals.gkp_csv import (
    extract_monthly_key,
    parse_gkp_csv,
    parse_locale_number,
    parse_nullable_number,
    parse_nullable_percent,
    summarize_import,
)

_HEADER = "\t".join(
    [
        "Keyword",
        "Currency",
        "Avg. monthly searches",
        "Three month change",
        "YoY change",
        "Competition",
        "Top of page bid (low range)",
        "Top of page bid (high range)",
        "Searches: Jan 2024",
        "Searches: Feb 2024",
    ]
)


def _export(*rows: str) -> str:
    return "\n".join(["Keyword Stats 2024-03-01", "All locations", _HEADER, *rows]) + "\n"


def test_parse_gkp_csv_reads_utf16_tab_export() -> None:
    text = _export(
        "birthday banner\tUSD\t1,000\t0%\t-90%\tLow\t0.35\t1.20\t800\t1,200",
        "Birthday  Banner\tUSD\t10\t\t\tHigh\t\t\t\t",
        "\tUSD\t10\t\t\tHigh\t\t\t\t",
        "cake topper\tUSD\t100 – 1,000\t–\t+50%\tMedium\t\t\t\t",
    )
    data = b"\xff\xfe" + text.encode("utf-16-le")

    parsed = parse_gkp_csv(data)

    assert parsed.encoding == "utf-16-le"
    assert parsed.delimiter == "\t"
    assert parsed.total_rows == 4
    assert parsed.skipped_rows == 1
    assert parsed.duplicate_rows == 1
    assert [row.keyword for row in parsed.rows] == ["birthday banner", "cake topper"]

    banner = parsed.rows[0]
    assert banner.avg_monthly_searches == 1000
    assert banner.competition_level == "LOW"
    assert banner.cpc_low == pytest.approx(0.35)
    assert banner.cpc_high == pytest.approx(1.2)
    assert banner.change_3m_pct == 0
    assert banner.change_yoy_pct == pytest.approx(-0.9)
    assert banner.monthly_searches == {"2024-01": 800, "2024-02": 1200}
    assert banner.score_reasons == "V:1k | C:LOW | CPC:$1.20 | 3M:0% | YoY:-90%"
    assert len(banner.raw_row_hash) == 64

    topper = parsed.rows[1]
    assert topper.avg_monthly_searches == 550
    assert topper.change_3m_pct is None
    assert topper.change_yoy_pct == pytest.approx(0.5)
    assert topper.monthly_searches is None

    assert summarize_import(parsed) == {
        "importedRows": 2,
        "skippedRows": 2,
        "totalRows": 4,
        "warnings": [],
    }


def test_parse_gkp_csv_comma_delimited_utf8_warns_without_monthly_columns() -> None:
    text = "meta\nmeta\nKeyword,Avg. monthly searches\n\"party, hats\",\"<10\"\n"

    parsed = parse_gkp_csv(text.encode("utf-8"))

    assert parsed.delimiter == ","
    assert parsed.rows[0].keyword == "party, hats"
    assert parsed.rows[0].avg_monthly_searches == 5
    assert parsed.warnings == ["No monthly search columns detected."]


def test_parse_gkp_csv_rejects_missing_keyword_column() -> None:
    with pytest.raises(CsvImportError) as exc_info:
        parse_gkp_csv(b"a\nb\nTerm,Volume\nx,1\n")

    assert exc_info.value.code == "CSV_MISSING_KEYWORD"
    assert exc_info.value.details["columns_detected"] == ["Term", "Volume"]


def test_parse_gkp_csv_rejects_short_or_empty_files() -> None:
    with pytest.raises(CsvImportError) as short:
        parse_gkp_csv(b"only one line")
    with pytest.raises(CsvImportError) as empty:
        parse_gkp_csv(b"a\nb\nKeyword\n-\n\n")

    assert short.value.code == "CSV_MALFORMED"
    assert empty.value.code == "CSV_EMPTY"


def test_number_helpers_handle_both_decimal_conventions() -> None:
    assert parse_locale_number("1.234,5") == pytest.approx(1234.5)
    assert parse_locale_number("1,234.5") == pytest.approx(1234.5)
    assert parse_locale_number("1,234") == 1234
    assert parse_locale_number("0,35") == pytest.approx(0.35)
    assert parse_locale_number("1.234.5") == pytest.approx(1234.5)
    assert parse_nullable_number("n/a") is None
    assert parse_nullable_number("1K – 10K") == 5500
    assert parse_nullable_number("<1K") == 500
    assert parse_nullable_number("2.5M") == 2_500_000
    assert parse_nullable_percent("12,5%") == pytest.approx(0.125)


def test_extract_monthly_key() -> None:
    assert extract_monthly_key("Searches: Sep 2023") == "2023-09"
    assert extract_monthly_key("Searches: Foo 2023") is None
    assert extract_monthly_key("Competition") is None
