from __future__ import annotations

from datetime import date

from railops.aggregation import aggregate, compare_groups
from railops.models import Dimension, RawAggregate
from railops.periods import PeriodWindow
from railops.presentation import (
    chart_series,
    comparison_columns,
    display_row,
    format_avg,
    format_freight,
    format_mt,
    format_percent,
    select_columns,
    table_header,
    table_row,
)


def test_display_conventions():
    assert format_mt(1_234_567) == "1.235"
    assert format_freight(1234.5) == "₹1234.50"
    assert format_freight(10, "Rs ") == "Rs 10.00"
    assert format_avg(7.5) == "7.500"
    assert format_percent(0) == "+0.00"
    assert format_percent(12.345) == "+12.35"
    assert format_percent(-5.25) == "-5.25"


def test_comparison_columns_use_report_labels():
    cols = comparison_columns(Dimension.STATION)
    assert cols[0].label == "Station"
    assert [c.label for c in cols[1:6]] == ["Rks", "Avg/Day", "Wagon", "MT", "Freight"]
    assert [c.label for c in cols[-2:]] == ["in Units", "in %age"]
    assert cols[1].header == "Current Rks"
    assert cols[-1].header == "Variation in %age"


def test_select_columns_follows_request_order():
    cols = select_columns(comparison_columns(), ["current_mt", "key", "bogus"])
    assert [c.key for c in cols] == ["current_mt", "key"]
    assert len(select_columns(comparison_columns(), None)) == 13


def test_table_and_display_rows(sample_records):
    period = PeriodWindow(date(2025, 1, 1), date(2025, 1, 2))
    rows = compare_groups(aggregate(sample_records, Dimension.COMMODITY, period), {}, current_period=period)
    coal = table_row(rows[0])
    assert coal["key"] == "COAL"
    assert coal["current_mt"] == 0.001
    assert coal["current_avg_per_day"] == 7.5
    assert coal["variation_percent"] == 100.0
    assert rows[-1].is_total and table_row(rows[-1])["is_total"]

    shown = display_row(rows[-1])
    assert shown["current_avg_per_day"] == "11.500"
    assert shown["current_mt"] == "0.001"
    assert shown["variation_percent"] == "+100.00"


def test_table_header_uses_period_labels():
    header = table_header(
        Dimension.COMMODITY,
        PeriodWindow(date(2025, 1, 1), date(2025, 1, 7)),
        PeriodWindow(date(2024, 1, 1), date(2024, 1, 7)),
    )
    assert [h["label"] for h in header] == ["Commodity", "01-01-2025 to 07-01-2025", "01-01-2024 to 07-01-2024", "Variation"]


def test_chart_series_top_n_excludes_total():
    current = {f"C{i}": RawAggregate(tonnage=i * 1_000_000) for i in range(1, 8)}
    rows = compare_groups(current, {})
    series = chart_series(rows, "tonnage", top_n=5)
    assert [s["key"] for s in series] == ["C7", "C6", "C5", "C4", "C3"]
    assert series[0]["current"] == 7.0
    assert series[0]["previous"] == 0.0
