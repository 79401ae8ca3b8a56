from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

from railops.aggregation import aggregate, compare_groups, split_total
from railops.charts import comparison_bar_chart, to_vega_spec
from railops.data import RecordStore
from railops.filters import ReportFilters
from railops.models import ComparisonRow, Dimension, RawAggregate
from railops.periods import DateLike, PeriodPolicy, PeriodWindow, ResolvedPeriods, make_window, resolve_periods
from railops.presentation import (
    DIMENSION_LABELS,
    chart_series,
    comparison_columns,
    display_row,
    select_columns,
    table_header,
    table_row,
)

logger = logging.getLogger(__name__)


def _period_payload(window: PeriodWindow) -> Dict[str, Any]:
    return {**window.to_dict(), "label": window.label()}


def build_rows(
    store: RecordStore,
    periods: ResolvedPeriods,
    dimension: Dimension,
    *,
    value: Optional[str] = None,
    sort_by: str = "key",
    descending: bool = False,
) -> List[ComparisonRow]:
    cur_df = store.query_loading_frame(periods.current.start, periods.current.end, dimension=dimension, value=value)
    prev_df = store.query_loading_frame(periods.previous.start, periods.previous.end, dimension=dimension, value=value)
    logger.debug(
        "Comparing %s by %s: %d current rows, %d previous rows",
        periods.policy.value,
        dimension.value,
        len(cur_df),
        len(prev_df),
    )
    current = aggregate(cur_df, dimension, periods.current)
    previous = aggregate(prev_df, dimension, periods.previous)
    if value and value != "all" and not current and not previous:
        # a filter with no matches still yields its zero-filled row
        current = {value: RawAggregate()}
    return compare_groups(
        current,
        previous,
        current_period=periods.current,
        previous_period=periods.previous,
        sort_by=sort_by,
        descending=descending,
    )


def comparison_section(
    rows: List[ComparisonRow],
    periods: ResolvedPeriods,
    dimension: Dimension,
    *,
    currency: str = "₹",
    columns: Optional[List[str]] = None,
) -> Dict[str, Any]:
    body, total = split_total(rows)
    cols = select_columns(comparison_columns(dimension), columns)
    return {
        "dimension": dimension.value,
        "header": table_header(dimension, periods.current, periods.previous),
        "columns": [{**asdict(c), "header": c.header} for c in cols],
        "rows": [table_row(r) for r in body],
        "total": table_row(total) if total is not None else None,
        "display": [display_row(r, currency) for r in rows],
    }


def compute_comparative(
    filters: ReportFilters,
    store: RecordStore,
    *,
    today: Optional[date] = None,
    currency: str = "₹",
) -> Dict[str, Any]:
    periods = resolve_periods(
        filters.policy,
        current_from=filters.current_from,
        current_to=filters.current_to,
        previous_from=filters.previous_from,
        previous_to=filters.previous_to,
        today=today,
    )
    rows = build_rows(
        store,
        periods,
        filters.dimension,
        value=filters.value,
        sort_by=filters.sort_by,
        descending=filters.descending,
    )
    section = comparison_section(rows, periods, filters.dimension, currency=currency, columns=filters.columns)
    series = chart_series(rows, filters.chart_metric, filters.top_n)

    charts: Dict[str, Any] = {}
    if series:
        chart = comparison_bar_chart(
            series,
            dimension_title=DIMENSION_LABELS[filters.dimension],
            metric=filters.chart_metric.value,
            current_label=periods.current.label(),
            previous_label=periods.previous.label(),
        )
        charts["comparison"] = to_vega_spec(chart)

    return {
        "filters": asdict(filters),
        "periods": {
            "policy": periods.policy.value,
            "current": _period_payload(periods.current),
            "previous": _period_payload(periods.previous),
        },
        **section,
        "series": series,
        "charts": charts,
    }


def period_summary(rows: List[ComparisonRow], window: PeriodWindow, *, current: bool) -> Dict[str, Any]:
    """Totals for one side with the ``wagons / days = avg`` breakdown shown on the daily report."""
    _, total = split_total(rows)
    agg = (total.current if current else total.previous) if total is not None else RawAggregate()
    return {
        **_period_payload(window),
        "rks": int(agg.rks),
        "wagons": int(round(agg.wagons)),
        "tonnage": agg.tonnage,
        "freight": agg.freight,
        "avg_per_day": round(agg.avg_per_day, 3),
        "formula": f"{int(round(agg.wagons))} ÷ {window.day_count} = {agg.avg_per_day:.3f}",
    }


def compute_daily_report(
    store: RecordStore,
    current_from: DateLike,
    current_to: DateLike,
    previous_from: DateLike,
    previous_to: DateLike,
    *,
    currency: str = "₹",
) -> Dict[str, Any]:
    periods = ResolvedPeriods(
        PeriodPolicy.EXPLICIT_DUAL_RANGE,
        make_window(current_from, current_to, label="current period"),
        make_window(previous_from, previous_to, label="comparative period"),
    )
    commodity_rows = build_rows(store, periods, Dimension.COMMODITY)
    station_rows = build_rows(store, periods, Dimension.STATION)
    return {
        "commodity": comparison_section(commodity_rows, periods, Dimension.COMMODITY, currency=currency),
        "station": comparison_section(station_rows, periods, Dimension.STATION, currency=currency),
        "summary": {
            "current": period_summary(commodity_rows, periods.current, current=True),
            "previous": period_summary(commodity_rows, periods.previous, current=False),
        },
    }
