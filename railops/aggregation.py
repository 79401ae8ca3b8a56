"""Comparative period aggregation engine.

``aggregate`` reduces loading records for one period into per-dimension
``RawAggregate`` values; ``compare_groups`` joins two periods, computes the
tonnage variation, sorts, and appends the synthetic TOTAL row.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from railops.data import loading_frame
from railops.errors import ValidationError
from railops.models import (
    TOTAL_KEY,
    UNKNOWN_BUCKET,
    ComparisonRow,
    Dimension,
    LoadingRecord,
    Metric,
    RawAggregate,
    metric_value,
)
from railops.periods import PeriodWindow

Records = Union[pd.DataFrame, Iterable[LoadingRecord]]

SUM_COLUMNS = ["wagons", "units", "tonnage", "freight"]
VARIATION_KEYS = {"variation_absolute", "variation_percent"}


def safe_div(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def variation_percent(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100.0


def filter_period(df: pd.DataFrame, period: PeriodWindow) -> pd.DataFrame:
    dates = pd.to_datetime(df["date"], errors="coerce").dt.normalize()
    mask = dates.notna() & (dates >= pd.Timestamp(period.start)) & (dates <= pd.Timestamp(period.end))
    out = df.loc[mask].copy()
    out["date"] = dates[mask]
    return out


def dimension_keys(series: pd.Series) -> pd.Series:
    keys = series.astype("string").str.strip().fillna("")
    return keys.where(keys != "", UNKNOWN_BUCKET).astype(str)


def aggregate(records: Records, dimension: Dimension | str, period: PeriodWindow) -> Dict[str, RawAggregate]:
    df = records if isinstance(records, pd.DataFrame) else loading_frame(records)
    dim = Dimension(dimension).value
    if df.empty:
        return {}
    wk = filter_period(df, period)
    if wk.empty:
        return {}
    wk["group_key"] = dimension_keys(wk[dim])
    for col in SUM_COLUMNS:
        wk[col] = pd.to_numeric(wk[col], errors="coerce").fillna(0.0)
    grouped = (
        wk.groupby("group_key", sort=True)
        .agg(
            rks=("date", "nunique"),
            wagons=("wagons", "sum"),
            units=("units", "sum"),
            tonnage=("tonnage", "sum"),
            freight=("freight", "sum"),
        )
        .reset_index()
    )
    days = period.day_count
    out: Dict[str, RawAggregate] = {}
    for row in grouped.itertuples(index=False):
        wagons = int(round(float(row.wagons)))
        out[str(row.group_key)] = RawAggregate(
            rks=int(row.rks),
            wagons=wagons,
            units=float(row.units),
            tonnage=float(row.tonnage),
            freight=float(row.freight),
            avg_per_day=safe_div(wagons, days),
        )
    return out


def sort_accessor(sort_by: str) -> Callable[[ComparisonRow], object]:
    if sort_by in ("key", "dimension", ""):
        return lambda row: row.key
    if sort_by in VARIATION_KEYS:
        return lambda row: getattr(row, sort_by)
    side, _, metric = sort_by.partition(".")
    if side not in ("current", "previous"):
        raise ValidationError(f"Unknown sort column: {sort_by!r}")
    try:
        kind = Metric(metric)
    except ValueError as exc:
        raise ValidationError(f"Unknown sort column: {sort_by!r}") from exc
    return lambda row: metric_value(getattr(row, side), kind)


def sort_rows(rows: List[ComparisonRow], sort_by: str = "key", *, descending: bool = False) -> List[ComparisonRow]:
    """Stable sort; descending is the exact reverse of the ascending order, ties included."""
    ordered = sorted(rows, key=sort_accessor(sort_by))
    if descending:
        ordered.reverse()
    return ordered


def total_row(
    rows: Iterable[ComparisonRow],
    *,
    current_days: Optional[int] = None,
    previous_days: Optional[int] = None,
) -> ComparisonRow:
    cur = RawAggregate()
    prev = RawAggregate()
    avg_cur = 0.0
    avg_prev = 0.0
    for row in rows:
        if row.is_total:
            continue
        for total, part in ((cur, row.current), (prev, row.previous)):
            total.rks += part.rks
            total.wagons += part.wagons
            total.units += part.units
            total.tonnage += part.tonnage
            total.freight += part.freight
        avg_cur += row.current.avg_per_day
        avg_prev += row.previous.avg_per_day
    cur.avg_per_day = safe_div(cur.wagons, current_days) if current_days else avg_cur
    prev.avg_per_day = safe_div(prev.wagons, previous_days) if previous_days else avg_prev
    return ComparisonRow(
        key=TOTAL_KEY,
        current=cur,
        previous=prev,
        variation_absolute=cur.tonnage - prev.tonnage,
        variation_percent=variation_percent(cur.tonnage, prev.tonnage),
        is_total=True,
    )


def compare_groups(
    current: Mapping[str, RawAggregate],
    previous: Mapping[str, RawAggregate],
    *,
    current_period: Optional[PeriodWindow] = None,
    previous_period: Optional[PeriodWindow] = None,
    sort_by: str = "key",
    descending: bool = False,
    include_total: bool = True,
) -> List[ComparisonRow]:
    rows: List[ComparisonRow] = []
    for key in list(current) + [k for k in previous if k not in current]:
        cur = current.get(key) or RawAggregate()
        prev = previous.get(key) or RawAggregate()
        rows.append(
            ComparisonRow(
                key=key,
                current=cur,
                previous=prev,
                variation_absolute=cur.tonnage - prev.tonnage,
                variation_percent=variation_percent(cur.tonnage, prev.tonnage),
            )
        )
    rows = sort_rows(rows, sort_by, descending=descending)
    if include_total:
        rows.append(
            total_row(
                rows,
                current_days=current_period.day_count if current_period else None,
                previous_days=previous_period.day_count if previous_period else None,
            )
        )
    return rows


def split_total(rows: List[ComparisonRow]) -> Tuple[List[ComparisonRow], Optional[ComparisonRow]]:
    body = [r for r in rows if not r.is_total]
    total = next((r for r in rows if r.is_total), None)
    return body, total


def metric_variation(row: ComparisonRow, metric: Metric | str) -> Tuple[float, float]:
    """Absolute and percentage change of any metric, with the same zero-previous guard as tonnage."""
    kind = Metric(metric)
    cur = float(metric_value(row.current, kind))
    prev = float(metric_value(row.previous, kind))
    return cur - prev, variation_percent(cur, prev)
