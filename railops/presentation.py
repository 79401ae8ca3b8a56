"""View-model shaping for comparison rows: table rows, display strings, chart series."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from railops.models import ComparisonRow, Dimension, Metric, RawAggregate, metric_value
from railops.periods import PeriodWindow

MT_DIVISOR = 1_000_000.0
DEFAULT_TOP_N = 5


@dataclass(frozen=True)
class ColumnSpec:
    key: str
    label: str
    group: str = ""

    @property
    def header(self) -> str:
        return f"{self.group} {self.label}" if self.group else self.label


DIMENSION_LABELS = {Dimension.COMMODITY: "Commodity", Dimension.STATION: "Station"}

PERIOD_COLUMNS = [
    ("rks", "Rks"),
    ("avg_per_day", "Avg/Day"),
    ("wagons", "Wagon"),
    ("mt", "MT"),
    ("freight", "Freight"),
]


def comparison_columns(dimension: Dimension | str = Dimension.COMMODITY) -> List[ColumnSpec]:
    cols = [ColumnSpec("key", DIMENSION_LABELS[Dimension(dimension)])]
    for side, group in (("current", "Current"), ("previous", "Previous")):
        cols.extend(ColumnSpec(f"{side}_{key}", label, group) for key, label in PERIOD_COLUMNS)
    cols.append(ColumnSpec("variation_units", "in Units", "Variation"))
    cols.append(ColumnSpec("variation_percent", "in %age", "Variation"))
    return cols


def select_columns(columns: Sequence[ColumnSpec], keys: Optional[Iterable[str]]) -> List[ColumnSpec]:
    """Keep the requested keys in the caller's order; unknown keys are ignored."""
    if not keys:
        return list(columns)
    by_key = {c.key: c for c in columns}
    return [by_key[k] for k in keys if k in by_key]


def to_mt(tonnage: float) -> float:
    return tonnage / MT_DIVISOR


def format_mt(tonnage: float) -> str:
    return f"{to_mt(tonnage):.3f}"


def format_freight(value: float, symbol: str = "₹") -> str:
    return f"{symbol}{value:.2f}"


def format_avg(value: float) -> str:
    return f"{value:.3f}"


def format_percent(value: float) -> str:
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}"


def _period_cells(prefix: str, agg: RawAggregate) -> Dict[str, Any]:
    return {
        f"{prefix}_rks": int(agg.rks),
        f"{prefix}_avg_per_day": round(agg.avg_per_day, 3),
        f"{prefix}_wagons": int(round(agg.wagons)),
        f"{prefix}_mt": round(to_mt(agg.tonnage), 3),
        f"{prefix}_freight": round(agg.freight, 2),
    }


def table_row(row: ComparisonRow) -> Dict[str, Any]:
    out: Dict[str, Any] = {"key": row.key}
    out.update(_period_cells("current", row.current))
    out.update(_period_cells("previous", row.previous))
    out["variation_units"] = round(to_mt(row.variation_absolute), 3)
    out["variation_percent"] = round(row.variation_percent, 2)
    out["is_total"] = row.is_total
    return out


def table_rows(rows: Iterable[ComparisonRow]) -> List[Dict[str, Any]]:
    return [table_row(r) for r in rows]


def display_row(row: ComparisonRow, currency: str = "₹") -> Dict[str, str]:
    out = {"key": row.key}
    for prefix, agg in (("current", row.current), ("previous", row.previous)):
        out[f"{prefix}_rks"] = str(int(agg.rks))
        out[f"{prefix}_avg_per_day"] = format_avg(agg.avg_per_day)
        out[f"{prefix}_wagons"] = str(int(round(agg.wagons)))
        out[f"{prefix}_mt"] = format_mt(agg.tonnage)
        out[f"{prefix}_freight"] = format_freight(agg.freight, currency)
    out["variation_units"] = format_mt(row.variation_absolute)
    out["variation_percent"] = format_percent(row.variation_percent)
    return out


def table_header(dimension: Dimension | str, current: PeriodWindow, previous: PeriodWindow) -> List[Dict[str, Any]]:
    """Two-row header groups: dimension, both period labels, variation."""
    return [
        {"label": DIMENSION_LABELS[Dimension(dimension)], "span": 1},
        {"label": current.label(), "span": len(PERIOD_COLUMNS)},
        {"label": previous.label(), "span": len(PERIOD_COLUMNS)},
        {"label": "Variation", "span": 2},
    ]


def chart_series(
    rows: Iterable[ComparisonRow],
    metric: Metric | str = Metric.TONNAGE,
    top_n: int = DEFAULT_TOP_N,
) -> List[Dict[str, Any]]:
    """Top-N dimension values ranked by the current-period metric."""
    kind = Metric(metric)
    body = [r for r in rows if not r.is_total]
    ranked = sorted(body, key=lambda r: metric_value(r.current, kind), reverse=True)[: max(0, top_n)]
    scale = to_mt if kind == Metric.TONNAGE else float
    return [
        {
            "key": r.key,
            "metric": kind.value,
            "current": scale(metric_value(r.current, kind)),
            "previous": scale(metric_value(r.previous, kind)),
        }
        for r in ranked
    ]
