from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from railops.errors import ValidationError
from railops.models import Dimension, Metric
from railops.periods import PeriodPolicy


@dataclass(frozen=True)
class ReportFilters:
    policy: PeriodPolicy = PeriodPolicy.ROLLING_WINDOW
    dimension: Dimension = Dimension.COMMODITY
    current_from: Optional[str] = None
    current_to: Optional[str] = None
    previous_from: Optional[str] = None
    previous_to: Optional[str] = None
    value: Optional[str] = None
    sort_by: str = "key"
    sort_order: str = "asc"
    top_n: int = 5
    chart_metric: Metric = Metric.TONNAGE
    columns: List[str] = field(default_factory=list)

    @property
    def descending(self) -> bool:
        return self.sort_order == "desc"


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def _opt_str(value: object) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def normalize_filters(raw: dict, *, default_top_n: int = 5) -> ReportFilters:
    try:
        policy = PeriodPolicy(raw.get("policy") or PeriodPolicy.ROLLING_WINDOW)
    except ValueError as exc:
        raise ValidationError(f"Unknown period policy: {raw.get('policy')!r}") from exc
    try:
        dimension = Dimension(raw.get("dimension") or Dimension.COMMODITY)
    except ValueError as exc:
        raise ValidationError(f"Unknown dimension: {raw.get('dimension')!r}") from exc
    try:
        chart_metric = Metric(raw.get("chart_metric") or Metric.TONNAGE)
    except ValueError as exc:
        raise ValidationError(f"Unknown metric: {raw.get('chart_metric')!r}") from exc

    sort_order = (raw.get("sort_order") or "asc").strip().lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError(f"Unknown sort order: {sort_order!r}")

    top_n = raw.get("top_n", default_top_n)
    try:
        top_n = int(top_n)
    except (TypeError, ValueError):
        top_n = default_top_n
    top_n = max(1, min(50, top_n))

    return ReportFilters(
        policy=policy,
        dimension=dimension,
        current_from=_opt_str(raw.get("current_from")),
        current_to=_opt_str(raw.get("current_to")),
        previous_from=_opt_str(raw.get("previous_from")),
        previous_to=_opt_str(raw.get("previous_to")),
        value=_opt_str(raw.get("value")),
        sort_by=_opt_str(raw.get("sort_by")) or "key",
        sort_order=sort_order,
        top_n=top_n,
        chart_metric=chart_metric,
        columns=_as_str_list(raw.get("columns")),
    )
