from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional


UNKNOWN_BUCKET = "Unknown"
TOTAL_KEY = "TOTAL"
DEFAULT_WAGON_TYPE = "BOXNHL"


class Dimension(str, Enum):
    COMMODITY = "commodity"
    STATION = "station"


@dataclass
class LoadingRecord:
    """One wagon-loading event. Only ``date`` is required."""

    date: date
    station: Optional[str] = None
    commodity: Optional[str] = None
    wagons: Optional[int] = None
    units: Optional[float] = None
    tonnage: Optional[float] = None
    freight: Optional[float] = None
    siding: Optional[str] = None
    imported: Optional[str] = None
    comm_type: Optional[str] = None
    comm_cg: Optional[str] = None
    demand: Optional[str] = None
    state: Optional[str] = None
    rly: Optional[str] = None
    wagon_type: Optional[str] = None
    loading_type: Optional[str] = None
    rr_no_from: Optional[int] = None
    rr_no_to: Optional[int] = None
    rr_date: Optional[date] = None
    t_indents: Optional[int] = None
    os_indents: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def dimension_value(self, dimension: Dimension) -> str:
        value = self.commodity if dimension == Dimension.COMMODITY else self.station
        if value is None or not str(value).strip():
            return UNKNOWN_BUCKET
        return str(value).strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


LOADING_FIELDS = [f.name for f in fields(LoadingRecord)]
LOADING_NUMERIC_FIELDS = ["wagons", "units", "tonnage", "freight"]
LOADING_INT_FIELDS = ["wagons", "rr_no_from", "rr_no_to", "t_indents", "os_indents"]
LOADING_TEXT_FIELDS = [
    "station",
    "commodity",
    "siding",
    "imported",
    "comm_type",
    "comm_cg",
    "demand",
    "state",
    "rly",
    "wagon_type",
    "loading_type",
]


@dataclass
class DetentionRecord:
    """One rake's dwell at a station."""

    station_id: str
    rake_id: str
    arrival_time: datetime
    placement_time: datetime
    release_time: datetime
    departure_time: datetime
    rake_name: str = ""
    wagon_type: str = DEFAULT_WAGON_TYPE
    ar_pl_reason: Optional[str] = None
    pl_rl_reason: Optional[str] = None
    rl_dp_reason: Optional[str] = None
    remarks: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def duration_minutes(self) -> float:
        return (self.departure_time - self.arrival_time).total_seconds() / 60.0

    def stage_minutes(self) -> Dict[str, float]:
        return {
            "arrival_to_placement": (self.placement_time - self.arrival_time).total_seconds() / 60.0,
            "placement_to_release": (self.release_time - self.placement_time).total_seconds() / 60.0,
            "release_to_departure": (self.departure_time - self.release_time).total_seconds() / 60.0,
        }

    def is_ordered(self) -> bool:
        return self.arrival_time <= self.placement_time <= self.release_time <= self.departure_time

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["duration_minutes"] = round(self.duration_minutes)
        out["stages"] = {k: round(v) for k, v in self.stage_minutes().items()}
        return out


DETENTION_FIELDS = [f.name for f in fields(DetentionRecord)]
DETENTION_TIME_FIELDS = ["arrival_time", "placement_time", "release_time", "departure_time"]


@dataclass
class RawAggregate:
    rks: int = 0
    wagons: float = 0.0
    units: float = 0.0
    tonnage: float = 0.0
    freight: float = 0.0
    avg_per_day: float = 0.0


@dataclass
class ComparisonRow:
    key: str
    current: RawAggregate = field(default_factory=RawAggregate)
    previous: RawAggregate = field(default_factory=RawAggregate)
    variation_absolute: float = 0.0
    variation_percent: float = 0.0
    is_total: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Metric(str, Enum):
    RKS = "rks"
    WAGONS = "wagons"
    UNITS = "units"
    TONNAGE = "tonnage"
    FREIGHT = "freight"
    AVG_PER_DAY = "avg_per_day"


METRIC_ACCESSORS: Dict[Metric, Callable[[RawAggregate], float]] = {
    Metric.RKS: lambda agg: agg.rks,
    Metric.WAGONS: lambda agg: agg.wagons,
    Metric.UNITS: lambda agg: agg.units,
    Metric.TONNAGE: lambda agg: agg.tonnage,
    Metric.FREIGHT: lambda agg: agg.freight,
    Metric.AVG_PER_DAY: lambda agg: agg.avg_per_day,
}


def metric_value(agg: RawAggregate, metric: Metric) -> float:
    return METRIC_ACCESSORS[Metric(metric)](agg)
