from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ComparativeRequest(BaseModel):
    policy: Literal[
        "rolling_window",
        "explicit_dual_range",
        "calendar_year_to_date",
        "same_period_last_year",
    ] = "rolling_window"
    dimension: Literal["commodity", "station"] = "commodity"
    current_from: Optional[str] = None
    current_to: Optional[str] = None
    previous_from: Optional[str] = None
    previous_to: Optional[str] = None
    value: Optional[str] = None
    sort_by: str = "key"
    sort_order: Literal["asc", "desc"] = "asc"
    top_n: int = 5
    chart_metric: Literal["rks", "wagons", "units", "tonnage", "freight", "avg_per_day"] = "tonnage"
    columns: List[str] = Field(default_factory=list)


class LoadingIn(BaseModel):
    date: str
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
    rr_date: Optional[str] = None
    t_indents: Optional[int] = None
    os_indents: Optional[int] = None


class LoadingUpdate(BaseModel):
    date: Optional[str] = None
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
    rr_date: Optional[str] = None
    t_indents: Optional[int] = None
    os_indents: Optional[int] = None


class DetentionIn(BaseModel):
    station_id: str
    rake_id: str
    rake_name: str = ""
    wagon_type: str = "BOXNHL"
    arrival_time: str
    placement_time: str
    release_time: str
    departure_time: str
    ar_pl_reason: Optional[str] = None
    pl_rl_reason: Optional[str] = None
    rl_dp_reason: Optional[str] = None
    remarks: Optional[str] = None


class OptionsResponse(BaseModel):
    stations: List[str]
    commodities: List[str]
    comm_types: List[str]
    comm_cgs: List[str]
    states: List[str]
    railways: List[str]
    wagon_types: List[str]
    loading_types: List[str]
