"""Year-level loading reports: yearly totals, commodity share, loading by dimension."""

from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd

from railops.aggregation import dimension_keys, safe_div
from railops.charts import to_vega_spec, yearly_bar_chart
from railops.data import RecordStore
from railops.models import UNKNOWN_BUCKET, Dimension
from railops.periods import DateLike, make_window
from railops.presentation import to_mt

SUM_COLUMNS = ["wagons", "units", "tonnage", "freight"]


def financial_year(ts: pd.Timestamp) -> str:
    """April-March year label, e.g. 2024-04-01 -> ``2024-25``."""
    start = ts.year if ts.month >= 4 else ts.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


def _prepare(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["date"] = pd.to_datetime(out["date"], errors="coerce")
    out = out[out["date"].notna()]
    for col in SUM_COLUMNS:
        out[col] = pd.to_numeric(out[col], errors="coerce").fillna(0.0)
    return out


def _pct(part: float, whole: float) -> float:
    return round(safe_div(part, whole) * 100.0, 1)


def _totals(df: pd.DataFrame) -> Dict[str, Any]:
    return {
        "records": int(len(df)),
        "wagons": int(round(df["wagons"].sum())),
        "units": float(df["units"].sum()),
        "tonnage": float(df["tonnage"].sum()),
        "freight": float(df["freight"].sum()),
    }


def _range_frame(store: RecordStore, date_from: DateLike, date_to: DateLike) -> pd.DataFrame:
    if date_from is None and date_to is None:
        return _prepare(store.all_loading_frame())
    window = make_window(date_from, date_to, label="report range")
    return _prepare(store.query_loading_frame(window.start, window.end))


def compute_yearly_totals(store: RecordStore) -> List[Dict[str, Any]]:
    df = _prepare(store.all_loading_frame())
    if df.empty:
        return []
    df["year"] = df["date"].dt.year.astype(int).astype(str)
    out = []
    for year, grp in df.groupby("year", sort=True):
        out.append({"year": year, **_totals(grp)})
    return sorted(out, key=lambda r: r["year"], reverse=True)


def compute_commodity_share(
    store: RecordStore,
    *,
    date_from: DateLike = None,
    date_to: DateLike = None,
    limit: int = 2,
) -> Dict[str, Any]:
    """Per financial year: commodity totals as a share of the year, stations as a share of the commodity."""
    df = _range_frame(store, date_from, date_to)
    if df.empty:
        return {"years": [], "commodity_data": []}
    df["year"] = df["date"].apply(financial_year)
    df["commodity"] = dimension_keys(df["commodity"])
    df["station"] = dimension_keys(df["station"])

    years = []
    for year, grp in df.groupby("year", sort=True):
        years.append({"year": year, **_totals(grp)})
    years = sorted(years, key=lambda r: r["year"], reverse=True)[: max(1, limit)]

    commodity_data = []
    for y in years:
        ydf = df[df["year"] == y["year"]]
        commodities = []
        for commodity, cdf in ydf[ydf["commodity"] != UNKNOWN_BUCKET].groupby("commodity", sort=True):
            c_tot = _totals(cdf)
            stations = []
            for station, sdf in cdf[cdf["station"] != UNKNOWN_BUCKET].groupby("station", sort=True):
                s_tot = _totals(sdf)
                stations.append(
                    {
                        "station": station,
                        **s_tot,
                        **{f"{m}_percentage": _pct(s_tot[m], c_tot[m]) for m in SUM_COLUMNS},
                    }
                )
            commodities.append(
                {
                    "commodity": commodity,
                    **c_tot,
                    **{f"{m}_percentage": _pct(c_tot[m], y[m]) for m in SUM_COLUMNS},
                    "stations": stations,
                }
            )
        commodity_data.append({"year": y["year"], "data": commodities})
    return {"years": years, "commodity_data": commodity_data}


def yearly_loading_frame(df: pd.DataFrame, dim: str) -> pd.DataFrame:
    """Calendar-year tonnage, wagons and freight per ``dim`` value, rows with positive tonnage only."""
    df = df.copy()
    df[dim] = df[dim].astype("string").str.strip()
    df = df[df[dim].notna() & (df[dim] != "").fillna(False) & (df["tonnage"] > 0)]
    if df.empty:
        return pd.DataFrame(columns=["year", dim, "tonnage", "wagons", "freight", "tonnage_mt"])
    df["year"] = df["date"].dt.year.astype(int).astype(str)
    grouped = (
        df.groupby(["year", dim])
        .agg(tonnage=("tonnage", "sum"), wagons=("wagons", "sum"), freight=("freight", "sum"))
        .reset_index()
        .sort_values(["year", "tonnage"], ascending=[False, False], kind="mergesort")
    )
    grouped[dim] = grouped[dim].astype(str)
    grouped["wagons"] = grouped["wagons"].round().astype(int)
    grouped["tonnage_mt"] = grouped["tonnage"].apply(to_mt)
    return grouped.reset_index(drop=True)


def compute_yearly_loading(store: RecordStore, dimension: Dimension | str) -> Dict[str, Any]:
    dim = Dimension(dimension).value
    grouped = yearly_loading_frame(_prepare(store.all_loading_frame()), dim)
    if grouped.empty:
        return {"dimension": dim, "rows": [], "charts": {}}
    chart = yearly_bar_chart(grouped, category=dim)
    return {
        "dimension": dim,
        "rows": grouped.to_dict(orient="records"),
        "charts": {"yearly": to_vega_spec(chart)},
    }


def compute_yearly_comparison(store: RecordStore) -> Dict[str, List[Dict[str, Any]]]:
    """Yearly loading rows for both dimensions, as laid out in the yearly comparison export."""
    df = _prepare(store.all_loading_frame())
    return {dim.value: yearly_loading_frame(df, dim.value).to_dict(orient="records") for dim in Dimension}
