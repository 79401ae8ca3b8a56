from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

METRIC_TITLES = {
    "rks": "Rakes",
    "wagons": "Wagons",
    "units": "Units",
    "tonnage": "MT",
    "freight": "Freight",
    "avg_per_day": "Avg/Day",
}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def series_frame(series: List[Dict[str, Any]], current_label: str, previous_label: str) -> pd.DataFrame:
    rows = []
    for item in series:
        rows.append({"key": item["key"], "period": current_label, "value": item["current"]})
        rows.append({"key": item["key"], "period": previous_label, "value": item["previous"]})
    return pd.DataFrame(rows, columns=["key", "period", "value"])


def comparison_bar_chart(
    series: List[Dict[str, Any]],
    *,
    dimension_title: str,
    metric: str,
    current_label: str,
    previous_label: str,
) -> alt.Chart:
    df = series_frame(series, current_label, previous_label)
    hover = alt.selection_point(fields=["period"], on="mouseover", empty="all")
    title = METRIC_TITLES.get(metric, metric)
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("key:N", title=dimension_title, sort=None, axis=alt.Axis(labelAngle=-30, grid=False)),
            xOffset="period:N",
            y=alt.Y("value:Q", title=title, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("period:N", title="Period", sort=[current_label, previous_label]),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
            tooltip=["key", "period", alt.Tooltip("value:Q", title=title, format=",.3f")],
        )
        .add_params(hover)
        .properties(height=280)
    )


def yearly_bar_chart(df: pd.DataFrame, *, category: str, value: str = "tonnage_mt", title: str = "MT") -> alt.Chart:
    hover = alt.selection_point(fields=[category], on="mouseover", empty="all")
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("year:O", title="Year", axis=alt.Axis(grid=False)),
            y=alt.Y(f"{value}:Q", title=title, stack=True, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(f"{category}:N", title=category.title()),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.3)),
            tooltip=["year", category, alt.Tooltip(f"{value}:Q", format=",.3f")],
        )
        .add_params(hover)
        .properties(height=300)
    )


def duration_bar_chart(df: pd.DataFrame) -> alt.Chart:
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("group:N", title="Station / Wagon type", sort="-y"),
            y=alt.Y("avg_duration:Q", title="Avg duration (min)"),
            color=alt.Color("confidence:Q", title="Confidence", scale=alt.Scale(domain=[0, 100])),
            tooltip=["group", "count", "avg_duration", "confidence"],
        )
        .properties(height=240)
    )
