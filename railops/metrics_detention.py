"""Detention durations and per (station, wagon type) pattern scoring."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

import numpy as np
import pandas as pd

from railops.charts import duration_bar_chart, to_vega_spec
from railops.models import DEFAULT_WAGON_TYPE, DetentionRecord

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3
TOP_PATTERNS = 3
SLOW_MEAN_MINUTES = 180.0
VARIABILITY_RATIO = 0.5
LOADING_WAGON_TYPE = "BOXNHL"


def durations_frame(records: Iterable[DetentionRecord]) -> pd.DataFrame:
    rows = [
        {
            "station_id": r.station_id,
            "wagon_type": r.wagon_type or DEFAULT_WAGON_TYPE,
            "duration": r.duration_minutes,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=["station_id", "wagon_type", "duration"])


def confidence_score(count: int, mean: float, std: float) -> float:
    if std == 0:
        term = 1.0
    elif mean == 0:
        return 0.0
    else:
        term = mean / std
    return max(0.0, min(100.0, (count / 10.0) * term * 100.0))


def recommendation(station: str, wagon_type: str, mean: float, std: float) -> str:
    if mean > SLOW_MEAN_MINUTES:
        return f"Consider optimizing {station} station procedures for {wagon_type} handling"
    if std > mean * VARIABILITY_RATIO:
        return f"High variability in processing times for {wagon_type} at {station}"
    return f"Maintain current efficient handling of {wagon_type} at {station}"


def analyze_patterns(records: Iterable[DetentionRecord], *, top: int = TOP_PATTERNS) -> List[Dict[str, Any]]:
    """Score groups with at least three detentions; the most consistent groups come first."""
    df = durations_frame(records)
    if df.empty:
        return []
    patterns = []
    for (station, wagon_type), grp in df.groupby(["station_id", "wagon_type"], sort=True):
        count = int(len(grp))
        if count < MIN_SAMPLES:
            continue
        values = grp["duration"].to_numpy(dtype=float)
        mean = float(np.mean(values))
        std = float(np.std(values))
        loading = count if wagon_type == LOADING_WAGON_TYPE else 0
        patterns.append(
            {
                "station_id": str(station),
                "wagon_type": str(wagon_type),
                "count": count,
                "avg_duration": round(mean),
                "std_duration": round(std, 2),
                "confidence": round(confidence_score(count, mean, std)),
                "loading_count": loading,
                "unloading_count": count - loading,
                "recommendation": recommendation(str(station), str(wagon_type), mean, std),
            }
        )
    patterns.sort(key=lambda p: p["confidence"], reverse=True)
    logger.debug("Detention patterns: %d qualifying groups", len(patterns))
    return patterns[:top]


def compute_detention_summary(records: List[DetentionRecord]) -> Dict[str, Any]:
    patterns = analyze_patterns(records)
    charts: Dict[str, Any] = {}
    if patterns:
        df = pd.DataFrame(patterns)
        df["group"] = df["station_id"] + " / " + df["wagon_type"]
        charts["patterns"] = to_vega_spec(duration_bar_chart(df))
    return {
        "records": [r.to_dict() for r in records],
        "patterns": patterns,
        "charts": charts,
    }
