from __future__ import annotations

from datetime import datetime

import pytest

from railops.errors import ValidationError
from railops.metrics_detention import analyze_patterns, compute_detention_summary, confidence_score


class TestAnalyzePatterns:
    def test_groups_below_three_records_are_dropped(self, detention_factory):
        records = [detention_factory(station="KRBA", minutes=60) for _ in range(2)]
        records += [detention_factory(station="BSP", minutes=60) for _ in range(3)]
        patterns = analyze_patterns(records)
        assert [p["station_id"] for p in patterns] == ["BSP"]

    def test_constant_durations_use_unit_ratio(self, detention_factory):
        records = [detention_factory(minutes=60) for _ in range(3)]
        (pattern,) = analyze_patterns(records)
        assert pattern["avg_duration"] == 60
        assert pattern["confidence"] == 30
        assert pattern["recommendation"] == "Maintain current efficient handling of BOXNHL at KRBA"

    def test_slow_groups_get_optimisation_advice(self, detention_factory):
        records = [detention_factory(minutes=m) for m in (200, 210, 220)]
        (pattern,) = analyze_patterns(records)
        assert pattern["recommendation"] == "Consider optimizing KRBA station procedures for BOXNHL handling"

    def test_variable_groups_are_flagged(self, detention_factory):
        records = [detention_factory(minutes=m, wagon_type="BCN") for m in (10, 10, 100)]
        (pattern,) = analyze_patterns(records)
        assert pattern["recommendation"] == "High variability in processing times for BCN at KRBA"
        assert pattern["confidence"] == 28

    def test_sorted_by_confidence_and_capped_at_three(self, detention_factory):
        records = []
        for station, count in (("A", 3), ("B", 4), ("C", 5), ("D", 6)):
            records += [detention_factory(station=station, minutes=60) for _ in range(count)]
        patterns = analyze_patterns(records)
        assert [p["station_id"] for p in patterns] == ["D", "C", "B"]

    def test_loading_counts_follow_wagon_type(self, detention_factory):
        records = [detention_factory(minutes=60) for _ in range(3)]
        records += [detention_factory(minutes=60, wagon_type="BTPN") for _ in range(3)]
        by_type = {p["wagon_type"]: p for p in analyze_patterns(records)}
        assert (by_type["BOXNHL"]["loading_count"], by_type["BOXNHL"]["unloading_count"]) == (3, 0)
        assert (by_type["BTPN"]["loading_count"], by_type["BTPN"]["unloading_count"]) == (0, 3)

    def test_empty(self):
        assert analyze_patterns([]) == []


def test_confidence_is_capped():
    assert confidence_score(30, 100.0, 0.0) == 100.0
    assert confidence_score(5, 0.0, 0.0) == pytest.approx(50.0)


def test_summary_reports_rounded_durations(detention_factory):
    summary = compute_detention_summary([detention_factory(minutes=89.6)])
    assert summary["records"][0]["duration_minutes"] == 90
    assert summary["patterns"] == []


class TestDetentionStore:
    def test_add_and_list(self, store, detention_body):
        created = store.add_detention(detention_body(minutes=90))
        assert created.id == 1
        assert created.duration_minutes == pytest.approx(90)
        listed = store.query_detention_records()
        assert [r.rake_id for r in listed] == ["R1"]

    def test_out_of_order_timestamps_rejected(self, store, detention_body):
        body = detention_body()
        body["release_time"] = datetime(2025, 1, 1, 7, 0).isoformat()
        with pytest.raises(ValidationError):
            store.add_detention(body)

    def test_missing_fields_rejected(self, store, detention_body):
        body = detention_body()
        del body["rake_id"]
        with pytest.raises(ValidationError):
            store.add_detention(body)

    def test_update_replaces_values(self, store, detention_body):
        created = store.add_detention(detention_body(minutes=90))
        updated = store.update_detention(created.id, {**detention_body(minutes=120), "remarks": "late crew"})
        assert updated.duration_minutes == pytest.approx(120)
        assert store.query_detention_records()[0].remarks == "late crew"


def test_zero_mean_with_spread_scores_zero(detention_factory):
    assert confidence_score(3, 0.0, 48.99) == 0.0
    # legacy rows with out-of-order stamps can average to zero
    records = [detention_factory(minutes=m) for m in (-60, 0, 60)]
    (pattern,) = analyze_patterns(records)
    assert pattern["confidence"] == 0
