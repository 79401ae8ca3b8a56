from __future__ import annotations

from datetime import date

import pytest

from railops.errors import ValidationError
from railops.filters import normalize_filters
from railops.metrics_comparative import compute_comparative, compute_daily_report
from railops.metrics_yearly import (
    compute_commodity_share,
    compute_yearly_comparison,
    compute_yearly_loading,
    compute_yearly_totals,
    financial_year,
)
from railops.models import LoadingRecord

import pandas as pd


class TestComparative:
    def test_rolling_window_payload(self, seeded_store):
        filters = normalize_filters({"current_from": "2025-01-01", "current_to": "2025-01-02"})
        payload = compute_comparative(filters, seeded_store)

        assert payload["periods"]["previous"]["from"] == "2024-12-30"
        assert payload["periods"]["previous"]["to"] == "2024-12-31"
        keys = [r["key"] for r in payload["rows"]]
        assert keys == ["CEMENT", "COAL", "IRON"]
        coal = payload["rows"][1]
        assert coal["current_wagons"] == 15
        assert coal["previous_wagons"] == 20
        assert coal["variation_percent"] == pytest.approx(-25.0)
        assert payload["total"]["current_wagons"] == 23
        assert payload["total"]["previous_wagons"] == 24
        assert "comparison" in payload["charts"]

    def test_dimension_filter_without_matches(self, seeded_store):
        filters = normalize_filters(
            {"current_from": "2025-01-01", "current_to": "2025-01-02", "dimension": "station", "value": "NOWHERE"}
        )
        payload = compute_comparative(filters, seeded_store)
        assert [r["key"] for r in payload["rows"]] == ["NOWHERE"]
        assert payload["rows"][0]["current_wagons"] == 0
        assert payload["total"]["variation_percent"] == 0.0

    def test_sorting_by_metric(self, seeded_store):
        filters = normalize_filters(
            {
                "current_from": "2025-01-01",
                "current_to": "2025-01-02",
                "sort_by": "current.tonnage",
                "sort_order": "desc",
            }
        )
        payload = compute_comparative(filters, seeded_store)
        assert [r["key"] for r in payload["rows"]] == ["COAL", "IRON", "CEMENT"]

    def test_invalid_range_fails_before_querying(self, seeded_store):
        filters = normalize_filters({"current_from": "2025-01-05", "current_to": "2025-01-01"})
        with pytest.raises(ValidationError):
            compute_comparative(filters, seeded_store)

    def test_unknown_dimension_rejected(self):
        with pytest.raises(ValidationError):
            normalize_filters({"dimension": "siding"})


def test_daily_report_has_both_sections(seeded_store):
    report = compute_daily_report(seeded_store, "2025-01-01", "2025-01-02", "2024-12-30", "2024-12-31")
    assert {r["key"] for r in report["station"]["rows"]} == {"KRBA", "BSP"}
    assert report["summary"]["current"]["days"] == 2
    assert report["summary"]["current"]["formula"] == "23 ÷ 2 = 11.500"
    assert report["summary"]["previous"]["wagons"] == 24


def test_daily_report_requires_all_dates(seeded_store):
    with pytest.raises(ValidationError):
        compute_daily_report(seeded_store, "2025-01-01", "2025-01-02", None, "2024-12-31")


class TestYearly:
    def test_financial_year_label(self):
        assert financial_year(pd.Timestamp("2024-04-01")) == "2024-25"
        assert financial_year(pd.Timestamp("2025-03-31")) == "2024-25"

    def test_yearly_totals(self, seeded_store):
        totals = compute_yearly_totals(seeded_store)
        assert [t["year"] for t in totals] == ["2025", "2024"]
        assert totals[0]["records"] == 3
        assert totals[1]["wagons"] == 24

    def test_commodity_share(self, store):
        store.bulk_insert(
            [
                LoadingRecord(date=date(2024, 5, 1), station="KRBA", commodity="COAL", wagons=30, tonnage=300),
                LoadingRecord(date=date(2024, 6, 1), station="BSP", commodity="COAL", wagons=10, tonnage=100),
                LoadingRecord(date=date(2024, 7, 1), station="BSP", commodity="IRON", wagons=60, tonnage=600),
            ]
        )
        share = compute_commodity_share(store)
        assert [y["year"] for y in share["years"]] == ["2024-25"]
        (block,) = share["commodity_data"]
        coal = next(c for c in block["data"] if c["commodity"] == "COAL")
        assert coal["wagons_percentage"] == 40.0
        assert [s["tonnage_percentage"] for s in coal["stations"]] == [25.0, 75.0]

    def test_commodity_share_zero_totals(self, store):
        store.bulk_insert([LoadingRecord(date=date(2024, 5, 1), station="KRBA", commodity="COAL")])
        coal = compute_commodity_share(store)["commodity_data"][0]["data"][0]
        assert coal["freight_percentage"] == 0.0

    def test_yearly_loading_skips_zero_tonnage(self, store):
        store.bulk_insert(
            [
                LoadingRecord(date=date(2024, 5, 1), commodity="COAL", tonnage=2_000_000),
                LoadingRecord(date=date(2025, 5, 1), commodity="COAL", tonnage=1_000_000),
                LoadingRecord(date=date(2025, 5, 1), commodity="IRON", tonnage=0),
            ]
        )
        loading = compute_yearly_loading(store, "commodity")
        assert [(r["year"], r["commodity"]) for r in loading["rows"]] == [("2025", "COAL"), ("2024", "COAL")]
        assert loading["rows"][1]["tonnage_mt"] == 2.0
        assert "yearly" in loading["charts"]

    def test_yearly_comparison_covers_both_dimensions(self, seeded_store):
        report = compute_yearly_comparison(seeded_store)
        assert [(r["year"], r["commodity"]) for r in report["commodity"]] == [
            ("2025", "COAL"),
            ("2025", "IRON"),
            ("2024", "COAL"),
            ("2024", "CEMENT"),
        ]
        assert [(r["year"], r["station"], r["wagons"]) for r in report["station"]] == [
            ("2025", "KRBA", 15),
            ("2025", "BSP", 8),
            ("2024", "KRBA", 20),
            ("2024", "BSP", 4),
        ]
