from __future__ import annotations

from datetime import date

import pytest

from railops.aggregation import aggregate, compare_groups, metric_variation, sort_rows, split_total, variation_percent
from railops.data import loading_frame
from railops.errors import ValidationError
from railops.models import TOTAL_KEY, UNKNOWN_BUCKET, ComparisonRow, Dimension, LoadingRecord, RawAggregate
from railops.periods import PeriodWindow

JAN_1_2 = PeriodWindow(date(2025, 1, 1), date(2025, 1, 2))


class TestAggregate:
    def test_end_to_end_example(self, sample_records):
        groups = aggregate(sample_records, Dimension.COMMODITY, JAN_1_2)

        assert groups["COAL"].rks == 1
        assert groups["COAL"].wagons == 15
        assert groups["COAL"].tonnage == 750
        assert groups["COAL"].avg_per_day == pytest.approx(7.5)
        assert groups["IRON"].rks == 1
        assert groups["IRON"].wagons == 8
        assert groups["IRON"].tonnage == 400
        assert groups["IRON"].avg_per_day == pytest.approx(4.0)

        rows = compare_groups(groups, {}, current_period=JAN_1_2)
        _, total = split_total(rows)
        assert total.key == TOTAL_KEY
        assert total.current.rks == 2
        assert total.current.wagons == 23
        assert total.current.tonnage == 1150
        assert total.current.avg_per_day == pytest.approx(11.5)

    def test_accepts_frames(self, sample_records):
        groups = aggregate(loading_frame(sample_records), "commodity", JAN_1_2)
        assert set(groups) == {"COAL", "IRON"}

    def test_rks_counts_distinct_dates(self):
        records = [
            LoadingRecord(date=date(2025, 1, 1), commodity="COAL", wagons=1),
            LoadingRecord(date=date(2025, 1, 1), commodity="COAL", wagons=2),
            LoadingRecord(date=date(2025, 1, 1), commodity="COAL", wagons=3),
            LoadingRecord(date=date(2025, 1, 2), commodity="COAL", wagons=4),
        ]
        coal = aggregate(records, Dimension.COMMODITY, JAN_1_2)["COAL"]
        assert coal.rks == 2
        assert coal.wagons == 10

    def test_date_filter_is_inclusive(self):
        records = [
            LoadingRecord(date=date(2024, 12, 31), commodity="COAL", wagons=100),
            LoadingRecord(date=date(2025, 1, 1), commodity="COAL", wagons=1),
            LoadingRecord(date=date(2025, 1, 2), commodity="COAL", wagons=2),
            LoadingRecord(date=date(2025, 1, 3), commodity="COAL", wagons=100),
        ]
        coal = aggregate(records, Dimension.COMMODITY, JAN_1_2)["COAL"]
        assert coal.wagons == 3
        assert coal.rks == 2

    def test_missing_dimension_goes_to_unknown(self):
        records = [
            LoadingRecord(date=date(2025, 1, 1), station=None, wagons=3),
            LoadingRecord(date=date(2025, 1, 1), station="  ", wagons=4),
        ]
        groups = aggregate(records, Dimension.STATION, JAN_1_2)
        assert list(groups) == [UNKNOWN_BUCKET]
        assert groups[UNKNOWN_BUCKET].wagons == 7

    def test_missing_numbers_count_as_zero(self):
        records = [LoadingRecord(date=date(2025, 1, 1), commodity="COAL")]
        coal = aggregate(records, Dimension.COMMODITY, JAN_1_2)["COAL"]
        assert coal.wagons == 0
        assert coal.tonnage == 0
        assert coal.rks == 1

    def test_empty_input(self):
        assert aggregate([], Dimension.COMMODITY, JAN_1_2) == {}


class TestCompareGroups:
    def test_total_matches_row_sums(self, sample_records):
        previous_period = PeriodWindow(date(2024, 12, 30), date(2024, 12, 31))
        current = aggregate(sample_records, Dimension.COMMODITY, JAN_1_2)
        previous = {"COAL": RawAggregate(rks=2, wagons=6, units=1.5, tonnage=300, freight=99.5, avg_per_day=3)}
        rows = compare_groups(current, previous, current_period=JAN_1_2, previous_period=previous_period)
        body, total = split_total(rows)

        for side in ("current", "previous"):
            for metric in ("rks", "wagons", "units", "tonnage", "freight"):
                expected = sum(getattr(getattr(r, side), metric) for r in body)
                assert getattr(getattr(total, side), metric) == pytest.approx(expected)
        assert total.variation_absolute == pytest.approx(1150 - 300)
        assert total.variation_percent == pytest.approx((1150 - 300) / 300 * 100)

    def test_union_of_keys_zero_fills(self):
        rows = compare_groups({"COAL": RawAggregate(tonnage=10)}, {"IRON": RawAggregate(tonnage=5)})
        by_key = {r.key: r for r in rows}
        assert by_key["COAL"].previous == RawAggregate()
        assert by_key["IRON"].current == RawAggregate()

    def test_zero_previous_guard(self):
        rows = compare_groups(
            {"UP": RawAggregate(tonnage=50), "FLAT": RawAggregate(tonnage=0)},
            {"UP": RawAggregate(tonnage=0), "FLAT": RawAggregate(tonnage=0)},
        )
        by_key = {r.key: r for r in rows}
        assert by_key["UP"].variation_percent == 100.0
        assert by_key["FLAT"].variation_percent == 0.0

    def test_default_sort_by_dimension_value(self):
        rows = compare_groups({"IRON": RawAggregate(), "COAL": RawAggregate(), "CEMENT": RawAggregate()}, {})
        assert [r.key for r in rows] == ["CEMENT", "COAL", "IRON", TOTAL_KEY]

    def test_total_is_last_after_descending_sort(self):
        rows = compare_groups(
            {"A": RawAggregate(tonnage=1), "B": RawAggregate(tonnage=3)},
            {},
            sort_by="current.tonnage",
            descending=True,
        )
        assert [r.key for r in rows] == ["B", "A", TOTAL_KEY]


class TestSortRows:
    @pytest.fixture
    def tied_rows(self):
        return [
            ComparisonRow("A", current=RawAggregate(wagons=5)),
            ComparisonRow("B", current=RawAggregate(wagons=3)),
            ComparisonRow("C", current=RawAggregate(wagons=5)),
            ComparisonRow("D", current=RawAggregate(wagons=3)),
        ]

    def test_ascending_keeps_tie_order(self, tied_rows):
        ordered = sort_rows(tied_rows, "current.wagons")
        assert [r.key for r in ordered] == ["B", "D", "A", "C"]

    def test_reversing_direction_gives_exact_reverse(self, tied_rows):
        ascending = sort_rows(tied_rows, "current.wagons")
        descending = sort_rows(ascending, "current.wagons", descending=True)
        assert [r.key for r in descending] == [r.key for r in reversed(ascending)]

    def test_strings_compare_lexicographically(self):
        rows = [ComparisonRow("b"), ComparisonRow("B"), ComparisonRow("a")]
        assert [r.key for r in sort_rows(rows, "key")] == ["B", "a", "b"]

    def test_unknown_column_rejected(self, tied_rows):
        with pytest.raises(ValidationError):
            sort_rows(tied_rows, "current.weight")
        with pytest.raises(ValidationError):
            sort_rows(tied_rows, "later.wagons")


def test_variation_percent_formula():
    assert variation_percent(150, 100) == pytest.approx(50.0)
    assert variation_percent(50, 100) == pytest.approx(-50.0)


def test_metric_variation_uses_same_guard():
    row = ComparisonRow("COAL", current=RawAggregate(wagons=12), previous=RawAggregate(wagons=0))
    assert metric_variation(row, "wagons") == (12.0, 100.0)
