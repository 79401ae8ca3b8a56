from __future__ import annotations

import io
from datetime import date, datetime

import pandas as pd
import pytest

from railops.errors import ImportValidationError, ValidationError
from railops.importer import import_workbook, parse_excel_date, validate_workbook


def workbook_bytes(rows):
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


def sheet_row(p_date, station="KRBA", commodity="COAL", wagons=10, tonnage=500.0, **extra):
    row = {
        "P DATE": p_date,
        "STATION": station,
        "SIDING": "SID1",
        "COMMODITY": commodity,
        "WAGONS": wagons,
        "TYPE": "BOXNHL",
        "UNITS": 1,
        "TONNAGE": tonnage,
        "FREIGHT": 1000.5,
        "RR NO FROM": 101,
        "RR NO TO": 110,
        "RR DATE": "02-01-2025",
    }
    row.update(extra)
    return row


class TestParseExcelDate:
    def test_serial_number(self):
        assert parse_excel_date(45658) == date(2025, 1, 1)
        assert parse_excel_date(45658.0) == date(2025, 1, 1)

    def test_day_first_string(self):
        assert parse_excel_date("15-01-2025") == date(2025, 1, 15)

    def test_iso_string(self):
        assert parse_excel_date("2025-01-15") == date(2025, 1, 15)

    def test_real_datetime(self):
        assert parse_excel_date(datetime(2025, 1, 15, 10, 30)) == date(2025, 1, 15)

    def test_blank(self):
        assert parse_excel_date(None) is None
        assert parse_excel_date(float("nan")) is None

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_excel_date("someday")


class TestValidateWorkbook:
    def test_counts_and_errors(self):
        content = workbook_bytes(
            [
                sheet_row(datetime(2025, 1, 1)),
                sheet_row(45658),
                sheet_row("03-01-2025", commodity="IRON"),
                sheet_row(None),
                sheet_row("2025-01-04", wagons="lots"),
                sheet_row("not a date"),
                sheet_row("2024-06-01"),
            ]
        )
        result = validate_workbook(content, "2025-01-01", "2025-01-31")

        assert result.total_rows == 7
        assert result.valid_rows == 3
        assert result.date_filtered_out == 1
        assert result.duplicates == 1
        assert result.errors == [
            "Row 5: P DATE is required",
            "Row 6: WAGONS must be a number",
            "Row 7: P DATE must be a valid date",
        ]
        assert not result.success

    def test_non_finite_numbers_are_row_errors(self):
        content = workbook_bytes(
            [
                sheet_row("01-01-2025", wagons="inf"),
                sheet_row("02-01-2025", tonnage="1e400"),
                sheet_row("03-01-2025", **{"RR NO FROM": "inf"}),
            ]
        )
        result = validate_workbook(content)
        assert result.errors == ["Row 2: WAGONS must be a number", "Row 3: TONNAGE must be a number"]
        (record,) = result.records
        assert record.date == date(2025, 1, 3)
        assert record.rr_no_from is None

    def test_records_carry_sheet_columns(self):
        result = validate_workbook(workbook_bytes([sheet_row("2025-01-05")]))
        (record,) = result.records
        assert record.date == date(2025, 1, 5)
        assert record.wagon_type == "BOXNHL"
        assert record.siding == "SID1"
        assert record.rr_no_from == 101
        assert record.rr_date == date(2025, 1, 2)
        assert result.success

    def test_preview_shape(self):
        summary = validate_workbook(workbook_bytes([sheet_row("2025-01-05")])).to_dict()
        assert summary["preview"][0]["date"] == "2025-01-05"
        assert summary["preview"][0]["wagons"] == 10
        assert set(summary) >= {"valid_rows", "total_rows", "errors", "duplicates", "date_filtered_out", "preview"}

    def test_half_range_rejected(self):
        with pytest.raises(ValidationError):
            validate_workbook(workbook_bytes([sheet_row("2025-01-05")]), "2025-01-01", None)

    def test_unreadable_file(self):
        with pytest.raises(ImportValidationError):
            validate_workbook(b"definitely not a workbook")

    def test_empty_upload(self):
        with pytest.raises(ImportValidationError):
            validate_workbook(b"")

    def test_missing_date_column(self):
        content = workbook_bytes([{"STATION": "KRBA", "WAGONS": 1}])
        with pytest.raises(ImportValidationError) as info:
            validate_workbook(content)
        assert info.value.errors


def test_import_inserts_valid_rows(store):
    content = workbook_bytes([sheet_row("2025-01-05"), sheet_row(None), sheet_row("2025-01-06", station="BSP")])
    summary = import_workbook(store, content)
    assert summary["imported"] == 2
    assert summary["message"] == "Successfully imported 2 records"
    assert sorted(store.dropdown_options()["stations"]) == ["BSP", "KRBA"]
