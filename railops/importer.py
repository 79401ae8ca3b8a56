"""Excel workbook validation and import for loading operations."""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from railops.data import RecordStore
from railops.errors import ImportValidationError, ValidationError
from railops.models import LoadingRecord
from railops.periods import DateLike, PeriodWindow, make_window, parse_date

logger = logging.getLogger(__name__)

DATE_COLUMN = "P DATE"
SHEET_COLUMNS = {
    "P DATE": "date",
    "STATION": "station",
    "SIDING": "siding",
    "IMPORTED": "imported",
    "COMMODITY": "commodity",
    "COMM TYPE": "comm_type",
    "COMM CG": "comm_cg",
    "DEMAND": "demand",
    "STATE": "state",
    "RLY": "rly",
    "WAGONS": "wagons",
    "TYPE": "wagon_type",
    "UNITS": "units",
    "LOADING TYPE": "loading_type",
    "RR NO FROM": "rr_no_from",
    "RR NO TO": "rr_no_to",
    "RR DATE": "rr_date",
    "TONNAGE": "tonnage",
    "FREIGHT": "freight",
    "T_INDENTS": "t_indents",
    "O/S INDENTS": "os_indents",
}
CHECKED_NUMERIC = ["WAGONS", "UNITS", "TONNAGE", "FREIGHT"]
INT_COLUMNS = {"WAGONS", "RR NO FROM", "RR NO TO", "T_INDENTS", "O/S INDENTS"}
FLOAT_COLUMNS = {"UNITS", "TONNAGE", "FREIGHT"}
TEXT_COLUMNS = [c for c in SHEET_COLUMNS if c not in INT_COLUMNS | FLOAT_COLUMNS | {"P DATE", "RR DATE"}]

MAX_REPORTED_ERRORS = 20
PREVIEW_ROWS = 10
# Excel's day zero, accounting for its 1900 leap-year bug
EXCEL_EPOCH = "1899-12-30"


@dataclass
class ImportResult:
    total_rows: int = 0
    errors: List[str] = field(default_factory=list)
    duplicates: int = 0
    date_filtered_out: int = 0
    records: List[LoadingRecord] = field(default_factory=list)

    @property
    def valid_rows(self) -> int:
        return len(self.records)

    @property
    def success(self) -> bool:
        return not self.errors

    def preview(self, limit: int = PREVIEW_ROWS) -> List[Dict[str, Any]]:
        return [
            {
                "date": r.date.isoformat(),
                "station": r.station,
                "siding": r.siding,
                "commodity": r.commodity,
                "comm_type": r.comm_type,
                "wagons": r.wagons or 0,
                "units": r.units or 0,
                "tonnage": r.tonnage or 0,
                "freight": r.freight or 0,
                "wagon_type": r.wagon_type,
            }
            for r in self.records[:limit]
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "errors": self.errors[:MAX_REPORTED_ERRORS],
            "error_count": len(self.errors),
            "valid_rows": self.valid_rows,
            "total_rows": self.total_rows,
            "duplicates": self.duplicates,
            "date_filtered_out": self.date_filtered_out,
            "preview": self.preview(),
        }


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_excel_date(value: Any) -> Optional[date]:
    """Real dates, Excel serial numbers, ``dd-mm-yyyy`` or ``yyyy-mm-dd``; blank gives None."""
    if _is_blank(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool):
        ts = pd.to_datetime(float(value), unit="D", origin=EXCEL_EPOCH, errors="coerce")
        if pd.isna(ts):
            raise ValidationError(f"Invalid date: {value!r}")
        return ts.date()
    s = str(value).strip()
    if s.isdigit():
        return parse_excel_date(int(s))
    try:
        return parse_date(s)
    except ValidationError:
        pass
    ts = pd.to_datetime(s, errors="coerce", dayfirst=True)
    if pd.isna(ts):
        raise ValidationError(f"Invalid date: {value!r}")
    return ts.date()


def _number(value: Any) -> Optional[float]:
    if _is_blank(value):
        return None
    num = float(str(value).strip().replace(",", "")) if isinstance(value, str) else float(value)
    if not math.isfinite(num):
        raise ValueError(f"not a finite number: {value!r}")
    return num


def _lenient_number(value: Any, *, integer: bool) -> Optional[float]:
    try:
        num = _number(value)
    except (TypeError, ValueError):
        return None
    if num is None:
        return None
    return int(num) if integer else num


def _lenient_date(value: Any) -> Optional[date]:
    try:
        return parse_excel_date(value)
    except ValidationError:
        return None


def read_workbook(content: bytes) -> pd.DataFrame:
    """First sheet of an uploaded workbook with stripped header names."""
    if not content:
        raise ImportValidationError("No file uploaded")
    try:
        df = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object, engine="openpyxl")
    except Exception as exc:
        raise ImportValidationError("Unable to read Excel workbook", [str(exc)]) from exc
    df.columns = [str(c).strip() for c in df.columns]
    if DATE_COLUMN not in df.columns:
        raise ImportValidationError(f"Missing required column: {DATE_COLUMN}", [f"Columns found: {', '.join(df.columns)}"])
    df = df.dropna(how="all")
    return df.reset_index(drop=True)


def _row_record(row: Dict[str, Any], row_date: date) -> LoadingRecord:
    values: Dict[str, Any] = {"date": row_date}
    for col in TEXT_COLUMNS:
        raw = row.get(col)
        values[SHEET_COLUMNS[col]] = None if _is_blank(raw) else str(raw).strip()
    for col in INT_COLUMNS:
        values[SHEET_COLUMNS[col]] = _lenient_number(row.get(col), integer=True)
    for col in FLOAT_COLUMNS:
        values[SHEET_COLUMNS[col]] = _lenient_number(row.get(col), integer=False)
    values["rr_date"] = _lenient_date(row.get("RR DATE"))
    return LoadingRecord(**values)


def _check_row(row: Dict[str, Any], row_num: int, window: Optional[PeriodWindow]) -> Tuple[List[str], Optional[date], bool]:
    errors: List[str] = []
    raw_date = row.get(DATE_COLUMN)
    if _is_blank(raw_date):
        errors.append(f"Row {row_num}: P DATE is required")
    for col in CHECKED_NUMERIC:
        try:
            _number(row.get(col))
        except (TypeError, ValueError):
            errors.append(f"Row {row_num}: {col} must be a number")

    row_date = None
    if not _is_blank(raw_date):
        try:
            row_date = parse_excel_date(raw_date)
        except ValidationError:
            errors.append(f"Row {row_num}: P DATE must be a valid date")
    if row_date is not None and window is not None and not window.contains(row_date):
        return [], row_date, True
    return errors, row_date, False


def validate_workbook(content: bytes, date_from: DateLike = None, date_to: DateLike = None) -> ImportResult:
    window = None
    if date_from is not None or date_to is not None:
        window = make_window(date_from, date_to, label="import date range")

    df = read_workbook(content)
    result = ImportResult(total_rows=int(len(df)))
    seen = set()
    for idx, row in enumerate(df.to_dict(orient="records")):
        # header is row 1
        row_num = idx + 2
        errors, row_date, filtered = _check_row(row, row_num, window)
        if filtered:
            result.date_filtered_out += 1
            continue
        if errors:
            result.errors.extend(errors)
            continue
        record = _row_record(row, row_date)
        key = (record.date, record.station, record.commodity)
        if key in seen:
            result.duplicates += 1
        seen.add(key)
        result.records.append(record)

    logger.info(
        "Validated workbook: %d valid of %d rows, %d errors, %d duplicates, %d outside range",
        result.valid_rows,
        result.total_rows,
        len(result.errors),
        result.duplicates,
        result.date_filtered_out,
    )
    return result


def import_workbook(
    store: RecordStore,
    content: bytes,
    *,
    date_from: DateLike = None,
    date_to: DateLike = None,
    replace: bool = False,
) -> Dict[str, Any]:
    """Insert every valid row; rows with errors are skipped and reported."""
    result = validate_workbook(content, date_from, date_to)
    inserted = store.bulk_insert(result.records, replace=replace)
    return {
        **result.to_dict(),
        "imported": inserted,
        "message": f"Successfully imported {inserted} records",
    }
