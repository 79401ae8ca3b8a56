from __future__ import annotations

import logging
import math
import threading
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from railops.cache import ReportCache
from railops.errors import NotFoundError, ValidationError
from railops.models import (
    DETENTION_FIELDS,
    DETENTION_TIME_FIELDS,
    DEFAULT_WAGON_TYPE,
    LOADING_FIELDS,
    LOADING_INT_FIELDS,
    LOADING_NUMERIC_FIELDS,
    LOADING_TEXT_FIELDS,
    DetentionRecord,
    Dimension,
    LoadingRecord,
)
from railops.periods import DateLike, parse_date

logger = logging.getLogger(__name__)

LOADING_FILE = "loading_operations.csv"
DETENTION_FILE = "detentions.csv"

LOADING_DATE_FIELDS = ["date", "rr_date"]
LOADING_STAMP_FIELDS = ["created_at", "updated_at"]
SEARCH_FIELDS = ["station", "commodity", "siding", "wagon_type"]
DETENTION_TEXT_FIELDS = ["station_id", "rake_id", "rake_name", "wagon_type", "ar_pl_reason", "pl_rl_reason", "rl_dp_reason", "remarks"]

DROPDOWN_FIELDS = {
    "stations": "station",
    "commodities": "commodity",
    "comm_types": "comm_type",
    "comm_cgs": "comm_cg",
    "states": "state",
    "railways": "rly",
    "wagon_types": "wagon_type",
    "loading_types": "loading_type",
}


# ---------------- Frame helpers ----------------
def numericize(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def coerce_str_safe(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    for col in cols:
        if col in df.columns:
            series = df[col].astype("string").str.strip()
            series = series.replace({"nan": pd.NA, "None": pd.NA, "": pd.NA})
            df[col] = series
    return df


def normalize_text(value: object) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    s = str(value).strip()
    if not s or s.lower() in {"nan", "none", "null", "<na>"}:
        return None
    return s


def _clean(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return value
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    return value


def _to_date(value: Any) -> Optional[date]:
    value = _clean(value)
    if value is None:
        return None
    return pd.Timestamp(value).date()


def _to_datetime(value: Any) -> Optional[datetime]:
    value = _clean(value)
    if value is None:
        return None
    return pd.Timestamp(value).to_pydatetime()


def empty_loading_frame() -> pd.DataFrame:
    return pd.DataFrame({name: pd.Series(dtype=object) for name in LOADING_FIELDS})


def empty_detention_frame() -> pd.DataFrame:
    return pd.DataFrame({name: pd.Series(dtype=object) for name in DETENTION_FIELDS})


def concat_loading(frames: Iterable[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in frames if not f.empty]
    if not frames:
        return _normalize_loading_frame(empty_loading_frame())
    return _normalize_loading_frame(pd.concat(frames, ignore_index=True))


def concat_detentions(frames: Iterable[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in frames if not f.empty]
    if not frames:
        return _normalize_detention_frame(empty_detention_frame())
    return _normalize_detention_frame(pd.concat(frames, ignore_index=True))


def read_store_csv(path: Path, text_fields: Iterable[str]) -> pd.DataFrame:
    # codes like "007" or "NA" must come back exactly as written; only blank cells are missing
    return pd.read_csv(
        path,
        dtype={c: "string" for c in text_fields},
        keep_default_na=False,
        na_values=[""],
    )


def _text_equals(series: pd.Series, value: str) -> pd.Series:
    return (series.astype("string").str.strip() == str(value).strip()).fillna(False).astype(bool)


def loading_frame(records: Iterable[LoadingRecord]) -> pd.DataFrame:
    rows = [asdict(r) for r in records]
    if not rows:
        return _normalize_loading_frame(empty_loading_frame())
    return _normalize_loading_frame(pd.DataFrame(rows, columns=LOADING_FIELDS))


def _normalize_loading_frame(df: pd.DataFrame) -> pd.DataFrame:
    for col in LOADING_FIELDS:
        if col not in df.columns:
            df[col] = pd.NA
    df = df[LOADING_FIELDS].copy()
    for col in LOADING_DATE_FIELDS:
        df[col] = pd.to_datetime(df[col], errors="coerce").dt.normalize()
    for col in LOADING_STAMP_FIELDS:
        df[col] = pd.to_datetime(df[col], errors="coerce")
    df = numericize(df, LOADING_NUMERIC_FIELDS + LOADING_INT_FIELDS + ["id"])
    df = coerce_str_safe(df, LOADING_TEXT_FIELDS)
    return df


def _normalize_detention_frame(df: pd.DataFrame) -> pd.DataFrame:
    for col in DETENTION_FIELDS:
        if col not in df.columns:
            df[col] = pd.NA
    df = df[DETENTION_FIELDS].copy()
    for col in DETENTION_TIME_FIELDS + ["created_at"]:
        df[col] = pd.to_datetime(df[col], errors="coerce")
    df = numericize(df, ["id"])
    return df


def frame_to_loading_records(df: pd.DataFrame) -> List[LoadingRecord]:
    out: List[LoadingRecord] = []
    for row in df.to_dict(orient="records"):
        kwargs: Dict[str, Any] = {}
        for name in LOADING_FIELDS:
            value = _clean(row.get(name))
            if name in LOADING_DATE_FIELDS:
                value = _to_date(value)
            elif name in LOADING_STAMP_FIELDS:
                value = _to_datetime(value)
            elif name in LOADING_INT_FIELDS or name == "id":
                value = int(value) if value is not None else None
            elif name in LOADING_NUMERIC_FIELDS:
                value = float(value) if value is not None else None
            elif value is not None:
                value = str(value)
            kwargs[name] = value
        out.append(LoadingRecord(**kwargs))
    return out


def frame_to_detention_records(df: pd.DataFrame) -> List[DetentionRecord]:
    out: List[DetentionRecord] = []
    for row in df.to_dict(orient="records"):
        kwargs: Dict[str, Any] = {}
        for name in DETENTION_FIELDS:
            value = _clean(row.get(name))
            if name in DETENTION_TIME_FIELDS or name == "created_at":
                value = _to_datetime(value)
            elif name == "id":
                value = int(value) if value is not None else None
            elif value is not None:
                value = str(value)
            kwargs[name] = value
        if not kwargs.get("wagon_type"):
            kwargs["wagon_type"] = DEFAULT_WAGON_TYPE
        if kwargs.get("rake_name") is None:
            kwargs["rake_name"] = ""
        out.append(DetentionRecord(**kwargs))
    return out


# ---------------- Payload coercion ----------------
def _coerce_number(name: str, value: Any, *, integer: bool) -> Optional[float]:
    value = _clean(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number") from exc
    if math.isnan(num) or math.isinf(num):
        raise ValidationError(f"{name} must be a finite number")
    return int(num) if integer else num


def coerce_loading_payload(data: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """Validate and coerce a loading-record mapping (form submission or inline edit)."""
    out: Dict[str, Any] = {}
    for name, value in data.items():
        if name not in LOADING_FIELDS or name in {"id", "created_at", "updated_at"}:
            continue
        if name in LOADING_DATE_FIELDS:
            out[name] = parse_date(value)
        elif name in LOADING_INT_FIELDS:
            out[name] = _coerce_number(name, value, integer=True)
        elif name in LOADING_NUMERIC_FIELDS:
            out[name] = _coerce_number(name, value, integer=False)
        else:
            out[name] = normalize_text(value)
    if not partial and out.get("date") is None:
        raise ValidationError("date is required")
    if partial and "date" in out and out["date"] is None:
        raise ValidationError("date cannot be cleared")
    return out


def coerce_detention_payload(data: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    missing = [f for f in ["station_id", "rake_id"] + DETENTION_TIME_FIELDS if not _clean(data.get(f))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    for name in DETENTION_FIELDS:
        if name in {"id", "created_at"} or name not in data:
            continue
        value = data.get(name)
        if name in DETENTION_TIME_FIELDS:
            try:
                out[name] = pd.Timestamp(value).to_pydatetime().replace(tzinfo=None)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"{name} must be a valid timestamp") from exc
        else:
            out[name] = normalize_text(value)
    out["wagon_type"] = out.get("wagon_type") or DEFAULT_WAGON_TYPE
    out["rake_name"] = out.get("rake_name") or ""
    record = DetentionRecord(**out)
    if not record.is_ordered():
        raise ValidationError("Detention timestamps must satisfy arrival <= placement <= release <= departure")
    return out


# ---------------- Record store ----------------
class RecordStore:
    """CSV-backed store for loading operations and detentions.

    Frames live in memory; every write is flushed to ``data_dir`` when ``persist`` is set.
    """

    def __init__(self, data_dir: Optional[Path] = None, *, persist: bool = True, cache: Optional[ReportCache] = None) -> None:
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.persist = persist and self.data_dir is not None
        self.cache = cache
        self._lock = threading.RLock()
        self.loading = _normalize_loading_frame(empty_loading_frame())
        self.detentions = _normalize_detention_frame(empty_detention_frame())
        if self.data_dir is not None:
            self.load()

    # -- persistence --
    def load(self) -> None:
        if self.data_dir is None:
            return
        loading_path = self.data_dir / LOADING_FILE
        detention_path = self.data_dir / DETENTION_FILE
        with self._lock:
            if loading_path.exists():
                self.loading = _normalize_loading_frame(read_store_csv(loading_path, LOADING_TEXT_FIELDS))
            if detention_path.exists():
                self.detentions = _normalize_detention_frame(read_store_csv(detention_path, DETENTION_TEXT_FIELDS))
        logger.info("Loaded %d loading rows and %d detentions from %s", len(self.loading), len(self.detentions), self.data_dir)

    def _flush(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_all()
        if not self.persist or self.data_dir is None:
            return
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.loading.to_csv(self.data_dir / LOADING_FILE, index=False, date_format="%Y-%m-%d %H:%M:%S")
        self.detentions.to_csv(self.data_dir / DETENTION_FILE, index=False, date_format="%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _next_id(df: pd.DataFrame) -> int:
        if df.empty or df["id"].dropna().empty:
            return 1
        return int(df["id"].max()) + 1

    # -- loading operations --
    def query_loading_frame(
        self,
        date_from: DateLike,
        date_to: DateLike,
        *,
        dimension: Optional[Dimension | str] = None,
        value: Optional[str] = None,
    ) -> pd.DataFrame:
        start = parse_date(date_from)
        end = parse_date(date_to)
        if start is None or end is None:
            raise ValidationError("date_from and date_to are required")
        with self._lock:
            df = self.loading.copy()
        mask = df["date"].notna() & (df["date"] >= pd.Timestamp(start)) & (df["date"] <= pd.Timestamp(end))
        df = df[mask]
        if dimension is not None and value not in (None, "", "all"):
            col = Dimension(dimension).value
            df = df[_text_equals(df[col], str(value))]
        return df.reset_index(drop=True)

    def query_loading_records(
        self,
        date_from: DateLike,
        date_to: DateLike,
        *,
        dimension: Optional[Dimension | str] = None,
        value: Optional[str] = None,
    ) -> List[LoadingRecord]:
        return frame_to_loading_records(self.query_loading_frame(date_from, date_to, dimension=dimension, value=value))

    def all_loading_frame(self) -> pd.DataFrame:
        with self._lock:
            return self.loading.copy()

    def get_loading_record(self, record_id: int) -> LoadingRecord:
        with self._lock:
            match = self.loading[self.loading["id"] == record_id]
        if match.empty:
            raise NotFoundError(f"Railway loading operation {record_id} not found")
        return frame_to_loading_records(match)[0]

    def add_loading_record(self, data: Mapping[str, Any]) -> LoadingRecord:
        payload = coerce_loading_payload(data)
        with self._lock:
            now = datetime.now()
            record = LoadingRecord(**payload, id=self._next_id(self.loading), created_at=now, updated_at=now)
            self.loading = concat_loading([self.loading, loading_frame([record])])
            self._flush()
        logger.info("Created loading operation %s", record.id)
        return record

    def update_loading_record(self, record_id: int, changes: Mapping[str, Any]) -> LoadingRecord:
        payload = coerce_loading_payload(changes, partial=True)
        with self._lock:
            idx = self.loading.index[self.loading["id"] == record_id]
            if len(idx) == 0:
                raise NotFoundError(f"Railway loading operation {record_id} not found")
            current = frame_to_loading_records(self.loading.loc[idx])[0]
            updated = LoadingRecord(**{**asdict(current), **payload, "updated_at": datetime.now()})
            self.loading = concat_loading([self.loading.drop(index=idx), loading_frame([updated])])
            self.loading = self.loading.sort_values("id", kind="mergesort").reset_index(drop=True)
            self._flush()
        logger.info("Updated loading operation %s (%s)", record_id, ", ".join(sorted(payload)))
        return updated

    def bulk_insert(self, records: Iterable[LoadingRecord], *, replace: bool = False) -> int:
        records = list(records)
        with self._lock:
            base = _normalize_loading_frame(empty_loading_frame()) if replace else self.loading
            next_id = self._next_id(base)
            now = datetime.now()
            stamped = []
            for offset, rec in enumerate(records):
                stamped.append(LoadingRecord(**{**asdict(rec), "id": next_id + offset, "created_at": now, "updated_at": now}))
            self.loading = concat_loading([base, loading_frame(stamped)])
            self._flush()
        logger.info("Bulk inserted %d loading operations (replace=%s)", len(records), replace)
        return len(records)

    def list_loading_records(
        self,
        *,
        page: int = 1,
        page_size: int = 50,
        search: str = "",
        station: str = "",
        commodity: str = "",
        sort_by: str = "date",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        df = self.filtered_loading_frame(search=search, station=station, commodity=commodity, sort_by=sort_by, sort_order=sort_order)
        page = max(1, int(page))
        page_size = max(1, min(1000, int(page_size)))
        total = int(len(df))
        chunk = df.iloc[(page - 1) * page_size : page * page_size]
        return {
            "data": [r.to_dict() for r in frame_to_loading_records(chunk)],
            "total_records": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
            "current_page": page,
            "page_size": page_size,
        }

    def filtered_loading_frame(
        self,
        *,
        search: str = "",
        station: str = "",
        commodity: str = "",
        sort_by: str = "date",
        sort_order: str = "desc",
    ) -> pd.DataFrame:
        df = self.all_loading_frame()
        q = (search or "").strip().lower()
        if q:
            mask = pd.Series(False, index=df.index)
            for col in SEARCH_FIELDS:
                mask |= df[col].astype("string").str.lower().str.contains(q, na=False, regex=False)
            df = df[mask]
        if station and station != "all":
            df = df[_text_equals(df["station"], station)]
        if commodity and commodity != "all":
            df = df[_text_equals(df["commodity"], commodity)]
        sort_col = sort_by if sort_by in LOADING_FIELDS else "date"
        return df.sort_values(sort_col, ascending=(sort_order == "asc"), kind="mergesort", na_position="last")

    def dropdown_options(self) -> Dict[str, List[str]]:
        df = self.all_loading_frame()
        out: Dict[str, List[str]] = {}
        for key, col in DROPDOWN_FIELDS.items():
            values = df[col].dropna().astype(str).str.strip()
            out[key] = sorted(v for v in values.unique().tolist() if v)
        return out

    # -- detentions --
    def query_detention_records(self) -> List[DetentionRecord]:
        with self._lock:
            df = self.detentions.sort_values("created_at", ascending=False, kind="mergesort")
        return frame_to_detention_records(df)

    def add_detention(self, data: Mapping[str, Any]) -> DetentionRecord:
        payload = coerce_detention_payload(data)
        with self._lock:
            record = DetentionRecord(**payload, id=self._next_id(self.detentions), created_at=datetime.now())
            self.detentions = concat_detentions([self.detentions, pd.DataFrame([asdict(record)])])
            self._flush()
        logger.info("Created detention %s for rake %s at %s", record.id, record.rake_id, record.station_id)
        return record

    def update_detention(self, record_id: int, data: Mapping[str, Any]) -> DetentionRecord:
        payload = coerce_detention_payload(data)
        with self._lock:
            idx = self.detentions.index[self.detentions["id"] == record_id]
            if len(idx) == 0:
                raise NotFoundError(f"Detention record {record_id} not found")
            current = frame_to_detention_records(self.detentions.loc[idx])[0]
            updated = DetentionRecord(**{**asdict(current), **payload})
            row = _normalize_detention_frame(pd.DataFrame([asdict(updated)]))
            self.detentions = concat_detentions([self.detentions.drop(index=idx), row])
            self.detentions = self.detentions.sort_values("id", kind="mergesort").reset_index(drop=True)
            self._flush()
        logger.info("Updated detention %s", record_id)
        return updated
