from __future__ import annotations

import json
import logging
import math
from datetime import date
from functools import lru_cache
from typing import Any, Callable, Literal, Optional

import numpy as np
import pandas as pd
from fastapi import Depends, FastAPI, File, Form, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import ComparativeRequest, DetentionIn, LoadingIn, LoadingUpdate, OptionsResponse
from railops.cache import ReportCache
from railops.config import get_settings, setup_logging
from railops.data import RecordStore
from railops.errors import ImportValidationError, NotFoundError, ValidationError
from railops.exports import ExportPayload, export_entries, export_rows, export_yearly_comparison
from railops.filters import ReportFilters, normalize_filters
from railops.importer import import_workbook, validate_workbook
from railops.metrics_comparative import compute_comparative, compute_daily_report
from railops.metrics_detention import compute_detention_summary
from railops.metrics_yearly import (
    compute_commodity_share,
    compute_yearly_comparison,
    compute_yearly_loading,
    compute_yearly_totals,
)
from railops.models import Dimension
from railops.presentation import comparison_columns, select_columns


settings = get_settings()
setup_logging(settings.log_level)

app = FastAPI(title="Railway Operations API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_CODES = [
    (ImportValidationError, 422),
    (NotFoundError, 404),
    (ValidationError, 400),
]


@lru_cache(maxsize=1)
def _default_store() -> RecordStore:
    cache = ReportCache(settings.cache_ttl_seconds, settings.cache_max_entries)
    return RecordStore(settings.data_dir, cache=cache)


def get_store() -> RecordStore:
    return _default_store()


def _filters_from_model(model: ComparativeRequest) -> ReportFilters:
    return normalize_filters(model.model_dump(), default_top_n=settings.top_n)


def _cached(store: RecordStore, key: str, compute: Callable[[], Any]) -> Any:
    if store.cache is None:
        return compute()
    return store.cache.get_or_compute(key, compute)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    for cls, status in STATUS_CODES:
        if isinstance(exc, cls):
            logger.warning("%s rejected: %s", where, exc)
            content: dict = {"error": str(exc), "type": type(exc).__name__}
            if isinstance(exc, ImportValidationError):
                content["errors"] = exc.errors
            return JSONResponse(status_code=status, content=content)
    logger.exception("%s failed", where)
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _download(payload: ExportPayload, stem: str) -> Response:
    return Response(
        content=payload.content,
        media_type=payload.media_type,
        headers={"Content-Disposition": f"attachment; filename={payload.filename(stem)}"},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/meta/options", response_model=OptionsResponse)
def meta_options(store: RecordStore = Depends(get_store)):
    try:
        return _json(store.dropdown_options())
    except Exception as exc:
        return _error(exc, "meta_options")


# ---------------- Reports ----------------
@app.post("/reports/comparative")
def comparative(request: ComparativeRequest, store: RecordStore = Depends(get_store)):
    try:
        f = _filters_from_model(request)
        key = "comparative:" + json.dumps(request.model_dump(), sort_keys=True) + f":{date.today().isoformat()}"
        payload = _cached(store, key, lambda: compute_comparative(f, store, currency=settings.currency_symbol))
        return _json(payload)
    except Exception as exc:
        return _error(exc, "comparative")


@app.get("/reports/daily")
def daily_report(
    current_from: Optional[str] = Query(default=None),
    current_to: Optional[str] = Query(default=None),
    previous_from: Optional[str] = Query(default=None),
    previous_to: Optional[str] = Query(default=None),
    store: RecordStore = Depends(get_store),
):
    try:
        key = f"daily:{current_from}:{current_to}:{previous_from}:{previous_to}"
        payload = _cached(
            store,
            key,
            lambda: compute_daily_report(
                store, current_from, current_to, previous_from, previous_to, currency=settings.currency_symbol
            ),
        )
        return _json(payload)
    except Exception as exc:
        return _error(exc, "daily_report")


@app.get("/reports/yearly")
def yearly_totals(store: RecordStore = Depends(get_store)):
    try:
        return _json({"years": _cached(store, "yearly", lambda: compute_yearly_totals(store))})
    except Exception as exc:
        return _error(exc, "yearly_totals")


@app.get("/reports/commodity-share")
def commodity_share(
    date_from: Optional[str] = Query(default=None),
    date_to: Optional[str] = Query(default=None),
    limit: int = Query(default=2, ge=1, le=10),
    store: RecordStore = Depends(get_store),
):
    try:
        key = f"commodity-share:{date_from}:{date_to}:{limit}"
        payload = _cached(
            store, key, lambda: compute_commodity_share(store, date_from=date_from, date_to=date_to, limit=limit)
        )
        return _json(payload)
    except Exception as exc:
        return _error(exc, "commodity_share")


@app.get("/reports/yearly-loading/{dimension}")
def yearly_loading(dimension: Literal["commodity", "station"], store: RecordStore = Depends(get_store)):
    try:
        return _json(_cached(store, f"yearly-loading:{dimension}", lambda: compute_yearly_loading(store, dimension)))
    except Exception as exc:
        return _error(exc, "yearly_loading")


# ---------------- Exports ----------------
@app.post("/export/comparative")
def export_comparative(
    request: ComparativeRequest,
    format: Literal["csv", "json", "excel", "pdf"] = Query(default="csv"),
    store: RecordStore = Depends(get_store),
):
    try:
        f = _filters_from_model(request)
        payload = compute_comparative(f, store, currency=settings.currency_symbol)
        rows = payload["rows"] + ([payload["total"]] if payload["total"] else [])
        cols = select_columns(comparison_columns(f.dimension), f.columns)
        periods = payload["periods"]
        title = f"{f.dimension.value.title()}-wise Comparative Loading"
        subtitle = f"{periods['current']['label']} vs {periods['previous']['label']}"
        out = export_rows(rows, cols, format, title=title, subtitle=subtitle)
        return _download(out, f"{f.dimension.value}-comparative-loading-{periods['current']['from']}")
    except Exception as exc:
        return _error(exc, "export_comparative")


@app.get("/export/daily")
def export_daily(
    current_from: Optional[str] = Query(default=None),
    current_to: Optional[str] = Query(default=None),
    previous_from: Optional[str] = Query(default=None),
    previous_to: Optional[str] = Query(default=None),
    section: Literal["commodity", "station"] = Query(default="commodity"),
    format: Literal["csv", "json", "excel", "pdf"] = Query(default="csv"),
    store: RecordStore = Depends(get_store),
):
    try:
        report = compute_daily_report(
            store, current_from, current_to, previous_from, previous_to, currency=settings.currency_symbol
        )
        part = report[section]
        rows = part["rows"] + ([part["total"]] if part["total"] else [])
        summary = report["summary"]
        subtitle = f"{summary['current']['label']} vs {summary['previous']['label']}"
        out = export_rows(rows, comparison_columns(Dimension(section)), format, title="Daily Report", subtitle=subtitle)
        return _download(out, f"daily-report-{section}-{summary['current']['from']}")
    except Exception as exc:
        return _error(exc, "export_daily")


@app.get("/export/yearly-comparison")
def export_yearly(
    format: Literal["csv", "json", "excel", "pdf"] = Query(default="pdf"),
    store: RecordStore = Depends(get_store),
):
    try:
        out = export_yearly_comparison(compute_yearly_comparison(store), format)
        return _download(out, "yearly-comparison-report")
    except Exception as exc:
        return _error(exc, "export_yearly")


# ---------------- Loading operations ----------------
@app.get("/loading-operations")
def list_loading_operations(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=1000),
    search: str = Query(default=""),
    station: str = Query(default=""),
    commodity: str = Query(default=""),
    sort_by: str = Query(default="date"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    store: RecordStore = Depends(get_store),
):
    try:
        return _json(
            store.list_loading_records(
                page=page,
                page_size=page_size,
                search=search,
                station=station,
                commodity=commodity,
                sort_by=sort_by,
                sort_order=sort_order,
            )
        )
    except Exception as exc:
        return _error(exc, "list_loading_operations")


@app.post("/loading-operations")
def create_loading_operation(body: LoadingIn, store: RecordStore = Depends(get_store)):
    try:
        record = store.add_loading_record(body.model_dump())
        return _json(record.to_dict(), status_code=201)
    except Exception as exc:
        return _error(exc, "create_loading_operation")


@app.put("/loading-operations/{record_id}")
def update_loading_operation(record_id: int, body: LoadingUpdate, store: RecordStore = Depends(get_store)):
    try:
        record = store.update_loading_record(record_id, body.model_dump(exclude_unset=True))
        return _json(record.to_dict())
    except Exception as exc:
        return _error(exc, "update_loading_operation")


@app.get("/loading-operations/export")
def export_loading_operations(
    format: Literal["csv", "excel", "pdf"] = Query(default="csv"),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=10000),
    search: str = Query(default=""),
    station: str = Query(default=""),
    commodity: str = Query(default=""),
    sort_by: str = Query(default="date"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    store: RecordStore = Depends(get_store),
):
    try:
        df = store.filtered_loading_frame(
            search=search, station=station, commodity=commodity, sort_by=sort_by, sort_order=sort_order
        )
        out = export_entries(df, format, page=page, limit=limit)
        stem = f"railway-operations-{date.today().isoformat()}"
        if format == "pdf":
            stem = f"railway-entries-page-{page}"
        return _download(out, stem)
    except Exception as exc:
        return _error(exc, "export_loading_operations")


# ---------------- Detentions ----------------
@app.get("/detentions")
def list_detentions(store: RecordStore = Depends(get_store)):
    try:
        return _json(compute_detention_summary(store.query_detention_records()))
    except Exception as exc:
        return _error(exc, "list_detentions")


@app.post("/detentions")
def create_detention(body: DetentionIn, store: RecordStore = Depends(get_store)):
    try:
        record = store.add_detention(body.model_dump())
        return _json(record.to_dict(), status_code=201)
    except Exception as exc:
        return _error(exc, "create_detention")


@app.put("/detentions/{record_id}")
def update_detention(record_id: int, body: DetentionIn, store: RecordStore = Depends(get_store)):
    try:
        record = store.update_detention(record_id, body.model_dump())
        return _json(record.to_dict())
    except Exception as exc:
        return _error(exc, "update_detention")


# ---------------- Excel upload ----------------
@app.post("/upload/validate")
def upload_validate(
    file: UploadFile = File(...),
    date_from: Optional[str] = Form(default=None),
    date_to: Optional[str] = Form(default=None),
):
    try:
        result = validate_workbook(file.file.read(), date_from or None, date_to or None)
        return _json(result.to_dict())
    except Exception as exc:
        return _error(exc, "upload_validate")


@app.post("/upload/import")
def upload_import(
    file: UploadFile = File(...),
    date_from: Optional[str] = Form(default=None),
    date_to: Optional[str] = Form(default=None),
    replace: bool = Form(default=False),
    store: RecordStore = Depends(get_store),
):
    try:
        summary = import_workbook(store, file.file.read(), date_from=date_from or None, date_to=date_to or None, replace=replace)
        return _json(summary)
    except Exception as exc:
        return _error(exc, "upload_import")
