"""Byte-stream exports for report tables and the loading entry list."""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from railops.errors import ValidationError
from railops.presentation import ColumnSpec

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

FORMATS = ("csv", "json", "excel", "pdf")
MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}
EXTENSIONS = {"csv": "csv", "json": "json", "excel": "xlsx", "pdf": "pdf"}

ENTRY_COLUMNS = [
    ColumnSpec("date", "Date"),
    ColumnSpec("station", "Station"),
    ColumnSpec("siding", "Siding"),
    ColumnSpec("commodity", "Commodity"),
    ColumnSpec("comm_type", "Comm Type"),
    ColumnSpec("comm_cg", "Comm CG"),
    ColumnSpec("demand", "Demand"),
    ColumnSpec("state", "State"),
    ColumnSpec("rly", "Railway"),
    ColumnSpec("wagons", "Wagons"),
    ColumnSpec("wagon_type", "Type"),
    ColumnSpec("units", "Units"),
    ColumnSpec("loading_type", "Loading Type"),
    ColumnSpec("rr_no_from", "RR No From"),
    ColumnSpec("rr_no_to", "RR No To"),
    ColumnSpec("rr_date", "RR Date"),
    ColumnSpec("tonnage", "Tonnage"),
    ColumnSpec("freight", "Freight"),
]
ENTRY_ZERO_FIELDS = ["wagons", "units", "tonnage", "freight"]
ENTRY_DATE_FIELDS = ["date", "rr_date"]
ENTRY_FORMATS = ("csv", "excel", "pdf")
ENTRY_PDF_LIMIT = 1000

YEARLY_VALUE_COLUMNS = [
    ColumnSpec("tonnage_mt", "MT"),
    ColumnSpec("wagons", "Wagons"),
    ColumnSpec("freight", "Freight"),
]


@dataclass(frozen=True)
class ExportPayload:
    content: bytes
    media_type: str
    extension: str

    def filename(self, stem: str) -> str:
        return f"{stem}.{self.extension}"


def _frame(rows: Sequence[Dict[str, Any]], columns: Sequence[ColumnSpec]) -> pd.DataFrame:
    keys = [c.key for c in columns]
    return pd.DataFrame([{k: r.get(k) for k in keys} for r in rows], columns=keys)


def to_csv_bytes(df: pd.DataFrame, columns: Sequence[ColumnSpec]) -> bytes:
    out = df.copy()
    out.columns = [c.header for c in columns]
    return out.to_csv(index=False).encode("utf-8")


def to_json_bytes(rows: Sequence[Dict[str, Any]], columns: Sequence[ColumnSpec]) -> bytes:
    keys = [c.key for c in columns]
    payload = [{k: r.get(k) for k in keys} for r in rows]
    return json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")


def to_excel_bytes(df: pd.DataFrame, columns: Sequence[ColumnSpec], *, sheet_name: str = "Report") -> bytes:
    out = df.copy()
    out.columns = [c.header for c in columns]
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        out.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    return buf.getvalue()


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
    )


def table_section(
    rows: Sequence[Dict[str, Any]],
    columns: Sequence[ColumnSpec],
    *,
    heading: str = "",
) -> Dict[str, Any]:
    return {
        "heading": heading,
        "headers": [c.header for c in columns],
        "rows": [[_cell(r.get(c.key)) for c in columns] for r in rows],
        "totals": [bool(r.get("is_total")) for r in rows],
    }


def render_sections(
    sections: Sequence[Dict[str, Any]],
    *,
    title: str,
    subtitle: str = "",
    template_name: str = "report.html",
) -> str:
    template = _environment().get_template(template_name)
    return template.render(
        title=title,
        subtitle=subtitle,
        sections=sections,
        generated=date.today().strftime("%d-%m-%Y"),
    )


def render_html(
    rows: Sequence[Dict[str, Any]],
    columns: Sequence[ColumnSpec],
    *,
    title: str,
    subtitle: str = "",
    template_name: str = "report.html",
) -> str:
    return render_sections([table_section(rows, columns)], title=title, subtitle=subtitle, template_name=template_name)


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value)


def to_pdf_bytes(html: str) -> bytes:
    # weasyprint pulls in native libraries; only PDF exports load it
    from weasyprint import HTML

    return HTML(string=html, base_url=str(TEMPLATE_DIR)).write_pdf()


def export_rows(
    rows: Sequence[Dict[str, Any]],
    columns: Sequence[ColumnSpec],
    fmt: str,
    *,
    title: str = "Report",
    subtitle: str = "",
) -> ExportPayload:
    fmt = (fmt or "").lower()
    if fmt not in FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt!r}")
    if not columns:
        raise ValidationError("At least one column must be selected for export")

    if fmt == "json":
        content = to_json_bytes(rows, columns)
    elif fmt == "csv":
        content = to_csv_bytes(_frame(rows, columns), columns)
    elif fmt == "excel":
        content = to_excel_bytes(_frame(rows, columns), columns, sheet_name=title)
    else:
        content = to_pdf_bytes(render_html(rows, columns, title=title, subtitle=subtitle))
    logger.info("Exported %d rows as %s (%d bytes)", len(rows), fmt, len(content))
    return ExportPayload(content=content, media_type=MEDIA_TYPES[fmt], extension=EXTENSIONS[fmt])


def entry_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Loading rows in the entry-list layout: ``dd-mm-yyyy`` dates, blanks for missing text, zeros for missing sums."""
    out = df.copy()
    for col in ENTRY_DATE_FIELDS:
        dates = pd.to_datetime(out[col], errors="coerce")
        out[col] = dates.dt.strftime("%d-%m-%Y").fillna("")
    for col in ENTRY_ZERO_FIELDS:
        out[col] = pd.to_numeric(out[col], errors="coerce").fillna(0)
    out["wagons"] = out["wagons"].astype(int)
    keys = [c.key for c in ENTRY_COLUMNS]
    records = out[keys].astype(object).where(out[keys].notna(), "").to_dict(orient="records")
    return records


def entry_page(df: pd.DataFrame, page: int = 1, limit: Optional[int] = None) -> pd.DataFrame:
    """One page of the entry list; ``limit=None`` keeps every row."""
    if limit is None:
        return df
    page = max(1, int(page))
    limit = max(1, int(limit))
    return df.iloc[(page - 1) * limit : page * limit]


def export_entries(
    df: pd.DataFrame,
    fmt: str = "csv",
    *,
    columns: Optional[Iterable[str]] = None,
    page: int = 1,
    limit: Optional[int] = None,
) -> ExportPayload:
    fmt = (fmt or "csv").lower()
    if fmt not in ENTRY_FORMATS:
        raise ValidationError(f"Unsupported entry export format: {fmt!r}")
    cols = ENTRY_COLUMNS
    if columns:
        wanted = set(columns)
        cols = [c for c in ENTRY_COLUMNS if c.key in wanted]
    if fmt == "pdf" and limit is None:
        limit = ENTRY_PDF_LIMIT
    chunk = entry_page(df, page, limit)
    subtitle = ""
    if limit is not None:
        subtitle = f"Page {max(1, int(page))}: {len(chunk)} of {len(df)} entries"
    return export_rows(entry_rows(chunk), cols, fmt, title="Railway Operations", subtitle=subtitle)


def yearly_comparison_sections(report: Dict[str, Any]) -> List[Dict[str, Any]]:
    sections = []
    for dim, heading in (("commodity", "Commodity-wise Yearly Loading"), ("station", "Station-wise Yearly Loading")):
        columns = [ColumnSpec("year", "Year"), ColumnSpec(dim, dim.title())] + YEARLY_VALUE_COLUMNS
        sections.append(table_section(report[dim], columns, heading=heading))
    return sections


def export_yearly_comparison(report: Dict[str, Any], fmt: str = "pdf") -> ExportPayload:
    """Commodity and station yearly totals; PDF holds both tables, CSV/Excel/JSON flatten them."""
    fmt = (fmt or "pdf").lower()
    title = "Yearly Loading Comparison"
    if fmt == "pdf":
        html = render_sections(yearly_comparison_sections(report), title=title)
        content = to_pdf_bytes(html)
        logger.info("Exported yearly comparison as pdf (%d bytes)", len(content))
        return ExportPayload(content=content, media_type=MEDIA_TYPES[fmt], extension=EXTENSIONS[fmt])
    rows = [{"dimension": "commodity", "key": r["commodity"], **r} for r in report["commodity"]]
    rows += [{"dimension": "station", "key": r["station"], **r} for r in report["station"]]
    columns = [ColumnSpec("year", "Year"), ColumnSpec("dimension", "Group"), ColumnSpec("key", "Name")] + YEARLY_VALUE_COLUMNS
    return export_rows(rows, columns, fmt, title=title)
