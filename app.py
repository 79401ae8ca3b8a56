from contextlib import contextmanager
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from railops.cache import ReportCache
from railops.config import get_settings, setup_logging
from railops.data import RecordStore
from railops.errors import RailOpsError
from railops.exports import export_entries, export_rows
from railops.filters import normalize_filters
from railops.importer import import_workbook, validate_workbook
from railops.metrics_comparative import compute_comparative, compute_daily_report
from railops.metrics_detention import compute_detention_summary
from railops.metrics_yearly import compute_commodity_share, compute_yearly_loading, compute_yearly_totals
from railops.periods import PeriodPolicy, default_current_window
from railops.presentation import comparison_columns, select_columns

settings = get_settings()
setup_logging(settings.log_level)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, breadcrumb: str, chips: List[str]):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if st.button("Refresh"):
            st.rerun()
    st.markdown("<div class='chip-row'>" + "".join(f"<span class='chip'>{c}</span>" for c in chips) + "</div>", unsafe_allow_html=True)


def show_error(exc: RailOpsError):
    st.error(f"{type(exc).__name__}: {exc}")


@st.cache_resource
def get_store() -> RecordStore:
    cache = ReportCache(settings.cache_ttl_seconds, settings.cache_max_entries)
    return RecordStore(settings.data_dir, cache=cache)


def comparison_table(section: Dict[str, Any]) -> pd.DataFrame:
    cols = section["columns"]
    rows = section["display"]
    df = pd.DataFrame([{c["header"]: r.get(c["key"], "") for c in cols} for r in rows])
    return df


# ---------- UI setup ----------
st.set_page_config(page_title="Railway Operations Dashboard", layout="wide")
inject_base_styles()
st.title("Railway Operations Dashboard")
st.caption("Loading comparisons, yearly trends, detentions and data entry.")

store = get_store()
options = store.dropdown_options()
default_window = default_current_window()

with st.sidebar:
    st.markdown("### Navigate")
    page = st.radio(
        "Navigate",
        ["Comparative Loading", "Daily Report", "Yearly", "Loading Entries", "Detentions"],
        index=0,
    )
    st.markdown("---")
    with st.expander("Advanced settings", expanded=False):
        top_n = st.slider("Top N in charts", min_value=3, max_value=15, value=settings.top_n)
        chart_metric = st.selectbox("Chart metric", ["tonnage", "wagons", "rks", "freight", "units", "avg_per_day"])


def render_comparative_page():
    c1, c2, c3 = st.columns(3)
    dimension = c1.selectbox("Group by", ["commodity", "station"])
    policy = c2.selectbox("Compare against", [p.value for p in PeriodPolicy], format_func=lambda v: v.replace("_", " ").title())
    value_options = ["all"] + options["commodities" if dimension == "commodity" else "stations"]
    value = c3.selectbox("Filter", value_options)

    d1, d2, d3, d4 = st.columns(4)
    current_from = d1.date_input("Current from", default_window.start)
    current_to = d2.date_input("Current to", default_window.end)
    previous_from: Optional[date] = None
    previous_to: Optional[date] = None
    if policy == PeriodPolicy.EXPLICIT_DUAL_RANGE.value:
        previous_from = d3.date_input("Previous from", current_from - timedelta(days=365))
        previous_to = d4.date_input("Previous to", current_to - timedelta(days=365))

    s1, s2 = st.columns(2)
    sort_by = s1.selectbox(
        "Sort by",
        ["key", "current.tonnage", "current.wagons", "current.rks", "current.freight", "variation_absolute", "variation_percent"],
    )
    sort_order = s2.radio("Order", ["asc", "desc"], horizontal=True)

    raw = {
        "policy": policy,
        "dimension": dimension,
        "current_from": current_from.isoformat() if policy != PeriodPolicy.CALENDAR_YEAR_TO_DATE.value else None,
        "current_to": current_to.isoformat() if policy != PeriodPolicy.CALENDAR_YEAR_TO_DATE.value else None,
        "previous_from": previous_from.isoformat() if previous_from else None,
        "previous_to": previous_to.isoformat() if previous_to else None,
        "value": None if value == "all" else value,
        "sort_by": sort_by,
        "sort_order": sort_order,
        "top_n": top_n,
        "chart_metric": chart_metric,
    }
    try:
        filters = normalize_filters(raw, default_top_n=settings.top_n)
        payload = compute_comparative(filters, store, currency=settings.currency_symbol)
    except RailOpsError as exc:
        show_error(exc)
        return

    periods = payload["periods"]
    render_page_header(
        f"{dimension.title()}-wise Comparative Loading",
        "Home / Reports / Comparative",
        [f"Current: {periods['current']['label']}", f"Previous: {periods['previous']['label']}", f"Policy: {periods['policy']}"],
    )
    with card("Comparison"):
        st.dataframe(comparison_table(payload), use_container_width=True, hide_index=True)
        cols = select_columns(comparison_columns(dimension), None)
        rows = payload["rows"] + ([payload["total"]] if payload["total"] else [])
        e1, e2 = st.columns(2)
        csv = export_rows(rows, cols, "csv")
        e1.download_button("Export CSV", data=csv.content, file_name=csv.filename(f"{dimension}-comparative"), mime=csv.media_type)
        xlsx = export_rows(rows, cols, "excel", title="Comparative")
        e2.download_button("Export Excel", data=xlsx.content, file_name=xlsx.filename(f"{dimension}-comparative"), mime=xlsx.media_type)
    if payload["charts"]:
        with card(f"Top {top_n} by {chart_metric}"):
            st.vega_lite_chart(payload["charts"]["comparison"], use_container_width=True)


def render_daily_page():
    d1, d2, d3, d4 = st.columns(4)
    current_from = d1.date_input("Current from", default_window.start)
    current_to = d2.date_input("Current to", default_window.end)
    previous_from = d3.date_input("Previous from", default_window.start - timedelta(days=365))
    previous_to = d4.date_input("Previous to", default_window.end - timedelta(days=365))
    try:
        report = compute_daily_report(store, current_from, current_to, previous_from, previous_to, currency=settings.currency_symbol)
    except RailOpsError as exc:
        show_error(exc)
        return
    summary = report["summary"]
    render_page_header(
        "Daily Report",
        "Home / Reports / Daily",
        [f"Current: {summary['current']['formula']}", f"Previous: {summary['previous']['formula']}"],
    )
    for key, title in (("commodity", "Commodity-wise"), ("station", "Station-wise")):
        with card(title):
            st.dataframe(comparison_table(report[key]), use_container_width=True, hide_index=True)


def render_yearly_page():
    render_page_header("Yearly", "Home / Reports / Yearly", ["Calendar years", "Financial years (Apr-Mar)"])
    with card("Yearly totals"):
        st.dataframe(pd.DataFrame(compute_yearly_totals(store)), use_container_width=True, hide_index=True)
    share = compute_commodity_share(store)
    for block in share["commodity_data"]:
        with card(f"Commodity share {block['year']}"):
            flat = [{k: v for k, v in c.items() if k != "stations"} for c in block["data"]]
            st.dataframe(pd.DataFrame(flat), use_container_width=True, hide_index=True)
    cols = st.columns(2)
    for col, dimension in zip(cols, ["commodity", "station"]):
        loading = compute_yearly_loading(store, dimension)
        with col:
            with card(f"Yearly loading by {dimension}"):
                if loading["charts"]:
                    st.vega_lite_chart(loading["charts"]["yearly"], use_container_width=True)
                else:
                    st.info("No loading with tonnage recorded yet.")


def render_entries_page():
    render_page_header("Loading Entries", "Home / Data / Loading", [f"{len(store.all_loading_frame())} records"])
    f1, f2, f3 = st.columns(3)
    search = f1.text_input("Search", "")
    station = f2.selectbox("Station", ["all"] + options["stations"])
    commodity = f3.selectbox("Commodity", ["all"] + options["commodities"])
    page_no = st.number_input("Page", min_value=1, value=1, step=1)
    listing = store.list_loading_records(page=int(page_no), page_size=50, search=search, station=station, commodity=commodity)
    with card(f"Records (page {listing['current_page']} of {max(1, listing['total_pages'])})"):
        st.dataframe(pd.DataFrame(listing["data"]), use_container_width=True, hide_index=True)
        frame = store.filtered_loading_frame(search=search, station=station, commodity=commodity)
        out = export_entries(frame, "csv")
        st.download_button("Export CSV", data=out.content, file_name=out.filename("railway-operations"), mime=out.media_type)

    with card("Add entry"):
        with st.form("add_entry"):
            a1, a2, a3 = st.columns(3)
            entry_date = a1.date_input("Date", date.today())
            entry_station = a2.text_input("Station")
            entry_commodity = a3.text_input("Commodity")
            b1, b2, b3, b4 = st.columns(4)
            wagons = b1.number_input("Wagons", min_value=0, step=1)
            units = b2.number_input("Units", min_value=0.0)
            tonnage = b3.number_input("Tonnage", min_value=0.0)
            freight = b4.number_input("Freight", min_value=0.0)
            if st.form_submit_button("Save"):
                try:
                    rec = store.add_loading_record(
                        {
                            "date": entry_date,
                            "station": entry_station,
                            "commodity": entry_commodity,
                            "wagons": wagons,
                            "units": units,
                            "tonnage": tonnage,
                            "freight": freight,
                        }
                    )
                    st.success(f"Saved entry {rec.id}")
                except RailOpsError as exc:
                    show_error(exc)

    with card("Import from Excel"):
        upload = st.file_uploader("Workbook", type=["xlsx", "xls"])
        i1, i2, i3 = st.columns(3)
        imp_from = i1.date_input("From", default_window.start - timedelta(days=365))
        imp_to = i2.date_input("To", date.today())
        replace = i3.checkbox("Replace existing data", value=False)
        if upload is not None:
            content = upload.getvalue()
            try:
                result = validate_workbook(content, imp_from, imp_to)
            except RailOpsError as exc:
                show_error(exc)
                return
            summary = result.to_dict()
            st.write(
                f"{summary['valid_rows']} valid of {summary['total_rows']} rows, "
                f"{summary['duplicates']} duplicates, {summary['date_filtered_out']} outside range"
            )
            for err in summary["errors"]:
                st.warning(err)
            st.dataframe(pd.DataFrame(summary["preview"]), use_container_width=True, hide_index=True)
            if st.button("Import valid rows"):
                done = import_workbook(store, content, date_from=imp_from, date_to=imp_to, replace=replace)
                st.success(done["message"])


def render_detentions_page():
    summary = compute_detention_summary(store.query_detention_records())
    render_page_header("Detentions", "Home / Data / Detentions", [f"{len(summary['records'])} records"])
    with card("Patterns"):
        if summary["patterns"]:
            st.dataframe(pd.DataFrame(summary["patterns"]), use_container_width=True, hide_index=True)
            st.vega_lite_chart(summary["charts"]["patterns"], use_container_width=True)
        else:
            st.info("Patterns need at least three detentions for a station and wagon type.")
    with card("Records"):
        flat = [{k: v for k, v in r.items() if k != "stages"} for r in summary["records"]]
        st.dataframe(pd.DataFrame(flat), use_container_width=True, hide_index=True)


if page == "Comparative Loading":
    render_comparative_page()
elif page == "Daily Report":
    render_daily_page()
elif page == "Yearly":
    render_yearly_page()
elif page == "Loading Entries":
    render_entries_page()
else:
    render_detentions_page()
