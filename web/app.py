#!/usr/bin/env python3
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st

from consignment_recon.aggregator import calculate_statistics, group_records
from consignment_recon.config import load_settings
from consignment_recon.errors import ReconError, describe_error
from consignment_recon.exporter import EXPORT_COLUMNS, build_export_rows, write_matching_report
from consignment_recon.filters import RecordFilter, list_varieties
from consignment_recon.formatting import format_number
from consignment_recon.loader import ALL_FORMATS
from consignment_recon.logging_config import setup_logging
from consignment_recon.models import GroupedMatchedRecord, MatchedRecord
from consignment_recon.pipeline import reconcile_files

LOGGER = logging.getLogger("consignment_recon.web")

SUPPORTED_EXTS = sorted(ext.lstrip(".") for ext in ALL_FORMATS)
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

STATUS_LABELS = {"all": "All", "matched": "Matched", "unmatched": "Unmatched"}
RECONCILED_LABELS = {"all": "All", "reconciled": "Reconciled", "not-reconciled": "Not reconciled"}


def ensure_state() -> None:
    st.session_state.setdefault("processing", False)
    st.session_state.setdefault("records", [])
    st.session_state.setdefault("warnings", [])
    st.session_state.setdefault("error", None)
    st.session_state.setdefault("settings", None)


def analyse(load_upload, sales_upload) -> None:
    """Run the whole pipeline on the two uploads; failures become one message."""
    st.session_state["error"] = None
    st.session_state["records"] = []
    st.session_state["warnings"] = []
    try:
        settings = load_settings()
    except (ValueError, FileNotFoundError) as exc:
        st.session_state["error"] = f"Could not load config: {exc}"
        return
    try:
        result = reconcile_files(
            load_upload.getvalue(),
            sales_upload.getvalue(),
            load_filename=load_upload.name,
            sales_filename=sales_upload.name,
            settings=settings,
            logger=LOGGER,
        )
    except (ReconError, FileNotFoundError) as exc:
        LOGGER.warning("analysis failed: %s", exc)
        st.session_state["error"] = describe_error(exc)
        return
    st.session_state["records"] = result.records
    st.session_state["warnings"] = result.warnings
    st.session_state["settings"] = settings


def render_statistics(grouped) -> None:
    stats = calculate_statistics(grouped)
    cols = st.columns(5)
    cols[0].metric("Records", format_number(stats.total_records))
    cols[1].metric("Matched", format_number(stats.matched_count))
    cols[2].metric("Unmatched", format_number(stats.unmatched_count))
    cols[3].metric("Match rate", format_number(stats.match_rate, "percent"))
    cols[4].metric("Total value", format_number(stats.total_value, "currency"))
    st.caption(f"Average value per record: {format_number(stats.average_value, 'currency')}")


def render_filters(records: list[MatchedRecord]) -> RecordFilter:
    cols = st.columns(4)
    status = cols[0].selectbox("Status", list(STATUS_LABELS), format_func=STATUS_LABELS.get)
    variety = cols[1].selectbox("Variety", ["all", *list_varieties(records)],
                                format_func=lambda value: "All" if value == "all" else value)
    reconciled = cols[2].selectbox("Reconciled", list(RECONCILED_LABELS), format_func=RECONCILED_LABELS.get)
    query = cols[3].text_input("Consignment number", placeholder="Search…")
    return RecordFilter(status=status, variety=variety, reconciled=reconciled, consignment_query=query)


MISSING_REFERENCE_FLAG = "No reference"
MISSING_REFERENCE_STYLE = "background-color: rgba(255, 152, 0, 0.25)"


def leaf_frame(records: list[MatchedRecord]) -> pd.DataFrame:
    frame = pd.DataFrame(build_export_rows(records), columns=EXPORT_COLUMNS)
    frame["Total Value"] = frame["Total Value"].map(lambda value: format_number(value, "currency"))
    frame.insert(0, "Flag", [MISSING_REFERENCE_FLAG if record.missing_reference else "" for record in records])
    return frame


def styled_leaf_frame(records: list[MatchedRecord]):
    """Leaf table with rows lacking both references shaded orange."""
    styles = [MISSING_REFERENCE_STYLE if record.missing_reference else "" for record in records]
    return leaf_frame(records).style.apply(lambda row: [styles[row.name]] * len(row), axis=1)


def table_sections(grouped) -> list[tuple[str, object]]:
    """
    Split the ranked display list into ("group", record) and ("leaves", [...])
    sections, keeping the order group_records produced.
    """
    sections: list[tuple[str, object]] = []
    for record in grouped:
        if isinstance(record, GroupedMatchedRecord):
            sections.append(("group", record))
        elif sections and sections[-1][0] == "leaves":
            sections[-1][1].append(record)
        else:
            sections.append(("leaves", [record]))
    return sections


def render_group(group: GroupedMatchedRecord) -> None:
    state = "reconciled" if group.reconciled else (
        "partly reconciled" if group.has_reconciled_child else group.status.value.lower()
    )
    title = (
        f"{group.consignment_id or '—'} / {group.supplier_ref or '—'}  •  "
        f"{len(group.child_records)} records  •  {state}  •  "
        f"{format_number(group.total_value, 'currency')}"
    )
    with st.expander(title):
        st.caption(
            f"Sent {group.total_cartons_sent}, received {group.total_received} "
            f"({group.deviation_sent_received:+d}), sold {group.total_sold_on_market} "
            f"({group.deviation_received_sold:+d})"
        )
        st.dataframe(styled_leaf_frame(list(group.child_records)), width="stretch", hide_index=True)


def render_record_table(grouped) -> None:
    missing = sum(1 for record in grouped if record.missing_reference)
    if missing:
        st.warning(f"{missing} record(s) have no consignment or supplier reference; shaded orange below.")
    for kind, item in table_sections(grouped):
        if kind == "group":
            render_group(item)
        else:
            st.dataframe(styled_leaf_frame(item), width="stretch", hide_index=True)


def export_bytes(grouped) -> bytes:
    with tempfile.TemporaryDirectory(prefix="consignment_recon_") as tmp:
        path = write_matching_report(grouped, Path(tmp) / "matching_report.xlsx", calculate_statistics(grouped))
        return path.read_bytes()


def render_results() -> None:
    records: list[MatchedRecord] = st.session_state.get("records") or []
    if not records:
        return

    for warning in st.session_state.get("warnings") or []:
        st.warning(warning)

    settings = st.session_state.get("settings")
    record_filter = render_filters(records)
    kept = record_filter.apply(records)
    grouped = group_records(kept, settings.group_by, settings.group_tolerance)

    st.subheader("Results")
    render_statistics(grouped)
    if not grouped:
        st.info("No records match the current filters.")
        return
    render_record_table(grouped)
    st.download_button(
        "Download matching report",
        data=export_bytes(grouped),
        file_name="matching_report.xlsx",
        mime=XLSX_MIME,
        width="stretch",
    )


def set_visuals() -> None:
    st.set_page_config(page_title="consignment-recon", page_icon="📦", layout="wide", initial_sidebar_state="collapsed")
    st.markdown(
        """
        <style>
        .block-container {
            padding-top: 2rem;
            padding-bottom: 2rem;
            max-width: 1200px;
        }
        [data-testid="stDecoration"], [data-testid="stStatusWidget"] {
            display: none !important;
        }
        </style>
        """,
        unsafe_allow_html=True,
    )


def main() -> None:
    setup_logging("INFO")
    set_visuals()
    ensure_state()

    st.title("consignment-recon")
    st.caption("Upload a load report and a sales report to match consignments against market sales.")

    processing = st.session_state["processing"]
    left, right = st.columns(2)
    load_upload = left.file_uploader("Load report", type=SUPPORTED_EXTS, key="load_upload", disabled=processing)
    sales_upload = right.file_uploader("Sales report", type=SUPPORTED_EXTS, key="sales_upload", disabled=processing)

    submit = st.button(
        "Analyse",
        type="primary",
        width="stretch",
        disabled=processing or load_upload is None or sales_upload is None,
    )
    if submit and load_upload is not None and sales_upload is not None:
        st.session_state["processing"] = True
        try:
            with st.spinner("Matching consignments…"):
                analyse(load_upload, sales_upload)
        finally:
            st.session_state["processing"] = False

    error: Optional[str] = st.session_state.get("error")
    if error:
        st.error(error)
        return

    if not st.session_state.get("records"):
        st.info("Supported here: " + " ".join(f".{ext}" for ext in SUPPORTED_EXTS))
        return

    render_results()


if __name__ == "__main__":
    main()
