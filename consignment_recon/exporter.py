from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from consignment_recon.aggregator import flatten_records
from consignment_recon.models import DisplayRecord, Statistics

REPORT_SHEET = "Matching Report"
SUMMARY_SHEET = "Summary"

EXPORT_COLUMNS = [
    "Consign Number",
    "Supplier Ref",
    "Status",
    "Variety",
    "Carton Type",
    "Orchard",
    "Consignment Date",
    "# Ctns Sent",
    "Received",
    "Deviation Sent/Received",
    "Sold on market",
    "Deviation Received/Sold",
    "Total Value",
    "Reconciled",
]

CURRENCY_FORMAT = '"R" #,##0.00'
PERCENT_FORMAT = '0.0"%"'

HEADER_COLOR = "1565C0"
FILL_RECONCILED        = PatternFill("solid", fgColor="E2EFDA")   # soft green
FILL_UNMATCHED         = PatternFill("solid", fgColor="FFC7CE")   # soft red
FILL_MISSING_REFERENCE = PatternFill("solid", fgColor="F8CBAD")   # orange, whole row


def _style_sheet(ws, col_widths: list[int], header_color: str):
    """Apply bold header, color, frozen row, and column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 40) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1:301]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def build_export_rows(records: Iterable[DisplayRecord]) -> list[dict[str, Any]]:
    """One row per leaf record; groups are expanded into their children."""
    rows: list[dict[str, Any]] = []
    for record in flatten_records(records):
        rows.append({
            "Consign Number":          record.consignment_id,
            "Supplier Ref":            record.supplier_ref,
            "Status":                  record.status.value,
            "Variety":                 record.variety,
            "Carton Type":             record.carton_type,
            "Orchard":                 record.orchard,
            "Consignment Date":        record.consignment_date,
            "# Ctns Sent":             record.cartons_sent,
            "Received":                record.received,
            "Deviation Sent/Received": record.deviation_sent_received,
            "Sold on market":          record.sold_on_market,
            "Deviation Received/Sold": record.deviation_received_sold,
            "Total Value":             record.total_value,
            "Reconciled":              "Yes" if record.reconciled else "No",
        })
    return rows


def _write_summary(wb, statistics: Statistics) -> None:
    ws = wb.create_sheet(SUMMARY_SHEET)
    rows = [
        ["Metric", "Value"],
        ["Total records", statistics.total_records],
        ["Matched", statistics.matched_count],
        ["Unmatched", statistics.unmatched_count],
        ["Match rate", round(statistics.match_rate, 1)],
        ["Total value", statistics.total_value],
        ["Average value", round(statistics.average_value, 2)],
    ]
    for row in rows:
        ws.append(row)
    ws["B5"].number_format = PERCENT_FORMAT
    ws["B6"].number_format = CURRENCY_FORMAT
    ws["B7"].number_format = CURRENCY_FORMAT
    _style_sheet(ws, [18, 18], HEADER_COLOR)


def write_matching_report(
    records: Iterable[DisplayRecord],
    output_path: str | Path,
    statistics: Statistics | None = None,
) -> Path:
    """Write the flattened records to an .xlsx workbook and return its path."""
    output_path = Path(output_path)
    leaves = flatten_records(records)
    export_rows = build_export_rows(leaves)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = REPORT_SHEET
    ws.append(EXPORT_COLUMNS)
    rows_for_width: list[list] = [list(EXPORT_COLUMNS)]

    value_col = EXPORT_COLUMNS.index("Total Value") + 1
    for record, row in zip(leaves, export_rows):
        values = [row[column] for column in EXPORT_COLUMNS]
        ws.append(values)
        rows_for_width.append(values)
        last = ws.max_row
        ws.cell(last, value_col).number_format = CURRENCY_FORMAT
        if record.missing_reference:
            for cell in ws[last]:
                cell.fill = FILL_MISSING_REFERENCE
        elif row["Reconciled"] == "Yes":
            ws.cell(last, len(EXPORT_COLUMNS)).fill = FILL_RECONCILED
        elif row["Status"] == "Unmatched":
            ws.cell(last, EXPORT_COLUMNS.index("Status") + 1).fill = FILL_UNMATCHED
    _style_sheet(ws, _infer_col_widths(rows_for_width), HEADER_COLOR)

    if statistics is not None:
        _write_summary(wb, statistics)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path
