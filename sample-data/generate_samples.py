#!/usr/bin/env python3
"""
Generates sample-data/load_report.xlsx and sample-data/sales_report.xlsx,
a matching pair of reports for trying consignment-recon.

Run from the repo root:
    python sample-data/generate_samples.py
    consignment-recon reconcile sample-data/load_report.xlsx sample-data/sales_report.xlsx

What the pair exercises:
  load_report.xlsx
    - Consignment numbers like A1B234567 (weak key = last 4 digits)
    - Dates as spreadsheet serials and as text
    - The same consignment split over two pallets (becomes a group)
    - A consignment with no sale at all (Unmatched)
    - A blank row in the middle
  sales_report.xlsx
    - Supplier refs in a different format (SUP-4567)
    - Two sales sharing a weak key, told apart by quantity
    - Totals written as currency text ("R 1 234.50")
    - Junk rows: "DESTINATION: ..." banners and "(Pre)" pre-sales
    - A sale nobody shipped (Unmatched, negative deviation)
"""

from pathlib import Path

import openpyxl
from openpyxl.styles import Font

HERE = Path(__file__).parent
LOAD_OUTPUT = HERE / "load_report.xlsx"
SALES_OUTPUT = HERE / "sales_report.xlsx"

LOAD_HEADERS = ["Consign Number", "Plt ID", "Variety", "Ctn Type", "# Ctns", "Cons Date", "Orchard"]
LOAD_ROWS = [
    ["A1B234567", "PLT0001", "Nadorcott", "A15C", 120, 45292, "ORCH-07"],
    ["A1B234568", "PLT0002", "Nadorcott", "A15C", 80, 45292, "ORCH-07"],
    ["A1B234568", "PLT0003", "Nadorcott", "A15C", 40, 45292, "ORCH-07"],
    [None, None, None, None, None, None, None],
    ["C3D555001", "PLT0004", "Navel", "E15D", 60, "2024/01/05", "ORCH-12"],
    ["C3D555002", "PLT0005", "Navel", "E15D", 60, "2024/01/05", "ORCH-12"],
    ["E5F777123", "PLT0006", "Star Ruby", "A15C", 90, "05 Jan 2024", "ORCH-03"],
]

SALES_HEADERS = ["Supplier Ref", "Qty Received", "Qty Sold", "Total Value"]
SALES_ROWS = [
    ["DESTINATION: ROTTERDAM", None, None, None],
    ["SUP-4567", 120, 120, "R 18 600.00"],
    ["SUP-4568", 80, 78, "R 11 232.50"],
    ["SUP-4568", 40, 40, 5760.00],
    ["SUP-5001", 58, 58, 8120.00],
    ["(Pre) SUP-5002", 60, 0, 0],
    ["SUP-9999", 25, 20, "R 2 950.00"],
]


def write_sheet(path: Path, title: str, headers: list[str], rows: list[list]) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title
    ws.append(headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    wb.save(path)


def main() -> None:
    write_sheet(LOAD_OUTPUT, "Loads", LOAD_HEADERS, LOAD_ROWS)
    write_sheet(SALES_OUTPUT, "Sales", SALES_HEADERS, SALES_ROWS)
    print(f"Wrote {LOAD_OUTPUT}")
    print(f"Wrote {SALES_OUTPUT}")


if __name__ == "__main__":
    main()
