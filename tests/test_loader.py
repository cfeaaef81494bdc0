import importlib.util
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from openpyxl import Workbook

from consignment_recon.errors import DecodeError, EmptyDataError
from consignment_recon.loader import load_rows

_XLRD_AVAILABLE = importlib.util.find_spec("xlrd") is not None


def write_workbook(path: Path, sheets: dict) -> None:
    wb = Workbook()
    first = True
    for title, rows in sheets.items():
        ws = wb.active if first else wb.create_sheet(title)
        ws.title = title
        first = False
        for row in rows:
            ws.append(row)
    wb.save(path)


class LoaderTextTests(unittest.TestCase):
    def test_csv_rows_become_dicts_of_strings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sales.csv"
            path.write_text("Supplier Ref,Qty Received,Total Value\nREF1234,10,R 100.00\n", encoding="utf-8")
            result = load_rows(path)
        self.assertEqual(result["detected_format"], "csv")
        self.assertEqual(result["delimiter"], ",")
        self.assertEqual(
            result["rows"],
            [{"Supplier Ref": "REF1234", "Qty Received": "10", "Total Value": "R 100.00"}],
        )

    def test_semicolon_delimiter_is_detected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "load.csv"
            path.write_text("Consign;Ctns\nA1B234567;12\nA1B234568;14\n", encoding="utf-8")
            result = load_rows(path)
        self.assertEqual(result["delimiter"], ";")
        self.assertEqual(result["rows"][1], {"Consign": "A1B234568", "Ctns": "14"})

    def test_latin1_bytes_decode_without_crashing(self):
        raw = "Variety,Consign\nClémentine,A1B234567\n".encode("latin-1")
        result = load_rows(raw, filename="load.csv")
        self.assertEqual(result["rows"][0]["Variety"], "Clémentine")

    def test_blank_cells_and_unnamed_headers(self):
        raw = b"Consign,,Ctns\nA1B234567,,5\n,,\n"
        result = load_rows(raw, filename="load.csv")
        self.assertEqual(result["rows"], [{"Consign": "A1B234567", "__EMPTY_1": "", "Ctns": "5"}])

    def test_empty_file_raises(self):
        with self.assertRaises(EmptyDataError):
            load_rows(b"", filename="empty.csv")
        with self.assertRaises(EmptyDataError):
            load_rows(b"Consign,Ctns\n", filename="headers-only.csv")

    def test_unsupported_suffix_raises(self):
        with self.assertRaisesRegex(DecodeError, "Unsupported format '.pdf'"):
            load_rows(b"%PDF", filename="report.pdf")

    def test_bytes_need_a_filename(self):
        with self.assertRaises(DecodeError):
            load_rows(b"a,b\n1,2\n")

    def test_missing_path_raises_file_not_found(self):
        with self.assertRaises(FileNotFoundError):
            load_rows("/nonexistent/load.csv")


class LoaderWorkbookTests(unittest.TestCase):
    def test_xlsx_keeps_native_cell_types(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "load.xlsx"
            write_workbook(path, {
                "Loads": [
                    ["Consign Number", "# Ctns", "Cons Date", "Weight"],
                    ["A1B234567", 120, datetime(2024, 1, 5), 12.5],
                    [None, None, None, None],
                    ["A1B234568", 80, None, None],
                ],
            })
            result = load_rows(path)
        rows = result["rows"]
        self.assertEqual(result["sheet_name"], "Loads")
        self.assertIsNone(result["detected_encoding"])
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["# Ctns"], 120)
        self.assertIsInstance(rows[0]["# Ctns"], int)
        self.assertEqual(rows[0]["Cons Date"], datetime(2024, 1, 5))
        self.assertEqual(rows[0]["Weight"], 12.5)
        self.assertEqual(rows[1]["Cons Date"], "")

    def test_first_sheet_is_used_and_others_reported(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "multi.xlsx"
            write_workbook(path, {
                "Sales": [["Supplier Ref", "Qty Sold"], ["REF0001", 3]],
                "Notes": [["note"], ["ignore me"]],
            })
            result = load_rows(path)
            named = load_rows(path, sheet_name="Notes")
        self.assertEqual(result["sheet_names"], ["Sales", "Notes"])
        self.assertEqual(result["rows"], [{"Supplier Ref": "REF0001", "Qty Sold": 3}])
        self.assertIn("Multiple sheets found", result["warnings"][0])
        self.assertEqual(named["rows"], [{"note": "ignore me"}])

    def test_unknown_sheet_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "one.xlsx"
            write_workbook(path, {"Sales": [["a"], [1]]})
            with self.assertRaisesRegex(DecodeError, "Sheet 'Missing' not found"):
                load_rows(path, sheet_name="Missing")

    def test_uploaded_workbook_bytes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "sales.xlsx"
            write_workbook(path, {"Sales": [["Supplier Ref", "Total Value"], ["REF0001", 99.95]]})
            raw = path.read_bytes()
        result = load_rows(raw, filename="sales.xlsx")
        self.assertEqual(result["rows"][0]["Total Value"], 99.95)

    def test_corrupt_workbook_raises_decode_error(self):
        with self.assertRaisesRegex(DecodeError, "Could not read workbook"):
            load_rows(b"definitely not a zip", filename="broken.xlsx")

    def test_workbook_without_data_rows_raises(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.xlsx"
            write_workbook(path, {"Sales": [["Supplier Ref", "Qty Sold"]]})
            with self.assertRaises(EmptyDataError):
                load_rows(path)

    @unittest.skipIf(_XLRD_AVAILABLE, "xlrd is installed")
    def test_missing_xlrd_is_reported_as_decode_error(self):
        with self.assertRaisesRegex(DecodeError, "require xlrd"):
            load_rows(b"not-a-real-xls", filename="legacy.xls")

    def test_missing_odfpy_is_reported_as_decode_error(self):
        original_import = __import__

        def fake_import(name, globals=None, locals=None, fromlist=(), level=0):
            if name == "odf":
                raise ImportError("simulated missing odfpy")
            return original_import(name, globals, locals, fromlist, level)

        with mock.patch("builtins.__import__", side_effect=fake_import):
            with self.assertRaisesRegex(DecodeError, "require odfpy"):
                load_rows(b"not-a-real-ods", filename="sheet.ods")


if __name__ == "__main__":
    unittest.main()
