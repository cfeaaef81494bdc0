from __future__ import annotations

import unittest

from consignment_recon.classifier import (
    MISSING_MONEY,
    MISSING_QUANTITIES,
    MISSING_REFERENCES,
    classify_rows,
    get_missing_columns,
    infer_file_type,
    score_rows,
)
from consignment_recon.config import ReconSettings
from consignment_recon.errors import ClassificationError, EmptyDataError
from consignment_recon.models import FileKind

SALES_ROWS = [
    {"Supplier Ref": "R 1 250.00", "Total Value": "R 980.50"},
    {"Supplier Ref": "R 2 100.00", "Total Value": "R 75.25"},
    {"Supplier Ref": "R 640.10", "Total Value": "R 12.00"},
]
LOAD_ROWS = [
    {"Consign Number": "A1B234567", "Ctn Type": "A15C", "# Ctns": 40},
    {"Consign Number": "A1B234568", "Ctn Type": "A15C", "# Ctns": 80},
]


class InferFileTypeTests(unittest.TestCase):
    def test_currency_values_with_supplier_columns_are_sales(self):
        self.assertIs(infer_file_type(SALES_ROWS), FileKind.SALES)

    def test_consignment_ids_with_carton_columns_are_load(self):
        self.assertIs(infer_file_type(LOAD_ROWS), FileKind.LOAD)

    def test_scores_are_exposed(self):
        score = score_rows(LOAD_ROWS)
        self.assertEqual(score.sampled_rows, 2)
        self.assertGreater(score.load_score, score.sales_score)
        self.assertEqual(score.sales_score, 0)

    def test_only_the_first_sample_rows_are_scored(self):
        rows = LOAD_ROWS * 20
        self.assertEqual(score_rows(rows).sampled_rows, 10)
        self.assertEqual(score_rows(rows, ReconSettings(sample_size=3)).sampled_rows, 3)

    def test_low_scores_fall_back_to_identifier_then_money(self):
        self.assertIs(infer_file_type([{"a": "A1B234567"}]), FileKind.LOAD)
        self.assertIs(infer_file_type([{"a": "12.50"}]), FileKind.SALES)

    def test_unrecognisable_rows_are_unknown(self):
        self.assertIs(infer_file_type([{"x": "hello"}]), FileKind.UNKNOWN)
        self.assertIs(infer_file_type([]), FileKind.UNKNOWN)

    def test_non_mapping_rows_are_ignored(self):
        self.assertIs(infer_file_type(["A1B234567", None]), FileKind.UNKNOWN)


class MissingColumnsTests(unittest.TestCase):
    def test_empty_input_reports_nothing(self):
        self.assertEqual(get_missing_columns([]), [])

    def test_everything_missing(self):
        self.assertEqual(
            get_missing_columns([{"x": "hello"}]),
            [MISSING_REFERENCES, MISSING_QUANTITIES, MISSING_MONEY],
        )

    def test_names_or_values_satisfy_each_requirement(self):
        rows = [{"Supplier Ref": "", "Qty": "", "Amount": ""}]
        self.assertEqual(get_missing_columns(rows), [])
        rows = [{"a": "REF1234", "b": 12, "c": "99.95"}]
        self.assertEqual(get_missing_columns(rows), [])

    def test_snake_case_names_satisfy_each_requirement(self):
        rows = [{"export_plt_id": "", "ctn_qty": "", "total_income": ""}]
        self.assertEqual(get_missing_columns(rows), [])
        self.assertEqual(get_missing_columns([{"lot_ref": "", "ctn_qty": "", "price": ""}]), [])

    def test_only_money_missing(self):
        self.assertEqual(get_missing_columns(LOAD_ROWS), [MISSING_MONEY])


class ClassifyRowsTests(unittest.TestCase):
    def test_empty_rows_raise(self):
        with self.assertRaises(EmptyDataError):
            classify_rows([])

    def test_unknown_rows_raise_with_missing_columns(self):
        with self.assertRaises(ClassificationError) as ctx:
            classify_rows([{"x": "hello"}])
        self.assertEqual(ctx.exception.missing, [MISSING_REFERENCES, MISSING_QUANTITIES, MISSING_MONEY])
        self.assertIn("Could not find: reference/consignment numbers", ctx.exception.user_message())

    def test_mismatch_with_expected_kind_is_logged(self):
        with self.assertLogs("consignment_recon.classifier", level="WARNING") as logs:
            kind = classify_rows(LOAD_ROWS, expected="sales")
        self.assertIs(kind, FileKind.LOAD)
        self.assertIn("Expected a sales report", logs.output[0])

    def test_mismatch_raises_in_strict_mode(self):
        with self.assertRaises(ClassificationError):
            classify_rows(LOAD_ROWS, expected=FileKind.SALES, settings=ReconSettings(strict_file_type=True))

    def test_matching_expected_kind_passes(self):
        self.assertIs(classify_rows(SALES_ROWS, expected=FileKind.SALES), FileKind.SALES)


if __name__ == "__main__":
    unittest.main()
