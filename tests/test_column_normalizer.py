from __future__ import annotations

import unittest
from datetime import date, datetime

import pandas as pd

from consignment_recon.column_normalizer import (
    FieldResolver,
    FieldSpec,
    NamePatternStrategy,
    PositionalFallbackStrategy,
    ResolutionStrategy,
    ValueShapeStrategy,
    format_date,
    normalize_load_row,
    normalize_load_rows,
    normalize_sales_row,
    normalize_sales_rows,
    resolve_columns,
)
from consignment_recon.config import ReconSettings
from consignment_recon.heuristics import looks_like_quantity


class LoadRowTests(unittest.TestCase):
    def test_named_columns_resolve_by_name(self):
        row = {
            "Consign Number": " a1b234567 ",
            "Variety": "Nadorcott",
            "Ctn Type": "A15C",
            "# Ctns": "120",
            "Cons Date": 45292,
            "Orchard": "ORCH-07",
        }
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "A1B234567")
        self.assertEqual(record.variety, "Nadorcott")
        self.assertEqual(record.carton_type, "A15C")
        self.assertEqual(record.cartons_sent, 120)
        self.assertEqual(record.consignment_date, "2024/01/01")
        self.assertEqual(record.orchard, "ORCH-07")

    def test_unnamed_columns_fall_back_to_value_shapes(self):
        row = {"col1": "B2C998877", "col2": 35, "col3": "2024-03-05"}
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "B2C998877")
        self.assertEqual(record.cartons_sent, 35)
        self.assertEqual(record.consignment_date, "2024/03/05")
        self.assertEqual(record.orchard, "")

    def test_orchard_uses_positional_fallback(self):
        row = {f"__EMPTY_{index}": "" for index in range(12)}
        row["__EMPTY_0"] = "A1B234567"
        row["__EMPTY_10"] = "ORCH-9"
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "A1B234567")
        self.assertEqual(record.orchard, "ORCH-9")
        self.assertEqual(record.cartons_sent, 0)

    def test_positional_fallback_index_is_configurable(self):
        row = {"a": "A1B234567", "b": "FARM-2", "c": 10}
        record = normalize_load_row(row, ReconSettings(orchard_fallback_index=1))
        self.assertEqual(record.orchard, "FARM-2")

    def test_identifier_column_named_like_a_date_is_not_used_as_identifier(self):
        row = {"Consignment Date": "2024/01/02", "Consignment No": "C3D555001", "Qty": 4}
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "C3D555001")
        self.assertEqual(record.consignment_date, "2024/01/02")
        self.assertEqual(record.cartons_sent, 4)

    def test_quantities_are_clamped_and_rounded(self):
        self.assertEqual(normalize_load_row({"Consign": "A1B234567", "# Ctns": "-5"}).cartons_sent, 0)
        self.assertEqual(normalize_load_row({"Consign": "A1B234567", "# Ctns": "abc"}).cartons_sent, 0)
        self.assertEqual(normalize_load_row({"Consign": "A1B234567", "# Ctns": "12.6"}).cartons_sent, 13)
        self.assertEqual(normalize_load_row({"Consign": "A1B234567", "# Ctns": "1,200"}).cartons_sent, 1200)

    def test_missing_fields_default_to_empty(self):
        record = normalize_load_row({})
        self.assertEqual(record.consignment_id, "")
        self.assertEqual(record.cartons_sent, 0)
        self.assertEqual(record.consignment_date, "")

    def test_snake_case_headers_resolve_by_name(self):
        row = {
            "formatted_pallet_id": "P001234",
            "variety": "Nadorcott",
            "ctn_type": "A15C",
            "sum_of_ctns": 40,
            "Lot": 3,
        }
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "P001234")
        self.assertEqual(record.carton_type, "A15C")
        self.assertEqual(record.cartons_sent, 40)

    def test_spreadsheet_pivot_headers(self):
        row = {"Formatted Pallet ID": "P001235", "Carton Type": "B10", "Sum of # Ctns": 64}
        record = normalize_load_row(row)
        self.assertEqual(record.consignment_id, "P001235")
        self.assertEqual(record.carton_type, "B10")
        self.assertEqual(record.cartons_sent, 64)

    def test_blank_rows_are_skipped_in_batches(self):
        rows = [
            {"Consign Number": "", "# Ctns": None},
            {"Consign Number": "A1B234567", "# Ctns": 3},
            {"Consign Number": "n/a", "# Ctns": "-"},
        ]
        records = normalize_load_rows(rows)
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].cartons_sent, 3)


class SalesRowTests(unittest.TestCase):
    def test_named_columns_and_currency_text(self):
        row = {
            "Qty Sold": 5,
            "Received": 7,
            "Supplier Ref": "sup-1234",
            "Total Value": "R 1 234.50",
        }
        record = normalize_sales_row(row)
        self.assertEqual(record.supplier_ref, "SUP-1234")
        self.assertEqual(record.quantity_received, 7)
        self.assertEqual(record.quantity_sold, 5)
        self.assertEqual(record.total_value, 1234.5)

    def test_money_is_non_negative_and_two_decimals(self):
        record = normalize_sales_row({"Supplier Ref": "REF1234", "Amount": "(12.345)"})
        self.assertEqual(record.total_value, 0.0)
        record = normalize_sales_row({"Supplier Ref": "REF1234", "Amount": 12.3456})
        self.assertEqual(record.total_value, 12.35)

    def test_value_shapes_when_headers_are_useless(self):
        row = {"a": "REF7788", "b": 10, "c": 9, "d": 1520.75}
        record = normalize_sales_row(row)
        self.assertEqual(record.supplier_ref, "REF7788")
        self.assertEqual(record.total_value, 1520.75)
        self.assertEqual(record.quantity_received, 10)
        self.assertEqual(record.quantity_sold, 9)

    def test_snake_case_headers_resolve_by_name(self):
        row = {"Export Plt ID": "P001234", "Lot": 3, "ctn_qty": 40, "qty_sold": 40, "total_income": 100.5}
        record = normalize_sales_row(row)
        self.assertEqual(record.supplier_ref, "P001234")
        self.assertEqual(record.quantity_received, 40)
        self.assertEqual(record.quantity_sold, 40)
        self.assertEqual(record.total_value, 100.5)

    def test_ctn_qty_outranks_other_quantity_columns(self):
        row = {"export_plt_id": "P009876", "qty_received": 12, "ctn_qty": 10, "sold": 10, "value": 55.0}
        record = normalize_sales_row(row)
        self.assertEqual(record.quantity_received, 10)
        self.assertEqual(record.total_value, 55.0)

    def test_batch_helper_skips_blank_rows(self):
        rows = [{"Supplier Ref": "", "Qty Sold": ""}, {"Supplier Ref": "REF0001", "Qty Sold": 3}]
        self.assertEqual(len(normalize_sales_rows(rows)), 1)


class ResolverTests(unittest.TestCase):
    def test_name_claim_beats_value_guess_of_earlier_field(self):
        specs = [
            FieldSpec("first", (ValueShapeStrategy(looks_like_quantity),)),
            FieldSpec("second", (NamePatternStrategy([r"count"]),)),
        ]
        resolved = FieldResolver(specs).resolve({"count": 5, "other": 7})
        self.assertEqual(resolved["second"].column, "count")
        self.assertEqual(resolved["first"].column, "other")
        self.assertEqual(resolved["first"].strategy, "value-shape")

    def test_column_is_claimed_by_at_most_one_field(self):
        specs = [
            FieldSpec("a", (NamePatternStrategy([r"qty"]),)),
            FieldSpec("b", (NamePatternStrategy([r"qty"]),)),
        ]
        resolved = FieldResolver(specs).resolve({"qty": 1})
        self.assertEqual(resolved["a"].column, "qty")
        self.assertIsNone(resolved["b"])

    def test_strategies_must_implement_resolve(self):
        with self.assertRaises(TypeError):
            ResolutionStrategy()

        class Incomplete(ResolutionStrategy):
            pass

        with self.assertRaises(TypeError):
            Incomplete()

    def test_underscore_counts_as_word_separator(self):
        strategy = NamePatternStrategy([r"(?<![a-z0-9])qty(?![a-z0-9])"])
        self.assertEqual(strategy.resolve([("qtyx", 1), ("ctn_qty", 2)], set()).column, "ctn_qty")

    def test_positional_strategy_ignores_out_of_range_index(self):
        strategy = PositionalFallbackStrategy(34)
        self.assertIsNone(strategy.resolve([("a", 1)], set()))
        self.assertIsNone(PositionalFallbackStrategy(None).resolve([("a", 1)], set()))

    def test_resolve_columns_reports_strategy_names(self):
        resolved = resolve_columns({"Consign Number": "A1B234567", "x": 12}, "load")
        self.assertEqual(resolved["consignment_id"].strategy, "name-pattern")
        self.assertEqual(resolved["cartons_sent"].strategy, "value-shape")

    def test_resolve_columns_rejects_unknown_kind(self):
        with self.assertRaises(ValueError):
            resolve_columns({}, "invoice")


class FormatDateTests(unittest.TestCase):
    def test_blank_values(self):
        self.assertEqual(format_date(None), "")
        self.assertEqual(format_date(""), "")
        self.assertEqual(format_date(float("nan")), "")

    def test_native_dates(self):
        self.assertEqual(format_date(datetime(2024, 2, 3, 14, 30)), "2024/02/03")
        self.assertEqual(format_date(date(2024, 2, 3)), "2024/02/03")
        self.assertEqual(format_date(pd.Timestamp("2024-02-03")), "2024/02/03")

    def test_serial_numbers_use_spreadsheet_epoch(self):
        self.assertEqual(format_date(45292), "2024/01/01")
        self.assertEqual(format_date("45292"), "2024/01/01")
        self.assertEqual(format_date(45292.75), "2024/01/01")

    def test_epoch_is_configurable(self):
        self.assertEqual(format_date(1, ReconSettings(date_epoch="1970-01-01")), "1970/01/02")

    def test_text_dates_are_parsed(self):
        self.assertEqual(format_date("05 Jan 2024"), "2024/01/05")
        self.assertEqual(format_date("2024-01-05"), "2024/01/05")

    def test_unparseable_values_are_returned_unchanged(self):
        self.assertEqual(format_date("not a date"), "not a date")
        self.assertEqual(format_date(-3), "-3")


if __name__ == "__main__":
    unittest.main()
