from __future__ import annotations

import unittest
from dataclasses import replace

from consignment_recon.aggregator import group_records
from consignment_recon.filters import RecordFilter, list_varieties
from consignment_recon.models import MatchedRecord, MatchStatus


def record(consignment_id: str, status: MatchStatus, variety: str = "", reconciled: bool = False) -> MatchedRecord:
    return MatchedRecord(
        consignment_id=consignment_id,
        supplier_ref="",
        status=status,
        variety=variety,
        reconciled=reconciled,
    )


RECORDS = [
    record("A1B000001", MatchStatus.MATCHED, "Navel", reconciled=True),
    record("A1B000002", MatchStatus.MATCHED, "Nadorcott"),
    record("C3D000003", MatchStatus.UNMATCHED, "Navel"),
    record("", MatchStatus.UNMATCHED),
]


class RecordFilterTests(unittest.TestCase):
    def test_default_filter_keeps_everything(self):
        record_filter = RecordFilter()
        self.assertFalse(record_filter.is_active)
        self.assertEqual(record_filter.apply(RECORDS), RECORDS)

    def test_status_filter(self):
        kept = RecordFilter(status="unmatched").apply(RECORDS)
        self.assertEqual([item.consignment_id for item in kept], ["C3D000003", ""])

    def test_variety_filter(self):
        kept = RecordFilter(variety="Navel").apply(RECORDS)
        self.assertEqual(len(kept), 2)

    def test_reconciled_filters(self):
        self.assertEqual(len(RecordFilter(reconciled="reconciled").apply(RECORDS)), 1)
        self.assertEqual(len(RecordFilter(reconciled="not-reconciled").apply(RECORDS)), 3)

    def test_consignment_search_is_case_insensitive_substring(self):
        kept = RecordFilter(consignment_query=" c3d ").apply(RECORDS)
        self.assertEqual([item.consignment_id for item in kept], ["C3D000003"])

    def test_filters_combine(self):
        kept = RecordFilter(status="matched", variety="Navel", reconciled="reconciled").apply(RECORDS)
        self.assertEqual([item.consignment_id for item in kept], ["A1B000001"])

    def test_groups_are_filtered_by_child(self):
        duplicated = [replace(RECORDS[1], supplier_ref="R1"), replace(RECORDS[1], supplier_ref="R1")]
        grouped = group_records(duplicated)
        kept = RecordFilter(variety="Nadorcott").apply(grouped)
        self.assertEqual(len(kept), 2)
        self.assertTrue(all(isinstance(item, MatchedRecord) for item in kept))

    def test_invalid_choices_raise(self):
        with self.assertRaises(ValueError):
            RecordFilter(status="pending")
        with self.assertRaises(ValueError):
            RecordFilter(reconciled="maybe")


class ListVarietiesTests(unittest.TestCase):
    def test_sorted_unique_non_empty(self):
        self.assertEqual(list_varieties(RECORDS), ["Nadorcott", "Navel"])

    def test_includes_group_children(self):
        grouped = group_records([
            MatchedRecord("C1", "R1", MatchStatus.MATCHED, variety="Star Ruby"),
            MatchedRecord("C1", "R1", MatchStatus.MATCHED, variety="Star Ruby"),
        ])
        self.assertEqual(list_varieties(grouped), ["Star Ruby"])


if __name__ == "__main__":
    unittest.main()
