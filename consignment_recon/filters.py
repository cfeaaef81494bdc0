"""Record filters behind the status / variety / reconciled / consignment controls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from consignment_recon.aggregator import flatten_records
from consignment_recon.models import MatchedRecord, MatchStatus

ALL = "all"
STATUS_CHOICES = (ALL, "matched", "unmatched")
RECONCILED_CHOICES = (ALL, "reconciled", "not-reconciled")


@dataclass(frozen=True)
class RecordFilter:
    status: str = ALL
    variety: str = ALL
    reconciled: str = ALL
    consignment_query: str = ""

    def __post_init__(self) -> None:
        if self.status not in STATUS_CHOICES:
            raise ValueError(f"status filter must be one of {', '.join(STATUS_CHOICES)}")
        if self.reconciled not in RECONCILED_CHOICES:
            raise ValueError(f"reconciled filter must be one of {', '.join(RECONCILED_CHOICES)}")

    @property
    def is_active(self) -> bool:
        return (
            self.status != ALL
            or self.variety != ALL
            or self.reconciled != ALL
            or bool(self.consignment_query.strip())
        )

    def accepts(self, record: MatchedRecord) -> bool:
        if self.status == "matched" and record.status is not MatchStatus.MATCHED:
            return False
        if self.status == "unmatched" and record.status is not MatchStatus.UNMATCHED:
            return False
        if self.variety != ALL and record.variety != self.variety:
            return False
        if self.reconciled == "reconciled" and not record.reconciled:
            return False
        if self.reconciled == "not-reconciled" and record.reconciled:
            return False
        query = self.consignment_query.strip().upper()
        if query and query not in record.consignment_id.upper():
            return False
        return True

    def apply(self, records: Iterable[MatchedRecord]) -> list[MatchedRecord]:
        """Filter leaf records; groups are flattened first and regrouped by the caller."""
        return [record for record in flatten_records(records) if self.accepts(record)]


def list_varieties(records: Iterable[MatchedRecord]) -> list[str]:
    return sorted({record.variety for record in flatten_records(records) if record.variety})
