"""Domain records flowing through normalisation, matching, and aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

RawRow = Mapping[str, Any]


class FileKind(str, Enum):
    LOAD = "load"
    SALES = "sales"
    UNKNOWN = "unknown"


class MatchStatus(str, Enum):
    MATCHED = "Matched"
    UNMATCHED = "Unmatched"


@dataclass(frozen=True)
class NormalizedLoadRecord:
    consignment_id: str = ""
    cartons_sent: int = 0
    variety: str = ""
    carton_type: str = ""
    orchard: str = ""
    consignment_date: str = ""


@dataclass(frozen=True)
class NormalizedSalesRecord:
    supplier_ref: str = ""
    quantity_received: int = 0
    quantity_sold: int = 0
    total_value: float = 0.0


@dataclass(frozen=True)
class MatchedRecord:
    consignment_id: str
    supplier_ref: str
    status: MatchStatus
    variety: str = ""
    carton_type: str = ""
    orchard: str = ""
    consignment_date: str = ""
    cartons_sent: int = 0
    received: int = 0
    deviation_sent_received: int = 0
    sold_on_market: int = 0
    deviation_received_sold: int = 0
    total_value: float = 0.0
    reconciled: bool = False
    is_child: bool = False
    group_id: str = ""

    kind: ClassVar[str] = "record"
    is_group_parent: ClassVar[bool] = False

    @property
    def missing_reference(self) -> bool:
        return not self.consignment_id and not self.supplier_ref

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "consignment_id": self.consignment_id,
            "supplier_ref": self.supplier_ref,
            "status": self.status.value,
            "variety": self.variety,
            "carton_type": self.carton_type,
            "orchard": self.orchard,
            "consignment_date": self.consignment_date,
            "cartons_sent": self.cartons_sent,
            "received": self.received,
            "deviation_sent_received": self.deviation_sent_received,
            "sold_on_market": self.sold_on_market,
            "deviation_received_sold": self.deviation_received_sold,
            "total_value": self.total_value,
            "reconciled": self.reconciled,
            "is_child": self.is_child,
            "is_group_parent": self.is_group_parent,
            "group_id": self.group_id,
        }


@dataclass(frozen=True)
class GroupedMatchedRecord:
    """Summary row for two or more records sharing a group key."""

    group_id: str
    consignment_id: str
    supplier_ref: str
    status: MatchStatus
    variety: str
    carton_type: str
    orchard: str
    consignment_date: str
    child_records: tuple[MatchedRecord, ...]
    total_cartons_sent: int
    total_received: int
    total_sold_on_market: int
    total_value: float
    reconciled: bool
    is_child: bool = field(default=False, init=False)

    kind: ClassVar[str] = "group"
    is_group_parent: ClassVar[bool] = True

    @property
    def deviation_sent_received(self) -> int:
        return self.total_cartons_sent - self.total_received

    @property
    def deviation_received_sold(self) -> int:
        return self.total_received - self.total_sold_on_market

    @property
    def has_reconciled_child(self) -> bool:
        return any(child.reconciled for child in self.child_records)

    @property
    def missing_reference(self) -> bool:
        return not self.consignment_id and not self.supplier_ref

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "group_id": self.group_id,
            "consignment_id": self.consignment_id,
            "supplier_ref": self.supplier_ref,
            "status": self.status.value,
            "variety": self.variety,
            "carton_type": self.carton_type,
            "orchard": self.orchard,
            "consignment_date": self.consignment_date,
            "total_cartons_sent": self.total_cartons_sent,
            "total_received": self.total_received,
            "deviation_sent_received": self.deviation_sent_received,
            "total_sold_on_market": self.total_sold_on_market,
            "deviation_received_sold": self.deviation_received_sold,
            "total_value": self.total_value,
            "reconciled": self.reconciled,
            "has_reconciled_child": self.has_reconciled_child,
            "is_group_parent": self.is_group_parent,
            "child_records": [child.to_dict() for child in self.child_records],
        }


DisplayRecord = Union[MatchedRecord, GroupedMatchedRecord]


@dataclass(frozen=True)
class Statistics:
    total_records: int = 0
    matched_count: int = 0
    unmatched_count: int = 0
    total_value: float = 0.0
    average_value: float = 0.0
    match_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "total_value": self.total_value,
            "average_value": self.average_value,
            "match_rate": self.match_rate,
        }
