"""Summary statistics and the grouped parent/child view of matched records."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Sequence

from consignment_recon.config import DEFAULT_SETTINGS
from consignment_recon.models import (
    DisplayRecord,
    GroupedMatchedRecord,
    MatchedRecord,
    MatchStatus,
    Statistics,
)

DEFAULT_GROUP_BY = DEFAULT_SETTINGS.group_by
GROUP_KEY_SEPARATOR = "__"

RANK_RECONCILED = 0
RANK_PARTIAL_GROUP = 1
RANK_MATCHED = 2
RANK_OTHER = 3


def calculate_statistics(records: Iterable[DisplayRecord]) -> Statistics:
    """Count and total over base rows only, so group children are not double-counted."""
    base = [record for record in records if not record.is_child]
    total = len(base)
    matched = sum(1 for record in base if record.status is MatchStatus.MATCHED)
    total_value = round(sum(record.total_value for record in base), 2)
    return Statistics(
        total_records=total,
        matched_count=matched,
        unmatched_count=total - matched,
        total_value=total_value,
        average_value=total_value / total if total else 0.0,
        match_rate=(matched / total) * 100 if total else 0.0,
    )


def flatten_records(records: Iterable[DisplayRecord]) -> list[MatchedRecord]:
    flat: list[MatchedRecord] = []
    for record in records:
        if isinstance(record, GroupedMatchedRecord):
            flat.extend(record.child_records)
        else:
            flat.append(record)
    return flat


def status_rank(record: DisplayRecord) -> int:
    if record.reconciled:
        return RANK_RECONCILED
    if isinstance(record, GroupedMatchedRecord) and record.has_reconciled_child:
        return RANK_PARTIAL_GROUP
    if record.status is MatchStatus.MATCHED:
        return RANK_MATCHED
    return RANK_OTHER


def group_key(record: MatchedRecord, group_by: Sequence[str]) -> str | None:
    values = [str(getattr(record, name, "") or "") for name in group_by]
    if not any(values):
        return None
    return GROUP_KEY_SEPARATOR.join(values)


def group_reconciled(children: Sequence[MatchedRecord], tolerance: int) -> bool:
    sent = sum(child.cartons_sent for child in children)
    received = sum(child.received for child in children)
    sold = sum(child.sold_on_market for child in children)
    return abs(sent - received) <= tolerance and abs(received - sold) <= tolerance


def _build_group(key: str, members: list[MatchedRecord], tolerance: int) -> GroupedMatchedRecord:
    children = tuple(replace(member, is_child=True, group_id=key) for member in members)
    first = children[0]
    return GroupedMatchedRecord(
        group_id=key,
        consignment_id=first.consignment_id,
        supplier_ref=first.supplier_ref,
        status=first.status,
        variety=first.variety,
        carton_type=first.carton_type,
        orchard=first.orchard,
        consignment_date=first.consignment_date,
        child_records=children,
        total_cartons_sent=sum(child.cartons_sent for child in children),
        total_received=sum(child.received for child in children),
        total_sold_on_market=sum(child.sold_on_market for child in children),
        total_value=round(sum(child.total_value for child in children), 2),
        reconciled=group_reconciled(children, tolerance),
    )


def group_records(
    records: Iterable[DisplayRecord],
    group_by: Sequence[str] = DEFAULT_GROUP_BY,
    tolerance: int | None = None,
) -> list[DisplayRecord]:
    """
    Bundle records sharing the group_by key values into GroupedMatchedRecord
    parents, then order everything by status rank (stable).

    Records whose key fields are all empty are never grouped. Groups in the
    input are re-expanded first, so grouping is idempotent over its own
    flattened output.
    """
    tolerance = DEFAULT_SETTINGS.group_tolerance if tolerance is None else tolerance

    buckets: dict[str, list[MatchedRecord]] = {}
    order: list[tuple[str, str | MatchedRecord]] = []
    for record in flatten_records(records):
        key = group_key(record, group_by)
        if key is None:
            order.append(("single", record))
            continue
        if key not in buckets:
            buckets[key] = []
            order.append(("bucket", key))
        buckets[key].append(record)

    emitted: list[DisplayRecord] = []
    for tag, item in order:
        if tag == "single":
            emitted.append(replace(item, is_child=False, group_id=""))
            continue
        members = buckets[item]
        if len(members) == 1:
            emitted.append(replace(members[0], is_child=False, group_id=""))
        else:
            emitted.append(_build_group(item, members, tolerance))

    return sorted(emitted, key=status_rank)
