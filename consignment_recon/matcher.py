"""
Match load records to sales records on a weak key.

Full identifiers differ in format between the dispatch and the market
systems, so the join key is only the last few digits of each identifier.
Matching runs in two phases:

    1. index   valid sales records by weak key, keeping input order
    2. consume for each load record take the candidate whose received
               quantity equals the cartons sent, else the first candidate

Known limitation: when several load records share a weak key the pool is
allocated first-come in input order, so results for colliding keys depend
on row order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence as SequenceABC
from typing import Iterator, Sequence

from consignment_recon.config import DEFAULT_SETTINGS, ReconSettings
from consignment_recon.errors import MatchingInputError
from consignment_recon.models import (
    MatchedRecord,
    MatchStatus,
    NormalizedLoadRecord,
    NormalizedSalesRecord,
)

LOGGER = logging.getLogger(__name__)

NON_DIGIT_RE = re.compile(r"\D+")


def weak_key(identifier: str, length: int = 4) -> str:
    digits = NON_DIGIT_RE.sub("", identifier or "")
    return digits[-length:] if digits else ""


def is_valid_reference(ref: str, markers: Sequence[str] = DEFAULT_SETTINGS.invalid_ref_markers) -> bool:
    if not ref or not any(ch.isdigit() for ch in ref):
        return False
    upper = ref.upper()
    return not any(marker.upper() in upper for marker in markers)


class SalesIndex:
    """Weak key -> ordered candidate positions, consumed during matching."""

    def __init__(self, sales: list[NormalizedSalesRecord], key_length: int) -> None:
        self.sales = sales
        self.key_length = key_length
        self.candidates: dict[str, list[int]] = {}
        self.consumed: set[int] = set()

    @classmethod
    def build(
        cls,
        sales_records: Sequence[NormalizedSalesRecord],
        settings: ReconSettings = DEFAULT_SETTINGS,
    ) -> "SalesIndex":
        valid = [
            sale for sale in sales_records
            if is_valid_reference(sale.supplier_ref, settings.invalid_ref_markers)
        ]
        index = cls(valid, settings.weak_key_length)
        for position, sale in enumerate(valid):
            key = weak_key(sale.supplier_ref, settings.weak_key_length)
            index.candidates.setdefault(key, []).append(position)
        return index

    def take(self, key: str, cartons_sent: int) -> NormalizedSalesRecord | None:
        pool = self.candidates.get(key) if key else None
        if not pool:
            return None
        chosen = next(
            (position for position in pool if self.sales[position].quantity_received == cartons_sent),
            pool[0],
        )
        pool.remove(chosen)
        self.consumed.add(chosen)
        return self.sales[chosen]

    def leftovers(self) -> Iterator[NormalizedSalesRecord]:
        for position, sale in enumerate(self.sales):
            if position not in self.consumed:
                yield sale


def _require_sequence(value: object, label: str) -> None:
    if isinstance(value, (str, bytes)) or not isinstance(value, SequenceABC):
        raise MatchingInputError(f"{label} records must be a sequence, got {type(value).__name__}")


def _matched(load: NormalizedLoadRecord, sale: NormalizedSalesRecord) -> MatchedRecord:
    received = sale.quantity_received
    sold = sale.quantity_sold
    return MatchedRecord(
        consignment_id=load.consignment_id,
        supplier_ref=sale.supplier_ref,
        status=MatchStatus.MATCHED,
        variety=load.variety,
        carton_type=load.carton_type,
        orchard=load.orchard,
        consignment_date=load.consignment_date,
        cartons_sent=load.cartons_sent,
        received=received,
        deviation_sent_received=load.cartons_sent - received,
        sold_on_market=sold,
        deviation_received_sold=received - sold,
        total_value=sale.total_value,
        reconciled=load.cartons_sent == received == sold,
    )


def _unmatched_load(load: NormalizedLoadRecord) -> MatchedRecord:
    return MatchedRecord(
        consignment_id=load.consignment_id,
        supplier_ref="",
        status=MatchStatus.UNMATCHED,
        variety=load.variety,
        carton_type=load.carton_type,
        orchard=load.orchard,
        consignment_date=load.consignment_date,
        cartons_sent=load.cartons_sent,
        deviation_sent_received=load.cartons_sent,
    )


def _unmatched_sale(sale: NormalizedSalesRecord) -> MatchedRecord:
    received = sale.quantity_received
    sold = sale.quantity_sold
    return MatchedRecord(
        consignment_id="",
        supplier_ref=sale.supplier_ref,
        status=MatchStatus.UNMATCHED,
        received=received,
        deviation_sent_received=-received,
        sold_on_market=sold,
        deviation_received_sold=received - sold,
        total_value=sale.total_value,
    )


def match_data(
    load_records: Sequence[NormalizedLoadRecord],
    sales_records: Sequence[NormalizedSalesRecord],
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> list[MatchedRecord]:
    """
    Produce one record per load (input order), then one Unmatched record per
    sales row no load consumed (input order).
    """
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    _require_sequence(load_records, "Load")
    _require_sequence(sales_records, "Sales")

    index = SalesIndex.build(sales_records, settings)
    skipped = len(sales_records) - len(index.sales)
    if skipped:
        log.info("ignored %d sales rows without a usable supplier reference", skipped)

    output: list[MatchedRecord] = []
    for load in load_records:
        key = weak_key(load.consignment_id, settings.weak_key_length)
        sale = index.take(key, load.cartons_sent)
        if sale is None:
            output.append(_unmatched_load(load))
        else:
            log.debug("matched %s -> %s on key %s", load.consignment_id, sale.supplier_ref, key)
            output.append(_matched(load, sale))

    leftovers = [_unmatched_sale(sale) for sale in index.leftovers()]
    output.extend(leftovers)

    matched = sum(1 for record in output if record.status is MatchStatus.MATCHED)
    log.info(
        "matched %d of %d load records; %d sales records left unmatched",
        matched,
        len(load_records),
        len(leftovers),
    )
    return output
