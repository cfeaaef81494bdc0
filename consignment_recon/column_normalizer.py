"""
column_normalizer.py — map inconsistently named report columns onto the
canonical load and sales record shapes.

Each canonical field is resolved by an ordered chain of strategies:

    1. NamePatternStrategy        ranked regex synonyms on the column label
    2. ValueShapeStrategy         predicates on the cell value
    3. PositionalFallbackStrategy fixed column index

The resolver runs one stage at a time across every field of a record kind,
so a column claimed by name is never taken by another field's value guess.
A column is claimed by at most one field.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

import pandas as pd

from consignment_recon.config import DEFAULT_SETTINGS, ReconSettings
from consignment_recon.heuristics import (
    coerce_identifier,
    coerce_money,
    coerce_quantity,
    coerce_text,
    is_blank,
    looks_like_consignment_id,
    looks_like_date_text,
    looks_like_money,
    looks_like_quantity,
    looks_like_supplier_ref,
    normalize_scalar,
)
from consignment_recon.models import NormalizedLoadRecord, NormalizedSalesRecord, RawRow

LOGGER = logging.getLogger(__name__)

STAGE_NAME = 0
STAGE_VALUE = 1
STAGE_POSITION = 2
STAGES = (STAGE_NAME, STAGE_VALUE, STAGE_POSITION)

NUMERIC_TEXT_RE = re.compile(r"^\d+(?:\.\d+)?$")


@dataclass(frozen=True)
class ColumnMatch:
    column: str
    value: Any
    strategy: str


class ResolutionStrategy(ABC):
    """Picks one unclaimed column for a field, or None."""

    name = "strategy"
    stage = STAGE_NAME

    @abstractmethod
    def resolve(self, items: Sequence[tuple[str, Any]], claimed: set[str]) -> ColumnMatch | None:
        ...


class NamePatternStrategy(ResolutionStrategy):
    name = "name-pattern"
    stage = STAGE_NAME

    def __init__(self, patterns: Sequence[str], exclude: str | None = None) -> None:
        self.patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
        self.exclude = re.compile(exclude, re.IGNORECASE) if exclude else None

    def resolve(self, items: Sequence[tuple[str, Any]], claimed: set[str]) -> ColumnMatch | None:
        # Earlier patterns outrank later ones regardless of column order.
        for pattern in self.patterns:
            for column, value in items:
                if column in claimed:
                    continue
                label = str(column).strip()
                if self.exclude and self.exclude.search(label):
                    continue
                if pattern.search(label):
                    return ColumnMatch(column, value, self.name)
        return None


class ValueShapeStrategy(ResolutionStrategy):
    name = "value-shape"
    stage = STAGE_VALUE

    def __init__(self, predicate: Callable[[Any], bool]) -> None:
        self.predicate = predicate

    def resolve(self, items: Sequence[tuple[str, Any]], claimed: set[str]) -> ColumnMatch | None:
        for column, value in items:
            if column in claimed or is_blank(value):
                continue
            if self.predicate(value):
                return ColumnMatch(column, value, self.name)
        return None


class PositionalFallbackStrategy(ResolutionStrategy):
    name = "positional-fallback"
    stage = STAGE_POSITION

    def __init__(self, index: int | None) -> None:
        self.index = index

    def resolve(self, items: Sequence[tuple[str, Any]], claimed: set[str]) -> ColumnMatch | None:
        if self.index is None or not 0 <= self.index < len(items):
            return None
        column, value = items[self.index]
        if column in claimed:
            return None
        return ColumnMatch(column, value, self.name)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    strategies: tuple[ResolutionStrategy, ...]


class FieldResolver:
    def __init__(self, specs: Sequence[FieldSpec]) -> None:
        self.specs = list(specs)

    def resolve(self, row: RawRow) -> dict[str, ColumnMatch | None]:
        items = [(str(column), value) for column, value in row.items()]
        claimed: set[str] = set()
        resolved: dict[str, ColumnMatch | None] = {spec.name: None for spec in self.specs}
        for stage in STAGES:
            for spec in self.specs:
                if resolved[spec.name] is not None:
                    continue
                for strategy in spec.strategies:
                    if strategy.stage != stage:
                        continue
                    match = strategy.resolve(items, claimed)
                    if match is not None:
                        resolved[spec.name] = match
                        claimed.add(match.column)
                        break
        return resolved


# ── field vocabularies ────────────────────────────────────────────────────────

# Headers arrive as "Ctn Type", "ctn_type" or "CtnType"; underscores separate
# words like spaces do.
SEP = r"[\s_]*"


def word(term: str) -> str:
    """Match ``term`` as a whole word where ``_`` also counts as a separator."""
    return rf"(?<![a-z0-9]){term}(?![a-z0-9])"


CONSIGNMENT_ID_NAMES = (
    rf"consign(?:ment)?{SEP}(?:no|num|number|id|ref)",
    r"consign",
    rf"formatted{SEP}pal(?:le)?t{SEP}id",
    rf"pal(?:le)?t{SEP}id",
    rf"load{SEP}ref",
    r"reference",
)
CARTON_TYPE_NAMES = (rf"c(?:ar)?tn{SEP}type", rf"carton{SEP}type", rf"pack(?:ing)?{SEP}type", rf"pack{SEP}code")
VARIETY_NAMES = (r"variety", r"cultivar", word("var"))
ORCHARD_NAMES = (r"orchard", word("farm"), word("puc"), r"producer")
DATE_NAMES = (
    rf"consign(?:ment)?{SEP}date",
    rf"dispatch{SEP}date",
    rf"ship(?:ped|ment)?{SEP}date",
    r"date",
)
CARTONS_SENT_NAMES = (
    rf"#{SEP}ctns",
    rf"sum{SEP}of[\s_#]*ctns",
    word("ctns"),
    r"cartons",
    r"boxes",
    r"quantity",
    word("qty"),
)

SUPPLIER_REF_NAMES = (
    rf"supplier{SEP}ref",
    rf"export{SEP}pl?t{SEP}id",
    rf"pl?t{SEP}id",
    r"consign",
    r"reference",
    word("ref"),
)
TOTAL_VALUE_NAMES = (
    rf"total{SEP}income",
    rf"total{SEP}value",
    rf"sales{SEP}value",
    word("value"),
    r"amount",
    r"income",
)
RECEIVED_NAMES = (
    rf"ctn{SEP}qty",
    r"received",
    rf"qty{SEP}received",
    rf"#{SEP}ctns",
    word("ctns"),
    r"cartons",
    r"boxes",
    r"quantity",
    word("qty"),
)
SOLD_NAMES = (rf"qty{SEP}sold", r"sold")


def load_field_specs(settings: ReconSettings = DEFAULT_SETTINGS) -> list[FieldSpec]:
    return [
        FieldSpec(
            "consignment_id",
            (
                NamePatternStrategy(CONSIGNMENT_ID_NAMES, exclude=r"date|type|qty|ctns|value"),
                ValueShapeStrategy(looks_like_consignment_id),
            ),
        ),
        FieldSpec("carton_type", (NamePatternStrategy(CARTON_TYPE_NAMES),)),
        FieldSpec("variety", (NamePatternStrategy(VARIETY_NAMES),)),
        FieldSpec(
            "orchard",
            (
                NamePatternStrategy(ORCHARD_NAMES),
                PositionalFallbackStrategy(settings.orchard_fallback_index),
            ),
        ),
        FieldSpec(
            "consignment_date",
            (
                NamePatternStrategy(DATE_NAMES),
                ValueShapeStrategy(looks_like_date_text),
                PositionalFallbackStrategy(settings.date_fallback_index),
            ),
        ),
        FieldSpec(
            "cartons_sent",
            (
                NamePatternStrategy(CARTONS_SENT_NAMES, exclude=r"type"),
                ValueShapeStrategy(looks_like_quantity),
            ),
        ),
    ]


def sales_field_specs(settings: ReconSettings = DEFAULT_SETTINGS) -> list[FieldSpec]:
    return [
        FieldSpec(
            "supplier_ref",
            (
                NamePatternStrategy(SUPPLIER_REF_NAMES, exclude=r"date|qty|value|amount"),
                ValueShapeStrategy(looks_like_supplier_ref),
            ),
        ),
        FieldSpec(
            "total_value",
            (
                NamePatternStrategy(TOTAL_VALUE_NAMES),
                ValueShapeStrategy(looks_like_money),
            ),
        ),
        FieldSpec(
            "quantity_received",
            (
                NamePatternStrategy(RECEIVED_NAMES, exclude=r"sold|type|value"),
                ValueShapeStrategy(looks_like_quantity),
            ),
        ),
        FieldSpec(
            "quantity_sold",
            (
                NamePatternStrategy(SOLD_NAMES, exclude=r"value|amount|price|date"),
                ValueShapeStrategy(looks_like_quantity),
            ),
        ),
    ]


def resolve_columns(row: RawRow, kind: str, settings: ReconSettings | None = None) -> dict[str, ColumnMatch | None]:
    """Return which column each canonical field was read from, for diagnostics."""
    settings = settings or DEFAULT_SETTINGS
    if kind == "load":
        specs = load_field_specs(settings)
    elif kind == "sales":
        specs = sales_field_specs(settings)
    else:
        raise ValueError(f"Unknown report kind: {kind!r}")
    return FieldResolver(specs).resolve(row)


def _value(resolved: dict[str, ColumnMatch | None], name: str) -> Any:
    match = resolved.get(name)
    return match.value if match is not None else None


# ── dates ─────────────────────────────────────────────────────────────────────

def _serial_to_text(number: float, epoch: str) -> str | None:
    parsed = pd.to_datetime(number, unit="D", origin=pd.Timestamp(epoch), errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.strftime("%Y/%m/%d")


def format_date(raw: Any, settings: ReconSettings | None = None) -> str:
    """
    Render a date cell as YYYY/MM/DD.

    Plain positive numbers are day serials from the configured epoch; other
    text goes through pandas' generic parser. Anything unparseable comes back
    unchanged. Never raises.
    """
    epoch = (settings or DEFAULT_SETTINGS).date_epoch
    normalized = normalize_scalar(raw)
    if normalized is None:
        return ""
    if isinstance(normalized, bool):
        return str(normalized)
    if hasattr(normalized, "strftime"):
        return normalized.strftime("%Y/%m/%d")

    try:
        if isinstance(normalized, (int, float)):
            if normalized > 0:
                rendered = _serial_to_text(float(normalized), epoch)
                if rendered is not None:
                    return rendered
            return str(normalized)

        text = normalized.strip()
        if not text:
            return ""
        if NUMERIC_TEXT_RE.fullmatch(text) and float(text) > 0:
            rendered = _serial_to_text(float(text), epoch)
            return rendered if rendered is not None else normalized

        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, OverflowError, TypeError):
        return str(normalized)
    if pd.isna(parsed):
        return normalized
    return parsed.strftime("%Y/%m/%d")


# ── public API ────────────────────────────────────────────────────────────────

def normalize_load_row(row: RawRow, settings: ReconSettings | None = None) -> NormalizedLoadRecord:
    settings = settings or DEFAULT_SETTINGS
    resolved = FieldResolver(load_field_specs(settings)).resolve(row)
    return NormalizedLoadRecord(
        consignment_id=coerce_identifier(_value(resolved, "consignment_id")),
        cartons_sent=coerce_quantity(_value(resolved, "cartons_sent")),
        variety=coerce_text(_value(resolved, "variety")),
        carton_type=coerce_text(_value(resolved, "carton_type")),
        orchard=coerce_text(_value(resolved, "orchard")),
        consignment_date=format_date(_value(resolved, "consignment_date"), settings),
    )


def normalize_sales_row(row: RawRow, settings: ReconSettings | None = None) -> NormalizedSalesRecord:
    settings = settings or DEFAULT_SETTINGS
    resolved = FieldResolver(sales_field_specs(settings)).resolve(row)
    return NormalizedSalesRecord(
        supplier_ref=coerce_identifier(_value(resolved, "supplier_ref")),
        quantity_received=coerce_quantity(_value(resolved, "quantity_received")),
        quantity_sold=coerce_quantity(_value(resolved, "quantity_sold")),
        total_value=coerce_money(_value(resolved, "total_value")),
    )


def is_blank_row(row: RawRow) -> bool:
    return all(is_blank(value) for value in row.values())


def _log_resolution(kind: str, rows: Sequence[RawRow], settings: ReconSettings, log: logging.Logger) -> None:
    if not rows or not log.isEnabledFor(logging.DEBUG):
        return
    for name, match in resolve_columns(rows[0], kind, settings).items():
        if match is None:
            log.debug("%s field %s: no column found", kind, name)
        else:
            log.debug("%s field %s <- %r (%s)", kind, name, match.column, match.strategy)


def normalize_load_rows(
    rows: Iterable[RawRow],
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> list[NormalizedLoadRecord]:
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    usable = [row for row in rows if not is_blank_row(row)]
    _log_resolution("load", usable, settings, log)
    return [normalize_load_row(row, settings) for row in usable]


def normalize_sales_rows(
    rows: Iterable[RawRow],
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> list[NormalizedSalesRecord]:
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    usable = [row for row in rows if not is_blank_row(row)]
    _log_resolution("sales", usable, settings, log)
    return [normalize_sales_row(row, settings) for row in usable]
