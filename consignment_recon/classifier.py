"""Guess whether a batch of raw rows is a load report or a sales report."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from consignment_recon.config import DEFAULT_SETTINGS, ReconSettings
from consignment_recon.errors import ClassificationError, EmptyDataError
from consignment_recon.heuristics import (
    is_blank,
    looks_like_consignment_id,
    looks_like_money,
    looks_like_quantity,
    looks_like_supplier_ref,
)
from consignment_recon.models import FileKind, RawRow

LOGGER = logging.getLogger(__name__)

LOAD_VOCABULARY_RE = re.compile(r"consign|pallet|ctn|variety|orchard", re.IGNORECASE)
SALES_VOCABULARY_RE = re.compile(r"supplier|reference|sold|value|amount", re.IGNORECASE)
REFERENCE_NAME_RE = re.compile(
    r"consign|pallet|plt[\s_]*id|supplier|reference|(?<![a-z0-9])ref(?![a-z0-9])", re.IGNORECASE
)
QUANTITY_NAME_RE = re.compile(r"ctns|cartons|boxes|quantity|qty|received|sold", re.IGNORECASE)
MONEY_NAME_RE = re.compile(r"value|amount|income|price", re.IGNORECASE)

IDENTIFIER_WEIGHT = 3.0
MONEY_WEIGHT = 2.0
VOCABULARY_WEIGHT = 2.0
SMALL_INT_WEIGHT = 0.5

MISSING_REFERENCES = "reference/consignment numbers"
MISSING_QUANTITIES = "quantity data"
MISSING_MONEY = "monetary data"

KIND_LABELS = {FileKind.LOAD: "Load", FileKind.SALES: "Sales", FileKind.UNKNOWN: "Unknown"}


@dataclass(frozen=True)
class FileTypeScore:
    load_score: float
    sales_score: float
    sampled_rows: int


def _sample(rows: Sequence[RawRow], settings: ReconSettings) -> list[RawRow]:
    return [row for row in list(rows)[: settings.sample_size] if hasattr(row, "items")]


def score_rows(rows: Sequence[RawRow], settings: ReconSettings | None = None) -> FileTypeScore:
    settings = settings or DEFAULT_SETTINGS
    sample = _sample(rows, settings)
    load_score = 0.0
    sales_score = 0.0
    for row in sample:
        for key, value in row.items():
            label = str(key)
            if LOAD_VOCABULARY_RE.search(label):
                load_score += VOCABULARY_WEIGHT
            if SALES_VOCABULARY_RE.search(label):
                sales_score += VOCABULARY_WEIGHT
            if is_blank(value):
                continue
            if looks_like_consignment_id(value):
                load_score += IDENTIFIER_WEIGHT
            if looks_like_money(value):
                sales_score += MONEY_WEIGHT
            if looks_like_quantity(value):
                load_score += SMALL_INT_WEIGHT
    return FileTypeScore(load_score=load_score, sales_score=sales_score, sampled_rows=len(sample))


def _any_value(sample: list[RawRow], predicate) -> bool:
    return any(
        predicate(value)
        for row in sample
        for value in row.values()
        if not is_blank(value)
    )


def _any_name(sample: list[RawRow], pattern: re.Pattern) -> bool:
    return any(pattern.search(str(key)) for row in sample for key in row.keys())


def infer_file_type(
    rows: Sequence[RawRow],
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> FileKind:
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    score = score_rows(rows, settings)
    log.debug(
        "file type scores over %d rows: load=%.1f sales=%.1f",
        score.sampled_rows,
        score.load_score,
        score.sales_score,
    )

    if score.load_score > score.sales_score and score.load_score > settings.score_threshold:
        return FileKind.LOAD
    if score.sales_score > score.load_score and score.sales_score > settings.score_threshold:
        return FileKind.SALES

    sample = _sample(rows, settings)
    if _any_value(sample, looks_like_consignment_id):
        return FileKind.LOAD
    if _any_value(sample, looks_like_money):
        return FileKind.SALES
    return FileKind.UNKNOWN


def get_missing_columns(rows: Sequence[RawRow], settings: ReconSettings | None = None) -> list[str]:
    settings = settings or DEFAULT_SETTINGS
    sample = _sample(rows, settings)
    if not sample:
        return []

    missing: list[str] = []
    has_references = _any_name(sample, REFERENCE_NAME_RE) or _any_value(
        sample, lambda value: looks_like_consignment_id(value) or looks_like_supplier_ref(value)
    )
    if not has_references:
        missing.append(MISSING_REFERENCES)
    if not (_any_name(sample, QUANTITY_NAME_RE) or _any_value(sample, looks_like_quantity)):
        missing.append(MISSING_QUANTITIES)
    if not (_any_name(sample, MONEY_NAME_RE) or _any_value(sample, looks_like_money)):
        missing.append(MISSING_MONEY)
    return missing


def classify_rows(
    rows: Sequence[RawRow],
    expected: FileKind | str | None = None,
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> FileKind:
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    if not rows:
        raise EmptyDataError("The file contains no data rows.")

    kind = infer_file_type(rows, settings, log)
    if kind is FileKind.UNKNOWN:
        raise ClassificationError(
            "Could not tell whether this is a load or a sales report.",
            missing=get_missing_columns(rows, settings),
        )

    if expected is not None:
        expected_kind = FileKind(expected)
        if expected_kind is not kind:
            message = (
                f"Expected a {KIND_LABELS[expected_kind].lower()} report but the data "
                f"looks like a {KIND_LABELS[kind].lower()} report."
            )
            if settings.strict_file_type:
                raise ClassificationError(message)
            log.warning(message)
    return kind
