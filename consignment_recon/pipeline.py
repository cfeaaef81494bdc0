"""
End-to-end reconciliation: read both reports, normalise, match, aggregate.

Reading happens once per report and completes before matching starts; the
core below the read boundary is synchronous and pure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from consignment_recon import loader
from consignment_recon.aggregator import calculate_statistics, group_records
from consignment_recon.classifier import KIND_LABELS, classify_rows
from consignment_recon.column_normalizer import normalize_load_rows, normalize_sales_rows
from consignment_recon.config import DEFAULT_SETTINGS, ReconSettings
from consignment_recon.contracts import build_contract, build_run_summary
from consignment_recon.errors import ReconError
from consignment_recon.matcher import match_data
from consignment_recon.models import (
    DisplayRecord,
    FileKind,
    MatchedRecord,
    MatchStatus,
    RawRow,
    Statistics,
)

LOGGER = logging.getLogger(__name__)

TOOL_NAME = "consignment-recon"


@dataclass
class ReconciliationResult:
    records: list[MatchedRecord]
    grouped: list[DisplayRecord]
    statistics: Statistics
    warnings: list[str] = field(default_factory=list)

    @property
    def unmatched_count(self) -> int:
        return sum(1 for record in self.records if record.status is MatchStatus.UNMATCHED)


def read_report(
    source: "str | Path | bytes",
    expected: FileKind | str,
    *,
    filename: Optional[str] = None,
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
    warnings: list[str] | None = None,
) -> list[RawRow]:
    """
    Load one report and check that it looks like the expected kind.

    Any ReconError raised here carries the report label ("Load"/"Sales").
    """
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    label = KIND_LABELS[FileKind(expected)]
    try:
        loaded = loader.load_rows(source, filename=filename)
        rows = loaded["rows"]
        kind = classify_rows(rows, expected, settings, log)
    except ReconError as exc:
        exc.with_source(label)
        raise

    log.info("%s report: %d rows, classified as %s", label, len(rows), kind.value)
    if warnings is not None:
        warnings.extend(f"{label}: {message}" for message in loaded["warnings"])
        if kind is not FileKind(expected):
            warnings.append(f"{label}: data looks like a {KIND_LABELS[kind].lower()} report")
    return rows


def reconcile_rows(
    load_rows: Sequence[RawRow],
    sales_rows: Sequence[RawRow],
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> ReconciliationResult:
    settings = settings or DEFAULT_SETTINGS
    log = logger or LOGGER
    loads = normalize_load_rows(load_rows, settings, log)
    sales = normalize_sales_rows(sales_rows, settings, log)
    records = match_data(loads, sales, settings, log)
    grouped = group_records(records, settings.group_by, settings.group_tolerance)
    statistics = calculate_statistics(grouped)
    log.info(
        "reconciled %d records (%d matched, %.1f%% match rate)",
        statistics.total_records,
        statistics.matched_count,
        statistics.match_rate,
    )
    return ReconciliationResult(records=records, grouped=grouped, statistics=statistics)


def reconcile_files(
    load_source: "str | Path | bytes",
    sales_source: "str | Path | bytes",
    *,
    load_filename: Optional[str] = None,
    sales_filename: Optional[str] = None,
    settings: ReconSettings | None = None,
    logger: logging.Logger | None = None,
) -> ReconciliationResult:
    """Read both reports, then reconcile. Nothing is matched until both reads succeed."""
    settings = settings or DEFAULT_SETTINGS
    warnings: list[str] = []
    load_rows = read_report(
        load_source, FileKind.LOAD, filename=load_filename,
        settings=settings, logger=logger, warnings=warnings,
    )
    sales_rows = read_report(
        sales_source, FileKind.SALES, filename=sales_filename,
        settings=settings, logger=logger, warnings=warnings,
    )
    result = reconcile_rows(load_rows, sales_rows, settings, logger)
    result.warnings.extend(warnings)
    return result


def build_match_report(
    result: ReconciliationResult,
    *,
    load_path: Path,
    sales_path: Path,
    output_path: Path | None = None,
) -> dict[str, Any]:
    stats = result.statistics
    return {
        "contract": build_contract("consignment_recon.match_report"),
        "schema_version": build_contract("consignment_recon.match_report")["version"],
        "run_summary": build_run_summary(
            tool=TOOL_NAME,
            command="reconcile",
            input_paths=[load_path, sales_path],
            output_path=output_path,
            warnings=result.warnings,
            metrics={
                "total_records": stats.total_records,
                "matched_count": stats.matched_count,
                "unmatched_count": stats.unmatched_count,
                "group_count": sum(1 for record in result.grouped if record.is_group_parent),
            },
        ),
        "statistics": stats.to_dict(),
        "records": [record.to_dict() for record in result.grouped],
    }
