from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from consignment_recon import __version__ as TOOL_VERSION
from consignment_recon.aggregator import calculate_statistics, group_records
from consignment_recon.classifier import KIND_LABELS, get_missing_columns, infer_file_type, score_rows
from consignment_recon.config import (
    DEFAULT_SETTINGS,
    OUTPUT_STAMP_ENV_VAR,
    ReconSettings,
    load_settings,
)
from consignment_recon.contracts import build_contract, build_run_summary
from consignment_recon.errors import (
    ClassificationError,
    MatchingInputError,
    ReconError,
    describe_error,
)
from consignment_recon.exporter import write_matching_report
from consignment_recon.filters import RECONCILED_CHOICES, STATUS_CHOICES, RecordFilter
from consignment_recon.formatting import format_number
from consignment_recon.loader import load_rows
from consignment_recon.logging_config import setup_logging
from consignment_recon.models import FileKind
from consignment_recon.pipeline import ReconciliationResult, build_match_report, reconcile_files

LOGGER = logging.getLogger("consignment_recon.cli")

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_CLASSIFICATION_FAILED = 3
EXIT_MATCHING_INPUT = 4
EXIT_UNMATCHED = 5

DEFAULT_CONFIG_PATH = "consignment-recon.json"
GROUPABLE_FIELDS = ("consignment_id", "supplier_ref", "variety", "carton_type", "orchard", "consignment_date")


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class ReconArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV_VAR)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_dir(load_path: Path) -> Path:
    return Path.cwd() / "consignment-recon-output" / f"{load_path.stem}-{timestamp_token()}"


def determine_output_dir(args: argparse.Namespace, load_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return default_output_dir(load_path)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key == "generated_at":
                result[key] = "1970-01-01T00:00:00Z"
            else:
                result[key] = remove_generated_at(item)
        return result
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Path | None, default_path: Path) -> Path:
    path = explicit or default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ClassificationError):
        return EXIT_CLASSIFICATION_FAILED
    if isinstance(exc, MatchingInputError):
        return EXIT_MATCHING_INPUT
    if isinstance(exc, ReconError):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    return EXIT_COMMAND_ERROR


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        setup_logging("DEBUG")
    elif getattr(args, "quiet", False):
        setup_logging("ERROR")
    else:
        setup_logging("WARNING")


def resolve_settings(args: argparse.Namespace) -> ReconSettings:
    try:
        settings = load_settings(getattr(args, "config", None))
    except (ValueError, FileNotFoundError) as exc:
        raise CliError(f"Could not load config: {exc}", EXIT_COMMAND_ERROR) from exc
    group_by = getattr(args, "group_by", None)
    if group_by:
        fields = tuple(part.strip() for part in group_by.split(",") if part.strip())
        unknown = [name for name in fields if name not in GROUPABLE_FIELDS]
        if unknown:
            raise CliError(
                f"Unknown --group-by field(s): {', '.join(unknown)}. "
                f"Choose from: {', '.join(GROUPABLE_FIELDS)}",
                EXIT_COMMAND_ERROR,
            )
        settings = replace(settings, group_by=fields)
    return settings


def apply_filters(result: ReconciliationResult, args: argparse.Namespace, settings: ReconSettings) -> ReconciliationResult:
    record_filter = RecordFilter(
        status=args.status,
        variety=args.variety,
        reconciled=args.reconciled,
        consignment_query=args.search or "",
    )
    if not record_filter.is_active:
        return result
    kept = record_filter.apply(result.records)
    grouped = group_records(kept, settings.group_by, settings.group_tolerance)
    LOGGER.info("filters kept %d of %d records", len(kept), len(result.records))
    return ReconciliationResult(
        records=kept,
        grouped=grouped,
        statistics=calculate_statistics(grouped),
        warnings=list(result.warnings),
    )


def render_reconcile_text(result: ReconciliationResult, load_path: Path, sales_path: Path) -> str:
    stats = result.statistics
    groups = sum(1 for record in result.grouped if record.is_group_parent)
    lines = [
        "consignment-recon reconcile",
        f"Load report: {load_path}",
        f"Sales report: {sales_path}",
        f"Records: {format_number(stats.total_records)}",
        f"Matched: {format_number(stats.matched_count)}",
        f"Unmatched: {format_number(stats.unmatched_count)}",
        f"Match rate: {format_number(stats.match_rate, 'percent')}",
        f"Total value: {format_number(stats.total_value, 'currency')}",
        f"Average value: {format_number(stats.average_value, 'currency')}",
        f"Groups: {groups}",
    ]
    if result.warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in result.warnings)
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = ReconArgumentParser(
        prog="consignment-recon",
        description="Reconcile consignment load reports against market sales reports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Match a load report against a sales report.")
    reconcile.add_argument("load", help="Load report path")
    reconcile.add_argument("sales", help="Sales report path")
    reconcile.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    reconcile.add_argument("--output", help="Explicit matching report (.xlsx) output path")
    reconcile.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    reconcile.add_argument("--no-export", dest="no_export", action="store_true", help="Skip writing report files")
    reconcile.add_argument("--config", help="JSON settings file (defaults to $CONSIGNMENT_RECON_CONFIG)")
    reconcile.add_argument("--group-by", dest="group_by", help="Comma-separated record fields to group on")
    reconcile.add_argument("--status", choices=STATUS_CHOICES, default="all", help="Keep only matched or unmatched records")
    reconcile.add_argument("--variety", default="all", help="Keep only one variety")
    reconcile.add_argument("--reconciled", choices=RECONCILED_CHOICES, default="all", help="Filter on reconciliation state")
    reconcile.add_argument("--search", help="Consignment number substring")
    reconcile.add_argument("--fail-on-unmatched", action="store_true", help="Return exit code 5 when unmatched records remain")
    reconcile.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    reconcile.add_argument("-v", "--verbose", action="store_true", help="Debug logs")

    classify = subparsers.add_parser("classify", help="Guess whether a file is a load or a sales report.")
    classify.add_argument("input", help="Input file path")
    classify.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name")
    classify.add_argument("--config", help="JSON settings file")
    classify.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    classify.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    classify.add_argument("-v", "--verbose", action="store_true", help="Debug logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write the default settings as JSON.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_reconcile(args: argparse.Namespace) -> int:
    load_path = Path(args.load)
    sales_path = Path(args.sales)
    for path in (load_path, sales_path):
        if not path.exists():
            eprint(f"File not found: {path}")
            return EXIT_COMMAND_ERROR

    try:
        settings = resolve_settings(args)
        result = reconcile_files(load_path, sales_path, settings=settings, logger=LOGGER)
        result = apply_filters(result, args, settings)

        workbook_path: Path | None = None
        report_path: Path | None = None
        if not args.no_export:
            out_dir = determine_output_dir(args, load_path)
            workbook_path = safe_output_path(
                Path(args.output) if args.output else None,
                out_dir / "matching_report.xlsx",
            )
            report_path = workbook_path.with_name("report.json") if args.output else out_dir / "report.json"
            write_matching_report(result.grouped, workbook_path, result.statistics)

        payload = build_match_report(
            result, load_path=load_path, sales_path=sales_path, output_path=workbook_path,
        )
        payload = remove_generated_at(payload)
        if report_path is not None:
            write_json(report_path, payload)

        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_reconcile_text(result, load_path, sales_path).rstrip(), quiet=args.quiet)
            if workbook_path is not None:
                emit_human(f"Matching report: {workbook_path}", quiet=args.quiet)
                emit_human(f"JSON report: {report_path}", quiet=args.quiet)

        if args.fail_on_unmatched and result.statistics.unmatched_count > 0:
            return EXIT_UNMATCHED
        return EXIT_SUCCESS
    except (CliError, ReconError, FileNotFoundError) as exc:
        eprint(describe_error(exc) if not isinstance(exc, CliError) else str(exc))
        return classify_exception(exc)


def run_classify(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.exists():
        eprint(f"File not found: {input_path}")
        return EXIT_COMMAND_ERROR

    try:
        settings = resolve_settings(args)
        loaded = load_rows(input_path, sheet_name=args.sheet_name)
        rows = loaded["rows"]
        score = score_rows(rows, settings)
        kind = infer_file_type(rows, settings, LOGGER)
        missing = get_missing_columns(rows, settings) if kind is FileKind.UNKNOWN else []
        payload = {
            "contract": build_contract("consignment_recon.classification"),
            "run_summary": build_run_summary(
                tool="consignment-recon",
                command="classify",
                input_paths=[input_path],
                warnings=loaded["warnings"],
                metrics={"rows": len(rows)},
            ),
            "file_type": kind.value,
            "load_score": score.load_score,
            "sales_score": score.sales_score,
            "sampled_rows": score.sampled_rows,
            "missing": missing,
            "sheet_name": loaded.get("sheet_name"),
        }
        payload = remove_generated_at(payload)
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            lines = [
                "consignment-recon classify",
                f"File: {input_path}",
                f"Type: {KIND_LABELS[kind]}",
                f"Load score: {score.load_score:g}",
                f"Sales score: {score.sales_score:g}",
            ]
            if missing:
                lines.append(f"Could not find: {', '.join(missing)}")
            print("\n".join(lines))
        return EXIT_CLASSIFICATION_FAILED if kind is FileKind.UNKNOWN else EXIT_SUCCESS
    except (CliError, ReconError, FileNotFoundError) as exc:
        eprint(describe_error(exc) if not isinstance(exc, CliError) else str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, DEFAULT_SETTINGS.to_dict())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "reconcile":
            return run_reconcile(args)
        if args.command == "classify":
            return run_classify(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
