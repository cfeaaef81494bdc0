"""
loader.py — turn an uploaded report into rows of column label -> cell value.

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods

Public API:
    result = load_rows("path/to/load-report.xlsx")
    result = load_rows(uploaded_bytes, filename="sales.csv")
    rows   = result["rows"]

Result dict keys:
    rows              — list of dicts; blank cells are "", unnamed headers are
                        "__EMPTY_<index>", fully blank rows are dropped
    dataframe         — the pandas DataFrame the rows came from
    detected_format   — "csv", "xlsx", ...
    detected_encoding — encoding name for text files; None for workbooks
    delimiter         — delimiter char for text files; None otherwise
    sheet_name        — sheet used for workbooks; None otherwise
    sheet_names       — all sheet names for workbooks; None otherwise
    warnings          — list of warning strings
"""

from __future__ import annotations

import csv
import io
import numbers
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

from consignment_recon.errors import DecodeError, EmptyDataError
from consignment_recon.heuristics import is_blank

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ODS_FORMATS   = {".ods"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS | ODS_FORMATS


# ══════════════════════════════════════════════════════════════════════════════
# TEXT DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:200_000])
    detected = result.get("encoding") or "utf-8"
    return detected


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Also strips BOMs and embedded null bytes so the CSV parser doesn't choke.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", "").replace("﻿", ""))
    return "\n".join(decoded_lines)


def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate by how
    consistently it splits rows into the same number of columns.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in (",", ";", "\t", "|"):
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(raw: bytes, suffix: str) -> dict:
    encoding = _detect_encoding(raw)
    text = _read_text_safely(raw, encoding)
    if not text.strip():
        raise EmptyDataError("The file is empty.")

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            on_bad_lines="skip",
            sep=sep,
            engine="python",
        )
    except Exception as exc:
        raise DecodeError(f"Could not parse {suffix} file: {exc}") from exc

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": encoding,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          [],
    }


def _load_workbook(raw: bytes, suffix: str, sheet_name: Optional[str]) -> dict:
    """
    Load the first sheet (or the named one) of a workbook, keeping native
    cell types so numbers and dates arrive unconverted.
    """
    engine = None
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise DecodeError(".xls files require xlrd — run: pip install xlrd")
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise DecodeError(".ods files require odfpy — run: pip install odfpy")
        engine = "odf"

    warnings: list[str] = []
    try:
        with pd.ExcelFile(io.BytesIO(raw), engine=engine) as workbook:
            all_sheets = list(workbook.sheet_names)
            if not all_sheets:
                raise EmptyDataError("The workbook has no sheets.")
            if sheet_name is not None and sheet_name not in all_sheets:
                raise DecodeError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
            chosen = sheet_name if sheet_name is not None else all_sheets[0]
            df = workbook.parse(sheet_name=chosen, dtype=object)
    except (DecodeError, EmptyDataError):
        raise
    except Exception as exc:
        raise DecodeError(f"Could not read workbook: {exc}") from exc

    if len(all_sheets) > 1:
        others = [name for name in all_sheets if name != chosen]
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); used '{chosen}'. Ignored: {others}"
        )

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        chosen,
        "sheet_names":       all_sheets,
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# ROWS
# ══════════════════════════════════════════════════════════════════════════════

def _header_label(column: Any, index: int) -> str:
    label = "" if column is None else str(column).strip()
    if not label or label.startswith("Unnamed:"):
        return f"__EMPTY_{index}"
    return label


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, pd.Timestamp):
        return "" if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        number = float(value)
        return "" if number != number else number
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return value


def dataframe_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    headers = [_header_label(column, index) for index, column in enumerate(df.columns)]
    rows: list[dict[str, Any]] = []
    for values in df.itertuples(index=False, name=None):
        row = {header: _cell(value) for header, value in zip(headers, values)}
        if all(is_blank(value) for value in row.values()):
            continue
        rows.append(row)
    return rows


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_rows(
    source: "str | Path | bytes",
    *,
    filename: Optional[str] = None,
    sheet_name: Optional[str] = None,
) -> dict:
    """
    Load a report from a path or from uploaded bytes.

    Raises:
        FileNotFoundError  if a path does not exist.
        DecodeError        if the format is unsupported, unreadable, or needs a
                           spreadsheet engine that is not installed.
        EmptyDataError     if the file holds no usable rows.
    """
    if isinstance(source, (bytes, bytearray)):
        if not filename:
            raise DecodeError("A filename is required to load uploaded bytes.")
        raw = bytes(source)
        suffix = Path(filename).suffix.lower()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        suffix = path.suffix.lower()
        raw = b"" if suffix not in ALL_FORMATS else path.read_bytes()

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise DecodeError(f"Unsupported format '{suffix or '[missing extension]'}'. Supported: {supported}")
    if not raw:
        raise EmptyDataError("The file is empty.")

    if suffix in TEXT_FORMATS:
        result = _load_text(raw, suffix)
    else:
        result = _load_workbook(raw, suffix, sheet_name)

    rows = dataframe_to_rows(result["dataframe"])
    if not rows:
        raise EmptyDataError("The file contains no data rows.")
    result["rows"] = rows
    return result
