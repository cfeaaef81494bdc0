"""
Shared cell heuristics: scalar normalisation, numeric parsing, and the value
shapes used by the column normaliser and the file-type classifier.
"""

from __future__ import annotations

import math
import numbers
import re
from datetime import date, datetime, timezone
from typing import Any

import pandas as pd

SENTINEL_NULLS = {"", "na", "n/a", "none", "null", "nil", "nan", "-"}
CURRENCY_SYMBOLS = ("$", "€", "£", "¥", "₹")
CURRENCY_CODE_RE = re.compile(r"\b(?:ZAR|USD|EUR|GBP|AUD)\b", re.IGNORECASE)
RAND_PREFIX_RE = re.compile(r"^-?R\s*(?=[\d(])")

CONSIGNMENT_ID_RE = re.compile(r"^[A-Za-z]\d[A-Za-z]\d{5,}$")
SUPPLIER_REF_RE = re.compile(r"^(?=.*[A-Za-z])(?=(?:\D*\d){4})[A-Za-z0-9][A-Za-z0-9\-/ ]*$")
PLAIN_INT_RE = re.compile(r"^\d+$")
TWO_DECIMAL_RE = re.compile(r"^\d{1,3}(?:,\d{3})*\.\d{2}$|^\d+\.\d{2}$")
DATE_TEXT_RES = (
    re.compile(r"^\d{4}[-/]\d{1,2}[-/]\d{1,2}$"),
    re.compile(r"^\d{1,2}[-/]\d{1,2}[-/]\d{2,4}$"),
    re.compile(r"^\d{1,2}\s+[A-Za-z]{3,9}\s+\d{4}$"),
    re.compile(r"^[A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4}$"),
)

QUANTITY_CEILING = 1000


def normalize_scalar(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        if value.tzinfo is not None:
            value = value.tz_convert(None)
        return value.to_pydatetime()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        number = float(value)
        return None if math.isnan(number) else number
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return str(value).replace("\x00", "")


def stringify(value: Any) -> str:
    normalized = normalize_scalar(value)
    if normalized is None:
        return ""
    if isinstance(normalized, datetime):
        return normalized.strftime("%Y/%m/%d")
    if isinstance(normalized, float) and normalized.is_integer():
        return str(int(normalized))
    return str(normalized).strip()


def is_blank(value: Any) -> bool:
    normalized = normalize_scalar(value)
    if normalized is None:
        return True
    if isinstance(normalized, str):
        return normalized.strip().lower() in SENTINEL_NULLS
    return False


def has_currency_marker(text: str) -> bool:
    if any(symbol in text for symbol in CURRENCY_SYMBOLS):
        return True
    if CURRENCY_CODE_RE.search(text):
        return True
    return bool(RAND_PREFIX_RE.match(text.strip()))


def maybe_parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    normalized = normalize_scalar(value)
    if normalized is None or isinstance(normalized, datetime):
        return None
    if isinstance(normalized, (int, float)):
        return float(normalized)
    text = str(normalized).strip()
    if not text or text.lower() in SENTINEL_NULLS:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()

    text = text.replace(" ", "").replace("\u00a0", "")
    if text.startswith("-R"):
        negative = not negative
        text = text[2:]
    text = RAND_PREFIX_RE.sub("", text)
    text = re.sub(r"^(?:ZAR|USD|EUR|GBP|AUD)", "", text, flags=re.IGNORECASE)
    text = re.sub(r"(?:ZAR|USD|EUR|GBP|AUD)$", "", text, flags=re.IGNORECASE)
    for symbol in CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif text.count(",") == 1 and text.count(".") == 0:
        left, right = text.split(",", 1)
        if len(right) == 2:
            text = f"{left}.{right}"
        elif len(right) == 3:
            text = text.replace(",", "")
    else:
        text = text.replace(",", "")

    if not re.fullmatch(r"[+-]?\d+(?:\.\d+)?", text):
        return None

    number = float(text)
    return -number if negative else number


def coerce_quantity(value: Any) -> int:
    number = maybe_parse_number(value)
    if number is None or math.isnan(number) or math.isinf(number):
        return 0
    return max(0, int(round(number)))


def coerce_money(value: Any) -> float:
    number = maybe_parse_number(value)
    if number is None or math.isnan(number) or math.isinf(number):
        return 0.0
    return round(max(0.0, number), 2)


def coerce_identifier(value: Any) -> str:
    if is_blank(value):
        return ""
    return stringify(value).strip().upper()


def coerce_text(value: Any) -> str:
    if is_blank(value):
        return ""
    return stringify(value)


# ── value shapes ──────────────────────────────────────────────────────────────

def looks_like_consignment_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return bool(CONSIGNMENT_ID_RE.fullmatch(stringify(value)))


def looks_like_supplier_ref(value: Any) -> bool:
    normalized = normalize_scalar(value)
    if not isinstance(normalized, str):
        return False
    text = normalized.strip()
    if looks_like_date_text(text):
        return False
    return bool(SUPPLIER_REF_RE.fullmatch(text))


def looks_like_quantity(value: Any) -> bool:
    normalized = normalize_scalar(value)
    if normalized is None or isinstance(normalized, (bool, datetime)):
        return False
    if isinstance(normalized, (int, float)):
        if isinstance(normalized, float) and not normalized.is_integer():
            return False
        return 0 < normalized < QUANTITY_CEILING
    text = normalized.strip()
    if not PLAIN_INT_RE.fullmatch(text):
        return False
    return 0 < int(text) < QUANTITY_CEILING


def looks_like_money(value: Any) -> bool:
    normalized = normalize_scalar(value)
    if normalized is None or isinstance(normalized, (bool, datetime)):
        return False
    if isinstance(normalized, (int, float)):
        return normalized > 0 and not float(normalized).is_integer()
    text = normalized.strip()
    if not text:
        return False
    number = maybe_parse_number(text)
    if number is None or number <= 0:
        return False
    if has_currency_marker(text):
        return True
    if TWO_DECIMAL_RE.fullmatch(text):
        return True
    return not float(number).is_integer()


def looks_like_date_text(value: Any) -> bool:
    normalized = normalize_scalar(value)
    if isinstance(normalized, datetime):
        return True
    if not isinstance(normalized, str):
        return False
    text = normalized.strip()
    return any(pattern.fullmatch(text) for pattern in DATE_TEXT_RES)
