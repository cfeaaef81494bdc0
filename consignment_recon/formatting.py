"""On-screen number formatting for the statistics cards and the record table."""

from __future__ import annotations

import math

NBSP = "\u00a0"
CURRENCY_SYMBOL = "R"
FORMAT_KINDS = ("number", "currency", "percent")
DECIMALS = {"number": 3, "currency": 2, "percent": 1}


def format_number(value: float, kind: str = "number") -> str:
    """
    number   -> 1,234.567 (grouped, at most three decimals)
    currency -> R 1 234,56 (rand, space grouping, comma decimals)
    percent  -> 85.5% (value is already a percentage, one decimal)
    """
    if kind not in FORMAT_KINDS:
        raise ValueError(f"Unknown number format {kind!r}; expected one of {', '.join(FORMAT_KINDS)}")
    value = float(value or 0)
    if math.isnan(value) or math.isinf(value):
        return str(value)

    decimals = DECIMALS[kind]
    magnitude = round(abs(value), decimals)
    sign = "-" if value < 0 and magnitude else ""

    if kind == "currency":
        body = f"{magnitude:,.2f}".replace(",", NBSP).replace(".", ",")
        return f"{sign}{CURRENCY_SYMBOL}{NBSP}{body}"
    if kind == "percent":
        return f"{sign}{magnitude:,.1f}%"

    body = f"{magnitude:,.3f}".rstrip("0").rstrip(".")
    return f"{sign}{body}"
