"""Number formatting helpers for the text report."""

from __future__ import annotations

import math
from decimal import Decimal

COMPACT_THRESHOLD = 99999.0
BAR_WIDTH = 15
MAX_PRICE_DECIMALS = 10


def format_number(text: str) -> str:
    """
    Group the integer part of a decimal string with thousands separators.

    "1234567.89" -> "1,234,567.89", "-1234" -> "-1,234", "00012.5" -> "12.5".
    The fractional part is kept verbatim.
    """
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]

    integer, dot, fraction = text.partition(".")
    integer = integer.lstrip("0") or "0"

    if len(integer) > 3:
        head = len(integer) % 3 or 3
        groups = [integer[:head]]
        groups.extend(integer[i:i + 3] for i in range(head, len(integer), 3))
        integer = ",".join(groups)

    return f"{sign}{integer}{dot}{fraction}"


def decimals_for(value: float, threshold: float = COMPACT_THRESHOLD) -> int:
    """Fractional digits to show: one fewer above the compact threshold."""
    return 1 if abs(value) > threshold else 2


def format_value(value: float, threshold: float = COMPACT_THRESHOLD) -> str:
    """Fixed-point, thousands-grouped rendering of value."""
    return format_number(f"{value:.{decimals_for(value, threshold)}f}")


def format_total(value: float) -> str:
    """Totals always keep two decimals, however large."""
    return format_number(f"{value:.2f}")


def width_decimals(width: float) -> int:
    """Fractional digits needed to tell neighbouring bins apart (0.001 -> 3)."""
    exponent = Decimal(repr(width)).normalize().as_tuple().exponent
    return min(max(0, -exponent), MAX_PRICE_DECIMALS)


def format_percent(ratio: float) -> str:
    return f"{ratio * 100:.2f}%"


def safe_ratio(part: float, whole: float) -> float:
    """part / whole, 0 when whole is 0."""
    if whole == 0:
        return 0.0
    return part / whole


def format_bars(share: float, width: int = BAR_WIDTH) -> str:
    """
    Proportional bar of '|' characters.

    share is clamped to [0, 1]; any positive share shows at least one bar.
    """
    share = min(max(share, 0.0), 1.0)
    if share == 0:
        return ""
    return "|" * math.ceil(share * width)
