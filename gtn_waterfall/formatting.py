"""
Presentation formatting for amounts, shares and percentage-point deltas.

Locale and precision come from an explicit FormatSettings value; nothing here
is consulted by the computation modules.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from gtn_waterfall.config import FORMAT_SETTINGS


@dataclass(frozen=True)
class FormatSettings:
    currency_symbol: str = FORMAT_SETTINGS["currency_symbol"]
    thousands_separator: str = FORMAT_SETTINGS["thousands_separator"]
    decimal_separator: str = FORMAT_SETTINGS["decimal_separator"]
    decimals: int = FORMAT_SETTINGS["decimals"]


DEFAULT_FORMAT = FormatSettings()

_COMPACT_UNITS = ((1e9, "B"), (1e6, "M"), (1e3, "K"))


def _localize(number_text: str, settings: FormatSettings) -> str:
    # number_text uses "," for thousands and "." for decimals
    return number_text.translate(str.maketrans({
        ",": settings.thousands_separator,
        ".": settings.decimal_separator,
    }))


def _finite(value: float | None) -> float:
    if value is None:
        return 0.0
    value = float(value)
    return value if math.isfinite(value) else 0.0


def format_number(value: float | None, decimals: int = 0, settings: FormatSettings = DEFAULT_FORMAT) -> str:
    """Grouped number, e.g. 1234567.8 -> "1.234.568" (default settings)."""
    return _localize(f"{_finite(value):,.{decimals}f}", settings)


def format_currency(value: float | None, settings: FormatSettings = DEFAULT_FORMAT) -> str:
    """Currency amount, sign before the symbol: -1234 -> "-€1.234"."""
    value = _finite(value)
    sign = "-" if round(value, settings.decimals) < 0 else ""
    return f"{sign}{settings.currency_symbol}{format_number(abs(value), settings.decimals, settings)}"


def format_share(fraction: float | None, settings: FormatSettings = DEFAULT_FORMAT, decimals: int = 1) -> str:
    """Fraction as a percentage: 0.123 -> "12,3%"."""
    return f"{format_number(_finite(fraction) * 100, decimals, settings)}%"


def format_percent(value: float | None, settings: FormatSettings = DEFAULT_FORMAT, decimals: int = 1) -> str:
    """Value already in percent: 12.3 -> "12,3%"."""
    return f"{format_number(value, decimals, settings)}%"


def format_pp(value: float | None, settings: FormatSettings = DEFAULT_FORMAT, decimals: int = 1) -> str:
    """Signed percentage points: 3.24 -> "+3,2 pp"."""
    value = _finite(value)
    sign = "+" if value >= 0 else "-"
    return f"{sign}{format_number(abs(value), decimals, settings)} pp"


def format_compact(value: float | None, settings: FormatSettings = DEFAULT_FORMAT) -> str:
    """Short magnitude for chart labels: 1260000 -> "1,3M"."""
    value = _finite(value)
    for threshold, suffix in _COMPACT_UNITS:
        if abs(value) >= threshold:
            scaled = value / threshold
            text = format_number(scaled, 0 if float(scaled).is_integer() else 1, settings)
            return f"{text}{suffix}"
    return format_number(value, 0 if float(value).is_integer() else 1, settings)
