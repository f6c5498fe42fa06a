"""
Shared parsing utilities for spreadsheet cells: amounts and periods.

Amounts accept European ("1.234,56") and US ("1,234.56") grouping plus
accounting negatives ("(123)"). Periods normalize to "YYYY-MM" or "YYYY-Qn".
Neither parser raises: amounts degrade to 0.0 and periods to the trimmed
original text.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from numbers import Real
from typing import TYPE_CHECKING, Any

import pandas as pd

from gtn_waterfall.config import EXCEL_EPOCH, EXCEL_SERIAL_THRESHOLD

if TYPE_CHECKING:
    from gtn_waterfall.models import DiagnosticsCollector

_NON_NUMERIC_CHARS = re.compile(r"[^\d,.\-]")
_EU_GROUPED = re.compile(r"^\d{1,3}(\.\d{3})+(,\d+)?$")
_US_GROUPED = re.compile(r"^\d{1,3}(,\d{3})+(\.\d+)?$")

_PERIOD_NOISE = re.compile(r"[^\dA-Za-z\-/\s]")
_YEAR = r"((?:19|20)\d{2})"
# Priority order matters: the first pattern that yields a valid period wins
_YEAR_MONTH = re.compile(_YEAR + r"[/-](\d{1,2})(?!\d)")
_MONTH_YEAR = re.compile(r"(?<![\dQq])(\d{1,2})[/-]" + _YEAR + r"(?!\d)")
_COMPACT_YEAR_MONTH = re.compile(r"(?<!\d)" + _YEAR + r"(\d{2})$")
_YEAR_QUARTER = re.compile(_YEAR + r"\s*[-/]?\s*[Qq]([1-4])(?!\d)")
_QUARTER_YEAR = re.compile(r"[Qq]([1-4])\s*[-/]?\s*" + _YEAR + r"(?!\d)")

_CANONICAL_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_CANONICAL_QUARTER = re.compile(r"^(\d{4})-Q([1-4])$")
_PLAIN_NUMBER = re.compile(r"^\d+(\.\d+)?$")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.api.types.is_scalar(value) and pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_number(value: Any) -> float:
    """
    Convert a cell value to a float.

    Blank cells are 0.0; anything that cannot be read as a number is 0.0 too,
    so a single bad cell never aborts an upload.
    """
    if _is_missing(value):
        return 0.0

    if isinstance(value, Real) and not isinstance(value, bool):
        numeric = float(value)
        return numeric if math.isfinite(numeric) else 0.0

    text = str(value).strip()
    if not text:
        return 0.0

    is_negative = text.startswith("(") and text.endswith(")")
    if is_negative:
        text = text[1:-1]

    text = _NON_NUMERIC_CHARS.sub("", text)

    if _EU_GROUPED.match(text):
        text = text.replace(".", "").replace(",", ".")
    elif _US_GROUPED.match(text):
        text = text.replace(",", "")
    elif text.rfind(",") > text.rfind("."):
        # Rightmost separator is the decimal mark
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")

    try:
        numeric = float(text)
    except ValueError:
        return 0.0

    if not math.isfinite(numeric):
        return 0.0
    return -numeric if is_negative else numeric


def format_cell_text(value: Any) -> str:
    """Stringify a text cell: blanks become "", integral floats lose ".0"."""
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def excel_serial_to_period(serial: float) -> str:
    """Spreadsheet date serial (days since 1899-12-30) -> "YYYY-MM"."""
    d = EXCEL_EPOCH + timedelta(days=math.floor(serial))
    return f"{d.year:04d}-{d.month:02d}"


def _looks_like_compact_year_month(value: float) -> bool:
    if not float(value).is_integer():
        return False
    number = int(value)
    return 190001 <= number <= 209912 and 1 <= number % 100 <= 12


def _serial_period(number: float) -> str | None:
    if number <= EXCEL_SERIAL_THRESHOLD or _looks_like_compact_year_month(number):
        return None
    try:
        return excel_serial_to_period(number)
    except (OverflowError, ValueError):
        return None


def _valid_month(month: str) -> bool:
    return 1 <= int(month) <= 12


def _match_period(text: str) -> str | None:
    m = _YEAR_MONTH.search(text)
    if m and _valid_month(m.group(2)):
        return f"{m.group(1)}-{int(m.group(2)):02d}"

    m = _MONTH_YEAR.search(text)
    if m and _valid_month(m.group(1)):
        return f"{m.group(2)}-{int(m.group(1)):02d}"

    m = _COMPACT_YEAR_MONTH.search(text)
    if m and _valid_month(m.group(2)):
        return f"{m.group(1)}-{m.group(2)}"

    m = _YEAR_QUARTER.search(text)
    if m:
        return f"{m.group(1)}-Q{m.group(2)}"

    m = _QUARTER_YEAR.search(text)
    if m:
        return f"{m.group(2)}-Q{m.group(1)}"

    return None


def normalize_period(
    value: Any,
    diagnostics: DiagnosticsCollector | None = None,
    row_number: int | None = None,
) -> str:
    """
    Normalize a period cell to "YYYY-MM" or "YYYY-Qn".

    Args:
        value: Raw cell (string, number, date or timestamp).
        diagnostics: Optional collector that receives a warning when the
                     value cannot be recognised.
        row_number: Spreadsheet row number cited in that warning.

    Returns:
        The canonical period, "" for blank cells, or the trimmed original
        text when no known format matches.
    """
    if _is_missing(value):
        return ""

    if isinstance(value, (datetime, date)):
        return f"{value.year:04d}-{value.month:02d}"

    if isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value):
        period = _serial_period(value)
        if period is not None:
            return period

    original = format_cell_text(value)
    if not original:
        return ""

    # Text exports carry date serials as digit strings
    if _PLAIN_NUMBER.match(original):
        period = _serial_period(float(original))
        if period is not None:
            return period

    period = _match_period(_PERIOD_NOISE.sub("", original))
    if period is not None:
        return period

    if diagnostics is not None:
        diagnostics.warn(row_number, f'unrecognised "period" value "{original}" (left as is).')
    return original


def period_sort_key(period: str) -> tuple[int, int, int, str]:
    """
    Chronological sort key for canonical periods.

    Quarters rank at their last month, after a month with the same rank.
    Unrecognised periods sort first, alphabetically.
    """
    m = _CANONICAL_MONTH.match(period)
    if m:
        return (1, int(m.group(1)) * 12 + int(m.group(2)), 0, period)
    m = _CANONICAL_QUARTER.match(period)
    if m:
        return (1, int(m.group(1)) * 12 + int(m.group(2)) * 3, 1, period)
    return (0, 0, 0, period)
