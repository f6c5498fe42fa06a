"""
Unit tests for the amount and period parsers.
"""

import sys
from datetime import date, datetime
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd

from gtn_waterfall.models import DiagnosticsCollector
from gtn_waterfall.value_parser import (
    excel_serial_to_period,
    format_cell_text,
    normalize_period,
    parse_number,
    period_sort_key,
)


def test_parse_european_grouping():
    assert parse_number("1.234,56") == 1234.56
    assert parse_number("1.234.567,89") == 1234567.89


def test_parse_us_grouping():
    assert parse_number("1,234.56") == 1234.56
    assert parse_number("1,234,567") == 1234567.0


def test_parse_accounting_negative():
    assert parse_number("(123)") == -123.0
    assert parse_number("(1.234,50)") == -1234.5


def test_parse_blank_values():
    assert parse_number("") == 0.0
    assert parse_number("   ") == 0.0
    assert parse_number(None) == 0.0
    assert parse_number(float("nan")) == 0.0


def test_parse_native_numbers():
    assert parse_number(42) == 42.0
    assert parse_number(-3.5) == -3.5
    assert parse_number(float("inf")) == 0.0


def test_parse_currency_symbols_stripped():
    assert parse_number("€ 1.250") == 1250.0
    assert parse_number("$1,234.56") == 1234.56


def test_parse_rightmost_separator_is_decimal():
    assert parse_number("12,5") == 12.5
    assert parse_number("1234.5") == 1234.5


def test_parse_garbage_is_zero():
    assert parse_number("n/a") == 0.0
    assert parse_number("--") == 0.0
    assert parse_number("1-2-3") == 0.0


class TestNormalizePeriod:
    """Tests for normalize_period."""

    def setup_method(self):
        self.diagnostics = DiagnosticsCollector()

    def test_month_year(self):
        assert normalize_period("03-2024", self.diagnostics, 2) == "2024-03"
        assert normalize_period("3/2024") == "2024-03"

    def test_year_month(self):
        assert normalize_period("2024-03") == "2024-03"
        assert normalize_period("2024/7") == "2024-07"

    def test_compact_year_month(self):
        assert normalize_period("202403") == "2024-03"
        assert normalize_period(202411) == "2024-11"

    def test_quarters(self):
        assert normalize_period("2024-Q2") == "2024-Q2"
        assert normalize_period("Q2 2024") == "2024-Q2"
        assert normalize_period("2024q3") == "2024-Q3"
        assert normalize_period("q4-2023") == "2023-Q4"
        assert normalize_period("Q12024") == "2024-Q1"

    def test_excel_serial(self):
        assert normalize_period(45366) == "2024-03"
        assert normalize_period(45366.75) == "2024-03"

    def test_excel_serial_as_text(self):
        assert normalize_period("45292", self.diagnostics, 2) == "2024-01"
        assert normalize_period(" 45366.75 ", self.diagnostics, 3) == "2024-03"
        assert normalize_period("202406", self.diagnostics, 4) == "2024-06"
        assert self.diagnostics.warnings == []

    def test_small_number_text_is_not_a_serial(self):
        assert normalize_period("12345", self.diagnostics, 6) == "12345"
        assert len(self.diagnostics.warnings) == 1

    def test_dates(self):
        assert normalize_period(date(2024, 5, 17)) == "2024-05"
        assert normalize_period(datetime(2023, 12, 1, 10, 30)) == "2023-12"
        assert normalize_period(pd.Timestamp("2022-01-31")) == "2022-01"

    def test_blank_is_empty_without_warning(self):
        assert normalize_period("", self.diagnostics, 2) == ""
        assert normalize_period(None, self.diagnostics, 3) == ""
        assert self.diagnostics.warnings == []

    def test_unrecognised_value_kept_with_one_warning(self):
        assert normalize_period("not-a-date", self.diagnostics, 7) == "not-a-date"
        assert len(self.diagnostics.warnings) == 1
        assert "Row 7" in self.diagnostics.warnings[0]
        assert "not-a-date" in self.diagnostics.warnings[0]

    def test_invalid_month_not_accepted(self):
        assert normalize_period("2024-13", self.diagnostics, 4) == "2024-13"
        assert len(self.diagnostics.warnings) == 1

    def test_value_is_trimmed(self):
        assert normalize_period("  FY Jan  ", self.diagnostics, 5) == "FY Jan"


def test_excel_serial_to_period():
    assert excel_serial_to_period(1) == "1899-12"
    assert excel_serial_to_period(45292) == "2024-01"


def test_format_cell_text():
    assert format_cell_text(None) == ""
    assert format_cell_text(float("nan")) == ""
    assert format_cell_text(1001.0) == "1001"
    assert format_cell_text("  Apotheek A ") == "Apotheek A"


def test_period_sort_key_orders_chronologically():
    periods = ["2024-Q1", "2024-02", "2023-12", "odd", "2024-03", "2024-01"]
    assert sorted(periods, key=period_sort_key) == [
        "odd", "2023-12", "2024-01", "2024-02", "2024-03", "2024-Q1",
    ]
