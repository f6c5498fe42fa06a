"""
Unit tests for validate_and_normalize and its helpers.
"""

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd
import pytest

from gtn_waterfall.models import CANONICAL_COLUMNS
from gtn_waterfall.normalization import (
    get_canonical_schema,
    resolve_headers,
    rows_to_frame,
    validate_and_normalize,
    within_tolerance,
)


def make_record(**amounts):
    record = {
        "Product Group Name": "Oncology",
        "SKU Name": "SKU-1",
        "Customer Name (Sold-to)": "Apotheek A",
        "Fiscal Year/Period": "2024-03",
    }
    record.update(amounts)
    return record


def balanced_record(**overrides):
    record = make_record(**{
        "Gross Sales": 1000,
        "Channel Discounts": 100,
        "Invoiced Sales": 900,
        "Direct Rebates": 50,
        "Net Sales": 850,
    })
    record.update(overrides)
    return record


class TestSignCorrection:
    """Negative discounts and rebates become positive."""

    def test_each_negative_field_counts_once(self):
        result = validate_and_normalize([balanced_record(**{"Channel Discounts": -100, "Direct Rebates": "(50)"})])
        row = result.rows[0]
        assert row.d_channel == 100
        assert row.r_direct == 50
        assert result.corrected_count == 2

    def test_one_consolidated_warning_per_row(self):
        result = validate_and_normalize([balanced_record(**{"Channel Discounts": -100, "Direct Rebates": -50})])
        sign_warnings = [w for w in result.warnings if "converted to positive" in w]
        assert sign_warnings == ["Row 2: negative discounts/rebates converted to positive (d_channel, r_direct)."]

    def test_negative_income_is_not_corrected(self):
        result = validate_and_normalize([balanced_record(**{"Royalty Income": -10, "Net Sales": 840})])
        assert result.rows[0].inc_royalty == -10
        assert result.corrected_count == 0


class TestBalanceChecks:
    """Tolerance rule: max(50, 2% of the larger magnitude)."""

    def test_within_tolerance(self):
        assert within_tolerance(1000, 1050)
        assert not within_tolerance(1000, 1051)
        assert within_tolerance(10000, 10200)
        assert not within_tolerance(10000, 10250)

    def test_balanced_row_has_no_warnings(self):
        result = validate_and_normalize([balanced_record()])
        assert result.warnings == []
        assert result.corrected_count == 0

    def test_small_difference_is_tolerated(self):
        result = validate_and_normalize([balanced_record(**{"Invoiced Sales": 940, "Net Sales": 890})])
        assert result.warnings == []

    def test_invoiced_mismatch_warns_once(self):
        result = validate_and_normalize([balanced_record(**{"Invoiced Sales": 700, "Net Sales": 650})])
        assert result.warnings == ["Row 2: Invoiced (700) differs from Gross - Discounts (900)."]
        assert len(result.rows) == 1

    def test_net_mismatch_warns_once(self):
        result = validate_and_normalize([balanced_record(**{"Net Sales": 500})])
        assert result.warnings == ["Row 2: Net (500) differs from Invoiced - Rebates + Income (850)."]

    def test_row_numbers_follow_spreadsheet_lines(self):
        rows = [balanced_record(), balanced_record(), balanced_record(**{"Net Sales": 500})]
        result = validate_and_normalize(rows)
        assert result.warnings[0].startswith("Row 4:")


class TestDerivation:
    """Missing invoiced/net are derived."""

    def test_invoiced_derived_from_gross_and_discounts(self):
        record = make_record(**{"Gross Sales": 1000, "Channel Discounts": 100, "Customer Discounts": 50})
        result = validate_and_normalize([record])
        row = result.rows[0]
        assert row.invoiced == 850
        assert row.net == 850
        assert '"Invoiced" derived as Gross - Discounts (= 850)' in result.warnings[0]
        assert '"Net" derived as Invoiced - Rebates + Income (= 850)' in result.warnings[1]
        assert result.corrected_count == 2

    def test_zero_invoiced_is_derived(self):
        result = validate_and_normalize([balanced_record(**{"Invoiced Sales": 0})])
        assert result.rows[0].invoiced == 900
        assert result.corrected_count == 1

    def test_net_includes_income(self):
        record = make_record(**{"Gross Sales": 1000, "Invoiced Sales": 1000, "Direct Rebates": 100, "Royalty Income": 20})
        result = validate_and_normalize([record])
        assert result.rows[0].net == 920

    def test_all_zero_row_is_not_derived(self):
        result = validate_and_normalize([make_record(**{"Gross Sales": 0})])
        assert result.corrected_count == 0
        assert result.warnings == []


class TestFatalErrors:
    """Missing mandatory columns abort the pass."""

    def test_missing_gross_short_circuits(self):
        record = make_record(**{"Revenue": "1.000", "Channel Discounts": -5})
        result = validate_and_normalize([record])
        assert result.rows == []
        assert result.corrected_count == 0
        assert len(result.errors) == 1
        assert "Gross Sales" in result.errors[0]
        assert result.warnings == []
        assert result.is_fatal

    def test_missing_string_fields_named_by_label(self):
        result = validate_and_normalize([{"SKU": "A", "Gross": 10}])
        assert result.rows == []
        assert result.errors == [
            "Missing columns: Product Group Name, Customer Name (Sold-to), Fiscal Year / Period"
        ]

    def test_no_rows(self):
        result = validate_and_normalize([])
        assert result.errors == ["No rows found in the uploaded sheet."]
        assert result.rows == []


class TestRowContent:
    """Field extraction."""

    def test_strings_trimmed_and_empty_preserved(self):
        record = balanced_record(**{"SKU Name": "  SKU-9 ", "Customer Name (Sold-to)": None})
        row = validate_and_normalize([record]).rows[0]
        assert row.sku == "SKU-9"
        assert row.customer == ""

    def test_localized_amounts(self):
        record = balanced_record(**{"Gross Sales": "1.000,00", "Channel Discounts": "100", "Invoiced Sales": "900,00"})
        row = validate_and_normalize([record]).rows[0]
        assert row.gross == 1000
        assert row.invoiced == 900

    def test_period_warning_keeps_row(self):
        result = validate_and_normalize([balanced_record(**{"Fiscal Year/Period": "not-a-date"})])
        assert result.rows[0].period == "not-a-date"
        assert result.warnings == ['Row 2: unrecognised "period" value "not-a-date" (left as is).']

    def test_unresolved_numeric_fields_are_zero(self):
        row = validate_and_normalize([balanced_record()]).rows[0]
        assert row.d_volume == 0
        assert row.r_local == 0
        assert row.inc_other == 0

    def test_rows_are_immutable(self):
        row = validate_and_normalize([balanced_record()]).rows[0]
        with pytest.raises(AttributeError):
            row.gross = 1

    def test_dataframe_input(self):
        df = pd.DataFrame([balanced_record(), balanced_record(**{"Channel Discounts": -100})])
        result = validate_and_normalize(df)
        assert len(result.rows) == 2
        assert result.corrected_count == 1


def test_to_dict_contract():
    result = validate_and_normalize([balanced_record()]).to_dict()
    assert set(result) == {"rows", "warnings", "errors", "correctedCount"}
    assert result["rows"][0]["gross"] == 1000


def test_rows_to_frame():
    rows = validate_and_normalize([balanced_record()]).rows
    frame = rows_to_frame(rows)
    assert list(frame.columns) == CANONICAL_COLUMNS
    assert frame.loc[0, "net"] == 850
    assert rows_to_frame([]).empty
    assert list(rows_to_frame([]).columns) == CANONICAL_COLUMNS


def test_canonical_schema():
    schema = get_canonical_schema()
    assert schema["customer"] == "string"
    assert schema["gross"] == "float64"


def test_resolve_headers_matches_normalizer():
    header_map = resolve_headers([balanced_record()])
    assert header_map.is_complete
    assert header_map.numeric_fields["net"] == "Net Sales"
