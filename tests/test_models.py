"""
Unit tests for the data model and the debug logging decorator.
"""

import logging
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd
import pytest

from gtn_waterfall.analytics import summarize_waterfall
from gtn_waterfall.logger import debug_watcher, describe, get_logger
from gtn_waterfall.models import CanonicalRow, DiagnosticsCollector


def test_row_totals():
    row = CanonicalRow("PG", "S", "C", "2024-01", gross=100, d_channel=5, d_local=2, r_prompt=3, inc_other=1)
    assert row.total_discounts == 7
    assert row.total_rebates == 3
    assert row.total_income == 1


class TestDiagnosticsCollector:
    """Result builder."""

    def test_warnings_cite_row_number(self):
        diagnostics = DiagnosticsCollector()
        diagnostics.warn(5, "something odd.")
        diagnostics.warn(None, "sheet level.")
        assert diagnostics.warnings == ["Row 5: something odd.", "sheet level."]

    def test_build_keeps_rows_and_corrections(self):
        diagnostics = DiagnosticsCollector()
        diagnostics.correct()
        diagnostics.correct(2)
        row = CanonicalRow("PG", "S", "C", "2024-01")
        result = diagnostics.build([row])
        assert result.rows == [row]
        assert result.corrected_count == 3
        assert not result.is_fatal

    def test_errors_discard_rows_and_corrections(self):
        diagnostics = DiagnosticsCollector()
        diagnostics.correct()
        diagnostics.error("Missing columns: SKU Name")
        result = diagnostics.build([CanonicalRow("PG", "S", "C", "2024-01")])
        assert result.rows == []
        assert result.corrected_count == 0
        assert result.is_fatal


def test_summary_lookup_and_dict():
    summary = summarize_waterfall([CanonicalRow("PG", "S", "C", "2024-01", gross=200, d_volume=20)])
    assert summary.bucket("d_volume").amount == 20
    with pytest.raises(KeyError):
        summary.bucket("d_unknown")
    data = summary.to_dict()
    assert data["totalDiscounts"] == 20
    assert data["bucketsBySize"][0]["key"] == "d_volume"
    assert data["topCustomers"][0]["key"] == "C"
    assert summary.discount_pct == 10


def test_debug_watcher_reraises(caplog):
    @debug_watcher
    def explode():
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="gtn_waterfall"):
        with pytest.raises(RuntimeError):
            explode()
    assert any("Exception in explode" in r.getMessage() for r in caplog.records)


def test_get_logger_names():
    assert get_logger("gtn_waterfall.analytics").name == "gtn_waterfall.analytics"
    assert get_logger().name == "gtn_waterfall"


class TestDescribe:
    """Trace-line summaries of pipeline values."""

    def test_collections_and_frames(self):
        assert describe([{"a": 1}, {"a": 2}]) == "<2 list items>"
        assert describe(pd.DataFrame({"a": [1, 2, 3]})) == "<DataFrame 3x1>"
        assert describe(Path("/tmp/export.csv")) == "export.csv"

    def test_results_report_row_counts(self):
        diagnostics = DiagnosticsCollector()
        result = diagnostics.build([CanonicalRow("PG", "S", "C", "2024-01")])
        assert describe(result) == "<ValidationResult with 1 rows>"
        summary = summarize_waterfall(result.rows)
        assert describe(summary) == "<WaterfallSummary over 1 rows>"

    def test_long_values_truncated(self):
        text = describe("x" * 100)
        assert len(text) == 60
        assert text.endswith("...")
