"""
Unit tests for the discount scenario engine.
"""

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import pytest

from gtn_waterfall.analytics import summarize_waterfall
from gtn_waterfall.models import CanonicalRow
from gtn_waterfall.scenario import clamp_fraction, simulate_scenario

ROWS = [
    CanonicalRow("PG", "S1", "Alpha", "2024-01", gross=1000, d_channel=100, d_customer=200, r_direct=50),
    CanonicalRow("PG", "S2", "Beta", "2024-01", gross=3000, d_volume=300, d_local=0.3, r_prompt=25.5),
]


class TestSimulateScenario:
    """Reduced discount buckets recompute invoiced and net."""

    def setup_method(self):
        self.summary = summarize_waterfall(ROWS)

    def test_empty_vector_reproduces_baseline(self):
        scenario = simulate_scenario(self.summary, {})
        assert scenario.uplift == 0
        assert scenario.net == self.summary.net
        assert scenario.invoiced == self.summary.invoiced
        assert scenario.total_discounts == self.summary.total_discounts
        assert scenario.steps == self.summary.steps
        assert not scenario.tweaks_active

    def test_none_reductions(self):
        assert simulate_scenario(self.summary).steps == self.summary.steps

    def test_reduction_applied(self):
        scenario = simulate_scenario(self.summary, {"d_customer": 0.1})
        customer = next(b for b in scenario.adjusted_buckets if b.key == "d_customer")
        assert customer.amount == pytest.approx(180)
        assert scenario.bucket_uplift["d_customer"] == pytest.approx(20)
        assert scenario.invoiced == pytest.approx(self.summary.invoiced + 20)
        assert scenario.uplift == pytest.approx(20)
        assert scenario.tweaks_active

    def test_rebates_untouched(self):
        scenario = simulate_scenario(self.summary, {"d_channel": 0.2, "d_volume": 0.2})
        assert scenario.net == pytest.approx(scenario.invoiced - self.summary.total_rebates)
        rebate_steps = [s for s in scenario.steps if s.label.startswith("Reb.")]
        assert [s.amount for s in rebate_steps] == [-b.amount for b in self.summary.rebate_buckets]

    def test_fraction_clamped_to_maximum(self):
        scenario = simulate_scenario(self.summary, {"d_customer": 0.5})
        assert scenario.reductions["d_customer"] == 0.2
        assert scenario.bucket_uplift["d_customer"] == pytest.approx(40)

    def test_negative_and_nan_fractions_are_zero(self):
        scenario = simulate_scenario(self.summary, {"d_customer": -0.3, "d_channel": float("nan"), "d_volume": None})
        assert scenario.uplift == 0
        assert not scenario.tweaks_active

    def test_custom_maximum(self):
        scenario = simulate_scenario(self.summary, {"d_customer": 0.5}, max_reduction=0.5)
        assert scenario.bucket_uplift["d_customer"] == pytest.approx(100)

    def test_unknown_bucket_rejected(self):
        with pytest.raises(ValueError):
            simulate_scenario(self.summary, {"r_direct": 0.1})

    def test_base_never_mutated(self):
        before = self.summary.to_dict()
        simulate_scenario(self.summary, {"d_channel": 0.2, "d_customer": 0.15})
        assert self.summary.to_dict() == before
        again = simulate_scenario(self.summary, {})
        assert again.net == self.summary.net
        assert again.adjusted_buckets == self.summary.discount_buckets

    def test_deterministic(self):
        first = simulate_scenario(self.summary, {"d_volume": 0.07})
        second = simulate_scenario(self.summary, {"d_volume": 0.07})
        assert first == second


def test_uplift_on_clamped_invoiced():
    summary = summarize_waterfall([CanonicalRow("PG", "S", "C", "2024-01", gross=100, d_channel=150)])
    scenario = simulate_scenario(summary, {"d_channel": 0.2})
    # 150 * 0.8 = 120 still exceeds gross
    assert scenario.invoiced == 0
    assert scenario.uplift == 0


def test_clamp_fraction():
    assert clamp_fraction(0.05) == 0.05
    assert clamp_fraction(1.0) == 0.2
    assert clamp_fraction(-1) == 0.0
    assert clamp_fraction(None) == 0.0
