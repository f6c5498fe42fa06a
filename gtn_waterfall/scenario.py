"""
What-if scenarios on the discount buckets.

A scenario reduces selected discount buckets by a fraction and recomputes the
Invoiced/Net bridge. Rebates are left as they are. The base summary is never
touched, so baseline and scenario can be shown side by side.
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import TYPE_CHECKING

from gtn_waterfall.analytics import DISCOUNT_KEYS, build_steps
from gtn_waterfall.config import MAX_BUCKET_REDUCTION
from gtn_waterfall.models import ScenarioResult

if TYPE_CHECKING:
    from collections.abc import Mapping

    from gtn_waterfall.models import WaterfallSummary


def clamp_fraction(value: float | None, max_reduction: float = MAX_BUCKET_REDUCTION) -> float:
    """Clamp a reduction fraction to [0, max_reduction]; None and NaN become 0."""
    if value is None:
        return 0.0
    fraction = float(value)
    if math.isnan(fraction):
        return 0.0
    return min(max(fraction, 0.0), max_reduction)


def simulate_scenario(
    summary: WaterfallSummary,
    reductions: Mapping[str, float | None] | None = None,
    max_reduction: float = MAX_BUCKET_REDUCTION,
) -> ScenarioResult:
    """
    Recompute the waterfall with proportionally reduced discount buckets.

    Args:
        summary: Baseline produced by summarize_waterfall().
        reductions: Discount bucket key (e.g. "d_channel") -> fraction. Missing
                    keys mean no reduction.
        max_reduction: Upper bound for every fraction.

    Returns:
        ScenarioResult with adjusted buckets, subtotals, steps and the net uplift.

    Raises:
        ValueError: If a key is not a discount bucket.
    """
    reductions = dict(reductions or {})
    unknown = sorted(set(reductions) - set(DISCOUNT_KEYS))
    if unknown:
        raise ValueError(f"Unknown discount bucket(s): {', '.join(unknown)}. Expected one of: {', '.join(DISCOUNT_KEYS)}")

    fractions = {key: clamp_fraction(reductions.get(key), max_reduction) for key in DISCOUNT_KEYS}

    adjusted = []
    bucket_uplift = {}
    for bucket in summary.discount_buckets:
        fraction = fractions.get(bucket.key, 0.0)
        if fraction:
            amount = bucket.amount * (1 - fraction)
            share = amount / summary.gross if summary.gross else 0.0
            adjusted.append(replace(bucket, amount=amount, share=share))
        else:
            adjusted.append(bucket)
        bucket_uplift[bucket.key] = bucket.amount - adjusted[-1].amount

    total_discounts = sum(b.amount for b in adjusted)
    invoiced = max(0.0, summary.gross - total_discounts)
    net = max(0.0, invoiced - summary.total_rebates)

    return ScenarioResult(
        reductions=fractions,
        adjusted_buckets=tuple(adjusted),
        bucket_uplift=bucket_uplift,
        total_discounts=total_discounts,
        invoiced=invoiced,
        net=net,
        base_net=summary.net,
        uplift=net - summary.net,
        steps=build_steps(summary.gross, adjusted, summary.rebate_buckets, invoiced, net),
    )
