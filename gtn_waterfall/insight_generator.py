"""
Insight Generator Module - Discount Commentary Engine

Turns a waterfall summary into commercial commentary:
- Per-bucket cards with share of gross, scenario effect and playbook levers
- Top customers/SKUs by discount spend with a recommended action
- Summary of recommended actions for the largest discount buckets
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from gtn_waterfall.config import CUSTOMER_NORMALIZE_PP, CUSTOMER_RENEGOTIATE_PP
from gtn_waterfall.formatting import DEFAULT_FORMAT, format_currency, format_percent, format_pp, format_share

if TYPE_CHECKING:
    from gtn_waterfall.formatting import FormatSettings
    from gtn_waterfall.models import OutlierEntry, ScenarioResult, WaterfallSummary


@dataclass
class Insight:
    """One commentary card."""

    kind: str  # "bucket", "customer" or "sku"
    key: str
    title: str
    amount: float
    commentary: list[str] = field(default_factory=list)
    action: str = ""
    levers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Commercial levers per discount bucket
BUCKET_PLAYBOOK: dict[str, list[str]] = {
    "d_channel": [
        "Harmonise channel conditions",
        "Limit exceptions through a deal desk",
    ],
    "d_customer": [
        "Renegotiate: move part of the front-end discount into a bonus",
        "Floor/cap per segment, quarterly review",
    ],
    "d_product": [
        "Recalibrate list price/positioning",
        "Differentiate per channel/segment",
    ],
    "d_volume": [
        "Move front-end discount into a retrospective bonus",
        "Tight volume tiers per account",
    ],
    "d_value": [
        "Consolidate other discounts",
        "Stop ad-hoc deals, assign an owner",
    ],
    "d_other_sales": [
        "Consolidate other discounts",
        "Stop ad-hoc deals, assign an owner",
    ],
    "d_mandatory": [
        "Legally driven: optimise elsewhere",
    ],
    "d_local": [
        "Standardise local exceptions",
        "Central approval and quarterly review",
    ],
}

RECOMMENDED_ACTIONS: dict[str, str] = {
    "d_customer": "floor/cap per segment; move part of the front-end discount into a bonus on realisation.",
    "d_volume": "replace part of the front-end discount with tiered performance bonuses.",
    "d_product": "recalibrate list price/positioning; differentiate per channel/segment.",
    "d_local": "consolidate exceptions; central governance.",
    "d_other_sales": "consolidate exceptions; central governance.",
    "d_value": "consolidate exceptions; central governance.",
    "d_channel": "harmonise channel conditions; route exceptions through a deal desk.",
}

ACTION_DIRECTIVES: dict[str, str] = {
    "renegotiate": "Renegotiate: lower the front-end discount, shift it into a bonus.",
    "normalize": "Normalise conditions; limit exceptions.",
    "monitor": "Monitor: within the expected band.",
    "recalibrate": "Recalibrate list price/positioning; reduce structural discounts.",
    "variable": "Make the discount more variable: bonus instead of a standard discount.",
}

COMMENTARY_TEMPLATES = {
    "bucket": "{label} discounts total {amount} ({share} of gross).",
    "bucket_scenario": "Reducing by {reduction} adds {uplift} to net; new bucket {after} ({after_share} of gross).",
    "outlier_discount": "Discount: {pct} ({delta} vs overall)",
    "outlier_gross": "Gross: {gross}",
}


def customer_action(
    entry: OutlierEntry,
    renegotiate_pp: float = CUSTOMER_RENEGOTIATE_PP,
    normalize_pp: float = CUSTOMER_NORMALIZE_PP,
) -> str:
    """Action for a top customer, driven by its deviation from the overall discount percentage."""
    if entry.delta_pp > renegotiate_pp:
        return ACTION_DIRECTIVES["renegotiate"]
    if entry.delta_pp > normalize_pp:
        return ACTION_DIRECTIVES["normalize"]
    return ACTION_DIRECTIVES["monitor"]


def sku_action(entry: OutlierEntry) -> str:
    """Action for a top SKU: flagged SKUs need a list-price review."""
    if entry.flagged:
        return ACTION_DIRECTIVES["recalibrate"]
    return ACTION_DIRECTIVES["variable"]


def _outlier_insight(entry: OutlierEntry, kind: str, settings: FormatSettings) -> Insight:
    lines = [
        COMMENTARY_TEMPLATES["outlier_discount"].format(
            pct=format_percent(entry.discount_pct, settings),
            delta=format_pp(entry.delta_pp, settings),
        ),
        COMMENTARY_TEMPLATES["outlier_gross"].format(gross=format_currency(entry.gross, settings)),
    ]
    action = customer_action(entry) if kind == "customer" else sku_action(entry)
    return Insight(
        kind=kind,
        key=entry.key,
        title=f"{entry.key}: {format_currency(entry.discount, settings)}",
        amount=entry.discount,
        commentary=lines,
        action=action,
    )


def generate_outlier_insights(
    summary: WaterfallSummary,
    settings: FormatSettings | None = None,
) -> list[dict[str, Any]]:
    """
    Commentary for the top customers and SKUs by discount spend.

    Args:
        summary: Aggregated waterfall.
        settings: Presentation settings (defaults to config FORMAT_SETTINGS).

    Returns:
        List of insight dictionaries, customers first.
    """
    settings = settings or DEFAULT_FORMAT
    insights = [_outlier_insight(e, "customer", settings) for e in summary.top_customers]
    insights += [_outlier_insight(e, "sku", settings) for e in summary.top_skus]
    return [i.to_dict() for i in insights]


def generate_bucket_insights(
    summary: WaterfallSummary,
    scenario: ScenarioResult | None = None,
    settings: FormatSettings | None = None,
) -> list[dict[str, Any]]:
    """
    One card per discount bucket, largest first.

    Args:
        summary: Aggregated waterfall.
        scenario: Optional scenario; when a bucket is reduced the card shows
                  the net uplift and the new bucket size.
        settings: Presentation settings (defaults to config FORMAT_SETTINGS).

    Returns:
        List of insight dictionaries.
    """
    settings = settings or DEFAULT_FORMAT
    adjusted = {b.key: b for b in scenario.adjusted_buckets} if scenario else {}

    insights = []
    for bucket in summary.buckets_by_size:
        lines = [
            COMMENTARY_TEMPLATES["bucket"].format(
                label=bucket.label,
                amount=format_currency(bucket.amount, settings),
                share=format_share(bucket.share, settings),
            )
        ]
        reduction = scenario.reductions.get(bucket.key, 0.0) if scenario else 0.0
        if reduction > 0:
            after = adjusted[bucket.key]
            lines.append(COMMENTARY_TEMPLATES["bucket_scenario"].format(
                reduction=format_share(reduction, settings, decimals=0),
                uplift=format_currency(scenario.bucket_uplift[bucket.key], settings),
                after=format_currency(after.amount, settings),
                after_share=format_share(after.share, settings),
            ))
        insights.append(Insight(
            kind="bucket",
            key=bucket.key,
            title=bucket.label,
            amount=bucket.amount,
            commentary=lines,
            levers=list(BUCKET_PLAYBOOK.get(bucket.key, [])),
        ))
    return [i.to_dict() for i in insights]


def get_recommended_actions(summary: WaterfallSummary, top_n: int = 4) -> list[str]:
    """
    Recommended actions for the largest non-zero discount buckets.

    Mandatory discounts are legally driven and never appear here.
    """
    actions = []
    for bucket in summary.buckets_by_size:
        if bucket.amount == 0 or bucket.key not in RECOMMENDED_ACTIONS:
            continue
        actions.append(f"{bucket.label}: {RECOMMENDED_ACTIONS[bucket.key]}")
        if len(actions) >= top_n:
            break
    return actions
