"""
Waterfall aggregation.

Folds an active set of canonical rows into bucket totals, the bridge-chart step
sequence and the top-N customer/SKU discount outliers. Every call recomputes
from scratch; rows are never mutated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from gtn_waterfall.config import SKU_OUTLIER_THRESHOLD_PP, TOP_N_OUTLIERS, UNKNOWN_LABEL
from gtn_waterfall.logger import debug_watcher, get_logger
from gtn_waterfall.models import (
    STEP_DECREMENT,
    STEP_START,
    STEP_SUBTOTAL,
    BucketTotal,
    CanonicalRow,
    OutlierEntry,
    WaterfallStep,
    WaterfallSummary,
)
from gtn_waterfall.normalization import rows_to_frame
from gtn_waterfall.value_parser import period_sort_key

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = get_logger(__name__)

# Presentation order of the bridge chart
DISCOUNT_BUCKETS: tuple[tuple[str, str], ...] = (
    ("d_channel", "Channel"),
    ("d_customer", "Customer"),
    ("d_product", "Product"),
    ("d_volume", "Volume"),
    ("d_value", "Value"),
    ("d_other_sales", "Other Sales"),
    ("d_mandatory", "Mandatory"),
    ("d_local", "Local"),
)

REBATE_BUCKETS: tuple[tuple[str, str], ...] = (
    ("r_direct", "Reb. Direct"),
    ("r_prompt", "Reb. Prompt"),
    ("r_indirect", "Reb. Indirect"),
    ("r_mandatory", "Reb. Mandatory"),
    ("r_local", "Reb. Local"),
)

DISCOUNT_KEYS = [key for key, _ in DISCOUNT_BUCKETS]
REBATE_KEYS = [key for key, _ in REBATE_BUCKETS]


def safe_share(amount: float, base: float) -> float:
    """amount / base, 0.0 when base is 0."""
    return float(amount / base) if base else 0.0


def filter_rows(
    rows: Iterable[CanonicalRow],
    customers: Iterable[str] | None = None,
    skus: Iterable[str] | None = None,
    periods: Iterable[str] | None = None,
    product_groups: Iterable[str] | None = None,
) -> list[CanonicalRow]:
    """
    Select the active row set.

    An empty or missing selection does not filter on that dimension.

    Returns:
        New list holding the matching rows, in input order.
    """
    criteria = [
        ("customer", set(customers or ())),
        ("sku", set(skus or ())),
        ("period", set(periods or ())),
        ("product_group", set(product_groups or ())),
    ]
    active = [(attr, wanted) for attr, wanted in criteria if wanted]
    return [row for row in rows if all(getattr(row, attr) in wanted for attr, wanted in active)]


def list_periods(rows: Iterable[CanonicalRow]) -> list[str]:
    """Distinct non-empty periods in chronological order."""
    return sorted({row.period for row in rows if row.period}, key=period_sort_key)


def list_values(rows: Iterable[CanonicalRow], attr: str) -> list[str]:
    """Distinct non-empty values of a string field, alphabetically."""
    return sorted({getattr(row, attr) for row in rows if getattr(row, attr)})


def build_steps(
    gross: float,
    discount_buckets: Sequence[BucketTotal],
    rebate_buckets: Sequence[BucketTotal],
    invoiced: float,
    net: float,
) -> tuple[WaterfallStep, ...]:
    """Gross start bar, one decrement per bucket, Invoiced and Net subtotals."""
    steps = [WaterfallStep("Gross", gross, STEP_START)]
    steps += [WaterfallStep(b.label, -b.amount, STEP_DECREMENT) for b in discount_buckets]
    steps.append(WaterfallStep("Invoiced", invoiced, STEP_SUBTOTAL))
    steps += [WaterfallStep(b.label, -b.amount, STEP_DECREMENT) for b in rebate_buckets]
    steps.append(WaterfallStep("Net", net, STEP_SUBTOTAL))
    return tuple(steps)


def _bucket_totals(frame: pd.DataFrame, buckets: Sequence[tuple[str, str]], gross: float) -> tuple[BucketTotal, ...]:
    totals = []
    for key, label in buckets:
        amount = float(frame[key].sum())
        totals.append(BucketTotal(key=key, label=label, amount=amount, share=safe_share(amount, gross)))
    return tuple(totals)


def top_outliers(
    frame: pd.DataFrame,
    key_column: str,
    overall_pct: float,
    top_n: int = TOP_N_OUTLIERS,
    threshold_pp: float = SKU_OUTLIER_THRESHOLD_PP,
) -> tuple[OutlierEntry, ...]:
    """
    Rank the values of `key_column` by absolute discount amount.

    Args:
        frame: Canonical rows as a DataFrame.
        key_column: "customer" or "sku".
        overall_pct: Discount-to-gross percentage of the whole active row set.
        top_n: Number of entries to keep.
        threshold_pp: Deviation (percentage points) at which an entry is flagged.

    Returns:
        Up to `top_n` OutlierEntry objects, largest discount first. Ties keep
        the order in which the keys first appear.
    """
    if frame.empty or top_n <= 0:
        return ()

    keys = frame[key_column].astype(str).str.strip()
    work = pd.DataFrame({
        "key": keys.where(keys != "", UNKNOWN_LABEL),
        "discount": frame[DISCOUNT_KEYS].sum(axis=1),
        "gross": frame["gross"],
    })
    grouped = work.groupby("key", sort=False)[["discount", "gross"]].sum()
    grouped["abs_discount"] = grouped["discount"].abs()
    top = grouped.sort_values("abs_discount", ascending=False, kind="mergesort").head(top_n)

    gross = top["gross"].to_numpy(dtype=float)
    discount = top["discount"].to_numpy(dtype=float)
    pct = np.divide(discount * 100, gross, out=np.zeros_like(discount), where=gross != 0)
    # Zero-gross keys report no deviation and are never flagged
    delta = np.where(gross != 0, pct - overall_pct, 0.0)

    return tuple(
        OutlierEntry(
            key=str(key),
            discount=float(d),
            gross=float(g),
            discount_pct=float(p),
            delta_pp=float(dp),
            flagged=bool(g != 0 and dp >= threshold_pp),
        )
        for key, d, g, p, dp in zip(top.index, discount, gross, pct, delta)
    )


@debug_watcher
def summarize_waterfall(
    rows: Sequence[CanonicalRow],
    top_n: int = TOP_N_OUTLIERS,
    sku_threshold_pp: float = SKU_OUTLIER_THRESHOLD_PP,
) -> WaterfallSummary:
    """
    Aggregate the active row set into a WaterfallSummary.

    Invoiced and net are recomputed from the bucket totals and clamped at zero;
    the supplied per-row invoiced/net columns are not summed.

    Args:
        rows: Active canonical rows.
        top_n: Number of customers/SKUs in the outlier lists.
        sku_threshold_pp: Deviation from the overall discount percentage at
                          which an outlier is flagged.

    Returns:
        WaterfallSummary.
    """
    frame = rows_to_frame(rows)

    gross = float(frame["gross"].sum())
    discount_buckets = _bucket_totals(frame, DISCOUNT_BUCKETS, gross)
    rebate_buckets = _bucket_totals(frame, REBATE_BUCKETS, gross)

    total_discounts = sum(b.amount for b in discount_buckets)
    total_rebates = sum(b.amount for b in rebate_buckets)
    total_income = float(frame["inc_royalty"].sum() + frame["inc_other"].sum())

    invoiced = max(0.0, gross - total_discounts)
    net = max(0.0, invoiced - total_rebates)

    overall_pct = safe_share(total_discounts * 100, gross)
    summary = WaterfallSummary(
        gross=gross,
        total_discounts=total_discounts,
        total_rebates=total_rebates,
        total_income=total_income,
        invoiced=invoiced,
        net=net,
        discount_buckets=discount_buckets,
        rebate_buckets=rebate_buckets,
        steps=build_steps(gross, discount_buckets, rebate_buckets, invoiced, net),
        top_customers=top_outliers(frame, "customer", overall_pct, top_n, sku_threshold_pp),
        top_skus=top_outliers(frame, "sku", overall_pct, top_n, sku_threshold_pp),
        row_count=len(frame),
    )

    logger.debug(
        f"Waterfall over {summary.row_count} rows: gross={gross:.2f}, "
        f"discounts={total_discounts:.2f}, rebates={total_rebates:.2f}, net={net:.2f}"
    )
    return summary


def buckets_frame(summary: WaterfallSummary) -> pd.DataFrame:
    """Discount and rebate buckets as a table, discounts largest first."""
    data = []
    for group, buckets in (("Discount", summary.buckets_by_size), ("Rebate", summary.rebate_buckets)):
        for b in buckets:
            data.append({"Group": group, "Bucket": b.label, "Key": b.key, "Amount": b.amount, "Share": b.share})
    return pd.DataFrame(data, columns=["Group", "Bucket", "Key", "Amount", "Share"])


def outliers_frame(entries: Sequence[OutlierEntry], key_title: str) -> pd.DataFrame:
    """Outlier list as a table."""
    data = [
        {
            key_title: e.key,
            "Discount": e.discount,
            "Gross": e.gross,
            "Discount_Pct": e.discount_pct,
            "Delta_PP": e.delta_pp,
            "Flagged": e.flagged,
        }
        for e in entries
    ]
    return pd.DataFrame(data, columns=[key_title, "Discount", "Gross", "Discount_Pct", "Delta_PP", "Flagged"])
