"""
Data model for the Gross-to-Net waterfall pipeline.

CanonicalRow is created once per raw input row and never mutated afterwards.
ValidationResult is the only contract between the normalizer and everything
downstream. Bucket totals, waterfall steps and outliers are derived values that
are recomputed from scratch whenever the active row set changes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any

import pandas as pd

from gtn_waterfall.logger import get_logger

logger = get_logger(__name__)

STEP_START = "start"
STEP_DECREMENT = "decrement"
STEP_SUBTOTAL = "subtotal"


@dataclass(frozen=True)
class CanonicalRow:
    """One gross-to-net observation for a product/customer/period triple."""

    product_group: str
    sku: str
    customer: str
    period: str  # "YYYY-MM", "YYYY-Qn" or the unparseable original
    gross: float = 0.0
    # Discounts (deductions from gross)
    d_channel: float = 0.0
    d_customer: float = 0.0
    d_product: float = 0.0
    d_volume: float = 0.0
    d_value: float = 0.0
    d_other_sales: float = 0.0
    d_mandatory: float = 0.0
    d_local: float = 0.0
    invoiced: float = 0.0
    # Rebates (deductions from invoiced)
    r_direct: float = 0.0
    r_prompt: float = 0.0
    r_indirect: float = 0.0
    r_mandatory: float = 0.0
    r_local: float = 0.0
    # Income (additions)
    inc_royalty: float = 0.0
    inc_other: float = 0.0
    net: float = 0.0

    @property
    def total_discounts(self) -> float:
        return (
            self.d_channel + self.d_customer + self.d_product + self.d_volume
            + self.d_value + self.d_other_sales + self.d_mandatory + self.d_local
        )

    @property
    def total_rebates(self) -> float:
        return self.r_direct + self.r_prompt + self.r_indirect + self.r_mandatory + self.r_local

    @property
    def total_income(self) -> float:
        return self.inc_royalty + self.inc_other

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


CANONICAL_COLUMNS = [f.name for f in fields(CanonicalRow)]


@dataclass
class ValidationResult:
    """
    Complete output of one normalization pass.

    Attributes:
        rows: Canonical rows, empty when processing aborted.
        warnings: Non-fatal anomalies, each citing a spreadsheet row number.
        errors: Fatal problems; non-empty only when processing aborted.
        corrected_count: Number of individual corrections (sign flips + derivations).
    """

    rows: list[CanonicalRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    corrected_count: int = 0

    @property
    def is_fatal(self) -> bool:
        return bool(self.errors)

    def to_frame(self) -> pd.DataFrame:
        """Canonical rows as a DataFrame (columns present even when empty)."""
        return pd.DataFrame([row.to_dict() for row in self.rows], columns=CANONICAL_COLUMNS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [row.to_dict() for row in self.rows],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "correctedCount": self.corrected_count,
        }


class DiagnosticsCollector:
    """
    Accumulates warnings, errors and the correction counter during a
    normalization pass and builds the final ValidationResult.
    """

    def __init__(self) -> None:
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.corrected_count = 0

    def warn(self, row_number: int | None, message: str) -> None:
        text = f"Row {row_number}: {message}" if row_number is not None else message
        self.warnings.append(text)
        logger.debug(text)

    def error(self, message: str) -> None:
        self.errors.append(message)
        logger.warning(message)

    def correct(self, count: int = 1) -> None:
        self.corrected_count += count

    def build(self, rows: list[CanonicalRow]) -> ValidationResult:
        if self.errors:
            # Fatal: nothing downstream may consume partial output
            return ValidationResult(rows=[], warnings=list(self.warnings), errors=list(self.errors), corrected_count=0)
        return ValidationResult(
            rows=list(rows),
            warnings=list(self.warnings),
            errors=[],
            corrected_count=self.corrected_count,
        )


@dataclass(frozen=True)
class BucketTotal:
    """Aggregate amount of one discount/rebate category with its share of gross."""

    key: str
    label: str
    amount: float
    share: float  # fraction of gross, 0 when gross is 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WaterfallStep:
    """One bar of the bridge chart."""

    label: str
    amount: float
    kind: str  # STEP_START, STEP_DECREMENT or STEP_SUBTOTAL

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OutlierEntry:
    """Customer or SKU ranked by discount spend."""

    key: str
    discount: float
    gross: float
    discount_pct: float  # discount / gross in percent
    delta_pp: float  # discount_pct minus the overall percentage
    flagged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WaterfallSummary:
    """Aggregated view of an active row set."""

    gross: float
    total_discounts: float
    total_rebates: float
    total_income: float
    invoiced: float
    net: float
    discount_buckets: tuple[BucketTotal, ...]
    rebate_buckets: tuple[BucketTotal, ...]
    steps: tuple[WaterfallStep, ...]
    top_customers: tuple[OutlierEntry, ...] = ()
    top_skus: tuple[OutlierEntry, ...] = ()
    row_count: int = 0

    @property
    def buckets_by_size(self) -> list[BucketTotal]:
        """Discount buckets, largest absolute amount first."""
        return sorted(self.discount_buckets, key=lambda b: abs(b.amount), reverse=True)

    @property
    def discount_pct(self) -> float:
        return self.total_discounts / self.gross * 100 if self.gross else 0.0

    @property
    def rebate_pct(self) -> float:
        return self.total_rebates / self.gross * 100 if self.gross else 0.0

    def bucket(self, key: str) -> BucketTotal:
        for b in self.discount_buckets + self.rebate_buckets:
            if b.key == key:
                return b
        raise KeyError(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross": self.gross,
            "totalDiscounts": self.total_discounts,
            "totalRebates": self.total_rebates,
            "totalIncome": self.total_income,
            "invoiced": self.invoiced,
            "net": self.net,
            "rowCount": self.row_count,
            "discountBuckets": [b.to_dict() for b in self.discount_buckets],
            "rebateBuckets": [b.to_dict() for b in self.rebate_buckets],
            "bucketsBySize": [b.to_dict() for b in self.buckets_by_size],
            "steps": [s.to_dict() for s in self.steps],
            "topCustomers": [o.to_dict() for o in self.top_customers],
            "topSkus": [o.to_dict() for o in self.top_skus],
        }


@dataclass(frozen=True)
class ScenarioResult:
    """What-if recomputation of the waterfall with reduced discount buckets."""

    reductions: dict[str, float]
    adjusted_buckets: tuple[BucketTotal, ...]
    bucket_uplift: dict[str, float]
    total_discounts: float
    invoiced: float
    net: float
    base_net: float
    uplift: float
    steps: tuple[WaterfallStep, ...]

    @property
    def tweaks_active(self) -> bool:
        return any(v > 0 for v in self.reductions.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "reductions": dict(self.reductions),
            "adjustedBuckets": [b.to_dict() for b in self.adjusted_buckets],
            "bucketUplift": dict(self.bucket_uplift),
            "totalDiscounts": self.total_discounts,
            "invoiced": self.invoiced,
            "net": self.net,
            "baseNet": self.base_net,
            "uplift": self.uplift,
            "tweaksActive": self.tweaks_active,
            "steps": [s.to_dict() for s in self.steps],
        }
