"""
Row normalization module.

Turns the raw records of an uploaded gross-to-net sheet into canonical rows.
Headers are resolved once, then every row is parsed, sign-corrected, completed
(derived invoiced/net) and balance-checked. Only missing mandatory columns abort
the pass; every other defect becomes a warning and the row is kept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pandas as pd

from gtn_waterfall.config import BALANCE_TOLERANCE_ABS, BALANCE_TOLERANCE_PCT, FIRST_DATA_ROW_NUMBER
from gtn_waterfall.header_resolver import (
    DISCOUNT_FIELD_IDS,
    FIELDS_BY_ID,
    INCOME_FIELD_IDS,
    NUMERIC_FIELDS,
    REBATE_FIELD_IDS,
    HeaderMap,
    HeaderResolver,
)
from gtn_waterfall.logger import debug_watcher, get_logger
from gtn_waterfall.models import CANONICAL_COLUMNS, CanonicalRow, DiagnosticsCollector, ValidationResult
from gtn_waterfall.value_parser import format_cell_text, normalize_period, parse_number

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = get_logger(__name__)

CANONICAL_DTYPES = {
    col: ("string" if col in ("product_group", "sku", "customer", "period") else "float64")
    for col in CANONICAL_COLUMNS
}

_SIGN_CORRECTED_GROUPS = DISCOUNT_FIELD_IDS + REBATE_FIELD_IDS


def get_canonical_schema() -> dict[str, str]:
    """
    Returns the canonical schema definition as a dictionary of column names to types.

    Returns:
        Dictionary mapping column names to pandas dtype strings.
    """
    return CANONICAL_DTYPES.copy()


def within_tolerance(
    actual: float,
    expected: float,
    tolerance_pct: float = BALANCE_TOLERANCE_PCT,
    tolerance_abs: float = BALANCE_TOLERANCE_ABS,
) -> bool:
    """True when |actual - expected| <= max(tolerance_abs, tolerance_pct * max(|actual|, |expected|))."""
    diff = abs(actual - expected)
    return diff <= max(tolerance_abs, tolerance_pct * max(abs(actual), abs(expected)))


def _as_records(raw_rows: Sequence[Mapping[str, Any]] | pd.DataFrame) -> list[Mapping[str, Any]]:
    if isinstance(raw_rows, pd.DataFrame):
        return raw_rows.rename(columns=str).to_dict(orient="records")
    return list(raw_rows)


def _report_missing_headers(header_map: HeaderMap, diagnostics: DiagnosticsCollector) -> None:
    missing_strings = header_map.missing_labels(numeric=False)
    if missing_strings:
        diagnostics.error(f"Missing columns: {', '.join(missing_strings)}")

    if "gross" not in header_map.numeric_fields:
        gross = FIELDS_BY_ID["gross"]
        accepted = ", ".join(f'"{alias}"' for alias in gross.aliases)
        diagnostics.error(f"Missing column: {gross.label} (accepted names: {accepted}).")


def _normalize_row(
    record: Mapping[str, Any],
    row_number: int,
    header_map: HeaderMap,
    diagnostics: DiagnosticsCollector,
) -> CanonicalRow:
    def text(field_id: str) -> str:
        return format_cell_text(record.get(header_map.string_fields[field_id]))

    product_group = text("product_group")
    sku = text("sku")
    customer = text("customer")
    period = normalize_period(record.get(header_map.string_fields["period"]), diagnostics, row_number)

    values: dict[str, float] = {}
    for field_def in NUMERIC_FIELDS:
        header = header_map.numeric_fields.get(field_def.id)
        values[field_def.id] = parse_number(record.get(header)) if header is not None else 0.0

    # Discounts and rebates are deductions; a negative entry is a sign slip
    flipped = [fid for fid in _SIGN_CORRECTED_GROUPS if values[fid] < 0]
    for fid in flipped:
        values[fid] = abs(values[fid])
        diagnostics.correct()
    if flipped:
        diagnostics.warn(row_number, f"negative discounts/rebates converted to positive ({', '.join(flipped)}).")

    total_discounts = sum(values[fid] for fid in DISCOUNT_FIELD_IDS)
    total_rebates = sum(values[fid] for fid in REBATE_FIELD_IDS)
    total_income = sum(values[fid] for fid in INCOME_FIELD_IDS)

    if values["invoiced"] == 0 and (values["gross"] != 0 or total_discounts != 0):
        values["invoiced"] = values["gross"] - total_discounts
        diagnostics.correct()
        diagnostics.warn(row_number, f'"Invoiced" derived as Gross - Discounts (= {values["invoiced"]:.0f}).')

    if values["net"] == 0 and (values["invoiced"] != 0 or total_rebates != 0 or total_income != 0):
        values["net"] = values["invoiced"] - total_rebates + total_income
        diagnostics.correct()
        diagnostics.warn(row_number, f'"Net" derived as Invoiced - Rebates + Income (= {values["net"]:.0f}).')

    expected_invoiced = values["gross"] - total_discounts
    if not within_tolerance(values["invoiced"], expected_invoiced):
        diagnostics.warn(
            row_number,
            f"Invoiced ({values['invoiced']:.0f}) differs from Gross - Discounts ({expected_invoiced:.0f}).",
        )

    expected_net = values["invoiced"] - total_rebates + total_income
    if not within_tolerance(values["net"], expected_net):
        diagnostics.warn(
            row_number,
            f"Net ({values['net']:.0f}) differs from Invoiced - Rebates + Income ({expected_net:.0f}).",
        )

    return CanonicalRow(
        product_group=product_group,
        sku=sku,
        customer=customer,
        period=period,
        **values,
    )


@debug_watcher
def validate_and_normalize(
    raw_rows: Sequence[Mapping[str, Any]] | pd.DataFrame,
    resolver: HeaderResolver | None = None,
) -> ValidationResult:
    """
    Validate and normalize raw spreadsheet records.

    Args:
        raw_rows: Records keyed by the sheet's column headers, or a DataFrame.
        resolver: Optional HeaderResolver (defaults to the built-in alias tables
                  plus config/header_aliases.json).

    Returns:
        ValidationResult. When `errors` is non-empty no row was processed and
        `rows` is empty.
    """
    diagnostics = DiagnosticsCollector()
    records = _as_records(raw_rows)

    if not records:
        diagnostics.error("No rows found in the uploaded sheet.")
        return diagnostics.build([])

    header_map = (resolver or HeaderResolver()).resolve(records[0].keys())
    _report_missing_headers(header_map, diagnostics)
    if diagnostics.errors:
        return diagnostics.build([])

    rows = [
        _normalize_row(record, index + FIRST_DATA_ROW_NUMBER, header_map, diagnostics)
        for index, record in enumerate(records)
    ]

    result = diagnostics.build(rows)
    logger.info(
        f"Normalized {len(result.rows)} rows: {len(result.warnings)} warnings, "
        f"{result.corrected_count} corrections"
    )
    return result


def resolve_headers(
    raw_rows: Sequence[Mapping[str, Any]] | pd.DataFrame,
    resolver: HeaderResolver | None = None,
) -> HeaderMap:
    """Header map the normalizer would use for these records (empty input -> no headers)."""
    if isinstance(raw_rows, pd.DataFrame):
        headers = list(raw_rows.columns)
    else:
        records = list(raw_rows)
        headers = list(records[0].keys()) if records else []
    return (resolver or HeaderResolver()).resolve(headers)


def rows_to_frame(rows: Sequence[CanonicalRow]) -> pd.DataFrame:
    """
    Canonical rows as a DataFrame in canonical column order.

    Args:
        rows: Canonical rows.

    Returns:
        DataFrame with the canonical dtypes; an empty input still has every column.
    """
    frame = pd.DataFrame([row.to_dict() for row in rows], columns=CANONICAL_COLUMNS)
    return frame.astype(CANONICAL_DTYPES)
