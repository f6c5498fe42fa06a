"""
Gross-to-Net Waterfall Pipeline - End-to-End Execution

Main entry point for the gross-to-net waterfall pipeline:

1. Validate configuration
2. Load the spreadsheet export (CSV/XLSX) as records
3. Resolve headers and normalize rows (sign corrections, derivations, balance checks)
4. Filter the active row set (customer/SKU/period)
5. Aggregate bucket totals, waterfall steps and top discount outliers
6. Run the what-if scenario on the discount buckets
7. Generate commentary and export the Excel report

Usage:
    python main.py --file <filepath> [--customer NAME] [--sku NAME] [--period YYYY-MM]
                   [--reduce BUCKET=FRACTION] [--output DIR] [--no-export] [--json]

Examples:
    python main.py --file data/gtn_2024.xlsx
    python main.py --file data/gtn_2024.csv --period 2024-03 --period 2024-04
    python main.py --file data/gtn_2024.xlsx --reduce d_customer=0.1 --reduce Volume=0.05
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from gtn_waterfall.analytics import DISCOUNT_BUCKETS, filter_rows, list_periods, summarize_waterfall
from gtn_waterfall.config import ensure_directories, load_config, validate_config
from gtn_waterfall.excel_formatter import create_waterfall_workbook
from gtn_waterfall.file_loader import load_records
from gtn_waterfall.formatting import format_currency, format_pp, format_share
from gtn_waterfall.insight_generator import (
    customer_action,
    generate_bucket_insights,
    generate_outlier_insights,
    get_recommended_actions,
    sku_action,
)
from gtn_waterfall.normalization import resolve_headers, validate_and_normalize
from gtn_waterfall.scenario import simulate_scenario


def log(message: str, level: str = "INFO") -> None:
    """Simple logging function."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"[{timestamp}] [{level}] {message}")


def parse_reductions(items: list[str] | None) -> dict[str, float]:
    """
    Parse BUCKET=FRACTION arguments.

    The bucket may be given by key ("d_customer") or by label ("Customer",
    case-insensitive).

    Raises:
        ValueError: On a malformed item, an unknown bucket or a non-numeric fraction.
    """
    by_name = {key: key for key, _ in DISCOUNT_BUCKETS}
    by_name.update({label.lower(): key for key, label in DISCOUNT_BUCKETS})

    reductions: dict[str, float] = {}
    for item in items or []:
        name, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"Expected BUCKET=FRACTION, got {item!r}")
        key = by_name.get(name.strip()) or by_name.get(name.strip().lower())
        if key is None:
            raise ValueError(f"Unknown discount bucket: {name.strip()!r}")
        reductions[key] = float(value)
    return reductions


def run_pipeline(
    filepath: Path | str,
    customers: list[str] | None = None,
    skus: list[str] | None = None,
    periods: list[str] | None = None,
    reductions: dict[str, float] | None = None,
    output_path: Path | str | None = None,
    export: bool = True,
    sheet_name: str | int = 0,
) -> dict[str, Any] | None:
    """
    Run the complete waterfall pipeline.

    Args:
        filepath: Path to the spreadsheet export.
        customers: Optional customer filter.
        skus: Optional SKU filter.
        periods: Optional period filter (canonical periods).
        reductions: Optional discount bucket reductions for the scenario.
        output_path: Output directory. If None, uses default.
        export: Whether to write the Excel report.
        sheet_name: Excel sheet to read.

    Returns:
        Dictionary with validation, summary, scenario, insights and output file,
        or None if the configuration is invalid or the sheet cannot be interpreted.
    """
    start_time = datetime.now()
    log("=" * 60)
    log("GROSS-TO-NET WATERFALL PIPELINE")
    log("=" * 60)

    # Step 1: Validate configuration
    log("Step 1: Validating configuration...")
    is_valid, errors = validate_config()
    if not is_valid:
        log(f"Configuration errors: {errors}", "ERROR")
        return None
    if export and output_path is None:
        ensure_directories()

    # Step 2: Load records
    log(f"Step 2: Loading {filepath}...")
    records = load_records(filepath, sheet_name=sheet_name)
    log(f"Loaded {len(records)} rows")

    # Step 3: Normalize
    log("Step 3: Resolving headers and normalizing rows...")
    header_map = resolve_headers(records)
    validation = validate_and_normalize(records)
    if validation.is_fatal:
        for error in validation.errors:
            log(error, "ERROR")
        return None
    log(
        f"{len(validation.rows)} rows, {len(validation.warnings)} warnings, "
        f"{validation.corrected_count} corrections"
    )
    if header_map.unmapped_headers:
        log(f"Unmapped columns: {', '.join(header_map.unmapped_headers)}", "WARNING")

    # Step 4: Filter
    active = filter_rows(validation.rows, customers=customers, skus=skus, periods=periods)
    log(f"Step 4: Active rows: {len(active)} of {len(validation.rows)}")
    if periods:
        available = list_periods(validation.rows)
        unknown = [p for p in periods if p not in available]
        if unknown:
            log(f"Periods not in data: {', '.join(unknown)} (available: {', '.join(available)})", "WARNING")

    # Step 5: Aggregate
    log("Step 5: Aggregating waterfall...")
    summary = summarize_waterfall(active)
    log(f"Gross {format_currency(summary.gross)} -> Invoiced {format_currency(summary.invoiced)} "
        f"-> Net {format_currency(summary.net)}")
    for bucket in summary.buckets_by_size[:3]:
        log(f"  {bucket.label}: {format_currency(bucket.amount)} ({format_share(bucket.share)} of gross)")
    for entry in summary.top_customers:
        log(f"  Customer {entry.key}: {format_pp(entry.delta_pp)} -> {customer_action(entry)}")
    for entry in summary.top_skus:
        log(f"  SKU {entry.key}: {format_pp(entry.delta_pp)} -> {sku_action(entry)}")

    # Step 6: Scenario
    scenario = simulate_scenario(summary, reductions)
    if scenario.tweaks_active:
        log(f"Step 6: Scenario net {format_currency(scenario.net)} (uplift {format_currency(scenario.uplift)})")
    else:
        log("Step 6: No scenario reductions")

    # Step 7: Insights and export
    insights = {
        "buckets": generate_bucket_insights(summary, scenario),
        "outliers": generate_outlier_insights(summary),
        "actions": get_recommended_actions(summary),
    }

    output_file = None
    if export:
        log("Step 7: Exporting Excel report...")
        label = Path(filepath).stem
        output_file = create_waterfall_workbook(
            summary,
            validation,
            header_map=header_map,
            scenario=scenario if scenario.tweaks_active else None,
            config=load_config(),
            output_path=output_path,
            label=label,
        )
        log(f"Created: {output_file}")

    elapsed = (datetime.now() - start_time).total_seconds()
    log("=" * 60)
    log("PIPELINE COMPLETE")
    log(f"Execution time: {elapsed:.1f} seconds")
    log("=" * 60)

    return {
        "validation": validation,
        "header_map": header_map,
        "summary": summary,
        "scenario": scenario,
        "insights": insights,
        "output_file": output_file,
    }


def main() -> int:
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Gross-to-Net Waterfall - discount and rebate bridge from a sales export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --file data/gtn.xlsx                       # Full report
  python main.py --file data/gtn.csv --customer "Apotheek A" # Single customer
  python main.py --file data/gtn.xlsx --reduce Customer=0.1  # What-if scenario
  python main.py --file data/gtn.xlsx --no-export --json     # Summary as JSON
        """
    )

    parser.add_argument(
        "--file", "-f",
        type=str,
        required=True,
        help="Path to the spreadsheet export (.csv, .xlsx, .xlsm, .xls, .json)"
    )
    parser.add_argument(
        "--sheet",
        type=str,
        default="0",
        help="Excel sheet name or index (default: first sheet)"
    )
    parser.add_argument(
        "--customer",
        action="append",
        default=None,
        help="Customer filter (repeatable)"
    )
    parser.add_argument(
        "--sku",
        action="append",
        default=None,
        help="SKU filter (repeatable)"
    )
    parser.add_argument(
        "--period",
        action="append",
        default=None,
        help="Period filter, YYYY-MM or YYYY-Qn (repeatable)"
    )
    parser.add_argument(
        "--reduce",
        action="append",
        default=None,
        metavar="BUCKET=FRACTION",
        help="Reduce a discount bucket, e.g. d_customer=0.1 or Volume=0.05 (repeatable, max 0.2)"
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output directory (optional, uses default output/ if not provided)"
    )
    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Skip writing the Excel report"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the summary (and scenario) as JSON"
    )

    args = parser.parse_args()

    try:
        reductions = parse_reductions(args.reduce)
    except ValueError as e:
        parser.error(str(e))

    sheet: str | int = int(args.sheet) if args.sheet.isdigit() else args.sheet

    try:
        result = run_pipeline(
            filepath=args.file,
            customers=args.customer,
            skus=args.sku,
            periods=args.period,
            reductions=reductions,
            output_path=args.output,
            export=not args.no_export,
            sheet_name=sheet,
        )
    except Exception as e:
        log(f"Pipeline failed: {e}", "ERROR")
        import traceback
        traceback.print_exc()
        return 1

    if result is None:
        return 1

    if args.json:
        payload = {
            "summary": result["summary"].to_dict(),
            "scenario": result["scenario"].to_dict(),
            "validation": {
                "warnings": result["validation"].warnings,
                "correctedCount": result["validation"].corrected_count,
            },
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    return 0


if __name__ == "__main__":
    sys.exit(main())
