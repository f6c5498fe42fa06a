"""
Configuration Module - Centralized Configuration Hub

Contains all configurable parameters for the Gross-to-Net waterfall pipeline:
- Directory paths
- Balance-check tolerances and outlier thresholds
- Scenario limits
- Spreadsheet conventions (date serials, row numbering)
- Presentation and report output settings
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any


# ============================================================================
# DIRECTORY PATHS
# ============================================================================

# Project root directory (parent of gtn_waterfall/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Output directory for xlsx reports
OUTPUT_PATH = PROJECT_ROOT / "output"

# Configuration file directory (optional JSON overrides)
CONFIG_DIR = PROJECT_ROOT / "config"


# ============================================================================
# BUSINESS HEURISTICS
# ============================================================================
# Balance checks: a supplied value agrees with its recomputation when the
# absolute difference is within max(tolerance_abs, tolerance_pct * magnitude).
#
# Outliers: a customer/SKU is flagged when its discount-to-gross percentage
# exceeds the overall ratio by at least the threshold (percentage points).
#
# Note: Values are loaded from config/settings.json if available (see bottom).
# Default values are defined in _SETTINGS_DEFAULT below.

_SETTINGS_DEFAULT: dict[str, Any] = {
    "balance_tolerance_pct": 0.02,
    "balance_tolerance_abs": 50.0,
    "sku_outlier_threshold_pp": 5.0,
    "customer_renegotiate_pp": 5.0,
    "customer_normalize_pp": 2.0,
    "top_n_outliers": 3,
    "max_bucket_reduction": 0.20,
}


# ============================================================================
# SPREADSHEET CONVENTIONS
# ============================================================================

# Numeric period cells above this value are spreadsheet date serials
EXCEL_SERIAL_THRESHOLD = 20000

# Day zero of the spreadsheet date serial system
EXCEL_EPOCH = date(1899, 12, 30)

# Diagnostics cite spreadsheet line numbers; line 1 holds the headers
FIRST_DATA_ROW_NUMBER = 2

# Grouping label for rows without a customer/SKU name
UNKNOWN_LABEL = "(unknown)"


# ============================================================================
# PRESENTATION SETTINGS
# ============================================================================
# Only the formatting helpers read these; the core computation is locale free.

FORMAT_SETTINGS = {
    "currency_symbol": "€",
    "thousands_separator": ".",
    "decimal_separator": ",",
    "decimals": 0,
}

OUTPUT_SETTINGS = {
    "workbook_name_pattern": "GTN_Waterfall_{label}_{timestamp}.xlsx",
    "timestamp_format": "%Y%m%d_%H%M%S",
    "currency_format": "#,##0",
    "percentage_format": "0.0%",
    "points_format": "+0.0;-0.0;0.0",
    "integer_format": "#,##0",
}

REPORT_COLORS = {
    "HEADER": "#1F4E78",
    "START": "#4B5563",
    "DECREMENT": "#F87171",
    "SUBTOTAL": "#38BDF8",
    "NET": "#34D399",
    "WARNING": "#FFE66D",
    "ERROR": "#FF6B6B",
}


# ============================================================================
# CONFIG LOADING AND VALIDATION
# ============================================================================

def _load_settings_from_json(defaults: dict[str, Any]) -> dict[str, Any]:
    """Load business settings from JSON file, merge with defaults."""
    settings_file = CONFIG_DIR / "settings.json"
    if settings_file.exists():
        try:
            with open(settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
                if "settings" in data:
                    merged = defaults.copy()
                    merged.update({k: v for k, v in data["settings"].items() if k in defaults})
                    return merged
        except Exception as e:
            import warnings
            warnings.warn(f"Failed to load settings from JSON: {e}. Using defaults.")
    return defaults


def _load_header_aliases_from_json() -> dict[str, list[str]]:
    """Load extra header aliases from JSON file (field id -> alias list)."""
    aliases_file = CONFIG_DIR / "header_aliases.json"
    if aliases_file.exists():
        try:
            with open(aliases_file, "r", encoding="utf-8") as f:
                data = json.load(f)
                if "aliases" in data:
                    return {
                        field_id: [str(a) for a in aliases]
                        for field_id, aliases in data["aliases"].items()
                        if isinstance(aliases, list)
                    }
        except Exception as e:
            import warnings
            warnings.warn(f"Failed to load header aliases from JSON: {e}. Using defaults.")
    return {}


# Load configuration from JSON files if available, otherwise use defaults
# This happens at module import time
SETTINGS = _load_settings_from_json(_SETTINGS_DEFAULT)
EXTRA_HEADER_ALIASES = _load_header_aliases_from_json()

BALANCE_TOLERANCE_PCT: float = float(SETTINGS["balance_tolerance_pct"])
BALANCE_TOLERANCE_ABS: float = float(SETTINGS["balance_tolerance_abs"])
SKU_OUTLIER_THRESHOLD_PP: float = float(SETTINGS["sku_outlier_threshold_pp"])
CUSTOMER_RENEGOTIATE_PP: float = float(SETTINGS["customer_renegotiate_pp"])
CUSTOMER_NORMALIZE_PP: float = float(SETTINGS["customer_normalize_pp"])
TOP_N_OUTLIERS: int = int(SETTINGS["top_n_outliers"])
MAX_BUCKET_REDUCTION: float = float(SETTINGS["max_bucket_reduction"])


def load_config() -> dict[str, Any]:
    """
    Load and return all configuration as a dictionary.

    Returns:
        Dictionary with all configuration values.
    """
    return {
        "project_root": PROJECT_ROOT,
        "output_path": OUTPUT_PATH,
        "config_dir": CONFIG_DIR,
        "settings": SETTINGS.copy(),
        "extra_header_aliases": EXTRA_HEADER_ALIASES,
        "excel_serial_threshold": EXCEL_SERIAL_THRESHOLD,
        "excel_epoch": EXCEL_EPOCH.isoformat(),
        "first_data_row_number": FIRST_DATA_ROW_NUMBER,
        "format_settings": FORMAT_SETTINGS,
        "output_settings": OUTPUT_SETTINGS,
    }


def validate_config(settings: dict[str, Any] | None = None) -> tuple[bool, list[str]]:
    """
    Validate business settings.

    Args:
        settings: Settings to check. Defaults to the loaded SETTINGS.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    settings = SETTINGS if settings is None else settings
    errors = []

    pct = settings.get("balance_tolerance_pct")
    if not isinstance(pct, (int, float)) or not 0 <= pct < 1:
        errors.append(f"Invalid balance_tolerance_pct: {pct} (expected 0 <= value < 1)")

    tol_abs = settings.get("balance_tolerance_abs")
    if not isinstance(tol_abs, (int, float)) or tol_abs < 0:
        errors.append(f"Invalid balance_tolerance_abs: {tol_abs} (expected >= 0)")

    for key in ("sku_outlier_threshold_pp", "customer_renegotiate_pp", "customer_normalize_pp"):
        value = settings.get(key)
        if not isinstance(value, (int, float)) or value < 0:
            errors.append(f"Invalid {key}: {value} (expected >= 0)")

    if settings.get("customer_normalize_pp", 0) > settings.get("customer_renegotiate_pp", 0):
        errors.append("customer_normalize_pp must not exceed customer_renegotiate_pp")

    top_n = settings.get("top_n_outliers")
    if not isinstance(top_n, int) or top_n < 1:
        errors.append(f"Invalid top_n_outliers: {top_n} (expected integer >= 1)")

    max_reduction = settings.get("max_bucket_reduction")
    if not isinstance(max_reduction, (int, float)) or not 0 <= max_reduction <= 1:
        errors.append(f"Invalid max_bucket_reduction: {max_reduction} (expected 0..1)")

    return len(errors) == 0, errors


def ensure_directories() -> None:
    """Create required directories if they don't exist."""
    OUTPUT_PATH.mkdir(parents=True, exist_ok=True)
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


if __name__ == "__main__":
    print("=" * 60)
    print("Configuration Validation")
    print("=" * 60)

    is_valid, errors = validate_config()

    if is_valid:
        print("[OK] Configuration is valid")
    else:
        print("[ERROR] Configuration has errors:")
        for error in errors:
            print(f"  - {error}")

    print("\nSettings:")
    for key, value in SETTINGS.items():
        print(f"  {key}: {value}")
    print(f"\nExtra header aliases: {len(EXTRA_HEADER_ALIASES)} field(s)")
