"""
Excel Formatter Module - Waterfall Report Generator

Creates formatted Excel workbooks with:
- Waterfall sheet (baseline bridge, optional scenario column, KPI block)
- Buckets (discount and rebate totals with share of gross)
- Top Customers / Top SKUs (discount outliers with recommended action)
- Diagnostics (fatal errors and row warnings)
- Canonical Rows (normalized data)
- Header Mapping (alias resolution audit trail)
- Configuration Log
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd
import xlsxwriter
from xlsxwriter.workbook import Workbook
from xlsxwriter.worksheet import Worksheet

from gtn_waterfall.analytics import buckets_frame, outliers_frame
from gtn_waterfall.config import OUTPUT_PATH, OUTPUT_SETTINGS, REPORT_COLORS
from gtn_waterfall.header_resolver import HeaderResolver
from gtn_waterfall.insight_generator import customer_action, sku_action
from gtn_waterfall.logger import debug_watcher, get_logger
from gtn_waterfall.models import STEP_DECREMENT, STEP_START
from gtn_waterfall.normalization import rows_to_frame

if TYPE_CHECKING:
    from gtn_waterfall.header_resolver import HeaderMap
    from gtn_waterfall.models import ScenarioResult, ValidationResult, WaterfallSummary

logger = get_logger(__name__)

_AMOUNT_COLUMNS = {"amount", "gross", "discount", "invoiced", "net", "uplift", "scenario", "new amount"}
_AMOUNT_PREFIXES = ("d_", "r_", "inc_")


class WaterfallReportWriter:
    """
    Creates formatted gross-to-net workbooks.

    One instance can write several workbooks; formats are rebuilt per workbook.
    """

    def __init__(self, output_path: Path | str | None = None):
        """
        Initialize the WaterfallReportWriter.

        Args:
            output_path: Directory for output files. Defaults to OUTPUT_PATH.
        """
        self.output_path = Path(output_path) if output_path else OUTPUT_PATH
        self.output_path.mkdir(parents=True, exist_ok=True)

        self.workbook: Workbook | None = None
        self.formats: dict[str, Any] = {}

    def _generate_filename(self, label: str = "ALL") -> str:
        """Generate output filename from pattern."""
        timestamp = datetime.now().strftime(OUTPUT_SETTINGS["timestamp_format"])
        return OUTPUT_SETTINGS["workbook_name_pattern"].format(label=label, timestamp=timestamp)

    def _setup_formats(self) -> None:
        """Set up cell formats for the workbook."""
        if self.workbook is None:
            return

        self.formats["header"] = self.workbook.add_format({
            "bold": True,
            "bg_color": REPORT_COLORS["HEADER"],
            "font_color": "#FFFFFF",
            "border": 1,
            "align": "center",
            "valign": "vcenter",
            "text_wrap": True,
        })
        self.formats["currency"] = self.workbook.add_format({
            "num_format": OUTPUT_SETTINGS["currency_format"],
            "border": 1,
        })
        self.formats["percentage"] = self.workbook.add_format({
            "num_format": OUTPUT_SETTINGS["percentage_format"],
            "border": 1,
        })
        self.formats["points"] = self.workbook.add_format({
            "num_format": OUTPUT_SETTINGS["points_format"],
            "border": 1,
        })
        self.formats["decimal"] = self.workbook.add_format({
            "num_format": "0.0",
            "border": 1,
        })
        self.formats["integer"] = self.workbook.add_format({
            "num_format": OUTPUT_SETTINGS["integer_format"],
            "border": 1,
        })
        self.formats["default"] = self.workbook.add_format({
            "border": 1,
        })
        self.formats["bold"] = self.workbook.add_format({
            "bold": True,
            "border": 1,
        })

        # Step kinds of the bridge
        for name, color in (
            ("start", REPORT_COLORS["START"]),
            ("decrement", REPORT_COLORS["DECREMENT"]),
            ("subtotal", REPORT_COLORS["SUBTOTAL"]),
            ("net", REPORT_COLORS["NET"]),
        ):
            self.formats[f"step_{name}"] = self.workbook.add_format({
                "num_format": OUTPUT_SETTINGS["currency_format"],
                "bg_color": color,
                "border": 1,
            })

        self.formats["warning"] = self.workbook.add_format({
            "bg_color": REPORT_COLORS["WARNING"],
            "border": 1,
            "text_wrap": True,
        })
        self.formats["error"] = self.workbook.add_format({
            "bg_color": REPORT_COLORS["ERROR"],
            "border": 1,
            "text_wrap": True,
        })

    def _get_column_format(self, column_name: str) -> Any:
        """Get appropriate format for a column based on name."""
        name_lower = column_name.lower()

        if name_lower.endswith("_pp") or name_lower == "delta":
            return self.formats["points"]
        if "share" in name_lower or name_lower == "reduction":
            return self.formats["percentage"]
        if name_lower.endswith("_pct"):
            return self.formats["decimal"]
        if name_lower in _AMOUNT_COLUMNS or name_lower.startswith(_AMOUNT_PREFIXES):
            return self.formats["currency"]
        if name_lower in ("rows", "row_count", "count"):
            return self.formats["integer"]
        return self.formats["default"]

    def _require_workbook(self) -> Workbook:
        if self.workbook is None:
            raise RuntimeError("Workbook not initialized")
        return self.workbook

    def write_frame_sheet(self, df: pd.DataFrame, sheet_name: str) -> Worksheet:
        """
        Write a DataFrame as a formatted table.

        Args:
            df: Data to write.
            sheet_name: Name of the worksheet.

        Returns:
            The created worksheet.
        """
        ws = self._require_workbook().add_worksheet(sheet_name)

        for col_idx, col_name in enumerate(df.columns):
            ws.write(0, col_idx, col_name, self.formats["header"])

        for row_idx, row in enumerate(df.itertuples(index=False), start=1):
            for col_idx, col_name in enumerate(df.columns):
                value = row[col_idx]
                cell_format = self._get_column_format(str(col_name))
                if pd.isna(value):
                    ws.write_blank(row_idx, col_idx, None, cell_format)
                else:
                    ws.write(row_idx, col_idx, value, cell_format)

        for col_idx, col_name in enumerate(df.columns):
            max_width = len(str(col_name))
            for value in df[col_name].head(20):
                if pd.notna(value):
                    max_width = max(max_width, len(str(value)))
            ws.set_column(col_idx, col_idx, min(max_width + 2, 40))

        ws.freeze_panes(1, 0)
        return ws

    def create_waterfall_sheet(
        self,
        summary: WaterfallSummary,
        scenario: ScenarioResult | None = None,
        sheet_name: str = "Waterfall",
    ) -> Worksheet:
        """
        Create the bridge sheet: one row per step plus a KPI block.

        Args:
            summary: Baseline waterfall.
            scenario: Optional scenario, written as an extra column.
            sheet_name: Name of the worksheet.

        Returns:
            The created worksheet.
        """
        ws = self._require_workbook().add_worksheet(sheet_name)

        columns = ["Step", "Kind", "Baseline"]
        if scenario is not None:
            columns.append("Scenario")
        for col_idx, col_name in enumerate(columns):
            ws.write(0, col_idx, col_name, self.formats["header"])

        scenario_steps = scenario.steps if scenario is not None else ()
        for row_idx, step in enumerate(summary.steps, start=1):
            if step.kind == STEP_START:
                step_format = self.formats["step_start"]
            elif step.kind == STEP_DECREMENT:
                step_format = self.formats["step_decrement"]
            elif row_idx == len(summary.steps):
                step_format = self.formats["step_net"]
            else:
                step_format = self.formats["step_subtotal"]

            ws.write(row_idx, 0, step.label, self.formats["default"])
            ws.write(row_idx, 1, step.kind, self.formats["default"])
            ws.write_number(row_idx, 2, step.amount, step_format)
            if scenario_steps:
                ws.write_number(row_idx, 3, scenario_steps[row_idx - 1].amount, step_format)

        kpis: list[tuple[str, float, str]] = [
            ("Gross", summary.gross, "currency"),
            ("Total Discounts", summary.total_discounts, "currency"),
            ("Discount % of Gross", summary.discount_pct, "decimal"),
            ("Invoiced", summary.invoiced, "currency"),
            ("Total Rebates", summary.total_rebates, "currency"),
            ("Rebate % of Gross", summary.rebate_pct, "decimal"),
            ("Total Income", summary.total_income, "currency"),
            ("Net", summary.net, "currency"),
            ("Rows", summary.row_count, "integer"),
        ]
        if scenario is not None:
            kpis += [
                ("Scenario Net", scenario.net, "currency"),
                ("Net Uplift", scenario.uplift, "currency"),
            ]

        kpi_col = len(columns) + 1
        ws.write(0, kpi_col, "KPI", self.formats["header"])
        ws.write(0, kpi_col + 1, "Value", self.formats["header"])
        for row_idx, (name, value, fmt) in enumerate(kpis, start=1):
            ws.write(row_idx, kpi_col, name, self.formats["bold"])
            ws.write_number(row_idx, kpi_col + 1, value, self.formats[fmt])

        ws.set_column(0, 0, 18)
        ws.set_column(1, 1, 12)
        ws.set_column(2, len(columns) - 1, 16)
        ws.set_column(kpi_col, kpi_col, 22)
        ws.set_column(kpi_col + 1, kpi_col + 1, 16)
        ws.freeze_panes(1, 0)
        return ws

    def create_buckets_sheet(
        self,
        summary: WaterfallSummary,
        scenario: ScenarioResult | None = None,
        sheet_name: str = "Buckets",
    ) -> Worksheet:
        df = buckets_frame(summary)
        if scenario is not None:
            adjusted = {b.key: b.amount for b in scenario.adjusted_buckets}
            df["Reduction"] = [scenario.reductions.get(k, 0.0) for k in df["Key"]]
            df["New Amount"] = [adjusted.get(k, a) for k, a in zip(df["Key"], df["Amount"])]
            df["Uplift"] = df["Amount"] - df["New Amount"]
        return self.write_frame_sheet(df, sheet_name)

    def create_outlier_sheets(self, summary: WaterfallSummary) -> None:
        customers = outliers_frame(summary.top_customers, "Customer")
        customers["Action"] = [customer_action(e) for e in summary.top_customers]
        self.write_frame_sheet(customers, "Top Customers")

        skus = outliers_frame(summary.top_skus, "SKU")
        skus["Action"] = [sku_action(e) for e in summary.top_skus]
        self.write_frame_sheet(skus, "Top SKUs")

    def create_diagnostics_sheet(
        self,
        validation: ValidationResult,
        sheet_name: str = "Diagnostics",
    ) -> Worksheet:
        """
        List fatal errors and row warnings.

        Args:
            validation: Normalization result.
            sheet_name: Name of the worksheet.

        Returns:
            The created worksheet.
        """
        ws = self._require_workbook().add_worksheet(sheet_name)

        ws.write(0, 0, "Rows", self.formats["header"])
        ws.write_number(0, 1, len(validation.rows), self.formats["integer"])
        ws.write(1, 0, "Corrections", self.formats["header"])
        ws.write_number(1, 1, validation.corrected_count, self.formats["integer"])

        row = 3
        ws.write(row, 0, "Severity", self.formats["header"])
        ws.write(row, 1, "Message", self.formats["header"])
        row += 1
        for message in validation.errors:
            ws.write(row, 0, "ERROR", self.formats["error"])
            ws.write(row, 1, message, self.formats["error"])
            row += 1
        for message in validation.warnings:
            ws.write(row, 0, "WARNING", self.formats["warning"])
            ws.write(row, 1, message, self.formats["warning"])
            row += 1

        ws.set_column(0, 0, 14)
        ws.set_column(1, 1, 100)
        return ws

    def create_configuration_log(
        self,
        config: dict[str, Any],
        sheet_name: str = "Configuration Log",
    ) -> Worksheet:
        """
        Create Configuration Log sheet showing settings used.

        Args:
            config: Configuration dictionary.
            sheet_name: Name of the worksheet.

        Returns:
            The created worksheet.
        """
        ws = self._require_workbook().add_worksheet(sheet_name)

        ws.write(0, 0, "Configuration Log", self.formats["header"])
        ws.write(0, 1, f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}", self.formats["default"])

        row = 2
        ws.write(row, 0, "Setting", self.formats["header"])
        ws.write(row, 1, "Value", self.formats["header"])

        row += 1
        for key, value in config.items():
            if isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    ws.write(row, 0, f"{key}.{sub_key}", self.formats["default"])
                    ws.write(row, 1, str(sub_value)[:200], self.formats["default"])
                    row += 1
            else:
                ws.write(row, 0, key, self.formats["default"])
                ws.write(row, 1, str(value), self.formats["default"])
                row += 1

        ws.set_column(0, 0, 40)
        ws.set_column(1, 1, 80)
        return ws

    def create_waterfall_workbook(
        self,
        summary: WaterfallSummary,
        validation: ValidationResult,
        header_map: HeaderMap | None = None,
        scenario: ScenarioResult | None = None,
        config: dict[str, Any] | None = None,
        label: str = "ALL",
        output_filename: str | None = None,
    ) -> Path:
        """
        Create a complete waterfall workbook with all sheets.

        Args:
            summary: Baseline waterfall.
            validation: Normalization result (diagnostics and canonical rows).
            header_map: Optional header resolution for the Header Mapping sheet.
            scenario: Optional scenario.
            config: Optional configuration for Config Log.
            label: Label used in the generated filename.
            output_filename: Custom output filename. If None, auto-generated.

        Returns:
            Path to the created workbook.
        """
        if output_filename is None:
            output_filename = self._generate_filename(label)

        output_path = self.output_path / output_filename

        self.workbook = xlsxwriter.Workbook(str(output_path))
        self._setup_formats()

        try:
            self.create_waterfall_sheet(summary, scenario)
            self.create_buckets_sheet(summary, scenario)
            self.create_outlier_sheets(summary)
            self.create_diagnostics_sheet(validation)
            self.write_frame_sheet(rows_to_frame(validation.rows), "Canonical Rows")

            if header_map is not None:
                report = HeaderResolver().generate_mapping_report(header_map)
                self.write_frame_sheet(report, "Header Mapping")

            if config is not None:
                self.create_configuration_log(config)

        finally:
            self.workbook.close()
            self.workbook = None

        logger.info(f"Report written to {output_path}")
        return output_path


@debug_watcher
def create_waterfall_workbook(
    summary: WaterfallSummary,
    validation: ValidationResult,
    header_map: HeaderMap | None = None,
    scenario: ScenarioResult | None = None,
    config: dict[str, Any] | None = None,
    output_path: Path | str | None = None,
    output_filename: str | None = None,
    label: str = "ALL",
) -> Path:
    """
    Convenience function to create a waterfall workbook.

    Args:
        summary: Baseline waterfall.
        validation: Normalization result.
        header_map: Optional header resolution.
        scenario: Optional scenario.
        config: Optional configuration for Config Log.
        output_path: Output directory.
        output_filename: Custom output filename.
        label: Label used in the generated filename.

    Returns:
        Path to the created workbook.
    """
    writer = WaterfallReportWriter(output_path)
    return writer.create_waterfall_workbook(
        summary,
        validation,
        header_map=header_map,
        scenario=scenario,
        config=config,
        label=label,
        output_filename=output_filename,
    )
