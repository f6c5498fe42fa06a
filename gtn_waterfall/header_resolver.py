"""
Header Resolver Module - Canonical Field Mapping

Maps the column headers of an uploaded gross-to-net sheet onto canonical field
identifiers using ordered alias lists. Matching ignores case, whitespace and
punctuation; the first alias present in the sheet wins.

Example headers:
- "Sum of Gross Sales"        -> gross
- "Customer Name (Sold-to)"   -> customer
- "Prompt Payment Rebates"    -> r_prompt
- "Bruto omzet"               -> gross
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pandas as pd

from gtn_waterfall.config import EXTRA_HEADER_ALIASES

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

_NON_ALNUM = re.compile(r"[^a-z0-9]")

GROUP_IDENTITY = "identity"
GROUP_CORE = "core"
GROUP_DISCOUNT = "discount"
GROUP_REBATE = "rebate"
GROUP_INCOME = "income"


def canonicalize_header(text: str) -> str:
    """Lower-case and drop every non-alphanumeric character."""
    return _NON_ALNUM.sub("", str(text).lower())


@dataclass(frozen=True)
class FieldSpec:
    """Canonical field with its accepted header aliases (in priority order)."""

    id: str
    label: str
    group: str
    aliases: tuple[str, ...]
    required: bool = False

    @property
    def is_numeric(self) -> bool:
        return self.group != GROUP_IDENTITY


# Identity (string) fields, all required
STRING_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("product_group", "Product Group Name", GROUP_IDENTITY,
              ("Product Group Name", "Product Group", "PG", "Groep", "Productgroep"), required=True),
    FieldSpec("sku", "SKU Name", GROUP_IDENTITY,
              ("SKU Name", "SKU", "Material", "Product", "Artikel", "Productnaam"), required=True),
    FieldSpec("customer", "Customer Name (Sold-to)", GROUP_IDENTITY,
              ("Customer Name (Sold-to)", "Customer", "Sold-to", "Klant", "Klantnaam", "Debiteur"), required=True),
    FieldSpec("period", "Fiscal Year / Period", GROUP_IDENTITY,
              ("Fiscal Year/Period", "Fiscal Period", "FY Period", "Period", "Maand",
               "YYYY-MM", "MM-YYYY", "YYYYQ", "QYYYY"), required=True),
)

# Numeric fields; only gross is required, invoiced/net are derived when absent
NUMERIC_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("gross", "Gross Sales", GROUP_CORE,
              ("Gross Sales", "Gross", "Gross Revenue", "Bruto omzet", "Sum of Gross Sales"), required=True),

    FieldSpec("d_channel", "Channel Discounts", GROUP_DISCOUNT,
              ("Channel Discounts", "Channel Discount", "Channel", "Korting kanaal", "Sum of Channel Discounts")),
    FieldSpec("d_customer", "Customer Discounts", GROUP_DISCOUNT,
              ("Customer Discounts", "Customer Discount", "Customer", "Korting klant", "Sum of Customer Discounts")),
    FieldSpec("d_product", "Product Discounts", GROUP_DISCOUNT,
              ("Product Discounts", "Product Discount", "Product", "Korting product", "Sum of Product Discounts")),
    FieldSpec("d_volume", "Volume Discounts", GROUP_DISCOUNT,
              ("Volume Discounts", "Volume Discount", "Volume", "Korting volume", "Sum of Volume Discounts")),
    FieldSpec("d_value", "Value Discounts", GROUP_DISCOUNT,
              ("Value Discounts", "Value Discount", "Value", "Korting waarde", "Sum of Value Discounts")),
    FieldSpec("d_other_sales", "Other Sales Discounts", GROUP_DISCOUNT,
              ("Other Sales Discounts", "Other Sales Discount", "Other Discounts", "Overige kortingen",
               "Sum of Other Sales Discounts")),
    FieldSpec("d_mandatory", "Mandatory Discounts", GROUP_DISCOUNT,
              ("Mandatory Discounts", "Mandatory Discount", "Verplichte korting", "Sum of Mandatory Discounts")),
    FieldSpec("d_local", "Discount Local", GROUP_DISCOUNT,
              ("Discount Local", "Loc Discount", "Local korting", "Sum of Discount Local")),

    FieldSpec("invoiced", "Invoiced Sales", GROUP_CORE,
              ("Invoiced Sales", "Invoiced", "Factuuromzet", "Sum of Invoiced Sales")),

    FieldSpec("r_direct", "Direct Rebates", GROUP_REBATE,
              ("Direct Rebates", "Direct Rebate", "Direct", "Sum of Direct Rebates")),
    FieldSpec("r_prompt", "Prompt Payment Rebates", GROUP_REBATE,
              ("Prompt Payment Rebates", "Prompt Payment", "Prompt", "Betalingskorting",
               "Sum of Prompt Payment Rebates")),
    FieldSpec("r_indirect", "Indirect Rebates", GROUP_REBATE,
              ("Indirect Rebates", "Indirect Rebate", "Indirect", "Sum of Indirect Rebates")),
    FieldSpec("r_mandatory", "Mandatory Rebates", GROUP_REBATE,
              ("Mandatory Rebates", "Mandatory Rebate", "Verplichte rebate", "Sum of Mandatory Rebates")),
    FieldSpec("r_local", "Rebate Local", GROUP_REBATE,
              ("Rebate Local", "Local Rebate", "Lokale rebate", "Sum of Rebate Local")),

    FieldSpec("inc_royalty", "Royalty Income", GROUP_INCOME,
              ("Royalty Income", "Royalty", "Sum of Royalty Income")),
    FieldSpec("inc_other", "Other Income", GROUP_INCOME,
              ("Other Income", "Overige inkomsten", "Sum of Other Income")),

    FieldSpec("net", "Net Sales", GROUP_CORE,
              ("Net Sales", "Net", "Netto omzet", "Sum of Net Sales")),
)

ALL_FIELDS: tuple[FieldSpec, ...] = STRING_FIELDS + NUMERIC_FIELDS
FIELDS_BY_ID: dict[str, FieldSpec] = {f.id: f for f in ALL_FIELDS}

DISCOUNT_FIELD_IDS = tuple(f.id for f in NUMERIC_FIELDS if f.group == GROUP_DISCOUNT)
REBATE_FIELD_IDS = tuple(f.id for f in NUMERIC_FIELDS if f.group == GROUP_REBATE)
INCOME_FIELD_IDS = tuple(f.id for f in NUMERIC_FIELDS if f.group == GROUP_INCOME)


@dataclass
class HeaderMap:
    """Result of resolving one sheet's headers."""

    headers: list[str]
    string_fields: dict[str, str] = field(default_factory=dict)  # field id -> actual header
    numeric_fields: dict[str, str] = field(default_factory=dict)  # field id -> actual header
    missing_required: list[FieldSpec] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_required

    @property
    def unmapped_headers(self) -> list[str]:
        used = set(self.string_fields.values()) | set(self.numeric_fields.values())
        return [h for h in self.headers if h not in used]

    def header_for(self, field_id: str) -> str | None:
        return self.string_fields.get(field_id) or self.numeric_fields.get(field_id)

    def missing_labels(self, *, numeric: bool | None = None) -> list[str]:
        """Human-readable names of the unresolved mandatory fields."""
        return [
            f.label for f in self.missing_required
            if numeric is None or f.is_numeric == numeric
        ]


class HeaderResolver:
    """
    Resolves arbitrary spreadsheet headers to canonical field identifiers.

    Plain table lookup: no fuzzy matching and no ambiguity handling beyond
    alias order.
    """

    def __init__(self, extra_aliases: Mapping[str, Iterable[str]] | None = None):
        """
        Initialize the HeaderResolver.

        Args:
            extra_aliases: Optional field id -> aliases mapping, tried before the
                           built-in aliases. Defaults to config/header_aliases.json.
        """
        extra = EXTRA_HEADER_ALIASES if extra_aliases is None else extra_aliases
        self._aliases: dict[str, list[str]] = {}
        for field_def in ALL_FIELDS:
            ordered = [canonicalize_header(a) for a in extra.get(field_def.id, [])]
            ordered += [canonicalize_header(a) for a in field_def.aliases]
            # Keep first occurrence only
            self._aliases[field_def.id] = list(dict.fromkeys(a for a in ordered if a))

    def aliases_for(self, field_id: str) -> list[str]:
        return list(self._aliases[field_id])

    def resolve(self, headers: Iterable[str]) -> HeaderMap:
        """
        Resolve a sheet's header row.

        Args:
            headers: Column names as they appear in the sheet.

        Returns:
            HeaderMap with the matched headers and the missing mandatory fields.
        """
        header_list = [str(h) for h in headers]
        canon_to_actual: dict[str, str] = {}
        for header in header_list:
            canon_to_actual.setdefault(canonicalize_header(header), header)

        result = HeaderMap(headers=header_list)
        claimed: set[str] = set()

        for field_def in STRING_FIELDS:
            actual = self._first_match(field_def, canon_to_actual, claimed)
            if actual is not None:
                result.string_fields[field_def.id] = actual
                claimed.add(actual)

        # A column already used for names is never read as an amount
        for field_def in NUMERIC_FIELDS:
            actual = self._first_match(field_def, canon_to_actual, claimed)
            if actual is not None:
                result.numeric_fields[field_def.id] = actual

        result.missing_required = [
            field_def for field_def in ALL_FIELDS
            if field_def.required and result.header_for(field_def.id) is None
        ]
        return result

    def _first_match(
        self,
        field_def: FieldSpec,
        canon_to_actual: dict[str, str],
        claimed: set[str],
    ) -> str | None:
        for alias in self._aliases[field_def.id]:
            actual = canon_to_actual.get(alias)
            if actual is not None and actual not in claimed:
                return actual
        return None

    def generate_mapping_report(self, header_map: HeaderMap) -> pd.DataFrame:
        """
        Generate an audit table of the header mapping.

        Args:
            header_map: Result of resolve().

        Returns:
            DataFrame with one row per canonical field.
        """
        data = []
        for field_def in ALL_FIELDS:
            actual = header_map.header_for(field_def.id)
            if actual is not None:
                status = "OK"
            elif field_def.required:
                status = "MISSING"
            else:
                status = "ABSENT"
            data.append({
                "Field": field_def.id,
                "Label": field_def.label,
                "Group": field_def.group,
                "Required": field_def.required,
                "Matched_Header": actual or "",
                "Status": status,
            })
        return pd.DataFrame(data)

    def get_resolution_statistics(self, header_map: HeaderMap) -> dict:
        """
        Calculate mapping statistics.

        Args:
            header_map: Result of resolve().

        Returns:
            Dictionary with statistics.
        """
        total_fields = len(ALL_FIELDS)
        matched = len(header_map.string_fields) + len(header_map.numeric_fields)
        return {
            "total_headers": len(header_map.headers),
            "total_fields": total_fields,
            "matched_fields": matched,
            "match_rate": (matched / total_fields) * 100,
            "missing_required": [f.id for f in header_map.missing_required],
            "unmapped_headers": header_map.unmapped_headers,
        }


if __name__ == "__main__":
    test_headers = [
        "Product Group Name",
        "SKU Name",
        "Customer Name (Sold-to)",
        "Fiscal year/period",
        "Sum of Gross Sales",
        "Channel Discounts",
        "Prompt Payment Rebates",
        "Comments",
    ]

    resolver = HeaderResolver()
    mapping = resolver.resolve(test_headers)

    print("=" * 80)
    print("Header Resolver Test Results")
    print("=" * 80)
    print(resolver.generate_mapping_report(mapping).to_string(index=False))

    stats = resolver.get_resolution_statistics(mapping)
    print(f"\nMatched: {stats['matched_fields']}/{stats['total_fields']}")
    print(f"Missing required: {stats['missing_required']}")
    print(f"Unmapped headers: {stats['unmapped_headers']}")
