"""
Unit tests for the spreadsheet record loader.
"""

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

import pandas as pd
import pytest

from gtn_waterfall.analytics import filter_rows, list_periods
from gtn_waterfall.file_loader import frame_to_records, load_records, sniff_csv_delimiter
from gtn_waterfall.normalization import validate_and_normalize

SEMICOLON_CSV = (
    "Product Group Name;SKU Name;Customer Name (Sold-to);Fiscal Year/Period;Gross Sales;Channel Discounts;Net Sales\n"
    "Oncology;SKU-1;Apotheek A;03-2024;1.000,00;-100;\n"
    "Oncology;SKU-2;;Q2 2024;2.500,50;;\n"
)


def test_semicolon_csv(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text(SEMICOLON_CSV, encoding="utf-8")

    records = load_records(path)
    assert len(records) == 2
    assert records[0]["Gross Sales"] == "1.000,00"
    assert records[1]["Customer Name (Sold-to)"] == ""


def test_csv_records_normalize(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text(SEMICOLON_CSV, encoding="utf-8")

    result = validate_and_normalize(load_records(path))
    assert not result.errors
    first, second = result.rows
    assert first.gross == 1000
    assert first.d_channel == 100
    assert first.period == "2024-03"
    assert second.period == "2024-Q2"
    assert second.gross == 2500.5


def test_csv_serial_periods(tmp_path):
    path = tmp_path / "serials.csv"
    path.write_text(
        "Product Group Name,SKU Name,Customer Name (Sold-to),Fiscal Year/Period,Gross Sales\n"
        "Oncology,SKU-1,Apotheek A,45292,1000\n"
        "Oncology,SKU-2,Apotheek A,45366,2000\n",
        encoding="utf-8",
    )

    result = validate_and_normalize(load_records(path))
    assert not any("period" in w for w in result.warnings)
    assert list_periods(result.rows) == ["2024-01", "2024-03"]
    assert len(filter_rows(result.rows, periods=["2024-03"])) == 1


def test_latin1_csv(tmp_path):
    path = tmp_path / "export.csv"
    path.write_bytes("Klant,Bruto omzet\nCafé Zoë,12\n".encode("latin-1"))

    records = load_records(path)
    assert records[0]["Klant"] == "Café Zoë"


def test_sniff_delimiter(tmp_path):
    path = tmp_path / "tabs.csv"
    path.write_text("a\tb\tc\n1\t2\t3\n", encoding="utf-8")
    assert sniff_csv_delimiter(path, "utf-8") == "\t"


def test_excel_records(tmp_path):
    path = tmp_path / "export.xlsx"
    pd.DataFrame({
        "SKU": ["A", "B"],
        "Period": [pd.Timestamp("2024-05-01"), 202406],
        "Gross": [100.0, None],
    }).to_excel(path, index=False, engine="openpyxl")

    records = load_records(path)
    assert len(records) == 2
    assert records[1]["Gross"] is None
    assert records[0]["SKU"] == "A"


def test_json_records(tmp_path):
    path = tmp_path / "export.json"
    path.write_text(
        '[{"SKU Name": "ONC-10", "Gross Sales": 1200.5, "Period": "2024-01"},'
        ' {"SKU Name": "ONC-20", "Gross Sales": null, "Period": "Q2 2024"}]',
        encoding="utf-8",
    )

    records = load_records(path)
    assert [r["SKU Name"] for r in records] == ["ONC-10", "ONC-20"]
    assert records[0]["Gross Sales"] == 1200.5
    assert records[1]["Gross Sales"] is None


def test_frame_to_records_replaces_nan():
    df = pd.DataFrame({"a": [1.0, float("nan")], 3: ["x", None]})
    records = frame_to_records(df)
    assert records[1]["a"] is None
    assert records[0]["3"] == "x"


def test_unsupported_suffix(tmp_path):
    path = tmp_path / "export.txt"
    path.write_text("x", encoding="utf-8")
    with pytest.raises(ValueError):
        load_records(path)


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_records(tmp_path / "missing.csv")
