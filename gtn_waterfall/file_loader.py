"""
File loader utilities: spreadsheet exports to string-keyed records.

Supports CSV/XLSX/XLSM/XLS/JSON with delimiter sniffing, encoding fallbacks and
sheet selection. CSV cells stay text (blank -> ""); Excel cells keep their
native type (blank -> None) so dates and serials reach the period parser intact.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

import pandas as pd

from gtn_waterfall.logger import debug_watcher, get_logger

logger = get_logger(__name__)

ALLOWED_SUFFIXES = (".csv", ".xlsx", ".xls", ".xlsm", ".json")
CSV_ENCODINGS = ["utf-8-sig", "latin-1", "cp1252"]
CSV_DELIMITERS = [",", ";", "\t", "|"]


def _read_sample(path: Path, encoding: str, sample_size: int = 8192) -> str | None:
    try:
        with path.open("r", encoding=encoding, errors="replace") as handle:
            return handle.read(sample_size)
    except OSError as exc:
        logger.debug(f"Failed to read sample for {path} ({encoding}): {exc}")
        return None


def sniff_csv_delimiter(path: Path, encoding: str) -> str | None:
    sample = _read_sample(path, encoding)
    if not sample:
        return None
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters="".join(CSV_DELIMITERS))
        return dialect.delimiter
    except csv.Error:
        return None


def load_csv(
    path: Path,
    *,
    delimiter: str | None = None,
    encoding: str | None = None,
) -> pd.DataFrame:
    encodings_to_try = [encoding] if encoding else CSV_ENCODINGS
    last_error: Exception | None = None
    for candidate in encodings_to_try:
        try:
            sep = delimiter or sniff_csv_delimiter(path, candidate) or ","
            # Text cells only: the value parser decides what is a number
            return pd.read_csv(path, encoding=candidate, sep=sep, dtype=str, keep_default_na=False)
        except (UnicodeDecodeError, pd.errors.ParserError) as exc:
            logger.debug(f"CSV read failed for {path} ({candidate}): {exc}")
            last_error = exc
            continue
    raise ValueError(f"Failed to load CSV: {path}") from last_error


def load_excel(path: Path, *, sheet_name: str | int = 0) -> pd.DataFrame:
    suffix = path.suffix.lower()
    engine = "openpyxl" if suffix in (".xlsx", ".xlsm") else None
    return pd.read_excel(path, engine=engine, sheet_name=sheet_name)


def load_json(path: Path) -> pd.DataFrame:
    errors: list[Exception] = []
    for lines in (False, True):
        try:
            return pd.DataFrame(pd.read_json(path, lines=lines, orient="records", dtype=False))
        except ValueError as exc:
            errors.append(exc)
            continue
    raise ValueError(f"Failed to load JSON: {path}") from errors[-1]


def load_file(
    path: Path | str,
    *,
    delimiter: str | None = None,
    sheet_name: str | int = 0,
    encoding: str | None = None,
) -> pd.DataFrame:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        return load_csv(file_path, delimiter=delimiter, encoding=encoding)
    if suffix in (".xlsx", ".xls", ".xlsm"):
        return load_excel(file_path, sheet_name=sheet_name)
    if suffix == ".json":
        return load_json(file_path)

    raise ValueError(f"Unsupported file format: {suffix}")


def frame_to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """DataFrame rows as dicts keyed by str headers; missing cells become None."""
    cleaned = df.rename(columns=str).astype(object)
    cleaned = cleaned.where(cleaned.notna(), None)
    return cleaned.to_dict(orient="records")


@debug_watcher
def load_records(
    path: Path | str,
    sheet_name: str | int = 0,
    delimiter: str | None = None,
    encoding: str | None = None,
) -> list[dict[str, Any]]:
    """
    Decode a spreadsheet export into a list of records.

    Args:
        path: .csv, .xlsx, .xlsm, .xls or .json file.
        sheet_name: Excel sheet (name or index), first sheet by default.
        delimiter: CSV delimiter; sniffed when omitted.
        encoding: CSV encoding; common encodings are tried when omitted.

    Returns:
        One dict per data row, keyed by the header row.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the suffix is unsupported or the file cannot be decoded.
    """
    df = load_file(path, delimiter=delimiter, sheet_name=sheet_name, encoding=encoding)
    records = frame_to_records(df)
    logger.info(f"Loaded {len(records)} rows x {len(df.columns)} columns from {Path(path).name}")
    return records
