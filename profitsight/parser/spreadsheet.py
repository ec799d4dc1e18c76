"""
Spreadsheet decoder for uploaded order / payout exports.
Reads the first sheet, uses row 0 as the header row and returns one dict per
data row.

Duplicate header names: the later column overwrites the earlier one in each
row dict (last wins). The duplicates are reported so the caller can warn.
"""

import logging
from dataclasses import dataclass, field
from io import BytesIO

import numpy as np
import pandas as pd

from profitsight.errors import FormatError

logger = logging.getLogger(__name__)

CSV_ENCODINGS = ["utf-8", "utf-8-sig", "latin1"]


@dataclass
class DecodedSheet:
    """Rows decoded from the first sheet of an uploaded file."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict] = field(default_factory=list)
    duplicate_headers: list[str] = field(default_factory=list)
    sheet_name: str = ""

    def __len__(self) -> int:
        return len(self.rows)


def _clean_cell(val):
    if val is None:
        return ""
    if isinstance(val, float) and np.isnan(val):
        return ""
    if val is pd.NaT:
        return ""
    if isinstance(val, str):
        return val.strip()
    return val


def _header_name(val, idx: int) -> str:
    cleaned = _clean_cell(val)
    if cleaned == "":
        return f"Unnamed: {idx}"
    if isinstance(cleaned, float) and cleaned.is_integer():
        cleaned = int(cleaned)
    return str(cleaned).strip()


def _read_frame(content: bytes, filename: str | None) -> tuple[pd.DataFrame, str]:
    name = (filename or "").lower()

    if name.endswith(".csv"):
        last_error = None
        for enc in CSV_ENCODINGS:
            try:
                df = pd.read_csv(BytesIO(content), encoding=enc, header=None, dtype=object,
                                 keep_default_na=False, skip_blank_lines=True)
                return df, "csv"
            except pd.errors.EmptyDataError:
                return pd.DataFrame(), "csv"
            except (UnicodeDecodeError, pd.errors.ParserError) as e:
                last_error = e
                continue
        raise FormatError(f"Could not read CSV file: {last_error}") from last_error

    # First sheet only
    try:
        with pd.ExcelFile(BytesIO(content), engine="openpyxl") as xls:
            sheet_name = xls.sheet_names[0]
            df = xls.parse(sheet_name, header=None, dtype=object)
    except Exception as e:
        raise FormatError(f"Could not read spreadsheet: {e}") from e
    return df, sheet_name


def decode_spreadsheet(content: bytes, filename: str | None = None) -> DecodedSheet:
    """
    Decode an uploaded spreadsheet buffer into header-keyed rows.

    Raises FormatError if the buffer is not a readable workbook (or CSV when
    the filename says so). A sheet with headers but no data rows decodes to
    an empty row list.
    """
    if not content:
        raise FormatError("Uploaded file is empty")

    df, sheet_name = _read_frame(content, filename)
    if df.empty:
        logger.info("Sheet %s has no rows", sheet_name)
        return DecodedSheet(sheet_name=sheet_name)

    raw_headers = df.iloc[0].tolist()
    headers = [_header_name(h, i) for i, h in enumerate(raw_headers)]

    seen = set()
    duplicates = []
    for h in headers:
        if h in seen and h not in duplicates:
            duplicates.append(h)
        seen.add(h)
    if duplicates:
        logger.warning("Duplicate column headers (last column wins): %s", ", ".join(duplicates))

    rows = []
    for values in df.iloc[1:].itertuples(index=False, name=None):
        cells = [_clean_cell(v) for v in values]
        if all(c == "" for c in cells):
            continue
        row = {}
        for header, cell in zip(headers, cells):
            row[header] = cell
        rows.append(row)

    unique_headers = list(dict.fromkeys(headers))
    logger.info("Decoded %d rows x %d columns from %s", len(rows), len(unique_headers), sheet_name)
    return DecodedSheet(
        headers=unique_headers,
        rows=rows,
        duplicate_headers=duplicates,
        sheet_name=sheet_name,
    )
