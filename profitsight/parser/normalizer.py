"""
Cell value coercion for uploaded rows.

normalize_date / normalize_amount are total: they never raise and return
None / 0.0 for values they cannot read. Every component coerces cells
through this module. normalize_records additionally records which non-blank
cells failed coercion so the degradation is visible in the summary.
"""

import re
import logging
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import numpy as np
import pandas as pd

from profitsight.parser.field_resolver import FieldMapping

logger = logging.getLogger(__name__)

# 1900 date system; serial 60 is the phantom 1900-02-29, serials > 1000 are past it
SPREADSHEET_EPOCH = date(1899, 12, 30)
SERIAL_MIN = 1000

_YMD_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_YMD_DASH = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_MDY_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DIGITS = re.compile(r"^\d+$")
_AMOUNT_STRIP = re.compile(r"[^\d.\-]")
_AMOUNT_PREFIX = re.compile(r"^-?(\d+\.?\d*|\.\d+)")
_INT_PREFIX = re.compile(r"^-?\d+")
_FOUR_DIGIT_YEAR = re.compile(r"\d{4}")


@dataclass
class NormalizedRecord:
    """One uploaded row with its date, amount, SKU and quantity coerced."""
    date: date | None
    amount: float
    sku: str = ""
    quantity: int = 1
    raw: dict = field(default_factory=dict)
    row_number: int = 0


@dataclass
class RowIssue:
    """A non-blank cell that could not be coerced (soft anomaly)."""
    row_number: int
    field: str
    raw_value: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "field": self.field,
            "raw_value": self.raw_value,
            "reason": self.reason,
        }


def _is_blank(val) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and np.isnan(val):
        return True
    return isinstance(val, str) and not val.strip()


def _make_date(year, month, day) -> date | None:
    try:
        result = date(int(year), int(month), int(day))
    except (ValueError, OverflowError):
        return None
    return result if result >= SPREADSHEET_EPOCH else None


def _from_serial(serial: int) -> date | None:
    try:
        return SPREADSHEET_EPOCH + timedelta(days=serial)
    except OverflowError:
        return None


def _generic_parse(text: str) -> date | None:
    # Without a year the parser fills one in (year 1 or the current year)
    if not _FOUR_DIGIT_YEAR.search(text):
        return None
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    result = parsed.date()
    if result < SPREADSHEET_EPOCH:
        return None
    return result


def normalize_date(raw) -> date | None:
    """
    Coerce a cell to a calendar date.
    Order: YYYY/M/D, YYYY-M-D, M/D/YYYY, spreadsheet serial, generic parse.
    """
    if _is_blank(raw) or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return None if pd.isna(raw) else raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, np.integer)):
        text = str(int(raw))
    elif isinstance(raw, (float, np.floating)):
        if not np.isfinite(raw):
            return None
        text = str(int(raw)) if float(raw).is_integer() else str(raw)
    else:
        text = str(raw).strip()

    for pattern, order in ((_YMD_SLASH, "ymd"), (_YMD_DASH, "ymd"), (_MDY_SLASH, "mdy")):
        m = pattern.match(text)
        if m:
            a, b, c = m.groups()
            result = _make_date(a, b, c) if order == "ymd" else _make_date(c, a, b)
            if result is not None:
                return result

    if _DIGITS.match(text):
        serial = int(text)
        if serial > SERIAL_MIN:
            return _from_serial(serial)

    return _generic_parse(text)


def _parse_amount(raw) -> float | None:
    if _is_blank(raw) or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, np.integer, np.floating)):
        val = float(raw)
        return val if np.isfinite(val) else None
    if not isinstance(raw, str):
        return None
    cleaned = _AMOUNT_STRIP.sub("", raw)
    m = _AMOUNT_PREFIX.match(cleaned)
    if not m:
        return None
    val = float(m.group(0))
    return val if np.isfinite(val) else None


def normalize_amount(raw) -> float:
    """
    Coerce a cell to a float amount. Strings keep only digits, '.' and '-';
    the leading numeric part is parsed ("¥1,234.56" → 1234.56). Unreadable → 0.0.
    """
    val = _parse_amount(raw)
    return 0.0 if val is None else val


def normalize_quantity(raw) -> int:
    """Integer quantity; blank, unreadable or non-positive values count as 1."""
    if _is_blank(raw) or isinstance(raw, bool):
        return 1
    if isinstance(raw, (int, np.integer)):
        qty = int(raw)
    elif isinstance(raw, (float, np.floating)):
        if not np.isfinite(raw):
            return 1
        qty = int(raw)
    else:
        m = _INT_PREFIX.match(str(raw).strip())
        if not m:
            return 1
        qty = int(m.group(0))
    return qty if qty > 0 else 1


def _cell_text(val) -> str:
    if isinstance(val, datetime):
        return val.isoformat()
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val)


def normalize_records(rows: list[dict], mapping: FieldMapping) -> tuple[list[NormalizedRecord], list[RowIssue]]:
    """
    Build NormalizedRecords for every decoded row using a validated mapping.
    Returns (records, issues); issues list cells that were present but unreadable.
    """
    records = []
    issues = []

    for idx, row in enumerate(rows, start=1):
        raw_date = row.get(mapping.date_field, "")
        raw_amount = row.get(mapping.amount_field, "")

        record_date = normalize_date(raw_date)
        if record_date is None and not _is_blank(raw_date):
            issues.append(RowIssue(idx, mapping.date_field, _cell_text(raw_date), "unparseable date"))

        amount = _parse_amount(raw_amount)
        if amount is None:
            if not _is_blank(raw_amount):
                issues.append(RowIssue(idx, mapping.amount_field, _cell_text(raw_amount), "unparseable amount"))
            amount = 0.0

        sku = ""
        if mapping.sku_field:
            raw_sku = row.get(mapping.sku_field, "")
            sku = "" if _is_blank(raw_sku) else _cell_text(raw_sku).strip()

        quantity = 1
        if mapping.quantity_field:
            quantity = normalize_quantity(row.get(mapping.quantity_field, ""))

        records.append(NormalizedRecord(
            date=record_date,
            amount=amount,
            sku=sku,
            quantity=quantity,
            raw=row,
            row_number=idx,
        ))

    if issues:
        logger.warning("%d cell(s) could not be normalised", len(issues))
    return records, issues
