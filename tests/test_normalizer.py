import math
from datetime import date, datetime

import pytest

from profitsight.parser.field_resolver import FieldMapping
from profitsight.parser.normalizer import (
    normalize_date, normalize_amount, normalize_quantity, normalize_records,
)


@pytest.mark.parametrize("raw, expected", [
    ("2024/1/5", date(2024, 1, 5)),
    ("2024/01/20", date(2024, 1, 20)),
    ("2024-01-05", date(2024, 1, 5)),
    ("1/5/2024", date(2024, 1, 5)),
    ("12/31/2023", date(2023, 12, 31)),
    (datetime(2024, 1, 5, 13, 30), date(2024, 1, 5)),
    (date(2024, 2, 29), date(2024, 2, 29)),
])
def test_normalize_date_formats(raw, expected):
    assert normalize_date(raw) == expected


def test_normalize_date_spreadsheet_serial():
    assert normalize_date(45000) == date(2023, 3, 15)
    assert normalize_date("45000") == date(2023, 3, 15)
    assert normalize_date(45000.0) == date(2023, 3, 15)


@pytest.mark.parametrize("raw", [
    None, "", "   ", "unknown", "2024/13/40", float("nan"), True,
    "Jan", "May", "Mar 5", "0001-05-01",
])
def test_normalize_date_unreadable_is_none(raw):
    assert normalize_date(raw) is None


def test_normalize_date_never_raises():
    for raw in ["99999999999", "-5", "2024/02/30", "//", "¥", "0/0/0000", "1e309"]:
        result = normalize_date(raw)
        assert result is None or isinstance(result, date)


@pytest.mark.parametrize("raw, expected", [
    ("¥1,234.56", 1234.56),
    ("$50", 50.0),
    ("100.50", 100.5),
    ("-12.5", -12.5),
    ("USD 10", 10.0),
    ("1.2.3", 1.2),
    (42, 42.0),
    (3.25, 3.25),
])
def test_normalize_amount(raw, expected):
    assert normalize_amount(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", [None, "", "abc", "-", ".", float("nan"), float("inf")])
def test_normalize_amount_unreadable_is_zero(raw):
    val = normalize_amount(raw)
    assert val == 0.0
    assert math.isfinite(val)


@pytest.mark.parametrize("raw, expected", [
    ("3", 3), (2.0, 2), (5, 5), ("", 1), (None, 1), ("abc", 1), (0, 1), ("-2", 1), ("4 pcs", 4),
])
def test_normalize_quantity(raw, expected):
    assert normalize_quantity(raw) == expected


def test_normalize_records_collects_issues():
    mapping = FieldMapping(date_field="Date", amount_field="Amount", sku_field="SKU", quantity_field="Qty")
    rows = [
        {"Date": "2024/01/05", "Amount": "100.50", "SKU": "A1", "Qty": "2"},
        {"Date": "someday", "Amount": "n/a", "SKU": "", "Qty": ""},
        {"Date": "", "Amount": "", "SKU": 1001.0, "Qty": 3},
    ]
    records, issues = normalize_records(rows, mapping)

    assert len(records) == 3
    assert records[0].date == date(2024, 1, 5)
    assert records[0].amount == 100.5
    assert records[0].sku == "A1"
    assert records[0].quantity == 2
    assert records[0].row_number == 1

    assert records[1].date is None
    assert records[1].amount == 0.0
    assert records[1].quantity == 1

    # blank cells are not reported, integral float SKUs lose the ".0"
    assert records[2].sku == "1001"
    assert records[2].quantity == 3

    assert [(i.row_number, i.field, i.reason) for i in issues] == [
        (2, "Date", "unparseable date"),
        (2, "Amount", "unparseable amount"),
    ]


def test_normalize_records_without_optional_slots():
    mapping = FieldMapping(date_field="Date", amount_field="Amount")
    records, issues = normalize_records([{"Date": "2024-03-01", "Amount": 12, "SKU": "X"}], mapping)
    assert records[0].sku == ""
    assert records[0].quantity == 1
    assert records[0].raw["SKU"] == "X"
    assert issues == []


def test_yearless_date_is_reported():
    records, issues = normalize_records([{"d": "May", "a": "10"}], FieldMapping(date_field="d", amount_field="a"))
    assert records[0].date is None
    assert [(i.field, i.reason) for i in issues] == [("d", "unparseable date")]


def test_generic_parse_keeps_full_dates():
    assert normalize_date("2024-01-05T10:30:00") == date(2024, 1, 5)
    assert normalize_date("5 March 2024") == date(2024, 3, 5)
