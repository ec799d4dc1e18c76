import io
from datetime import date

import pytest
from openpyxl import Workbook

from profitsight.ledgers.models import LedgerSnapshot, InventoryCost, FixedCost, PayrollCost
from profitsight.parser.normalizer import NormalizedRecord


def xlsx_bytes(rows, title="Orders"):
    """Build an in-memory .xlsx whose first sheet holds `rows` (first row = headers)."""
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def record(d, amount, sku="", quantity=1, row_number=0):
    return NormalizedRecord(date=d, amount=amount, sku=sku, quantity=quantity, row_number=row_number)


@pytest.fixture
def ledgers():
    return LedgerSnapshot(
        inventory=[
            InventoryCost("A1", 10.0, "Mug"),
            InventoryCost("B2", 4.0, "Coaster"),
        ],
        fixed_costs=[FixedCost("Rent", 300.0, "monthly")],
        payroll=[PayrollCost("Jane", 70.0, "weekly", "warehouse")],
    )


@pytest.fixture
def january_records():
    return [
        record(date(2024, 1, 2), 100.0, "A1", 2, 1),
        record(date(2024, 1, 5), 50.0, "B2", 1, 2),
        record(date(2024, 1, 20), 80.0, "A1", 1, 3),
        record(None, 30.0, "A1", 1, 4),
    ]
