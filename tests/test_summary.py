from datetime import date

import pytest

from profitsight.ledgers.models import LedgerSnapshot, InventoryCost
from profitsight.metrics.range_filter import DateRange
from profitsight.metrics.reconciler import reconcile_records
from profitsight.metrics.summary import MISSING_COST_SAMPLE_LIMIT, summarize
from profitsight.parser.normalizer import RowIssue

from conftest import record

WINDOW = DateRange(date(2024, 1, 1), date(2024, 1, 10))


def test_totals(ledgers):
    records = [record(date(2024, 1, 2), 100.0, "A1", 2), record(date(2024, 1, 5), 50.0, "B2", 1)]
    summary = summarize(reconcile_records(records, ledgers, WINDOW.day_count), WINDOW)

    assert summary.row_count == 2
    assert summary.day_count == 10
    assert summary.total_revenue == pytest.approx(150.0)
    assert summary.cost_breakdown.product_cost == pytest.approx(24.0)
    assert summary.cost_breakdown.fixed_cost == pytest.approx(100.0)
    assert summary.cost_breakdown.payroll_cost == pytest.approx(100.0)
    assert summary.total_cost == pytest.approx(224.0)
    assert summary.total_profit == pytest.approx(-74.0)
    assert summary.profit_margin == pytest.approx(-74.0 / 150.0 * 100)
    assert not summary.has_warnings


def test_missing_cost_count_is_total_quantity(ledgers):
    records = [
        record(date(2024, 1, 2), 10.0, "X", 2),
        record(date(2024, 1, 3), 10.0, "X", 3),
        record(date(2024, 1, 4), 10.0, "Y", 1),
        record(date(2024, 1, 4), 10.0, "A1", 9),
    ]
    summary = summarize(reconcile_records(records, ledgers, WINDOW.day_count), WINDOW)

    assert summary.missing_cost_count == 6
    assert summary.missing_cost_skus == 2
    assert [(m.sku, m.quantity, m.rows) for m in summary.missing_cost_items] == [("X", 5, 2), ("Y", 1, 1)]
    assert summary.has_warnings


def test_missing_cost_sample_is_capped():
    records = [record(date(2024, 1, 2), 1.0, f"SKU{i}") for i in range(MISSING_COST_SAMPLE_LIMIT + 5)]
    summary = summarize(reconcile_records(records, LedgerSnapshot(), 10), WINDOW)
    assert summary.missing_cost_skus == MISSING_COST_SAMPLE_LIMIT + 5
    assert len(summary.missing_cost_items) == MISSING_COST_SAMPLE_LIMIT


def test_zero_revenue_margin():
    summary = summarize(reconcile_records([], LedgerSnapshot(), 10), WINDOW)
    assert summary.total_revenue == 0
    assert summary.profit_margin == 0.0
    assert summary.row_count == 0


def test_summarize_is_idempotent(ledgers):
    records = [record(date(2024, 1, 2), 100.0, "A1", 2), record(date(2024, 1, 5), 50.0, "ZZ", 1)]
    reconciliation = reconcile_records(records, ledgers, WINDOW.day_count)
    issues = [RowIssue(3, "Amount", "n/a", "unparseable amount")]

    first = summarize(reconciliation, WINDOW, row_issues=issues, dropped_undated=1)
    second = summarize(reconciliation, WINDOW, row_issues=issues, dropped_undated=1)
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_to_dict_without_rows():
    summary = summarize(
        reconcile_records([record(date(2024, 1, 2), 5.0, "A1")],
                          LedgerSnapshot(inventory=[InventoryCost("A1", 1.0)]), 10),
        WINDOW,
    )
    data = summary.to_dict(include_rows=False)
    assert "rows" not in data
    assert data["date_range"] == {"start": "2024-01-01", "end": "2024-01-10"}
    assert data["cost_breakdown"]["product_cost"] == 1.0
    assert "rows" in summary.to_dict()
