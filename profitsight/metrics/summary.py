"""
Reduction of reconciled rows into the ProfitSummary handed to display,
export and persistence.
"""

from dataclasses import dataclass, field

from profitsight.metrics.range_filter import DateRange
from profitsight.metrics.reconciler import (
    Reconciliation, ReconciledRow, CostAllocation, profit_margin,
)
from profitsight.parser.normalizer import RowIssue

MISSING_COST_SAMPLE_LIMIT = 20


@dataclass
class CostBreakdown:
    product_cost: float = 0.0
    fixed_cost: float = 0.0
    payroll_cost: float = 0.0

    @property
    def total(self) -> float:
        return self.product_cost + self.fixed_cost + self.payroll_cost

    @property
    def other_costs(self) -> float:
        return self.fixed_cost + self.payroll_cost

    def to_dict(self) -> dict:
        return {
            "product_cost": self.product_cost,
            "fixed_cost": self.fixed_cost,
            "payroll_cost": self.payroll_cost,
            "other_costs": self.other_costs,
            "total_cost": self.total,
        }


@dataclass
class MissingCostItem:
    """Aggregated missing-cost entry for one SKU."""
    sku: str
    quantity: int
    rows: int


@dataclass
class ProfitSummary:
    """Terminal artefact of a reconciliation run."""
    date_range: DateRange
    day_count: int
    row_count: int
    total_revenue: float
    cost_breakdown: CostBreakdown
    total_profit: float
    profit_margin: float
    rows: list[ReconciledRow] = field(default_factory=list)
    fixed_allocations: list[CostAllocation] = field(default_factory=list)
    payroll_allocations: list[CostAllocation] = field(default_factory=list)
    missing_cost_count: int = 0
    missing_cost_skus: int = 0
    missing_cost_items: list[MissingCostItem] = field(default_factory=list)
    row_issues: list[RowIssue] = field(default_factory=list)
    dropped_undated: int = 0

    @property
    def total_cost(self) -> float:
        return self.cost_breakdown.total

    @property
    def has_warnings(self) -> bool:
        return bool(self.missing_cost_count or self.row_issues or self.dropped_undated)

    def to_dict(self, include_rows: bool = True) -> dict:
        data = {
            "date_range": self.date_range.to_dict(),
            "day_count": self.day_count,
            "row_count": self.row_count,
            "total_revenue": self.total_revenue,
            "cost_breakdown": self.cost_breakdown.to_dict(),
            "total_cost": self.total_cost,
            "total_profit": self.total_profit,
            "profit_margin": self.profit_margin,
            "missing_cost_count": self.missing_cost_count,
            "missing_cost_skus": self.missing_cost_skus,
            "missing_cost_items": [
                {"sku": m.sku, "quantity": m.quantity, "rows": m.rows} for m in self.missing_cost_items
            ],
            "row_issues": [i.to_dict() for i in self.row_issues],
            "dropped_undated": self.dropped_undated,
            "fixed_allocations": [a.to_dict() for a in self.fixed_allocations],
            "payroll_allocations": [a.to_dict() for a in self.payroll_allocations],
        }
        if include_rows:
            data["rows"] = [r.to_dict() for r in self.rows]
        return data


def _missing_items(reconciliation: Reconciliation) -> list[MissingCostItem]:
    by_sku: dict[str, MissingCostItem] = {}
    for m in reconciliation.missing_costs:
        item = by_sku.get(m.sku)
        if item is None:
            by_sku[m.sku] = MissingCostItem(m.sku, m.quantity, 1)
        else:
            item.quantity += m.quantity
            item.rows += 1
    return list(by_sku.values())


def summarize(reconciliation: Reconciliation, date_range: DateRange,
              row_issues: list[RowIssue] | None = None, dropped_undated: int = 0) -> ProfitSummary:
    """
    Reduce reconciled rows to totals. Pure: the same inputs always give an
    equal summary.
    """
    rows = reconciliation.rows
    breakdown = CostBreakdown(
        product_cost=sum(r.product_cost for r in rows),
        fixed_cost=sum(r.allocated_fixed_cost for r in rows),
        payroll_cost=sum(r.allocated_payroll_cost for r in rows),
    )
    total_revenue = sum(r.amount for r in rows)
    total_profit = sum(r.profit for r in rows)

    missing = _missing_items(reconciliation)

    return ProfitSummary(
        date_range=date_range,
        day_count=reconciliation.day_count,
        row_count=len(rows),
        total_revenue=total_revenue,
        cost_breakdown=breakdown,
        total_profit=total_profit,
        profit_margin=profit_margin(total_profit, total_revenue),
        rows=list(rows),
        fixed_allocations=list(reconciliation.fixed_allocations),
        payroll_allocations=list(reconciliation.payroll_allocations),
        missing_cost_count=sum(m.quantity for m in missing),
        missing_cost_skus=len(missing),
        missing_cost_items=missing[:MISSING_COST_SAMPLE_LIMIT],
        row_issues=list(row_issues or []),
        dropped_undated=dropped_undated,
    )
