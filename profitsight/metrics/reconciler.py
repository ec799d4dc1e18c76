"""
Cost reconciliation of filtered revenue rows against the cost ledgers.

Per row:
  product_cost     = unit_cost(sku) × quantity          (0 when the SKU has no cost entry)
  allocated fixed  = Σ fixed allocations over window / row_count
  allocated payroll= Σ payroll allocations over window / row_count
  profit           = amount − (product + fixed + payroll)
  profit_margin    = profit / amount × 100               (0 when amount is 0)

Period amounts are turned into a daily rate (monthly ÷ 30, half-monthly ÷ 15,
weekly ÷ 7, daily as-is) and multiplied by the window's day count; one-time
amounts are allocated in full. The 30-day month is a fixed convention.
"""

import logging
from dataclasses import dataclass, field

from profitsight.ledgers.models import (
    LedgerSnapshot, PERIOD_DAYS, PERIOD_ONE_TIME, normalize_period,
)
from profitsight.parser.normalizer import NormalizedRecord

logger = logging.getLogger(__name__)


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ReconciledRow:
    """A filtered record with its cost allocation and profit."""
    record: NormalizedRecord
    unit_cost: float | None
    product_cost: float
    allocated_fixed_cost: float
    allocated_payroll_cost: float
    total_cost: float
    profit: float
    profit_margin: float

    @property
    def has_cost(self) -> bool:
        return self.unit_cost is not None

    @property
    def amount(self) -> float:
        return self.record.amount

    def to_dict(self) -> dict:
        rec = self.record
        return {
            "row_number": rec.row_number,
            "date": rec.date.isoformat() if rec.date else None,
            "sku": rec.sku,
            "quantity": rec.quantity,
            "amount": rec.amount,
            "unit_cost": self.unit_cost,
            "product_cost": self.product_cost,
            "allocated_fixed_cost": self.allocated_fixed_cost,
            "allocated_payroll_cost": self.allocated_payroll_cost,
            "total_cost": self.total_cost,
            "profit": self.profit,
            "profit_margin": self.profit_margin,
            "has_cost": self.has_cost,
        }


@dataclass
class CostAllocation:
    """One ledger entry's share of the window."""
    name: str
    category: str           # 'fixed' or 'payroll'
    period: str
    amount: float
    daily_rate: float | None
    days_covered: int
    allocated: float
    department: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "category": self.category,
            "department": self.department,
            "period": self.period,
            "amount": self.amount,
            "daily_rate": self.daily_rate,
            "days_covered": self.days_covered,
            "allocated": self.allocated,
        }


@dataclass
class MissingCost:
    """A filtered row whose SKU has no inventory cost entry."""
    sku: str
    quantity: int
    row_number: int = 0


@dataclass
class Reconciliation:
    rows: list[ReconciledRow] = field(default_factory=list)
    day_count: int = 0
    fixed_allocations: list[CostAllocation] = field(default_factory=list)
    payroll_allocations: list[CostAllocation] = field(default_factory=list)
    missing_costs: list[MissingCost] = field(default_factory=list)

    @property
    def total_allocated_fixed(self) -> float:
        return sum(a.allocated for a in self.fixed_allocations)

    @property
    def total_allocated_payroll(self) -> float:
        return sum(a.allocated for a in self.payroll_allocations)


# ── Helper functions ──────────────────────────────────────────────────────────

def daily_rate(amount: float, period: str) -> float | None:
    """Daily rate for a period amount; None for one-time amounts."""
    days = PERIOD_DAYS.get(normalize_period(period))
    if days is None:
        return None
    return amount / days


def allocate_over_window(amount: float, period: str, day_count: int) -> float:
    """Share of a period amount falling inside a window of day_count days."""
    rate = daily_rate(amount, period)
    if rate is None:
        return amount
    return rate * day_count


def profit_margin(profit: float, revenue: float) -> float:
    if revenue == 0:
        return 0.0
    return profit / revenue * 100


def _allocations(ledgers: LedgerSnapshot, day_count: int) -> tuple[list[CostAllocation], list[CostAllocation]]:
    fixed = []
    for cost in ledgers.active_fixed_costs():
        period = normalize_period(cost.period)
        fixed.append(CostAllocation(
            name=cost.name,
            category="fixed",
            period=period,
            amount=cost.amount,
            daily_rate=daily_rate(cost.amount, period),
            days_covered=day_count if period != PERIOD_ONE_TIME else 0,
            allocated=allocate_over_window(cost.amount, period, day_count),
        ))

    payroll = []
    for pay in ledgers.payroll:
        period = normalize_period(pay.period)
        payroll.append(CostAllocation(
            name=pay.person,
            category="payroll",
            period=period,
            amount=pay.amount,
            daily_rate=daily_rate(pay.amount, period),
            days_covered=day_count if period != PERIOD_ONE_TIME else 0,
            allocated=allocate_over_window(pay.amount, period, day_count),
            department=pay.department,
        ))
    return fixed, payroll


# ── Main entry point ──────────────────────────────────────────────────────────

def reconcile_records(records: list[NormalizedRecord], ledgers: LedgerSnapshot,
                      day_count: int) -> Reconciliation:
    """
    Cost every filtered record. Missing SKU costs are recorded, not raised.
    Fixed and payroll allocations are split evenly across all rows.
    """
    fixed_allocs, payroll_allocs = _allocations(ledgers, day_count)
    result = Reconciliation(
        day_count=day_count,
        fixed_allocations=fixed_allocs,
        payroll_allocations=payroll_allocs,
    )

    row_count = len(records)
    if row_count == 0:
        logger.info("No rows in window; nothing to reconcile")
        return result

    fixed_per_row = result.total_allocated_fixed / row_count
    payroll_per_row = result.total_allocated_payroll / row_count
    unit_costs = ledgers.unit_costs()

    for rec in records:
        unit_cost = unit_costs.get(rec.sku)
        if unit_cost is None:
            product_cost = 0.0
            result.missing_costs.append(MissingCost(rec.sku, rec.quantity, rec.row_number))
        else:
            product_cost = unit_cost * rec.quantity

        total_cost = product_cost + fixed_per_row + payroll_per_row
        profit = rec.amount - total_cost
        result.rows.append(ReconciledRow(
            record=rec,
            unit_cost=unit_cost,
            product_cost=product_cost,
            allocated_fixed_cost=fixed_per_row,
            allocated_payroll_cost=payroll_per_row,
            total_cost=total_cost,
            profit=profit,
            profit_margin=profit_margin(profit, rec.amount),
        ))

    if result.missing_costs:
        skus = {m.sku for m in result.missing_costs}
        logger.warning(f"{len(result.missing_costs)} row(s) across {len(skus)} SKU(s) have no inventory cost")
    return result
