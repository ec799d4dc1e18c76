"""
Cost ledger snapshots read from the external store.
The pipeline only reads these; they are fetched fresh for every run.
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import date

PERIOD_MONTHLY = "monthly"
PERIOD_HALF_MONTHLY = "half_monthly"
PERIOD_WEEKLY = "weekly"
PERIOD_DAILY = "daily"
PERIOD_ONE_TIME = "one-time"

# Days per period. Monthly is always 30 days regardless of calendar month.
PERIOD_DAYS = {
    PERIOD_MONTHLY: 30,
    PERIOD_HALF_MONTHLY: 15,
    PERIOD_WEEKLY: 7,
    PERIOD_DAILY: 1,
}

_PERIOD_ALIASES = {
    "month": PERIOD_MONTHLY,
    "semi_monthly": PERIOD_HALF_MONTHLY,
    "half-monthly": PERIOD_HALF_MONTHLY,
    "week": PERIOD_WEEKLY,
    "day": PERIOD_DAILY,
    "one_time": PERIOD_ONE_TIME,
    "onetime": PERIOD_ONE_TIME,
    "once": PERIOD_ONE_TIME,
}


def normalize_period(value) -> str:
    """Canonical period name; anything unrecognised is one-time."""
    p = str(value or "").strip().lower()
    p = _PERIOD_ALIASES.get(p, p)
    if p in PERIOD_DAYS:
        return p
    return PERIOD_ONE_TIME


@dataclass
class InventoryCost:
    sku: str
    unit_cost: float
    product_name: str = ""


@dataclass
class FixedCost:
    name: str
    amount: float
    period: str = PERIOD_MONTHLY
    is_active: bool = True
    description: str = ""


@dataclass
class PayrollCost:
    """
    A payroll record. Dated records (a shift, a settled pay run) are costs
    incurred on entry_date; undated ones are recurring salaries amortised
    by period.
    """
    person: str
    amount: float
    period: str = PERIOD_MONTHLY
    department: str = ""
    entry_date: date | None = None


@dataclass
class LedgerSnapshot:
    """The three cost ledgers used by one reconciliation run."""
    inventory: list[InventoryCost] = field(default_factory=list)
    fixed_costs: list[FixedCost] = field(default_factory=list)
    payroll: list[PayrollCost] = field(default_factory=list)

    def unit_costs(self) -> dict[str, float]:
        """SKU → unit cost. Later entries (newer batches) overwrite earlier ones."""
        costs = {}
        for item in self.inventory:
            costs[item.sku] = item.unit_cost
        return costs

    def active_fixed_costs(self) -> list[FixedCost]:
        return [c for c in self.fixed_costs if c.is_active]

    def for_window(self, date_range) -> "LedgerSnapshot":
        """Copy with payroll limited to records dated inside the window (undated ones kept)."""
        payroll = [
            p for p in self.payroll
            if p.entry_date is None or date_range.contains(p.entry_date)
        ]
        return replace(self, payroll=payroll)

    def to_dict(self) -> dict:
        return asdict(self)
