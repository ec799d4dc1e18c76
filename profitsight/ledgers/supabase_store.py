"""
Cost ledger reads and analysis persistence against Supabase.

Tables read:
  inventory          sku, unit_cost, product_name
  fixed_costs        cost_name, amount, cost_type, is_active, description (active rows only)
  host_payroll       host_name, total_amount, work_date      (one row per shift)
  operation_payroll  employee_name, total_amount, created_at
  warehouse_payroll  employee_name, total_amount, created_at

Payroll rows are dated records: only those dated inside the reconciliation
window are read, and each is charged in full.

Each table read has a client-side timeout and a bounded retry with backoff.
A read that still fails aborts the whole fetch with LedgerFetchError; the
pipeline never reconciles against a partial ledger set.
"""

import json
import time
import logging
from datetime import date, datetime, timedelta
from pathlib import Path

from profitsight.errors import LedgerFetchError
from profitsight.ledgers.models import (
    InventoryCost, FixedCost, PayrollCost, LedgerSnapshot, PERIOD_ONE_TIME, normalize_period,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000

# (table, department, name column, column dating each record)
PAYROLL_TABLES = [
    ("host_payroll", "host", "host_name", "work_date"),
    ("operation_payroll", "operation", "employee_name", "created_at"),
    ("warehouse_payroll", "warehouse", "employee_name", "created_at"),
]


# ── Client ─────────────────────────────────────────────────────────────────

def get_supabase_client(settings):
    """Return a Supabase client, or None if credentials are missing."""
    if not settings.has_supabase:
        return None

    from supabase import create_client, ClientOptions
    options = ClientOptions(postgrest_client_timeout=settings.ledger_timeout)
    return create_client(settings.supabase_url, settings.supabase_key, options=options)


def _fetch_all(client, table: str, order_col: str = "id", filters: dict | None = None,
               date_col: str = "", date_range=None) -> list[dict]:
    """
    Fetch all rows from a Supabase table, paginating past the 1000-row limit.
    With date_col and date_range, only rows dated inside the window are read.
    """
    rows: list[dict] = []
    offset = 0
    while True:
        query = client.table(table).select("*")
        for col, val in (filters or {}).items():
            query = query.eq(col, val)
        if date_col and date_range is not None:
            # lt the next day so timestamps on the end date are included
            query = query.gte(date_col, date_range.start.isoformat()).lt(
                date_col, (date_range.end + timedelta(days=1)).isoformat()
            )
        resp = query.order(order_col).range(offset, offset + PAGE_SIZE - 1).execute()
        batch = resp.data or []
        rows.extend(batch)
        if len(batch) < PAGE_SIZE:
            break
        offset += PAGE_SIZE
    return rows


# ── Row converters ─────────────────────────────────────────────────────────

def _num(val) -> float:
    if val is None:
        return 0.0
    return float(val)


def _inventory_from_row(row: dict) -> InventoryCost:
    return InventoryCost(
        sku=str(row["sku"]).strip(),
        unit_cost=_num(row.get("unit_cost")),
        product_name=row.get("product_name") or "",
    )


def _fixed_cost_from_row(row: dict) -> FixedCost:
    return FixedCost(
        name=row["cost_name"],
        amount=_num(row["amount"]),
        period=normalize_period(row.get("cost_type")),
        is_active=bool(row.get("is_active", True)),
        description=row.get("description") or "",
    )


def _row_date(val) -> date | None:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    return date.fromisoformat(str(val).strip()[:10])


def _payroll_from_row(row: dict, department: str, name_col: str, date_col: str = "created_at") -> PayrollCost:
    person = row.get(name_col) or row.get("employee_name") or row.get("host_name") or ""
    entry_date = _row_date(row.get(date_col)) or _row_date(row.get("created_at"))
    # settlement_frequency is only the pay cadence; a dated record is incurred in full
    if entry_date is not None:
        period = PERIOD_ONE_TIME
    else:
        period = normalize_period(row.get("settlement_frequency") or "monthly")
    return PayrollCost(
        person=person,
        amount=_num(row["total_amount"]),
        period=period,
        department=row.get("department") or department,
        entry_date=entry_date,
    )


# ── Store ──────────────────────────────────────────────────────────────────

class SupabaseLedgerStore:
    """
    Ledger reader / analysis writer bound to one Supabase client.

    retries: attempts per table (>= 1). backoff: first retry delay in seconds,
    doubled on each further retry.
    """

    def __init__(self, client, retries: int = 3, backoff: float = 0.5, sleep=time.sleep):
        if client is None:
            raise LedgerFetchError("Supabase credentials are not configured")
        self.client = client
        self.retries = max(1, retries)
        self.backoff = backoff
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings):
        try:
            client = get_supabase_client(settings)
        except Exception as e:
            raise LedgerFetchError(f"Could not create Supabase client: {e}") from e
        return cls(client, retries=settings.ledger_retries, backoff=settings.ledger_backoff)

    def _read_table(self, table: str, order_col: str = "id", filters: dict | None = None,
                    date_col: str = "", date_range=None) -> list[dict]:
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                return _fetch_all(self.client, table, order_col=order_col, filters=filters,
                                  date_col=date_col, date_range=date_range)
            except Exception as e:
                last_error = e
                if attempt < self.retries:
                    delay = self.backoff * (2 ** (attempt - 1))
                    logger.warning(
                        f"Reading {table} failed (attempt {attempt}/{self.retries}): {e}; "
                        f"retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)
        raise LedgerFetchError(
            f"Could not read {table} after {self.retries} attempt(s): {last_error}",
            table=table,
        ) from last_error

    def _convert(self, table: str, rows: list[dict], converter) -> list:
        try:
            return [converter(r) for r in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerFetchError(f"Unexpected row shape in {table}: {e}", table=table) from e

    def fetch_inventory(self) -> list[InventoryCost]:
        rows = self._read_table("inventory", order_col="created_at")
        return self._convert("inventory", rows, _inventory_from_row)

    def fetch_fixed_costs(self) -> list[FixedCost]:
        rows = self._read_table("fixed_costs", filters={"is_active": True})
        return self._convert("fixed_costs", rows, _fixed_cost_from_row)

    def fetch_payroll(self, date_range=None) -> list[PayrollCost]:
        """Payroll records, limited to those dated inside date_range when given."""
        payroll = []
        for table, department, name_col, date_col in PAYROLL_TABLES:
            rows = self._read_table(table, date_col=date_col, date_range=date_range)
            payroll.extend(self._convert(
                table, rows,
                lambda r, d=department, n=name_col, c=date_col: _payroll_from_row(r, d, n, c),
            ))
        return payroll

    def fetch_ledgers(self, date_range=None) -> LedgerSnapshot:
        """
        Read all three ledgers (payroll for date_range only, when given).
        Any table failure aborts with LedgerFetchError.
        """
        snapshot = LedgerSnapshot(
            inventory=self.fetch_inventory(),
            fixed_costs=self.fetch_fixed_costs(),
            payroll=self.fetch_payroll(date_range),
        )
        logger.info(
            f"Fetched ledgers: {len(snapshot.inventory)} inventory, "
            f"{len(snapshot.fixed_costs)} fixed, {len(snapshot.payroll)} payroll rows"
        )
        return snapshot

    def save_profit_analysis(self, record: dict) -> dict:
        """Insert a profit_analysis record; returns the stored row."""
        resp = self.client.table("profit_analysis").insert(record).execute()
        data = resp.data or []
        saved = data[0] if data else record
        logger.info(f"Saved profit analysis {record.get('analysis_name', '')!r}")
        return saved


# ── Local snapshot ─────────────────────────────────────────────────────────

def load_ledgers_from_json(path: str | Path) -> LedgerSnapshot:
    """
    Load a ledger snapshot from a JSON file shaped like the Supabase tables:
    {"inventory": [...], "fixed_costs": [...], "host_payroll": [...], ...}
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise LedgerFetchError(f"Could not read ledger file {path}: {e}") from e

    try:
        inventory = [_inventory_from_row(r) for r in data.get("inventory", [])]
        fixed = [_fixed_cost_from_row(r) for r in data.get("fixed_costs", [])]
        payroll = []
        for table, department, name_col, date_col in PAYROLL_TABLES:
            payroll.extend(_payroll_from_row(r, department, name_col, date_col) for r in data.get(table, []))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise LedgerFetchError(f"Unexpected ledger file shape in {path}: {e}") from e

    return LedgerSnapshot(
        inventory=inventory,
        fixed_costs=[c for c in fixed if c.is_active],
        payroll=payroll,
    )
