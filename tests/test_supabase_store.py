import json
from datetime import date
from types import SimpleNamespace

import pytest

from profitsight.errors import LedgerFetchError
from profitsight.ledgers import supabase_store
from profitsight.ledgers.supabase_store import SupabaseLedgerStore, load_ledgers_from_json
from profitsight.metrics.range_filter import DateRange
from profitsight.utils.settings import Settings


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table_name = table
        self.filters = {}
        self.bounds = []
        self.start = 0
        self.end = None
        self.payload = None

    def select(self, _cols):
        return self

    def eq(self, col, val):
        self.filters[col] = val
        return self

    def gte(self, col, val):
        self.bounds.append((col, lambda v, b=val: v >= b))
        self.client.date_filters.append((self.table_name, "gte", col, val))
        return self

    def lt(self, col, val):
        self.bounds.append((col, lambda v, b=val: v < b))
        self.client.date_filters.append((self.table_name, "lt", col, val))
        return self

    def order(self, col):
        self.client.orders[self.table_name] = col
        return self

    def range(self, start, end):
        self.start, self.end = start, end
        return self

    def insert(self, record):
        self.payload = record
        return self

    def execute(self):
        self.client.calls.append(self.table_name)
        failures = self.client.failures.get(self.table_name, 0)
        if failures:
            self.client.failures[self.table_name] = failures - 1
            raise ConnectionError(f"{self.table_name} unavailable")
        if self.payload is not None:
            self.client.inserted.append((self.table_name, self.payload))
            return SimpleNamespace(data=[dict(self.payload, id=1)])
        rows = [r for r in self.client.tables.get(self.table_name, [])
                if all(r.get(k) == v for k, v in self.filters.items())
                and all(r.get(col) is not None and check(r[col]) for col, check in self.bounds)]
        return SimpleNamespace(data=rows[self.start:self.end + 1])


class FakeClient:
    def __init__(self, tables, failures=None):
        self.tables = tables
        self.failures = dict(failures or {})
        self.calls = []
        self.orders = {}
        self.inserted = []
        self.date_filters = []

    def table(self, name):
        return FakeQuery(self, name)


TABLES = {
    "inventory": [
        {"sku": "A1", "unit_cost": 5, "product_name": "Mug"},
        {"sku": "A1", "unit_cost": "6.5", "product_name": "Mug"},
        {"sku": "B2", "unit_cost": None},
    ],
    "fixed_costs": [
        {"cost_name": "Rent", "amount": 300, "cost_type": "monthly", "is_active": True},
        {"cost_name": "Launch", "amount": 50, "cost_type": "one-time", "is_active": True},
        {"cost_name": "Old", "amount": 999, "cost_type": "monthly", "is_active": False},
    ],
    "host_payroll": [{"host_name": "Lin", "total_amount": 450, "settlement_frequency": "half_monthly"}],
    "operation_payroll": [{"employee_name": "Sam", "total_amount": 3000}],
    "warehouse_payroll": [{"employee_name": "Ali", "total_amount": "70", "settlement_frequency": "weekly"}],
}


def _store(client, retries=3):
    sleeps = []
    store = SupabaseLedgerStore(client, retries=retries, backoff=0.5, sleep=sleeps.append)
    return store, sleeps


def test_fetch_ledgers():
    client = FakeClient(TABLES)
    store, _ = _store(client)
    snapshot = store.fetch_ledgers()

    assert snapshot.unit_costs() == {"A1": 6.5, "B2": 0.0}
    assert [c.name for c in snapshot.fixed_costs] == ["Rent", "Launch"]
    assert snapshot.fixed_costs[1].period == "one-time"
    assert [(p.person, p.department, p.period) for p in snapshot.payroll] == [
        ("Lin", "host", "half_monthly"),
        ("Sam", "operation", "monthly"),
        ("Ali", "warehouse", "weekly"),
    ]
    assert client.orders["inventory"] == "created_at"


def test_pagination(monkeypatch):
    monkeypatch.setattr(supabase_store, "PAGE_SIZE", 2)
    rows = [{"sku": f"S{i}", "unit_cost": i} for i in range(5)]
    client = FakeClient({"inventory": rows})
    store, _ = _store(client)

    inventory = store.fetch_inventory()
    assert [i.sku for i in inventory] == ["S0", "S1", "S2", "S3", "S4"]
    assert client.calls == ["inventory"] * 3


def test_retry_with_backoff():
    client = FakeClient(TABLES, failures={"fixed_costs": 2})
    store, sleeps = _store(client)

    costs = store.fetch_fixed_costs()
    assert len(costs) == 2
    assert sleeps == [0.5, 1.0]


def test_persistent_failure_aborts_fetch():
    client = FakeClient(TABLES, failures={"warehouse_payroll": 10})
    store, sleeps = _store(client, retries=2)

    with pytest.raises(LedgerFetchError) as exc:
        store.fetch_ledgers()
    assert exc.value.table == "warehouse_payroll"
    assert len(sleeps) == 1


def test_unexpected_row_shape():
    client = FakeClient({"fixed_costs": [{"amount": 10, "is_active": True}]})
    store, _ = _store(client)
    with pytest.raises(LedgerFetchError):
        store.fetch_fixed_costs()


def test_missing_client():
    with pytest.raises(LedgerFetchError):
        SupabaseLedgerStore(None)


def test_from_settings_without_credentials():
    with pytest.raises(LedgerFetchError):
        SupabaseLedgerStore.from_settings(Settings())


def test_save_profit_analysis():
    client = FakeClient({})
    store, _ = _store(client)
    saved = store.save_profit_analysis({"analysis_name": "Jan"})
    assert saved["id"] == 1
    assert client.inserted == [("profit_analysis", {"analysis_name": "Jan"})]


def test_load_ledgers_from_json(tmp_path):
    path = tmp_path / "ledgers.json"
    path.write_text(json.dumps(TABLES), encoding="utf-8")

    snapshot = load_ledgers_from_json(path)
    assert len(snapshot.inventory) == 3
    assert [c.name for c in snapshot.fixed_costs] == ["Rent", "Launch"]
    assert len(snapshot.payroll) == 3


def test_load_ledgers_from_json_errors(tmp_path):
    with pytest.raises(LedgerFetchError):
        load_ledgers_from_json(tmp_path / "missing.json")

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"inventory": [{"unit_cost": 1}]}), encoding="utf-8")
    with pytest.raises(LedgerFetchError):
        load_ledgers_from_json(bad)


DATED_PAYROLL = {
    "host_payroll": [
        {"host_name": "Lin", "total_amount": 300, "work_date": "2023-01-14",
         "created_at": "2023-01-15T09:00:00+00:00", "settlement_frequency": "monthly"},
        {"host_name": "Lin", "total_amount": 120, "work_date": "2024-06-03",
         "created_at": "2024-06-20T09:00:00+00:00", "settlement_frequency": "monthly"},
    ],
    "operation_payroll": [
        {"employee_name": "Sam", "total_amount": 900, "created_at": "2024-06-10T18:30:00+00:00",
         "settlement_frequency": "half_monthly"},
    ],
    "warehouse_payroll": [
        {"employee_name": "Ali", "total_amount": 300, "created_at": "2023-02-01T08:00:00+00:00"},
    ],
}


def test_payroll_read_for_window_only():
    client = FakeClient(DATED_PAYROLL)
    store, _ = _store(client)
    payroll = store.fetch_payroll(DateRange(date(2024, 6, 1), date(2024, 6, 10)))

    # host shifts are dated by work_date; the end date is inclusive for timestamps
    assert [(p.person, p.amount, p.entry_date) for p in payroll] == [
        ("Lin", 120.0, date(2024, 6, 3)),
        ("Sam", 900.0, date(2024, 6, 10)),
    ]
    assert all(p.period == "one-time" for p in payroll)
    assert ("host_payroll", "gte", "work_date", "2024-06-01") in client.date_filters
    assert ("operation_payroll", "lt", "created_at", "2024-06-11") in client.date_filters


def test_dated_payroll_from_json(tmp_path):
    path = tmp_path / "ledgers.json"
    path.write_text(json.dumps(DATED_PAYROLL), encoding="utf-8")
    snapshot = load_ledgers_from_json(path)

    assert [p.entry_date for p in snapshot.payroll] == [
        date(2023, 1, 14), date(2024, 6, 3), date(2024, 6, 10), date(2023, 2, 1),
    ]


def test_bad_payroll_date():
    client = FakeClient({"host_payroll": [{"host_name": "Lin", "total_amount": 1, "work_date": "soon"}]})
    store, _ = _store(client)
    with pytest.raises(LedgerFetchError):
        store.fetch_payroll()
