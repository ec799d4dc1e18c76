"""
Column detection for uploaded order / payout exports.

Export schemas vary between platforms and languages, so the date, amount,
SKU and quantity columns are located by keyword matching on the header row.
Each slot has priority tiers; a tier is a list of rules and a rule is a tuple
of keywords that must all appear in the header (case-insensitive). The first
header (in sheet order) matching any rule of the highest tier wins.
"""

import logging
from dataclasses import dataclass, asdict

from profitsight.errors import UnresolvedMappingError

logger = logging.getLogger(__name__)

INTENT_ORDER_CREATED = "order_created"
INTENT_STATEMENT = "statement"

# ── Date keywords ─────────────────────────────────────────────────────────────
ORDER_CREATED_DATE_TIERS = [
    [("order", "create"), ("order", "date"), ("订单", "创建"), ("创建日期",), ("下单",)],
    [("created",), ("date",), ("日期",), ("time",), ("时间",)],
]
STATEMENT_DATE_TIERS = [
    [("statement", "date"), ("settlement", "date"), ("settled", "date"), ("payout", "date"),
     ("结算", "日期"), ("结算", "时间"), ("账单", "日期")],
    [("statement",), ("settled",), ("date",), ("日期",), ("time",), ("时间",)],
]
DATE_TIERS = {
    INTENT_ORDER_CREATED: ORDER_CREATED_DATE_TIERS,
    INTENT_STATEMENT: STATEMENT_DATE_TIERS,
}

# ── Amount keywords ───────────────────────────────────────────────────────────
AMOUNT_TIERS = [
    [("settlement", "amount"), ("结算", "金额")],
    [("total", "amount"), ("settlement",), ("结算",), ("payout",)],
    [("revenue",), ("金额",), ("amount",), ("收入",)],
]

# Headers carrying these are dates, never amounts ("Settlement Date")
DATE_HEADER_HINTS = ("date", "time", "日期", "时间")

# ── Optional slots ────────────────────────────────────────────────────────────
SKU_TIERS = [
    [("seller", "sku"), ("sku", "id"), ("商品", "编码")],
    [("sku",), ("货号",)],
]
QUANTITY_TIERS = [
    [("quantity",), ("数量",)],
    [("qty",), ("件数",)],
]


@dataclass
class FieldMapping:
    """Resolved column names; an empty string means unresolved."""
    date_field: str = ""
    amount_field: str = ""
    sku_field: str = ""
    quantity_field: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.date_field and self.amount_field)

    def to_dict(self) -> dict:
        return asdict(self)


def _matches_rule(header: str, rule: tuple) -> bool:
    h = str(header).lower()
    return all(kw.lower() in h for kw in rule)


def _is_date_header(header: str) -> bool:
    h = str(header).lower()
    return any(hint in h for hint in DATE_HEADER_HINTS)


def find_column(headers: list, tiers: list, exclude: set | None = None) -> str:
    """Return the first header matching the highest-priority tier, or ''."""
    exclude = exclude or set()
    for tier in tiers:
        for header in headers:
            if header in exclude:
                continue
            if any(_matches_rule(header, rule) for rule in tier):
                return header
    return ""


def resolve_fields(headers: list, intent: str = INTENT_ORDER_CREATED,
                   overrides: dict | None = None) -> FieldMapping:
    """
    Detect the date / amount / SKU / quantity columns from a header list.

    overrides: operator-supplied column names keyed by FieldMapping attribute
    (e.g. {"date_field": "Paid Time"}); non-empty values win over detection.
    A column already claimed by an earlier slot is not reused, and date-like
    headers are never picked as the amount.
    """
    if intent not in DATE_TIERS:
        raise ValueError(f"Unknown field intent: {intent}")

    overrides = {k: v for k, v in (overrides or {}).items() if v}
    claimed = set(overrides.values())

    def pick(slot: str, tiers: list, skip: set | None = None) -> str:
        if slot in overrides:
            return overrides[slot]
        found = find_column(headers, tiers, exclude=claimed | (skip or set()))
        if found:
            claimed.add(found)
        return found

    mapping = FieldMapping(
        date_field=pick("date_field", DATE_TIERS[intent]),
        amount_field=pick("amount_field", AMOUNT_TIERS, skip={h for h in headers if _is_date_header(h)}),
        sku_field=pick("sku_field", SKU_TIERS),
        quantity_field=pick("quantity_field", QUANTITY_TIERS),
    )

    if mapping.is_complete:
        logger.info("Field mapping resolved: %s", mapping.to_dict())
    else:
        logger.warning("Field mapping incomplete: %s", mapping.to_dict())
    return mapping


def require_mapping(mapping: FieldMapping, headers: list) -> FieldMapping:
    """
    Validate a mapping against the decoded headers before filtering.
    Raises UnresolvedMappingError naming every missing or unknown slot.
    """
    header_set = set(headers)
    missing = []
    for slot, label in [("date_field", "date"), ("amount_field", "amount")]:
        value = getattr(mapping, slot)
        if not value or value not in header_set:
            missing.append(label)
    for slot, label in [("sku_field", "sku"), ("quantity_field", "quantity")]:
        value = getattr(mapping, slot)
        if value and value not in header_set:
            missing.append(label)

    if missing:
        raise UnresolvedMappingError(
            f"Could not resolve column(s): {', '.join(missing)}. "
            f"Select them manually from: {', '.join(map(str, headers))}",
            missing=missing,
        )
    return mapping
