"""
JSON outputs for a ProfitSummary: a downloadable report document and the
record persisted to the profit_analysis table (opaque JSON columns).
"""

import json
import logging
from datetime import date, datetime

logger = logging.getLogger(__name__)


def _json_default(obj):
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if hasattr(obj, "item"):
        # numpy scalars
        return obj.item()
    return str(obj)


def _json_safe(value):
    """Round-trip through json so the result only holds JSON-native types."""
    return json.loads(json.dumps(value, default=_json_default))


def build_report_json(summary, session_info: dict | None = None, include_details: bool = True) -> str:
    """Serialise a ProfitSummary (plus session metadata) as an indented JSON document."""
    session_info = session_info or {}
    report = {
        "report_type": "profit_reconciliation",
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        "generated_by": session_info.get("prepared_by", ""),
        "summary": summary.to_dict(include_rows=include_details),
    }
    return json.dumps(report, indent=2, ensure_ascii=False, default=_json_default)


def build_analysis_record(summary, analysis_name: str, created_by: str | None = None,
                          payout_rows: list[dict] | None = None, mapping: dict | None = None) -> dict:
    """
    Build the profit_analysis row: the summary, its cost breakdown and the
    input rows it was computed from.
    """
    name = (analysis_name or "").strip()
    if not name:
        name = f"Profit analysis {summary.date_range.start.isoformat()}_{summary.date_range.end.isoformat()}"

    cost_breakdown = summary.cost_breakdown.to_dict()
    cost_breakdown["details"] = {
        "fixed": [a.to_dict() for a in summary.fixed_allocations],
        "payroll": [a.to_dict() for a in summary.payroll_allocations],
    }

    profit_summary = summary.to_dict(include_rows=True)
    if mapping:
        profit_summary["field_mapping"] = mapping

    return {
        "analysis_name": name,
        "analysis_date": date.today().isoformat(),
        "payout_data": _json_safe(payout_rows or []),
        "cost_breakdown": _json_safe(cost_breakdown),
        "profit_summary": _json_safe(profit_summary),
        "created_by": created_by,
    }
