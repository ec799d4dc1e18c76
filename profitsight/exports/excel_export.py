"""
Excel report generation using xlsxwriter.
Produces a multi-tab workbook: Summary plus optional detail and cost
breakdown tabs. Also writes the cleaned-data workbook (filtered rows with a
totals row).
"""

import io
import logging
from datetime import datetime

import xlsxwriter

from profitsight.parser.field_resolver import FieldMapping
from profitsight.parser.normalizer import NormalizedRecord

logger = logging.getLogger(__name__)

NAVY = "#1B2A4A"
WHITE = "#FFFFFF"
LIGHT_GREY = "#F3F4F6"
LOSS_FILL = "#FEE2E2"
LOSS_FONT = "#DC2626"

TOTAL_LABEL = "Total"


def _formats(wb) -> dict:
    return {
        "hdr": wb.add_format({
            "bold": True, "font_color": WHITE, "bg_color": NAVY,
            "border": 1, "align": "center", "valign": "vcenter",
            "text_wrap": True,
        }),
        "title": wb.add_format({"bold": True, "font_size": 14, "font_color": NAVY}),
        "sub": wb.add_format({"font_size": 10, "font_color": "#6B7280"}),
        "section": wb.add_format({
            "bold": True, "font_size": 11, "font_color": NAVY,
            "bg_color": LIGHT_GREY, "border": 1,
        }),
        "normal": wb.add_format({"border": 1, "valign": "vcenter"}),
        "currency": wb.add_format({"num_format": '#,##0.00', "border": 1, "valign": "vcenter"}),
        "currency_bold": wb.add_format({"num_format": '#,##0.00', "border": 1, "bold": True}),
        "loss": wb.add_format({
            "num_format": '#,##0.00', "border": 1,
            "font_color": LOSS_FONT, "bg_color": LOSS_FILL,
        }),
        "pct": wb.add_format({"num_format": '0.00"%"', "border": 1, "valign": "vcenter"}),
        "int": wb.add_format({"num_format": '0', "border": 1, "valign": "vcenter"}),
        "date": wb.add_format({"num_format": "yyyy-mm-dd", "border": 1, "valign": "vcenter"}),
        "warn": wb.add_format({"font_color": "#D97706", "text_wrap": True}),
    }


def _write_table(ws, fmt: dict, headers: list, rows: list, col_formats: list):
    for c, h in enumerate(headers):
        ws.write(0, c, h, fmt["hdr"])
    for r, values in enumerate(rows, start=1):
        for c, (val, kind) in enumerate(zip(values, col_formats)):
            if val is None or val == "":
                ws.write_blank(r, c, None, fmt["normal"])
            elif kind == "text":
                ws.write_string(r, c, str(val), fmt["normal"])
            elif kind == "date":
                ws.write_datetime(r, c, datetime.combine(val, datetime.min.time()), fmt["date"])
            else:
                ws.write_number(r, c, val, fmt[kind])
    ws.freeze_panes(1, 0)


def _write_summary_sheet(wb, fmt: dict, summary, session_info: dict, generated_at: datetime):
    ws = wb.add_worksheet("Summary")
    ws.set_column("A:A", 30)
    ws.set_column("B:B", 22)

    title = session_info.get("report_title") or "Profit Reconciliation"
    prepared_by = session_info.get("prepared_by", "")

    row = 0
    ws.write(row, 0, title, fmt["title"])
    row += 1
    ws.write(row, 0, f"Generated: {generated_at:%Y-%m-%d %H:%M}"
             + (f" | Prepared by: {prepared_by}" if prepared_by else ""), fmt["sub"])
    row += 2

    def kv(label, value, kind="currency"):
        nonlocal row
        ws.write(row, 0, label, fmt["normal"])
        if kind == "text":
            ws.write_string(row, 1, str(value), fmt["normal"])
        else:
            ws.write_number(row, 1, value, fmt[kind])
        row += 1

    def section(label):
        nonlocal row
        ws.merge_range(row, 0, row, 1, label, fmt["section"])
        row += 1

    breakdown = summary.cost_breakdown

    section("PERIOD")
    kv("Date Range", summary.date_range.label(), "text")
    kv("Days", summary.day_count, "int")
    kv("Orders", summary.row_count, "int")

    section("REVENUE & COSTS")
    kv("Total Revenue", summary.total_revenue)
    kv("Product Cost", breakdown.product_cost)
    kv("Fixed Costs (allocated)", breakdown.fixed_cost)
    kv("Payroll Costs (allocated)", breakdown.payroll_cost)
    kv("Total Cost", summary.total_cost, "currency_bold")

    section("RESULT")
    ws.write(row, 0, "Profit", fmt["normal"])
    ws.write_number(row, 1, summary.total_profit,
                    fmt["loss"] if summary.total_profit < 0 else fmt["currency_bold"])
    row += 1
    kv("Profit Margin", summary.profit_margin, "pct")

    section("DATA QUALITY")
    kv("Units Missing Cost", summary.missing_cost_count, "int")
    kv("SKUs Missing Cost", summary.missing_cost_skus, "int")
    kv("Undated Rows Dropped", summary.dropped_undated, "int")
    kv("Unreadable Cells", len(summary.row_issues), "int")

    if summary.missing_cost_count:
        row += 1
        ws.merge_range(
            row, 0, row, 1,
            "Some SKUs have no inventory cost; product cost for those rows is counted as 0.",
            fmt["warn"],
        )


def generate_excel_report(summary, session_info: dict | None = None,
                          include_details: bool = True) -> bytes:
    """
    Generate an Excel workbook for a ProfitSummary and return it as bytes.
    Tabs: Summary | Detail | Fixed Costs | Payroll | Missing Costs | Row Issues
    (detail tabs only with include_details, and only when they have rows).
    """
    session_info = session_info or {}
    generated_at = datetime.now()

    buffer = io.BytesIO()
    wb = xlsxwriter.Workbook(buffer, {"in_memory": True})
    fmt = _formats(wb)

    _write_summary_sheet(wb, fmt, summary, session_info, generated_at)

    if include_details:
        if summary.rows:
            ws = wb.add_worksheet("Detail")
            ws.set_column("A:A", 8)
            ws.set_column("B:B", 12)
            ws.set_column("C:C", 20)
            ws.set_column("D:L", 14)
            headers = ["Row", "Date", "SKU", "Quantity", "Amount", "Unit Cost", "Product Cost",
                       "Fixed Cost", "Payroll Cost", "Total Cost", "Profit", "Margin %"]
            kinds = ["int", "date", "text", "int", "currency", "currency", "currency",
                     "currency", "currency", "currency", "currency", "pct"]
            rows = []
            for r in summary.rows:
                rec = r.record
                rows.append([
                    rec.row_number, rec.date, rec.sku, rec.quantity, rec.amount,
                    r.unit_cost, r.product_cost, r.allocated_fixed_cost,
                    r.allocated_payroll_cost, r.total_cost, r.profit, r.profit_margin,
                ])
            _write_table(ws, fmt, headers, rows, kinds)

        if summary.fixed_allocations:
            ws = wb.add_worksheet("Fixed Costs")
            ws.set_column("A:A", 28)
            ws.set_column("B:F", 14)
            _write_table(
                ws, fmt,
                ["Cost", "Period", "Amount", "Daily Rate", "Days", "Allocated"],
                [[a.name, a.period, a.amount, a.daily_rate, a.days_covered, a.allocated]
                 for a in summary.fixed_allocations],
                ["text", "text", "currency", "currency", "int", "currency"],
            )

        if summary.payroll_allocations:
            ws = wb.add_worksheet("Payroll")
            ws.set_column("A:B", 20)
            ws.set_column("C:G", 14)
            _write_table(
                ws, fmt,
                ["Department", "Person", "Period", "Amount", "Daily Rate", "Days", "Allocated"],
                [[a.department, a.name, a.period, a.amount, a.daily_rate, a.days_covered, a.allocated]
                 for a in summary.payroll_allocations],
                ["text", "text", "text", "currency", "currency", "int", "currency"],
            )

        if summary.missing_cost_items:
            ws = wb.add_worksheet("Missing Costs")
            ws.set_column("A:A", 24)
            ws.set_column("B:C", 12)
            _write_table(
                ws, fmt,
                ["SKU", "Quantity", "Rows"],
                [[m.sku or "(blank)", m.quantity, m.rows] for m in summary.missing_cost_items],
                ["text", "int", "int"],
            )

        if summary.row_issues:
            ws = wb.add_worksheet("Row Issues")
            ws.set_column("A:A", 8)
            ws.set_column("B:D", 24)
            _write_table(
                ws, fmt,
                ["Row", "Column", "Value", "Issue"],
                [[i.row_number, i.field, i.raw_value, i.reason] for i in summary.row_issues],
                ["int", "text", "text", "text"],
            )

    wb.close()
    buffer.seek(0)
    logger.info(f"Excel report generated for {summary.date_range.label()}")
    return buffer.getvalue()


def export_cleaned_rows(records: list[NormalizedRecord], headers: list, mapping: FieldMapping) -> bytes:
    """
    Write the filtered rows back out with the amount column normalised and a
    totals row appended (label in the date column, sum in the amount column).
    Rows with a negative amount are highlighted.
    """
    buffer = io.BytesIO()
    wb = xlsxwriter.Workbook(buffer, {"in_memory": True})
    fmt = _formats(wb)
    ws = wb.add_worksheet("Cleaned Data")
    ws.set_column(0, max(len(headers) - 1, 0), 16)

    for c, h in enumerate(headers):
        ws.write(0, c, h, fmt["hdr"])

    amount_col = headers.index(mapping.amount_field) if mapping.amount_field in headers else None
    date_col = headers.index(mapping.date_field) if mapping.date_field in headers else None

    total = 0.0
    r = 0
    for r, rec in enumerate(records, start=1):
        for c, h in enumerate(headers):
            if c == amount_col:
                ws.write_number(r, c, rec.amount, fmt["loss"] if rec.amount < 0 else fmt["currency"])
            elif c == date_col and rec.date is not None:
                ws.write_datetime(r, c, datetime.combine(rec.date, datetime.min.time()), fmt["date"])
            else:
                val = rec.raw.get(h, "")
                if isinstance(val, (int, float)) and not isinstance(val, bool):
                    ws.write_number(r, c, val, fmt["normal"])
                else:
                    ws.write_string(r, c, "" if val is None else str(val), fmt["normal"])
        total += rec.amount

    total_row = r + 1
    if date_col is not None:
        ws.write(total_row, date_col, TOTAL_LABEL, fmt["section"])
    if amount_col is not None:
        ws.write_number(total_row, amount_col, total, fmt["currency_bold"])

    wb.close()
    buffer.seek(0)
    return buffer.getvalue()
