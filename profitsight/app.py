"""
ProfitSight — Order Profit Reconciliation
Main Streamlit application.
"""

import sys
import logging
from pathlib import Path
from datetime import date

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

# ── Path setup ─────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).parent
sys.path.insert(0, str(BASE_DIR.parent))

from profitsight.errors import (
    FormatError, UnresolvedMappingError, InvalidRangeError, LedgerFetchError, PipelineBusyError,
)
from profitsight.exports.excel_export import generate_excel_report, export_cleaned_rows
from profitsight.exports.json_export import build_report_json, build_analysis_record
from profitsight.ledgers.supabase_store import SupabaseLedgerStore, load_ledgers_from_json
from profitsight.metrics.range_filter import DateRange, filter_by_range, sort_by_date
from profitsight.parser.field_resolver import FieldMapping, INTENT_ORDER_CREATED, INTENT_STATEMENT
from profitsight.parser.spreadsheet import decode_spreadsheet
from profitsight.pipeline import RunGuard, detect_mapping, prepare_sheet, run_reconciliation
from profitsight.utils.formatters import format_currency, format_percent, format_days, safe_filename
from profitsight.utils.settings import load_settings

settings = load_settings()
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

# ── Page configuration ─────────────────────────────────────────────────────
st.set_page_config(
    page_title="ProfitSight",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── Styling ────────────────────────────────────────────────────────────────
st.markdown("""
<style>
    .stApp { background-color: #F9FAFB; }
    .main .block-container { padding-top: 1.5rem; }

    .metric-card {
        background: white;
        border-radius: 8px;
        padding: 12px 16px;
        border-left: 4px solid #6B7280;
        margin-bottom: 8px;
        box-shadow: 0 1px 3px rgba(0,0,0,0.06);
    }
    .metric-card.green { border-left-color: #16A34A; }
    .metric-card.red { border-left-color: #DC2626; }
    .metric-label { font-size: 0.8rem; color: #6B7280; margin-bottom: 2px; }
    .metric-value { font-size: 1.2rem; font-weight: 600; color: #1B2A4A; }
    .metric-note { font-size: 0.75rem; color: #9CA3AF; }

    .section-header {
        font-size: 1.1rem;
        font-weight: 600;
        color: #1B2A4A;
        border-bottom: 2px solid #1B2A4A;
        padding-bottom: 4px;
        margin: 16px 0 12px 0;
    }

    [data-testid="stSidebar"] { background-color: #1B2A4A; }
    [data-testid="stSidebar"] * { color: white !important; }
</style>
""", unsafe_allow_html=True)

INTENT_LABELS = {
    "Order created date": INTENT_ORDER_CREATED,
    "Statement / settlement date": INTENT_STATEMENT,
}
NONE_OPTION = "(none)"


def _metric_card(label: str, value: str, note: str = "", status: str = ""):
    st.markdown(f"""
    <div class="metric-card {status}">
        <div class="metric-label">{label}</div>
        <div class="metric-value">{value}</div>
        <div class="metric-note">{note}</div>
    </div>
    """, unsafe_allow_html=True)


# ── Session state init ─────────────────────────────────────────────────────

def _init_state():
    defaults = {
        "sheet": None,
        "upload_key": None,
        "prepared": None,
        "summary": None,
        "run_guard": RunGuard(),
    }
    for k, v in defaults.items():
        if k not in st.session_state:
            st.session_state[k] = v


def _reset_results():
    st.session_state.prepared = None
    st.session_state.summary = None
    st.session_state.run_guard.cancel()


_init_state()
guard: RunGuard = st.session_state.run_guard


def _fetch_ledgers(date_range: DateRange):
    if settings.ledger_file:
        return load_ledgers_from_json(settings.ledger_file)
    return SupabaseLedgerStore.from_settings(settings).fetch_ledgers(date_range)


# ── Sidebar ────────────────────────────────────────────────────────────────

with st.sidebar:
    st.markdown("## ProfitSight")
    st.markdown("*Order profit reconciliation*")
    st.markdown("---")

    st.markdown("### Report Setup")
    report_title = st.text_input("Report Title", value="Profit Reconciliation")
    prepared_by = st.text_input("Prepared By", value="")

    st.markdown("---")
    st.markdown("### Upload Orders")
    uploaded = st.file_uploader("Order / payout export (.xlsx/.csv)", type=["xlsx", "csv"])
    intent_label = st.radio("Date column convention", list(INTENT_LABELS.keys()), index=0)
    intent = INTENT_LABELS[intent_label]

    st.markdown("---")
    st.markdown("### Ledger Source")
    if settings.ledger_file:
        st.caption(f"Snapshot file: {settings.ledger_file}")
    elif settings.has_supabase:
        st.caption("Supabase")
    else:
        st.caption("Not configured: set SUPABASE_URL / SUPABASE_KEY or PROFITSIGHT_LEDGER_FILE in .env")

session_info = {"report_title": report_title, "prepared_by": prepared_by}

# ── Decode upload ──────────────────────────────────────────────────────────

if uploaded is None:
    if st.session_state.upload_key is not None:
        st.session_state.sheet = None
        st.session_state.upload_key = None
        _reset_results()
else:
    upload_key = (uploaded.name, uploaded.size)
    if upload_key != st.session_state.upload_key:
        _reset_results()
        st.session_state.upload_key = upload_key
        try:
            st.session_state.sheet = decode_spreadsheet(uploaded.getvalue(), uploaded.name)
        except FormatError as e:
            st.session_state.sheet = None
            st.error(f"Could not read {uploaded.name}: {e}. Check the file and upload it again.")
            logger.exception("Spreadsheet decode error")

sheet = st.session_state.sheet

st.title("Order Profit Reconciliation")

if sheet is None:
    st.info("Upload an order or payout export in the sidebar to begin.")
    st.stop()

if not sheet.rows:
    st.warning("The first sheet has a header row but no data rows.")
    st.stop()

st.success(f"Read {len(sheet.rows)} rows from sheet '{sheet.sheet_name}'.")
if sheet.duplicate_headers:
    st.warning(
        "Duplicate column headers found (the right-most column is used): "
        + ", ".join(sheet.duplicate_headers)
    )

# ── Field mapping ──────────────────────────────────────────────────────────

st.markdown('<div class="section-header">Column Mapping</div>', unsafe_allow_html=True)

detected = detect_mapping(sheet, intent=intent)
options = [NONE_OPTION] + sheet.headers


def _select(label: str, detected_value: str, key: str) -> str:
    idx = options.index(detected_value) if detected_value in options else 0
    choice = st.selectbox(label, options, index=idx, key=key)
    return "" if choice == NONE_OPTION else choice


map_cols = st.columns(4)
with map_cols[0]:
    date_field = _select("Date column *", detected.date_field, f"map_date_{intent}")
with map_cols[1]:
    amount_field = _select("Amount column *", detected.amount_field, f"map_amount_{intent}")
with map_cols[2]:
    sku_field = _select("SKU column", detected.sku_field, f"map_sku_{intent}")
with map_cols[3]:
    quantity_field = _select("Quantity column", detected.quantity_field, f"map_qty_{intent}")

mapping = FieldMapping(
    date_field=date_field,
    amount_field=amount_field,
    sku_field=sku_field,
    quantity_field=quantity_field,
)

with st.expander("Preview uploaded rows"):
    st.dataframe(pd.DataFrame(sheet.rows[:200]).astype(str), use_container_width=True, hide_index=True)

# ── Date window ────────────────────────────────────────────────────────────

st.markdown('<div class="section-header">Date Window</div>', unsafe_allow_html=True)

today = date.today()
range_cols = st.columns([1, 1, 1])
with range_cols[0]:
    start_date = st.date_input("Start date", value=today.replace(day=1))
with range_cols[1]:
    end_date = st.date_input("End date", value=today)
with range_cols[2]:
    keep_undated = st.checkbox(
        "Keep rows without a readable date",
        value=settings.keep_undated,
        help="By default rows whose date cannot be read are left out of the window.",
    )

run_btn = st.button(
    "Reconcile",
    type="primary",
    disabled=guard.busy,
    use_container_width=True,
)

# ── Run ────────────────────────────────────────────────────────────────────

if run_btn:
    try:
        date_range = DateRange.from_values(start_date, end_date)
        prepared = prepare_sheet(sheet, mapping=mapping)
        st.session_state.prepared = prepared
    except (InvalidRangeError, UnresolvedMappingError) as e:
        st.error(str(e))
        prepared = None

    if prepared is not None:
        token = None
        summary = None
        try:
            token = guard.begin()
            with st.spinner("Fetching cost ledgers and reconciling..."):
                summary = run_reconciliation(
                    prepared, date_range, _fetch_ledgers, keep_undated=keep_undated,
                )
        except PipelineBusyError as e:
            st.warning(str(e))
        except LedgerFetchError as e:
            st.error(f"Could not load cost ledgers: {e}. Your upload is kept; try again.")
            logger.exception("Ledger fetch error")
        finally:
            if token is not None:
                applied = guard.finish(token)
                if applied and summary is not None:
                    st.session_state.summary = summary
                    st.session_state.run_keep_undated = keep_undated

summary = st.session_state.summary

if summary is None:
    st.stop()

# ── Results ────────────────────────────────────────────────────────────────

tabs = st.tabs(["Overview", "Detail", "Cost Breakdown", "Data Quality", "Export"])

# ── TAB 0: OVERVIEW ────────────────────────────────────────────────────────
with tabs[0]:
    st.markdown(
        f'<div class="section-header">{summary.date_range.label()} '
        f'({format_days(summary.day_count)})</div>',
        unsafe_allow_html=True,
    )
    kpi_cols = st.columns(4)
    with kpi_cols[0]:
        _metric_card("Revenue", format_currency(summary.total_revenue), f"{summary.row_count} orders")
    with kpi_cols[1]:
        _metric_card("Total Cost", format_currency(summary.total_cost))
    with kpi_cols[2]:
        _metric_card(
            "Profit", format_currency(summary.total_profit),
            status="green" if summary.total_profit >= 0 else "red",
        )
    with kpi_cols[3]:
        _metric_card("Profit Margin", format_percent(summary.profit_margin))

    if summary.has_warnings:
        st.warning(
            f"{summary.missing_cost_count} unit(s) across {summary.missing_cost_skus} SKU(s) have no "
            f"inventory cost; {summary.dropped_undated} undated row(s) dropped; "
            f"{len(summary.row_issues)} unreadable cell(s). See Data Quality."
        )

    b = summary.cost_breakdown
    if summary.total_revenue:
        fig = go.Figure(go.Waterfall(
            name="Waterfall",
            orientation="v",
            measure=["absolute", "relative", "relative", "relative", "total"],
            x=["Revenue", "Product Cost", "Fixed Costs", "Payroll", "Profit"],
            y=[summary.total_revenue, -b.product_cost, -b.fixed_cost, -b.payroll_cost, summary.total_profit],
            connector={"line": {"color": "#9CA3AF"}},
            increasing={"marker": {"color": "#16A34A"}},
            decreasing={"marker": {"color": "#DC2626"}},
            totals={"marker": {"color": "#1B2A4A"}},
        ))
        fig.update_layout(
            height=380, yaxis_tickformat=",.2f",
            margin=dict(l=0, r=0, t=10, b=30),
            plot_bgcolor="white", paper_bgcolor="white",
        )
        st.plotly_chart(fig, use_container_width=True)

# ── TAB 1: DETAIL ──────────────────────────────────────────────────────────
with tabs[1]:
    st.markdown('<div class="section-header">Per-Order Detail</div>', unsafe_allow_html=True)
    if summary.rows:
        df_rows = pd.DataFrame([r.to_dict() for r in summary.rows])
        df_rows = df_rows.sort_values("date", kind="stable", na_position="last")
        st.dataframe(df_rows, use_container_width=True, hide_index=True)
    else:
        st.info("No orders fall inside the selected window.")

# ── TAB 2: COST BREAKDOWN ──────────────────────────────────────────────────
with tabs[2]:
    st.markdown('<div class="section-header">Cost Breakdown</div>', unsafe_allow_html=True)
    b = summary.cost_breakdown
    if b.total:
        fig2 = go.Figure(go.Pie(
            labels=["Product Cost", "Fixed Costs", "Payroll"],
            values=[b.product_cost, b.fixed_cost, b.payroll_cost],
            hole=0.45,
            marker={"colors": ["#1B2A4A", "#6B7280", "#D97706"]},
        ))
        fig2.update_layout(height=320, margin=dict(l=0, r=0, t=10, b=10))
        st.plotly_chart(fig2, use_container_width=True)

    st.markdown("**Fixed costs allocated to the window** (monthly amounts use a 30-day month)")
    if summary.fixed_allocations:
        st.dataframe(pd.DataFrame([a.to_dict() for a in summary.fixed_allocations]),
                     use_container_width=True, hide_index=True)
    else:
        st.caption("No active fixed costs.")

    st.markdown("**Payroll allocated to the window**")
    if summary.payroll_allocations:
        st.dataframe(pd.DataFrame([a.to_dict() for a in summary.payroll_allocations]),
                     use_container_width=True, hide_index=True)
    else:
        st.caption("No payroll records.")

# ── TAB 3: DATA QUALITY ────────────────────────────────────────────────────
with tabs[3]:
    st.markdown('<div class="section-header">Missing Inventory Costs</div>', unsafe_allow_html=True)
    if summary.missing_cost_items:
        st.dataframe(
            pd.DataFrame([{"sku": m.sku or "(blank)", "quantity": m.quantity, "rows": m.rows}
                          for m in summary.missing_cost_items]),
            use_container_width=True, hide_index=True,
        )
        if summary.missing_cost_skus > len(summary.missing_cost_items):
            st.caption(f"Showing {len(summary.missing_cost_items)} of {summary.missing_cost_skus} SKUs.")
    else:
        st.success("Every SKU in the window has an inventory cost.")

    st.markdown('<div class="section-header">Unreadable Cells</div>', unsafe_allow_html=True)
    if summary.row_issues:
        st.dataframe(pd.DataFrame([i.to_dict() for i in summary.row_issues]),
                     use_container_width=True, hide_index=True)
    else:
        st.success("All date and amount cells were read.")

# ── TAB 4: EXPORT ──────────────────────────────────────────────────────────
with tabs[4]:
    st.markdown('<div class="section-header">Export Report</div>', unsafe_allow_html=True)

    prepared = st.session_state.prepared
    include_details = st.checkbox("Include detail and breakdown sheets", value=True)
    stem = safe_filename(
        f"profit_{summary.date_range.start.isoformat()}_{summary.date_range.end.isoformat()}"
    )

    exp_col1, exp_col2, exp_col3 = st.columns(3)

    with exp_col1:
        st.markdown("#### Excel Workbook")
        try:
            xl_bytes = generate_excel_report(summary, session_info, include_details=include_details)
            st.download_button(
                label="Download Excel",
                data=xl_bytes,
                file_name=f"{stem}.xlsx",
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                use_container_width=True,
            )
        except Exception as e:
            st.error(f"Excel generation error: {e}")
            logger.exception("Excel export error")

    with exp_col2:
        st.markdown("#### JSON Report")
        st.download_button(
            label="Download JSON",
            data=build_report_json(summary, session_info, include_details=include_details),
            file_name=f"{stem}.json",
            mime="application/json",
            use_container_width=True,
        )

    with exp_col3:
        st.markdown("#### Cleaned Orders")
        if prepared is not None:
            window = filter_by_range(prepared.records, summary.date_range,
                                     keep_undated=st.session_state.get("run_keep_undated", False))
            cleaned = export_cleaned_rows(sort_by_date(window.records), prepared.sheet.headers, prepared.mapping)
            st.download_button(
                label="Download Cleaned Orders",
                data=cleaned,
                file_name=f"{stem}_cleaned.xlsx",
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
                use_container_width=True,
            )

    st.markdown("---")
    st.markdown("#### Save to Database")
    analysis_name = st.text_input("Analysis name", value="")
    if st.button("Save Analysis", disabled=not settings.has_supabase):
        try:
            record = build_analysis_record(
                summary,
                analysis_name,
                created_by=prepared_by or None,
                payout_rows=[r.record.raw for r in summary.rows],
                mapping=prepared.mapping.to_dict() if prepared is not None else None,
            )
            SupabaseLedgerStore.from_settings(settings).save_profit_analysis(record)
            st.success(f"Saved '{record['analysis_name']}'.")
        except Exception as e:
            st.error(f"Save failed: {e}")
            logger.exception("Analysis save error")
