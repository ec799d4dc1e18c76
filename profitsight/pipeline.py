"""
Upload → mapping → date window → cost reconciliation → summary.

reconcile() is the pure core: it takes normalised records, a window and a
ledger snapshot and returns a ProfitSummary without keeping any state.
prepare_records() and run_reconciliation() wrap it with the I/O-facing
steps (decoding the upload, fetching ledgers). RunGuard serialises runs for
one session and lets the caller discard results from superseded runs.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from profitsight.errors import LedgerFetchError, PipelineBusyError
from profitsight.ledgers.models import LedgerSnapshot
from profitsight.metrics.range_filter import DateRange, filter_by_range
from profitsight.metrics.reconciler import reconcile_records
from profitsight.metrics.summary import ProfitSummary, summarize
from profitsight.parser.field_resolver import (
    FieldMapping, INTENT_ORDER_CREATED, resolve_fields, require_mapping,
)
from profitsight.parser.normalizer import NormalizedRecord, RowIssue, normalize_records
from profitsight.parser.spreadsheet import DecodedSheet, decode_spreadsheet

logger = logging.getLogger(__name__)


@dataclass
class PreparedUpload:
    """A decoded, mapped and normalised upload; reusable across runs."""
    sheet: DecodedSheet
    mapping: FieldMapping
    records: list[NormalizedRecord] = field(default_factory=list)
    issues: list[RowIssue] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.records)


def reconcile(records: list[NormalizedRecord], date_range: DateRange, ledgers: LedgerSnapshot,
              keep_undated: bool = False, row_issues: list[RowIssue] | None = None) -> ProfitSummary:
    """
    Filter records to the window, cost them and reduce to a ProfitSummary.
    Dated payroll records outside the window are not charged.
    """
    filtered = filter_by_range(records, date_range, keep_undated=keep_undated)
    reconciliation = reconcile_records(filtered.records, ledgers.for_window(date_range), filtered.day_count)
    return summarize(
        reconciliation,
        date_range,
        row_issues=row_issues,
        dropped_undated=filtered.dropped_undated,
    )


def detect_mapping(sheet: DecodedSheet, intent: str = INTENT_ORDER_CREATED,
                   overrides: dict | None = None) -> FieldMapping:
    """Auto-detect columns for a decoded sheet (unresolved slots are '')."""
    return resolve_fields(sheet.headers, intent=intent, overrides=overrides)


def prepare_records(content: bytes, filename: str | None = None, overrides: dict | None = None,
                    intent: str = INTENT_ORDER_CREATED) -> PreparedUpload:
    """
    Decode an upload and normalise its rows.
    Raises FormatError or UnresolvedMappingError; both need operator action.
    """
    sheet = decode_spreadsheet(content, filename)
    return prepare_sheet(sheet, overrides=overrides, intent=intent)


def prepare_sheet(sheet: DecodedSheet, overrides: dict | None = None,
                  intent: str = INTENT_ORDER_CREATED, mapping: FieldMapping | None = None) -> PreparedUpload:
    """Resolve (or take the operator's explicit) mapping and normalise the rows."""
    if mapping is None:
        mapping = detect_mapping(sheet, intent, overrides)
    mapping = require_mapping(mapping, sheet.headers)
    records, issues = normalize_records(sheet.rows, mapping)
    return PreparedUpload(sheet=sheet, mapping=mapping, records=records, issues=issues)


def run_reconciliation(prepared: PreparedUpload, date_range: DateRange,
                       fetch_ledgers: Callable[[DateRange], LedgerSnapshot],
                       keep_undated: bool = False) -> ProfitSummary:
    """
    Fetch a fresh ledger snapshot for the window and reconcile the prepared upload.
    A ledger failure raises LedgerFetchError; `prepared` is left untouched so
    the run can be retried without re-uploading.
    """
    try:
        ledgers = fetch_ledgers(date_range)
    except LedgerFetchError:
        raise
    except Exception as e:
        raise LedgerFetchError(f"Ledger fetch failed: {e}") from e

    summary = reconcile(
        prepared.records,
        date_range,
        ledgers,
        keep_undated=keep_undated,
        row_issues=prepared.issues,
    )
    logger.info(
        f"Reconciled {summary.row_count} rows for {date_range.label()}: "
        f"revenue {summary.total_revenue:,.2f}, profit {summary.total_profit:,.2f}"
    )
    return summary


class RunGuard:
    """
    Busy flag plus generation token for one session's reconciliation runs.

        token = guard.begin()        # PipelineBusyError while a run is in flight
        try:
            result = ...
        finally:
            applied = guard.finish(token)
        if applied: show(result)

    cancel() (navigation away, new upload) makes any in-flight token stale,
    so its result is dropped instead of being applied to newer state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self) -> int:
        with self._lock:
            if self._busy:
                raise PipelineBusyError("A reconciliation run is already in progress")
            self._busy = True
            self._generation += 1
            return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def finish(self, token: int) -> bool:
        """Release the busy flag; True if the run's result should be applied."""
        with self._lock:
            current = token == self._generation
            if current:
                self._busy = False
            return current

    def cancel(self):
        """Invalidate the in-flight run (if any) and clear the busy flag."""
        with self._lock:
            self._generation += 1
            self._busy = False
