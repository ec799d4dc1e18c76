"""
Error taxonomy for the ingestion and reconciliation pipeline.

Hard errors abort the step they occur in. Per-row anomalies (missing SKU
cost, unparseable cells) are never raised; they are collected into the
ProfitSummary instead.
"""


class ProfitSightError(Exception):
    """Base class for all pipeline errors."""


class FormatError(ProfitSightError, ValueError):
    """The uploaded buffer could not be decoded as a spreadsheet."""


class UnresolvedMappingError(ProfitSightError, ValueError):
    """The date or amount column could not be determined."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class InvalidRangeError(ProfitSightError, ValueError):
    """Requested date range has start after end (or is not a date)."""


class LedgerFetchError(ProfitSightError):
    """A cost ledger could not be read from the external store."""

    def __init__(self, message: str, table: str = ""):
        super().__init__(message)
        self.table = table


class PipelineBusyError(ProfitSightError):
    """A reconciliation run is already in flight."""
