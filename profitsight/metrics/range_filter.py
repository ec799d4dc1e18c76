"""
Date-window selection for normalised records.
The window is inclusive on both ends; day_count feeds cost amortisation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from profitsight.errors import InvalidRangeError
from profitsight.parser.normalizer import NormalizedRecord

logger = logging.getLogger(__name__)


def _to_date(value, label: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidRangeError(f"Invalid {label} date: {value!r}")


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end] window."""
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidRangeError(f"Start date {self.start} is after end date {self.end}")

    @classmethod
    def from_values(cls, start, end) -> "DateRange":
        """Build from date / datetime / ISO 'YYYY-MM-DD' values."""
        return cls(_to_date(start, "start"), _to_date(end, "end"))

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def label(self) -> str:
        return f"{self.start.isoformat()} – {self.end.isoformat()}"

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class FilterResult:
    records: list[NormalizedRecord] = field(default_factory=list)
    day_count: int = 0
    dropped_undated: int = 0
    outside_range: int = 0


def filter_by_range(records: list[NormalizedRecord], date_range: DateRange,
                    keep_undated: bool = False) -> FilterResult:
    """
    Keep records dated inside the window, preserving input order.
    Undated records are dropped unless keep_undated is set; either way they
    are counted so the summary can report them.
    """
    kept = []
    undated = 0
    outside = 0
    for rec in records:
        if rec.date is None:
            undated += 1
            if keep_undated:
                kept.append(rec)
            continue
        if date_range.contains(rec.date):
            kept.append(rec)
        else:
            outside += 1

    logger.info(
        f"Range {date_range.label()}: kept {len(kept)} of {len(records)} rows "
        f"({outside} outside window, {undated} undated{' kept' if keep_undated else ' dropped'})"
    )
    return FilterResult(
        records=kept,
        day_count=date_range.day_count,
        dropped_undated=0 if keep_undated else undated,
        outside_range=outside,
    )


def sort_by_date(records: list[NormalizedRecord]) -> list[NormalizedRecord]:
    """Stable sort for display; undated records go last."""
    return sorted(records, key=lambda r: (r.date is None, r.date or date.min))
