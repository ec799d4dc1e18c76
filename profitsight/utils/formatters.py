"""
Shared number formatting utilities for consistent display across the app and exports.

Conventions:
  Currency  →  $1,234.56 / -$12.00   (2 decimal places, sign before symbol)
  Percent   →  42.30%                (2 decimal places)
  Days      →  10 days / 1 day
"""


def format_currency(v, symbol: str = "$") -> str:
    """Format a numeric value as currency with cents: $1,234.56"""
    if v is None:
        return "N/A"
    try:
        val = float(v)
    except (TypeError, ValueError):
        return "N/A"
    if val < 0:
        return f"-{symbol}{abs(val):,.2f}"
    return f"{symbol}{val:,.2f}"


def format_percent(v) -> str:
    """Format a numeric value (already ×100) as a percentage: 42.30%"""
    if v is None:
        return "N/A"
    try:
        return f"{float(v):.2f}%"
    except (TypeError, ValueError):
        return "N/A"


def format_days(v) -> str:
    if v is None:
        return "N/A"
    try:
        n = int(round(float(v)))
    except (TypeError, ValueError):
        return "N/A"
    return f"{n} day" if n == 1 else f"{n} days"


def safe_filename(text: str, limit: int = 40) -> str:
    """Reduce free text to a filename-safe fragment."""
    return "".join(c if c.isalnum() or c in " -_" else "_" for c in (text or ""))[:limit].strip()
