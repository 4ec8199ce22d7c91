"""Formatting utilities for display."""
from datetime import datetime, timezone
from decimal import Decimal

BILLION = Decimal("1e9")
SUFFIXES = ((Decimal("1e12"), "T"), (BILLION, "B"), (Decimal("1e6"), "M"))


def _dec(value):
    return value if isinstance(value, Decimal) else Decimal(str(value))


def format_usd(value, compact=False):
    """Dollar amount with commas. Billions and up (or anything, with ``compact``) get a T/B/M suffix."""
    if value is None:
        return "N/A"
    value = _dec(value)
    magnitude = abs(value)
    if compact or magnitude >= BILLION:
        for size, suffix in SUFFIXES:
            if magnitude >= size:
                return f"${value / size:,.2f}{suffix}"
    if 0 < magnitude < 1:
        # Sub-dollar coins need more precision than cents
        return f"${value:,.6f}"
    return f"${value:,.2f}"


def format_pct(value, decimals=2, with_color=False):
    """Signed percentage, optionally wrapped in rich color markup."""
    if value is None:
        return "N/A"
    value = _dec(value)
    formatted = f"{'+' if value >= 0 else ''}{value:.{decimals}f}%"
    if not with_color:
        return formatted
    color = "green" if value >= 0 else "red"
    return f"[{color}]{formatted}[/{color}]"


def format_quantity(value):
    """Format a coin quantity, trimming trailing zeros: 0.50000000 -> '0.5'."""
    if value is None:
        return "N/A"
    text = f"{_dec(value):,.8f}".rstrip("0").rstrip(".")
    return text or "0"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.strftime("%Y-%m-%d %H:%M:%S UTC")


def time_ago(dt):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "never"
    now = datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = max(0, int((now - dt).total_seconds()))

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"
