"""
Utility functions for HubSpot Pulse.
Permissive parsing of raw CRM property values and small time helpers.

HubSpot properties arrive as unvalidated strings: amounts may be blank or
free text, dates may be ISO-8601 or epoch milliseconds. Every raw read goes
through parse_amount / parse_timestamp so bad data becomes 0 or None
instead of an exception.

Usage:
    from lib.utils import parse_amount, parse_timestamp
"""
import time
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional

MS_PER_DAY = 24 * 60 * 60 * 1000


def parse_amount(val: Any, default: float = 0.0) -> float:
    """Parse a monetary amount as float, falling back to default."""
    if val is None or val == "":
        return default
    try:
        amount = float(val)
    except (ValueError, TypeError):
        return default
    # NaN / inf from strings like "nan" are not amounts
    if amount != amount or amount in (float("inf"), float("-inf")):
        return default
    return amount


def parse_timestamp(val: Any) -> Optional[int]:
    """Parse an ISO-8601 string or epoch-ms value to epoch milliseconds, or None."""
    if val is None or val == "":
        return None
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        return int(val)
    text = str(val).strip()
    if text.isdigit():
        return int(text)
    try:
        # Handle ISO format with or without trailing Z / offset
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Zero-safe division."""
    if denominator == 0:
        return default
    return numerator / denominator


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def to_datetime(ts_ms: int, tz: tzinfo = None) -> datetime:
    """Epoch milliseconds to an aware datetime in tz (UTC by default)."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=tz or timezone.utc)


def to_ms(dt: datetime) -> int:
    """Aware datetime to epoch milliseconds."""
    return int(round(dt.timestamp() * 1000))


def day_key(ts_ms: Optional[int], tz: tzinfo = None) -> Optional[str]:
    """Format a timestamp as a 'YYYY-MM-DD' string in tz."""
    if ts_ms is None:
        return None
    return to_datetime(ts_ms, tz).strftime("%Y-%m-%d")


def month_key(ts_ms: Optional[int], tz: tzinfo = None) -> Optional[str]:
    """Format a timestamp as a 'YYYY-MM' string in tz."""
    if ts_ms is None:
        return None
    return to_datetime(ts_ms, tz).strftime("%Y-%m")
