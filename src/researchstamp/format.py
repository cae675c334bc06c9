"""
Display helpers.

Truncation here is for presentation only; stored hashes and addresses are
always kept in full.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def short_address(address: str, start: int = 6, end: int = 4) -> str:
    """Shorten an address to "0x" + start chars + "..." + end chars."""
    if not address:
        return ""
    if len(address) <= start + end + 2:
        return address
    return f"{address[:start + 2]}...{address[-end:]}"


def short_hash(value: str, chars: int = 12) -> str:
    if not value:
        return ""
    if len(value) <= chars * 2:
        return value
    return f"{value[:chars]}...{value[-chars:]}"


def format_timestamp(timestamp: int, include_time: bool = True) -> str:
    """Render seconds since epoch as a UTC date, optionally with time."""
    moment = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    if include_time:
        return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
    return moment.strftime("%Y-%m-%d")


_UNITS = (
    ("year", 365 * 86400),
    ("month", 30 * 86400),
    ("week", 7 * 86400),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def format_relative(timestamp: int, now: Optional[float] = None) -> str:
    """Render a timestamp as "3 hours ago", or "just now"."""
    current = time.time() if now is None else now
    elapsed = int(current - timestamp)
    for name, seconds in _UNITS:
        count = elapsed // seconds
        if count > 0:
            return f"{count} {name}{'s' if count > 1 else ''} ago"
    return "just now"


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB", "TB")
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    if index == 0:
        return f"{int(value)} Bytes"
    return f"{value:.1f} {units[index]}"


def format_duration(seconds: float) -> str:
    """Render a duration in the largest fitting unit, e.g. "3.5 hours"."""
    if seconds <= 0:
        return "N/A"
    if seconds < 60:
        return f"{seconds:.0f} seconds"
    if seconds < 3600:
        return f"{seconds / 60:.1f} minutes"
    if seconds < 86400:
        return f"{seconds / 3600:.1f} hours"
    return f"{seconds / 86400:.1f} days"


def format_percentage(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_number(value: int) -> str:
    """Compact large counts: 1500 -> "1.5K"."""
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if value >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return str(value)
