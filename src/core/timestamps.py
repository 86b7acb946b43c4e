"""Timestamp conversion helpers.

Index timestamps are integer epoch milliseconds; filters and tag fields
carry ISO-8601 strings. Naive values are interpreted as UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import time

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def now_millis() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def iso_to_millis(value: str) -> int:
    """Convert an ISO-8601 date or datetime string to epoch milliseconds.

    Args:
        value: ISO-8601 string, optionally ending in ``Z``.

    Returns:
        Epoch milliseconds.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - _EPOCH) // timedelta(milliseconds=1)
