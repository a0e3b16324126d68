"""Naive UTC time helpers.

Every timestamp column is stored as a naive UTC datetime; these helpers are
the only place "now" is read from.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_month_start(now: Optional[datetime] = None) -> datetime:
    """Midnight on the first day of ``now``'s month (default: current UTC month)."""
    current = now or utcnow()
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
