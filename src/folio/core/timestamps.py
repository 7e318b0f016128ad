"""
Clock and timestamp utilities.

TTL checks, eviction grace windows and next-run computation all depend on
"now", so it is supplied by an injectable ``Clock`` rather than read from
``datetime.now`` at each call site.  ``ManualClock`` makes TTL and schedule
logic deterministic in tests.

Timestamps are persisted as UTC ISO-8601 strings with a fixed microsecond
precision (``2024-01-01T09:00:00.000000+00:00``), so lexical order of the
stored strings equals chronological order and SQL range predicates work on
both SQLite and PostgreSQL text columns.

Tags:
    timestamps, clock, utc, datetime, folio
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_db(dt: datetime | None) -> str | None:
    """Serialize a datetime for storage."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_db(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp (drivers may already return datetimes)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))


@runtime_checkable
class Clock(Protocol):
    """Time source."""

    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock."""

    def now(self) -> datetime:
        return utc_now()

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock:
    """Clock that only moves when told to.

    Example:
        >>> clock = ManualClock(datetime(2024, 1, 1, 8, 0, tzinfo=UTC))
        >>> clock.advance(hours=1).hour
        9
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start is not None else utc_now()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, when: datetime) -> datetime:
        with self._lock:
            self._now = ensure_utc(when)
            return self._now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by *delta* or by ``timedelta(**kwargs)``."""
        step = delta if delta is not None else timedelta(**kwargs)
        with self._lock:
            self._now = self._now + step
            return self._now

    def __repr__(self) -> str:
        return f"ManualClock({self._now.isoformat()})"


__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "ensure_utc",
    "from_db",
    "to_db",
    "utc_now",
]
