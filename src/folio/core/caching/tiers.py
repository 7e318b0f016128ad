"""
The two cache tiers.

``FastTier`` is a volatile in-process map consulted before the durable
tier.  It is strictly advisory: dropping any or all of its entries only
costs a durable-tier read.  ``DurableTier`` is the repository contract the
cache store composes; :class:`~folio.core.caching.repository.CacheEntryRepository`
implements it over SQL.

Concurrency contract of ``InMemoryTier``:
    One instance is shared by request threads, scheduler workers and the
    janitor.  Every public method is atomic with respect to the others
    (a single internal lock guards the map), so callers never lock.
    Entries are copied on the way in and out; callers cannot mutate
    tier state through a returned ``CacheEntry``.

Tags:
    caching, two-tier, thread-safe, protocol, folio
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from folio.core.models.cache import CacheEntry


@runtime_checkable
class FastTier(Protocol):
    """In-process, map-like tier."""

    def get(self, fingerprint: str) -> CacheEntry | None: ...

    def put(self, entry: CacheEntry) -> None: ...

    def remove(self, fingerprint: str) -> bool: ...

    def record_hit(self, fingerprint: str, now: datetime) -> CacheEntry | None: ...

    def prune(
        self,
        now: datetime,
        stale_before: datetime,
        keep: Callable[[str], bool] | None = None,
    ) -> int: ...

    def clear(self) -> None: ...

    def fingerprints(self) -> list[str]: ...

    def __len__(self) -> int: ...


@runtime_checkable
class DurableTier(Protocol):
    """Persistent tier: repository semantics over ``CacheEntry`` rows."""

    def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None: ...

    def find_available(self, fingerprint: str, now: datetime) -> CacheEntry | None: ...

    def insert(self, entry: CacheEntry) -> CacheEntry: ...

    def update(self, entry: CacheEntry) -> CacheEntry: ...

    def record_hit(self, fingerprint: str, now: datetime) -> None: ...

    def mark_invalid(self, fingerprints: list[str], now: datetime) -> int: ...

    def list_valid_for_owner(self, owner_key: str) -> list[CacheEntry]: ...

    def count_valid_for_owner(self, owner_key: str) -> int: ...

    def total_valid_bytes(self) -> int: ...

    def find_unused(self, cutoff: datetime) -> list[CacheEntry]: ...

    def find_expired(self, now: datetime) -> list[CacheEntry]: ...

    def find_valid_by_kind(self, report_kind: str) -> list[CacheEntry]: ...

    def valid_fingerprints(self, fingerprints: list[str]) -> set[str]: ...

    def purge_invalid(self, before: datetime) -> int: ...

    def popular(self, limit: int = 10) -> list[CacheEntry]: ...

    def statistics(self) -> dict[str, Any]: ...


class InMemoryTier:
    """Thread-safe ``FastTier`` backed by a dict.

    Example:
        >>> tier = InMemoryTier()
        >>> tier.put(entry)
        >>> tier.record_hit(entry.fingerprint, now).hit_count
        1
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, fingerprint: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(fingerprint)
            return entry.copy() if entry is not None else None

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.fingerprint] = entry.copy()

    def remove(self, fingerprint: str) -> bool:
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    def remove_many(self, fingerprints: list[str]) -> int:
        with self._lock:
            return sum(1 for fp in fingerprints if self._entries.pop(fp, None) is not None)

    def record_hit(self, fingerprint: str, now: datetime) -> CacheEntry | None:
        """Count a hit if the entry is present and unexpired.

        Returns the updated snapshot, or ``None`` when the caller must fall
        through to the durable tier (an expired entry is dropped here).
        """
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            if not entry.is_available(now):
                del self._entries[fingerprint]
                return None
            entry.hit_count += 1
            entry.last_access_at = now
            return entry.copy()

    def prune(
        self,
        now: datetime,
        stale_before: datetime,
        keep: Callable[[str], bool] | None = None,
    ) -> int:
        """Drop expired entries, entries idle since *stale_before*, and
        entries for which *keep* returns ``False``."""
        with self._lock:
            snapshot = list(self._entries.values())

        doomed = {
            e.fingerprint
            for e in snapshot
            if not e.is_available(now) or e.last_access_at < stale_before
        }
        if keep is not None:
            doomed.update(
                e.fingerprint for e in snapshot if e.fingerprint not in doomed and not keep(e.fingerprint)
            )

        return self.remove_many(list(doomed))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def fingerprints(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        with self._lock:
            return fingerprint in self._entries


__all__ = ["DurableTier", "FastTier", "InMemoryTier"]
