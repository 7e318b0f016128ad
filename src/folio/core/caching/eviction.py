"""
Eviction policy - the two pressures checked before every cache write.

Manifesto:
    Eviction is advisory.  It frees room when it can and never blocks the
    write that triggered it; whatever it cannot relieve is left for the
    janitor's next sweep.

Architecture:
    ::

        ReportCacheStore.put(owner, request, ...)
              │
              ▼
        EvictionPolicy.plan(owner_key, fingerprint)
              │
              ├── per-owner quota
              │     owner has ≥ N non-INVALID entries and the incoming
              │     fingerprint is new → victims = all but the N-1 newest
              │
              └── global byte budget
                    total non-INVALID bytes > ceiling → victims = entries
                    idle longer than the grace window, least recently used
                    first, until the total drops under the ceiling
              │
              ▼
        EvictionPlan(owner_victims, budget_victims)  → retired by the store

    Victim selection is pure (``select_owner_victims`` /
    ``select_budget_victims``); only ``plan`` reads the durable tier.

Tags:
    caching, eviction, quota, byte-budget, lru, folio
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import timedelta

from folio.core.caching.tiers import DurableTier
from folio.core.logging import get_logger
from folio.core.models.cache import CacheEntry
from folio.core.timestamps import Clock, SystemClock

logger = get_logger(__name__)


@dataclass
class EvictionPlan:
    """Entries to retire before a write."""

    owner_victims: list[CacheEntry] = field(default_factory=list)
    budget_victims: list[CacheEntry] = field(default_factory=list)
    bytes_before: int = 0

    @property
    def victims(self) -> list[CacheEntry]:
        seen: set[str] = set()
        result = []
        for entry in [*self.owner_victims, *self.budget_victims]:
            if entry.fingerprint not in seen:
                seen.add(entry.fingerprint)
                result.append(entry)
        return result

    def __bool__(self) -> bool:
        return bool(self.owner_victims or self.budget_victims)


def select_owner_victims(
    entries_newest_first: list[CacheEntry],
    incoming_fingerprint: str,
    max_entries: int,
) -> list[CacheEntry]:
    """Entries beyond the ``max_entries - 1`` newest.

    Nothing is selected when the incoming write replaces an existing
    entry, since it does not grow the owner's footprint.
    """
    if any(e.fingerprint == incoming_fingerprint for e in entries_newest_first):
        return []
    if len(entries_newest_first) < max_entries:
        return []
    return entries_newest_first[max(max_entries - 1, 0) :]


def select_budget_victims(
    total_bytes: int,
    max_bytes: int,
    candidates_lru_first: Iterable[CacheEntry],
    exclude: Iterable[str] = (),
) -> list[CacheEntry]:
    """Least recently used candidates until *total_bytes* fits *max_bytes*."""
    excluded = set(exclude)
    victims = []
    remaining = total_bytes
    for entry in candidates_lru_first:
        if remaining <= max_bytes:
            break
        if entry.fingerprint in excluded:
            continue
        victims.append(entry)
        remaining -= entry.size_bytes
    return victims


class EvictionPolicy:
    """Per-owner quota plus global byte budget.

    Args:
        durable: Durable tier to inspect.
        max_entries_per_owner: Quota N.
        max_total_bytes: Global byte ceiling.
        grace: Entries idle for less than this are never budget victims.
        clock: Time source.
    """

    def __init__(
        self,
        durable: DurableTier,
        *,
        max_entries_per_owner: int = 10,
        max_total_bytes: int = 500 * 1024 * 1024,
        grace: timedelta = timedelta(hours=2),
        clock: Clock | None = None,
    ) -> None:
        self.durable = durable
        self.max_entries_per_owner = max_entries_per_owner
        self.max_total_bytes = max_total_bytes
        self.grace = grace
        self.clock = clock or SystemClock()

    def plan(self, owner_key: str, fingerprint: str) -> EvictionPlan:
        plan = EvictionPlan()

        entries = self.durable.list_valid_for_owner(owner_key)
        plan.owner_victims = select_owner_victims(entries, fingerprint, self.max_entries_per_owner)
        if plan.owner_victims:
            logger.info(
                "eviction.owner_quota",
                owner=owner_key,
                entries=len(entries),
                quota=self.max_entries_per_owner,
                victims=len(plan.owner_victims),
            )

        total = self.durable.total_valid_bytes()
        plan.bytes_before = total
        freed = sum(e.size_bytes for e in plan.owner_victims)
        if total - freed > self.max_total_bytes:
            cutoff = self.clock.now() - self.grace
            plan.budget_victims = select_budget_victims(
                total - freed,
                self.max_total_bytes,
                self.durable.find_unused(cutoff),
                exclude=[e.fingerprint for e in plan.owner_victims] + [fingerprint],
            )
            remaining = total - freed - sum(e.size_bytes for e in plan.budget_victims)
            log = logger.info if remaining <= self.max_total_bytes else logger.warning
            log(
                "eviction.byte_budget",
                total_bytes=total,
                max_bytes=self.max_total_bytes,
                victims=len(plan.budget_victims),
                remaining_bytes=remaining,
            )

        return plan


__all__ = [
    "EvictionPlan",
    "EvictionPolicy",
    "select_budget_victims",
    "select_owner_victims",
]
