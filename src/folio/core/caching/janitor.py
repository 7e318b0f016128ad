"""Cache janitor - periodic retirement of expired and idle entries.

Each sweep runs four independent passes; a failure in one is logged and
the remaining passes still run:

1. expired     - non-INVALID entries whose ``expires_at`` has passed
2. unused      - entries not accessed within ``janitor_unused_hours``
3. fast tier   - in-process entries that are expired, idle for
                 ``memory_tier_stale_minutes`` or no longer valid durably
4. retention   - hard-delete INVALID rows older than ``invalid_retention_days``

The janitor is driven by a ``SchedulerBackend`` (the thread backend by
default), the same timing abstraction the report scheduler uses.
``sweep()`` can also be called directly for an out-of-cycle run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from folio.core.caching.store import ReportCacheStore
from folio.core.logging import get_logger
from folio.core.scheduling.protocol import SchedulerBackend
from folio.core.scheduling.thread_backend import ThreadSchedulerBackend

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Outcome of one janitor sweep."""

    started_at: datetime
    expired: int = 0
    unused: int = 0
    fast_tier_pruned: int = 0
    purged: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "expired": self.expired,
            "unused": self.unused,
            "fast_tier_pruned": self.fast_tier_pruned,
            "purged": self.purged,
            "errors": list(self.errors),
        }


class CacheJanitor:
    """Periodic sweeper for a :class:`ReportCacheStore`."""

    def __init__(
        self,
        store: ReportCacheStore,
        *,
        backend: SchedulerBackend | None = None,
        interval: timedelta | None = None,
        unused_after: timedelta | None = None,
        fast_tier_stale_after: timedelta | None = None,
        invalid_retention: timedelta | None = None,
    ) -> None:
        settings = store.settings
        self.store = store
        self.backend = backend or ThreadSchedulerBackend(name="folio-janitor")
        self.interval = interval or timedelta(minutes=settings.janitor_interval_minutes)
        self.unused_after = unused_after or timedelta(hours=settings.janitor_unused_hours)
        self.fast_tier_stale_after = fast_tier_stale_after or timedelta(
            minutes=settings.memory_tier_stale_minutes
        )
        self.invalid_retention = (
            invalid_retention
            if invalid_retention is not None
            else timedelta(days=settings.invalid_retention_days)
        )
        self.last_report: SweepReport | None = None

    def sweep(self) -> SweepReport:
        """Run all passes once."""
        now = self.store.clock.now()
        report = SweepReport(started_at=now)
        durable = self.store.durable

        try:
            report.expired = self.store.retire(durable.find_expired(now), reason="expired")
        except Exception as e:
            report.errors.append(f"expired: {e}")
            logger.error("janitor.expired_failed", error=str(e))

        try:
            report.unused = self.store.retire(durable.find_unused(now - self.unused_after), reason="unused")
        except Exception as e:
            report.errors.append(f"unused: {e}")
            logger.error("janitor.unused_failed", error=str(e))

        try:
            report.fast_tier_pruned = self._prune_fast_tier(now)
        except Exception as e:
            report.errors.append(f"fast_tier: {e}")
            logger.error("janitor.fast_tier_failed", error=str(e))

        try:
            report.purged = durable.purge_invalid(now - self.invalid_retention)
        except Exception as e:
            report.errors.append(f"retention: {e}")
            logger.error("janitor.retention_failed", error=str(e))

        self.last_report = report
        logger.info("janitor.sweep_completed", **report.to_dict())
        return report

    def _prune_fast_tier(self, now: datetime) -> int:
        fast = self.store.fast
        stale_before = now - self.fast_tier_stale_after
        alive = self.store.durable.valid_fingerprints(fast.fingerprints())
        return fast.prune(now, stale_before, keep=alive.__contains__)

    # -- lifecycle ---------------------------------------------------------

    async def _tick(self) -> None:
        self.sweep()

    def start(self) -> None:
        self.backend.start(self._tick, interval_seconds=self.interval.total_seconds())
        logger.info("janitor.started", interval_seconds=self.interval.total_seconds())

    def stop(self) -> None:
        self.backend.stop()
        logger.info("janitor.stopped")

    @property
    def is_running(self) -> bool:
        return bool(getattr(self.backend, "is_running", False))


__all__ = ["CacheJanitor", "SweepReport"]
