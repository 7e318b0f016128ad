"""Concurrency guard - at most one in-flight execution per job id.

WHY
───
The poll loop can find a schedule due again while its previous run is
still on the worker pool (a slow report, a short interval, a manual
trigger).  The guard makes the second dispatch a no-op instead of an
overlapping run.

ARCHITECTURE
────────────
::

    ConcurrencyGuard(stale_after=1h, clock)
      ├── .try_acquire(job_id, source)  ─ IDLE → RUNNING, False if RUNNING
      ├── .release(job_id)              ─ RUNNING → IDLE, always
      ├── .is_running(job_id)
      ├── .running()                    ─ snapshot of RunningExecution
      └── .reclaim_stale()              ─ crash-recovery timeout

    State lives in one dict under one lock, so acquire is a single
    atomic check-and-set.  It is process-local; several scheduler
    processes need the table-backed ``LockManager`` instead.

Example::

    guard = ConcurrencyGuard()
    if guard.try_acquire(schedule_id):
        try:
            run()
        finally:
            guard.release(schedule_id)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from folio.core.logging import get_logger
from folio.core.timestamps import Clock, SystemClock

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunningExecution:
    """Guard record held while a job is in flight."""

    job_id: str
    started_at: datetime
    source: str | None = None

    def age(self, now: datetime) -> timedelta:
        return now - self.started_at


class ConcurrencyGuard:
    """Process-local IDLE/RUNNING state per job id.

    Args:
        stale_after: A RUNNING record older than this is treated as a
            crashed execution and may be reclaimed by the next acquire.
        clock: Time source.
    """

    def __init__(self, stale_after: timedelta | None = timedelta(hours=1), clock: Clock | None = None):
        self.stale_after = stale_after
        self.clock = clock or SystemClock()
        self._running: dict[str, RunningExecution] = {}
        self._lock = threading.Lock()

    def _is_stale(self, record: RunningExecution, now: datetime) -> bool:
        return self.stale_after is not None and record.age(now) >= self.stale_after

    def try_acquire(self, job_id: str, source: str | None = None) -> bool:
        now = self.clock.now()
        with self._lock:
            current = self._running.get(job_id)
            if current is not None and not self._is_stale(current, now):
                return False
            if current is not None:
                logger.warning(
                    "guard.reclaimed_stale",
                    job_id=job_id,
                    started_at=current.started_at.isoformat(),
                )
            self._running[job_id] = RunningExecution(job_id, now, source)
            return True

    def release(self, job_id: str) -> bool:
        with self._lock:
            return self._running.pop(job_id, None) is not None

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._running

    def running(self) -> list[RunningExecution]:
        with self._lock:
            return sorted(self._running.values(), key=lambda r: r.started_at)

    def reclaim_stale(self) -> list[str]:
        """Release every record older than ``stale_after``."""
        now = self.clock.now()
        with self._lock:
            stale = [job_id for job_id, rec in self._running.items() if self._is_stale(rec, now)]
            for job_id in stale:
                del self._running[job_id]
        for job_id in stale:
            logger.warning("guard.reclaimed_stale", job_id=job_id)
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._running)
