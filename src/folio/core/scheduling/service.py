"""Scheduler service - poll loop plus bounded worker pool.

Manifesto:
    The service combines a backend (timing), the schedule repository
    (data), a job guard (at most one run per schedule) and a worker pool
    (execution).  The backend only says *when* to poll; ``poll()`` decides
    what is due.  Runs are submitted to the pool and never awaited by the
    poll loop, so a slow report does not delay any other schedule.

Tags:
    folio, scheduling, orchestrator, beat-as-poller, worker-pool

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE                                                            │
│                                                                               │
│   backend tick ──► poll(now)                                                  │
│                      ├── never-run sweep   (hourly, clock based)              │
│                      ├── error monitor     (6-hourly, clock based)            │
│                      └── get_due(now) → for each schedule:                    │
│                            guard.try_acquire(id)  ── False → skipped          │
│                            re-read row            ── already ran → skipped    │
│                            pool.submit(_execute)                              │
│                                                                               │
│   _execute(schedule)                                                          │
│     runner(schedule)          exception → status ERROR, last_error            │
│     finally:                                                                  │
│       next = next_run(rule, max(now, trigger))   strictly later               │
│       repository.record_run(...)                                              │
│       guard.release(id)       always                                          │
│                                                                               │
│   Public API: start() / stop(drain) / poll() / trigger(id) / pause(id) /      │
│               resume(id) / drain(timeout) / health()                          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any

from folio.core.errors import ScheduleNotFoundError
from folio.core.logging import LogContext, get_logger
from folio.core.models.schedule import ReportSchedule, ScheduleStatus
from folio.core.timestamps import Clock, SystemClock, to_db

from .guard import ConcurrencyGuard
from .protocol import JobGuard, SchedulerBackend
from .repository import ReportScheduleRepository
from .thread_backend import ThreadSchedulerBackend

logger = get_logger(__name__)

ScheduleRunner = Callable[[ReportSchedule], Any]


@dataclass
class SchedulerStats:
    """Counters for one service instance."""

    tick_count: int = 0
    dispatched: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: int = 0
    never_run_dispatched: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_tick"] = to_db(self.last_tick)
        return data


class SchedulerService:
    """Report scheduler.

    Example:
        >>> service = SchedulerService(repo, runner=generator.run_schedule)
        >>> service.start()
        >>> ...
        >>> service.stop()

    Tests drive it without the backend thread:

        >>> service.poll()
        >>> service.drain()
    """

    def __init__(
        self,
        repository: ReportScheduleRepository,
        runner: ScheduleRunner,
        *,
        guard: JobGuard | None = None,
        backend: SchedulerBackend | None = None,
        clock: Clock | None = None,
        max_workers: int = 4,
        poll_interval: float = 60.0,
        never_run_interval: timedelta = timedelta(hours=1),
        error_monitor_interval: timedelta = timedelta(hours=6),
    ) -> None:
        self.repository = repository
        self.runner = runner
        self.clock = clock or repository.clock or SystemClock()
        self.guard: JobGuard = guard or ConcurrencyGuard(clock=self.clock)
        self.backend = backend or ThreadSchedulerBackend(name="folio-scheduler", run_immediately=True)
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self.never_run_interval = never_run_interval
        self.error_monitor_interval = error_monitor_interval

        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._inflight: set[Future] = set()
        self._last_never_run_sweep: datetime | None = None
        self._last_error_monitor: datetime | None = None
        self._running = False

    # === Lifecycle ===

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="folio-report"
                )
            return self._executor

    def start(self) -> None:
        if self._running:
            logger.warning("scheduler.already_running")
            return
        self._ensure_executor()
        self.backend.start(self._tick, self.poll_interval)
        self._running = True
        logger.info(
            "scheduler.started",
            backend=self.backend.name,
            poll_seconds=self.poll_interval,
            workers=self.max_workers,
        )

    def stop(self, drain: bool = True) -> None:
        """Stop polling; with *drain*, wait for in-flight runs to finish."""
        if self._running:
            self.backend.stop()
            self._running = False
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=drain, cancel_futures=not drain)
        logger.info("scheduler.stopped", drained=drain)

    @property
    def is_running(self) -> bool:
        return self._running

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for every submitted run; ``True`` if none is left pending."""
        with self._stats_lock:
            pending = list(self._inflight)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    # === Tick processing ===

    async def _tick(self) -> None:
        self.poll()

    def poll(self, now: datetime | None = None) -> list[str]:
        """One poll cycle.  Returns the ids of the schedules dispatched."""
        now = now or self.clock.now()
        with self._stats_lock:
            self._stats.tick_count += 1
            self._stats.last_tick = now

        dispatched: list[str] = []
        try:
            if self._sweep_due(self._last_never_run_sweep, self.never_run_interval, now):
                self._last_never_run_sweep = now
                dispatched.extend(self.sweep_never_run(now))

            if self._sweep_due(self._last_error_monitor, self.error_monitor_interval, now):
                self._last_error_monitor = now
                self.monitor_errors()

            due = self.repository.get_due(now)
            if due:
                logger.info("scheduler.due", count=len(due))
            for schedule in due:
                if self._dispatch(schedule, source="poll") is not None:
                    dispatched.append(schedule.schedule_id)

        except Exception as e:
            with self._stats_lock:
                self._stats.last_error = str(e)
            logger.exception("scheduler.poll_failed", error=str(e))

        return dispatched

    @staticmethod
    def _sweep_due(last: datetime | None, interval: timedelta, now: datetime) -> bool:
        return last is None or now - last >= interval

    def sweep_never_run(self, now: datetime | None = None) -> list[str]:
        """Run schedules whose first trigger was missed (e.g. created while down)."""
        now = now or self.clock.now()
        dispatched = []
        for schedule in self.repository.find_never_run(now):
            logger.info(
                "scheduler.never_run",
                schedule_id=schedule.schedule_id,
                next_run_at=to_db(schedule.next_run_at),
            )
            if self._dispatch(schedule, source="never_run") is not None:
                dispatched.append(schedule.schedule_id)
                with self._stats_lock:
                    self._stats.never_run_dispatched += 1
        return dispatched

    def monitor_errors(self) -> list[ReportSchedule]:
        """Log every active schedule left in ERROR state."""
        failing = self.repository.list_by_status(ScheduleStatus.ERROR)
        for schedule in failing:
            logger.warning(
                "scheduler.schedule_in_error",
                schedule_id=schedule.schedule_id,
                owner=schedule.owner_id,
                failure_count=schedule.failure_count,
                last_error=schedule.last_error,
            )
        return failing

    # === Dispatch / execution ===

    def _dispatch(self, schedule: ReportSchedule, source: str) -> Future | None:
        schedule_id = schedule.schedule_id
        if not self.guard.try_acquire(schedule_id, source):
            logger.debug("scheduler.skipped_running", schedule_id=schedule_id, source=source)
            with self._stats_lock:
                self._stats.skipped += 1
            return None

        if source != "manual" and not self._still_due(schedule):
            self.guard.release(schedule_id)
            with self._stats_lock:
                self._stats.skipped += 1
            return None

        trigger_at = schedule.next_run_at if source != "manual" else None
        try:
            future = self._ensure_executor().submit(self._execute, schedule, trigger_at)
        except RuntimeError as e:
            self.guard.release(schedule_id)
            logger.error("scheduler.submit_failed", schedule_id=schedule_id, error=str(e))
            return None

        with self._stats_lock:
            self._stats.dispatched += 1
            self._inflight.add(future)
        future.add_done_callback(self._forget)
        logger.info("scheduler.dispatched", schedule_id=schedule_id, owner=schedule.owner_id, source=source)
        return future

    def _still_due(self, schedule: ReportSchedule) -> bool:
        """Re-read under the guard; a run that finished after the poll query
        has already moved ``next_run_at``."""
        current = self.repository.get(schedule.schedule_id)
        return current is not None and current.pollable and current.next_run_at == schedule.next_run_at

    def _forget(self, future: Future) -> None:
        with self._stats_lock:
            self._inflight.discard(future)

    def _execute(self, schedule: ReportSchedule, trigger_at: datetime | None) -> None:
        schedule_id = schedule.schedule_id
        error: str | None = None
        with LogContext(schedule_id=schedule_id, owner=schedule.owner_id):
            try:
                logger.info("scheduler.run_started", report_kind=schedule.request.report_kind)
                self.runner(schedule)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.error("scheduler.run_failed", error=error)
            finally:
                try:
                    self._finish(schedule, trigger_at, error)
                except Exception as e:
                    logger.exception("scheduler.bookkeeping_failed", error=str(e))
                finally:
                    self.guard.release(schedule_id)

    def _finish(self, schedule: ReportSchedule, trigger_at: datetime | None, error: str | None) -> None:
        ran_at = self.clock.now()
        base = max(ran_at, trigger_at) if trigger_at is not None else ran_at
        next_at = self.repository.compute_next_run(schedule.rule, base)
        if next_at is None and error is None:
            error = "Recurrence rule yields no next run"

        self.repository.record_run(schedule.schedule_id, ran_at, next_at, error)

        with self._stats_lock:
            if error is None:
                self._stats.succeeded += 1
            else:
                self._stats.failed += 1
                self._stats.last_error = error
        logger.info(
            "scheduler.run_completed",
            ok=error is None,
            next_run_at=to_db(next_at),
        )

    # === Manual operations ===

    def trigger(self, schedule_id: str) -> Future | None:
        """Run a schedule now, out of cycle.

        Returns the submitted future, or ``None`` when the schedule is
        already running.

        Raises:
            ScheduleNotFoundError: no active schedule with this id.
        """
        schedule = self.repository.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return self._dispatch(schedule, source="manual")

    def pause(self, schedule_id: str) -> bool:
        paused = self.repository.set_status(schedule_id, ScheduleStatus.DISABLED)
        if paused:
            logger.info("scheduler.paused", schedule_id=schedule_id)
        return paused

    def resume(self, schedule_id: str) -> bool:
        """Return a DISABLED or ERROR schedule to polling.

        ``next_run_at`` is recomputed from now so a long pause does not
        fire an immediate catch-up run.
        """
        schedule = self.repository.get(schedule_id)
        if schedule is None:
            return False
        self.repository.set_next_run(
            schedule_id, self.repository.compute_next_run(schedule.rule, self.clock.now())
        )
        self.repository.set_status(schedule_id, ScheduleStatus.ACTIVE)
        logger.info("scheduler.resumed", schedule_id=schedule_id)
        return True

    # === Health & stats ===

    @property
    def stats(self) -> SchedulerStats:
        with self._stats_lock:
            return SchedulerStats(**asdict(self._stats))

    @property
    def inflight(self) -> int:
        with self._stats_lock:
            return len(self._inflight)

    def health(self) -> dict[str, Any]:
        backend = self.backend.health()
        return {
            "healthy": (not self._running) or bool(backend.get("healthy")),
            "running": self._running,
            "backend": backend,
            "inflight": self.inflight,
            "stats": self.stats.to_dict(),
            "schedules": self.repository.statistics(),
        }


__all__ = ["ScheduleRunner", "SchedulerService", "SchedulerStats"]
