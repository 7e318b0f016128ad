"""Report scheduling for folio.

Manifesto:
    Recurring reports need more than ``time.sleep()`` in a loop.  They need
    next-run computation that always moves forward, a guard so a slow run
    is never overlapped by the next poll, and bookkeeping that survives a
    failing report.  This package provides all three behind a pluggable
    timing backend.

┌──────────────────────────────────────────────────────────────────────────────┐
│  FOLIO SCHEDULER                                                              │
│                                                                               │
│   recurrence       next_run(rule, from) - Daily/Weekly/Monthly/Custom(cron)   │
│   guard            ConcurrencyGuard     - process-local IDLE/RUNNING          │
│   lock_manager     LockManager          - table-backed TTL locks              │
│   repository       ReportScheduleRepository + ScheduleCreate/ScheduleUpdate  │
│   service          SchedulerService     - poll loop + worker pool             │
│   thread_backend   ThreadSchedulerBackend (timing)                            │
│                                                                               │
│   Quick start:                                                                │
│     scheduler = create_scheduler(conn, runner=generator.run_schedule)         │
│     scheduler.start()                                                         │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Constructing scheduler components individually in application code
    ✅ ``create_scheduler(conn, runner)`` factory function
    ❌ One ``ConcurrencyGuard`` per process with several scheduler processes
    ✅ ``create_scheduler(..., distributed=True)`` for a ``LockManager`` guard

Tags:
    folio, scheduling, cron, croniter, beat-as-poller, worker-pool
"""

from __future__ import annotations

from datetime import timedelta

from folio.core.protocols import Connection
from folio.core.settings import FolioSettings, get_settings
from folio.core.timestamps import Clock

from .guard import ConcurrencyGuard, RunningExecution
from .lock_manager import LockManager
from .protocol import BackendHealth, JobGuard, SchedulerBackend, TickCallback
from .recurrence import (
    describe_rule,
    next_run,
    next_run_utc,
    resolve_timezone,
    rule_from_config,
    rule_to_config,
    validate_rule,
)
from .repository import ReportScheduleRepository, ScheduleCreate, ScheduleUpdate
from .service import ScheduleRunner, SchedulerService, SchedulerStats
from .thread_backend import ThreadSchedulerBackend

__all__ = [
    "BackendHealth",
    "ConcurrencyGuard",
    "JobGuard",
    "LockManager",
    "ReportScheduleRepository",
    "RunningExecution",
    "ScheduleCreate",
    "ScheduleRunner",
    "ScheduleUpdate",
    "SchedulerBackend",
    "SchedulerService",
    "SchedulerStats",
    "ThreadSchedulerBackend",
    "TickCallback",
    "create_scheduler",
    "describe_rule",
    "next_run",
    "next_run_utc",
    "resolve_timezone",
    "rule_from_config",
    "rule_to_config",
    "validate_rule",
]


def create_scheduler(
    conn: Connection,
    runner: ScheduleRunner,
    settings: FolioSettings | None = None,
    *,
    clock: Clock | None = None,
    distributed: bool = False,
    instance_id: str | None = None,
    backend: SchedulerBackend | None = None,
) -> SchedulerService:
    """Wire a complete scheduler from settings.

    Args:
        conn: Database connection with the folio schema applied.
        runner: Called with each due ``ReportSchedule`` on a worker thread.
        settings: Defaults to ``get_settings()``.
        clock: Injectable time source.
        distributed: Guard runs with table-backed locks instead of the
            process-local guard.
        instance_id: Lock owner id when *distributed*.
        backend: Timing backend (thread backend by default).

    Example:
        >>> scheduler = create_scheduler(conn, runner=generator.run_schedule)
        >>> scheduler.start()
    """
    settings = settings or get_settings()
    stale_after = timedelta(seconds=settings.stale_execution_seconds)

    repository = ReportScheduleRepository(
        conn,
        clock=clock,
        timezone=settings.scheduler_timezone,
        max_per_owner=settings.max_schedules_per_owner,
    )
    guard: JobGuard
    if distributed:
        guard = LockManager(conn, instance_id=instance_id, ttl=stale_after, clock=repository.clock)
    else:
        guard = ConcurrencyGuard(stale_after=stale_after, clock=repository.clock)

    return SchedulerService(
        repository,
        runner,
        guard=guard,
        backend=backend,
        clock=repository.clock,
        max_workers=settings.scheduler_workers,
        poll_interval=settings.scheduler_poll_seconds,
        never_run_interval=timedelta(seconds=settings.never_run_sweep_seconds),
        error_monitor_interval=timedelta(seconds=settings.error_monitor_seconds),
    )
