"""Scheduler timing and job-guard protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  BEAT-AS-POLLER                                                               │
│                                                                               │
│   Backends control WHEN ticks happen; the services control WHAT happens.      │
│                                                                               │
│   ┌─────────────────┐     tick()     ┌──────────────────────────────┐         │
│   │ ThreadScheduler │ ─────────────► │ SchedulerService._tick       │         │
│   │ Backend         │                │   due schedules → guard →    │         │
│   └─────────────────┘                │   worker pool → bookkeeping  │         │
│            │                         └──────────────────────────────┘         │
│            │          tick()         ┌──────────────────────────────┐         │
│            └───────────────────────► │ CacheJanitor._tick → sweep() │         │
│                                      └──────────────────────────────┘         │
│                                                                               │
│   JobGuard: at most one in-flight execution per job id.                       │
│     ConcurrencyGuard  - process-local (single scheduler instance)             │
│     LockManager       - table-backed TTL locks (several instances)            │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Pluggable timing backend: calls ``tick_callback`` every interval."""

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        """Start the loop; ticks are serialised (never overlap)."""
        ...

    def stop(self) -> None:
        """Stop the loop, waiting briefly for the current tick."""
        ...

    def health(self) -> dict[str, Any]:
        """``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


@runtime_checkable
class JobGuard(Protocol):
    """At-most-one-in-flight guard keyed by job id."""

    def try_acquire(self, job_id: str, source: str | None = None) -> bool:
        """IDLE → RUNNING; ``False`` if *job_id* is already running."""
        ...

    def release(self, job_id: str) -> bool:
        """RUNNING → IDLE, unconditionally."""
        ...

    def is_running(self, job_id: str) -> bool: ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
