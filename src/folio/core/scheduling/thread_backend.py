"""Threading-based scheduler backend (the default).

One daemon thread owns one event loop for its whole life and awaits the
tick callback on a fixed cadence::

    start(tick, interval)
      └─► thread "folio-scheduler" / "folio-janitor"
             [tick]                      if run_immediately
             loop:
                 wait(interval - duration of the previous tick)
                 tick          ── raises → failed_ticks += 1, logged
                               ── slower than interval → overrun logged,
                                  next tick starts at once
    stop()
      └─► stop event; join(join_timeout)

The cadence is measured from tick start to tick start, so a 60 second poll
stays on a 60 second grid however long ``poll()`` takes.  Report jobs
never run on this thread: ``SchedulerService`` hands them to a worker
pool, and the janitor's sweep is a handful of SQL statements.
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import UTC, datetime
from typing import Any

from folio.core.logging import get_logger

from .protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread tick loop.

    Args:
        name: Thread name, also used in log events and health output.
        join_timeout: Seconds ``stop()`` waits for a tick in progress.
        run_immediately: Tick once as soon as the thread starts instead of
            after the first interval (the scheduler uses this to pick up
            schedules that fell due while the process was down).

    Example:
        >>> backend = ThreadSchedulerBackend(name="folio-janitor")
        >>> async def tick():
        ...     janitor.sweep()
        >>> backend.start(tick, interval_seconds=1800)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(
        self,
        *,
        name: str = "folio-scheduler",
        join_timeout: float = 5.0,
        run_immediately: bool = False,
    ) -> None:
        self.thread_name = name
        self.join_timeout = join_timeout
        self.run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._interval: float = 60.0
        self._tick_count = 0
        self._failed_ticks = 0
        self._overruns = 0
        self._last_tick: datetime | None = None
        self._last_duration: float | None = None
        self._last_error: str | None = None

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        if self.is_running:
            logger.warning("backend.already_started", thread=self.thread_name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(tick_callback, interval_seconds), daemon=True, name=self.thread_name
        )
        self._thread.start()

    def _run(self, tick_callback: TickCallback, interval: float) -> None:
        logger.info(
            "backend.started",
            thread=self.thread_name,
            interval_seconds=interval,
            run_immediately=self.run_immediately,
        )
        with asyncio.Runner() as runner:
            delay = 0.0 if self.run_immediately else interval
            while not self._stop_event.wait(delay):
                duration = self._tick(runner, tick_callback)
                if duration > interval:
                    with self._lock:
                        self._overruns += 1
                    logger.warning(
                        "backend.tick_overrun",
                        thread=self.thread_name,
                        duration_seconds=round(duration, 3),
                        interval_seconds=interval,
                    )
                delay = max(0.0, interval - duration)
        logger.info("backend.stopped", thread=self.thread_name, ticks=self._tick_count)

    def _tick(self, runner: asyncio.Runner, tick_callback: TickCallback) -> float:
        started = time.monotonic()
        with self._lock:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)
        try:
            runner.run(tick_callback())
        except Exception as e:
            with self._lock:
                self._failed_ticks += 1
                self._last_error = f"{type(e).__name__}: {e}"
            logger.exception("backend.tick_failed", thread=self.thread_name, error=str(e))
        duration = time.monotonic() - started
        self._last_duration = duration
        return duration

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        thread.join(timeout=self.join_timeout)
        if thread.is_alive():
            logger.warning("backend.stop_timeout", thread=self.thread_name, timeout=self.join_timeout)
        self._thread = None

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        with self._lock:
            extra = {
                "thread": self.thread_name,
                "interval_seconds": self._interval,
                "failed_ticks": self._failed_ticks,
                "overruns": self._overruns,
                "last_duration_seconds": self._last_duration,
                "last_error": self._last_error,
            }
            return BackendHealth(
                healthy=self.is_running,
                backend=self.name,
                tick_count=self._tick_count,
                last_tick=self._last_tick,
                extra=extra,
            )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def failed_ticks(self) -> int:
        return self._failed_ticks

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
