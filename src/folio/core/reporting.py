"""Report generation path: cache lookup, render on miss, cache put.

The renderer is an external collaborator; this module only decides
whether it has to be called.  Cache faults never fail a report (the
store degrades them to a miss or a skipped write); renderer faults do,
and propagate to the caller (or, for scheduled runs, into the schedule's
ERROR state).
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from folio.core.caching.fingerprint import Owner
from folio.core.caching.store import ReportCacheStore
from folio.core.logging import get_logger
from folio.core.models.cache import CacheEntry
from folio.core.models.request import ReportRequest
from folio.core.models.schedule import ReportSchedule

logger = get_logger(__name__)


@dataclass(frozen=True)
class RenderedArtifact:
    """What a renderer returns: where the artifact went and how big the job was."""

    location: str
    record_count: int | None = None
    duration_ms: int | None = None


@runtime_checkable
class ReportRenderer(Protocol):
    def render(self, owner: Owner, request: ReportRequest) -> RenderedArtifact: ...


@dataclass(frozen=True)
class GeneratedReport:
    artifact_location: str
    from_cache: bool
    fingerprint: str | None = None
    record_count: int | None = None
    duration_ms: int | None = None
    entry: CacheEntry | None = None


class ReportGenerator:
    """Serve reports from the cache, rendering only on a miss.

    Example:
        >>> generator = ReportGenerator(store, renderer)
        >>> generator.generate(42, ReportRequest("READING_STATS")).from_cache
        False
        >>> generator.generate(42, ReportRequest("READING_STATS")).from_cache
        True
    """

    def __init__(self, store: ReportCacheStore, renderer: ReportRenderer) -> None:
        self.store = store
        self.renderer = renderer

    def generate(self, owner: Owner, request: ReportRequest) -> GeneratedReport:
        result = self.store.lookup(owner, request)
        if result.hit:
            return GeneratedReport(
                artifact_location=result.artifact_location,
                from_cache=True,
                fingerprint=result.entry.fingerprint,
                record_count=result.entry.record_count,
                entry=result.entry,
            )

        started = time.perf_counter()
        artifact = self.renderer.render(owner, request)
        duration_ms = artifact.duration_ms
        if duration_ms is None:
            duration_ms = int((time.perf_counter() - started) * 1000)

        entry = self.store.put(
            owner,
            request,
            artifact.location,
            record_count=artifact.record_count,
            duration_ms=duration_ms,
        )
        logger.info(
            "report.generated",
            report_kind=request.report_kind,
            location=artifact.location,
            duration_ms=duration_ms,
            cached=entry is not None,
        )
        return GeneratedReport(
            artifact_location=artifact.location,
            from_cache=False,
            fingerprint=entry.fingerprint if entry is not None else result.fingerprint,
            record_count=artifact.record_count,
            duration_ms=duration_ms,
            entry=entry,
        )

    def run_schedule(self, schedule: ReportSchedule) -> GeneratedReport:
        """Scheduler runner: replay the schedule's request for its owner."""
        return self.generate(schedule.owner_id, schedule.request)


__all__ = ["GeneratedReport", "RenderedArtifact", "ReportGenerator", "ReportRenderer"]
