"""
Report cache store - two tiers, one lookup/put/invalidate surface.

Manifesto:
    A report can always be regenerated, so the cache must never be the
    reason a report request fails.  Every fault on the cache path (a bad
    request, an unreachable database, a vanished artifact) is logged with
    owner and fingerprint and then degrades to a miss or a skipped write.

Architecture:
    ::

        lookup(owner, request)
          1. fingerprint
          2. fast tier hit, unexpired, artifact present ──────────► Hit
          3. durable find_available → artifact present
               record_hit (durable), populate fast tier ─────────► Hit
          4. durable entry but artifact missing
               mark INVALID, drop from fast tier ────────────────► Miss
          5. otherwise ──────────────────────────────────────────► Miss

        put(owner, request, location, record_count, duration_ms)
          1. cache disabled → None
          2. EvictionPolicy.plan → retire victims (advisory)
          3. existing fingerprint → update in place
             else insert COMPLETED (IntegrityError race → update)
          4. expires_at = now + TTL(report kind)
          5. populate fast tier before returning

        invalidate(fp) / invalidate_owner(owner) / invalidate_kind(kind)
          mark INVALID → drop from fast tier → delete artifacts (best effort)

Tags:
    caching, two-tier, ttl, failure-isolation, folio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from folio.core.caching.artifacts import ArtifactStore, FileArtifactStore
from folio.core.caching.eviction import EvictionPolicy
from folio.core.caching.fingerprint import FingerprintBuilder, Owner, owner_key
from folio.core.caching.tiers import DurableTier, FastTier, InMemoryTier
from folio.core.errors import FolioError, IntegrityError
from folio.core.logging import get_logger
from folio.core.models.cache import CacheEntry, CacheStatus
from folio.core.models.request import ReportRequest
from folio.core.settings import FolioSettings
from folio.core.timestamps import Clock, SystemClock

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheHit:
    artifact_location: str
    entry: CacheEntry
    source: str = "durable"

    hit = True


@dataclass(frozen=True)
class CacheMiss:
    reason: str
    fingerprint: str | None = None

    hit = False


LookupResult = CacheHit | CacheMiss


def format_size(size_bytes: int | None) -> str:
    """Human readable byte count (``0 B``, ``512 B``, ``1.5 KB``, ``2.0 MB``)."""
    if not size_bytes:
        return "0 B"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    if size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


@dataclass
class CacheStatistics:
    """Aggregate cache statistics for operators."""

    total_entries: int = 0
    valid_entries: int = 0
    total_size_bytes: int = 0
    memory_entries: int = 0
    average_hit_count: float = 0.0
    by_kind: dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        """Average hit count per stored entry."""
        return self.average_hit_count / self.total_entries if self.total_entries else 0.0

    @property
    def formatted_size(self) -> str:
        return format_size(self.total_size_bytes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "total_size_bytes": self.total_size_bytes,
            "formatted_size": self.formatted_size,
            "memory_entries": self.memory_entries,
            "average_hit_count": self.average_hit_count,
            "hit_rate": self.hit_rate,
            "by_kind": dict(self.by_kind),
        }


class ReportCacheStore:
    """Two-tier report cache.

    Example:
        >>> store = ReportCacheStore(CacheEntryRepository(conn), settings=settings)
        >>> store.put(42, request, "reports/42/stats.pdf", record_count=120, duration_ms=850)
        >>> store.lookup(42, request).hit
        True
    """

    def __init__(
        self,
        durable: DurableTier,
        *,
        fast: FastTier | None = None,
        artifacts: ArtifactStore | None = None,
        settings: FolioSettings | None = None,
        clock: Clock | None = None,
        fingerprints: FingerprintBuilder | None = None,
        eviction: EvictionPolicy | None = None,
    ) -> None:
        self.settings = settings or FolioSettings()
        self.durable = durable
        self.fast: FastTier = fast if fast is not None else InMemoryTier()
        self.artifacts: ArtifactStore = artifacts or FileArtifactStore(self.settings.artifact_dir)
        self.clock = clock or SystemClock()
        self.fingerprints = fingerprints or FingerprintBuilder()
        self.eviction = eviction or EvictionPolicy(
            durable,
            max_entries_per_owner=self.settings.cache_max_entries_per_owner,
            max_total_bytes=self.settings.cache_max_size_bytes,
            grace=timedelta(hours=self.settings.cache_size_grace_hours),
            clock=self.clock,
        )

    @property
    def enabled(self) -> bool:
        return self.settings.cache_enabled

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, owner: Owner, request: ReportRequest) -> LookupResult:
        """Serve *request* from the cache if a usable artifact exists."""
        if not self.enabled:
            return CacheMiss("cache disabled")

        fingerprint = None
        try:
            fingerprint = self.fingerprints.build(owner, request)
            now = self.clock.now()

            entry = self.fast.record_hit(fingerprint, now)
            if entry is not None:
                if self.artifacts.exists(entry.artifact_location):
                    logger.debug("cache.hit", tier="memory", fingerprint=fingerprint, hits=entry.hit_count)
                    return CacheHit(entry.artifact_location, entry, source="memory")
                return self._artifact_missing(entry)

            entry = self.durable.find_available(fingerprint, now)
            if entry is None:
                logger.debug("cache.miss", fingerprint=fingerprint, report_kind=request.report_kind)
                return CacheMiss("not cached", fingerprint)

            if not self.artifacts.exists(entry.artifact_location):
                return self._artifact_missing(entry)

            self.durable.record_hit(fingerprint, now)
            entry = entry.copy(hit_count=entry.hit_count + 1, last_access_at=now)
            self.fast.put(entry)
            logger.info("cache.hit", tier="durable", owner=entry.owner_key, fingerprint=fingerprint, hits=entry.hit_count)
            return CacheHit(entry.artifact_location, entry, source="durable")

        except Exception as e:
            logger.error(
                "cache.lookup_failed",
                fingerprint=fingerprint,
                report_kind=getattr(request, "report_kind", None),
                error=str(e),
                **(e.to_dict() if isinstance(e, FolioError) else {}),
            )
            return CacheMiss(f"lookup failed: {e}", fingerprint)

    def _artifact_missing(self, entry: CacheEntry) -> CacheMiss:
        logger.warning(
            "cache.artifact_missing",
            owner=entry.owner_key,
            fingerprint=entry.fingerprint,
            location=entry.artifact_location,
        )
        self.fast.remove(entry.fingerprint)
        self.durable.mark_invalid([entry.fingerprint], self.clock.now())
        return CacheMiss("artifact missing", entry.fingerprint)

    # =========================================================================
    # Put
    # =========================================================================

    def put(
        self,
        owner: Owner,
        request: ReportRequest,
        artifact_location: str,
        record_count: int | None = None,
        duration_ms: int | None = None,
    ) -> CacheEntry | None:
        """Record a freshly generated artifact; ``None`` when nothing was cached."""
        if not self.enabled:
            return None

        fingerprint = None
        try:
            key = owner_key(owner, request)
            fingerprint = self.fingerprints.build(owner, request)

            self._apply_eviction(key, fingerprint)

            now = self.clock.now()
            entry = CacheEntry(
                fingerprint=fingerprint,
                owner_key=key,
                report_kind=request.report_kind,
                output_format=request.output_format,
                template_ref=request.template_ref,
                parameters=request.to_dict(),
                artifact_location=artifact_location,
                size_bytes=self.artifacts.size(artifact_location),
                record_count=record_count,
                generation_ms=duration_ms,
                hit_count=0,
                last_access_at=now,
                created_at=now,
                updated_at=now,
                expires_at=now + self.settings.ttl_for(request.report_kind),
                status=CacheStatus.COMPLETED,
                metadata={
                    "recordCount": record_count,
                    "generationTimeMs": duration_ms,
                    "reportType": request.report_kind,
                    "format": request.output_format,
                    "templateId": request.template_ref,
                    "cachedAt": now.isoformat(),
                },
            )

            existing = self.durable.find_by_fingerprint(fingerprint)
            if existing is not None:
                stored = self.durable.update(self._refresh(existing, entry))
            else:
                try:
                    stored = self.durable.insert(entry)
                except IntegrityError:
                    logger.warning("cache.put_race", owner=key, fingerprint=fingerprint)
                    current = self.durable.find_by_fingerprint(fingerprint)
                    stored = self.durable.update(self._refresh(current, entry) if current else entry)

            self.fast.put(stored)
            logger.info(
                "cache.stored",
                owner=key,
                fingerprint=fingerprint,
                report_kind=request.report_kind,
                size_bytes=stored.size_bytes,
                expires_at=stored.expires_at.isoformat() if stored.expires_at else None,
            )
            return stored

        except Exception as e:
            logger.error(
                "cache.put_failed",
                fingerprint=fingerprint,
                report_kind=getattr(request, "report_kind", None),
                error=str(e),
            )
            return None

    @staticmethod
    def _refresh(existing: CacheEntry, fresh: CacheEntry) -> CacheEntry:
        """Existing row rewritten with the fresh artifact; usage history kept
        unless the row had been invalidated."""
        revived = existing.status is CacheStatus.INVALID
        return fresh.copy(
            id=existing.id,
            created_at=fresh.created_at if revived else existing.created_at,
            hit_count=0 if revived else existing.hit_count,
        )

    def _apply_eviction(self, owner_key: str, fingerprint: str) -> None:
        try:
            plan = self.eviction.plan(owner_key, fingerprint)
            if plan.owner_victims:
                self.retire(plan.owner_victims, reason="owner_quota")
            if plan.budget_victims:
                self.retire(plan.budget_victims, reason="byte_budget")
        except Exception as e:
            logger.warning("eviction.failed", owner=owner_key, fingerprint=fingerprint, error=str(e))

    # =========================================================================
    # Invalidation
    # =========================================================================

    def retire(self, entries: list[CacheEntry], reason: str) -> int:
        """Mark *entries* INVALID, drop them from the fast tier and delete
        their artifacts.  Artifact deletion failures are logged only."""
        if not entries:
            return 0
        fingerprints = [e.fingerprint for e in entries]
        count = self.durable.mark_invalid(fingerprints, self.clock.now())
        for fp in fingerprints:
            self.fast.remove(fp)
        for entry in entries:
            try:
                self.artifacts.delete(entry.artifact_location)
            except Exception as e:
                logger.warning(
                    "cache.artifact_delete_failed",
                    fingerprint=entry.fingerprint,
                    location=entry.artifact_location,
                    error=str(e),
                )
        logger.info("cache.invalidated", reason=reason, count=count)
        return count

    def invalidate(self, fingerprint: str) -> int:
        self.fast.remove(fingerprint)
        try:
            entry = self.durable.find_by_fingerprint(fingerprint)
            if entry is None or not entry.valid:
                return 0
            return self.retire([entry], reason="fingerprint")
        except Exception as e:
            logger.error("cache.invalidate_failed", operation="invalidate", fingerprint=fingerprint, error=str(e))
            return 0

    def invalidate_owner(self, owner: Owner) -> int:
        key = owner_key(owner)
        try:
            return self.retire(self.durable.list_valid_for_owner(key), reason="owner")
        except Exception as e:
            logger.error("cache.invalidate_failed", operation="invalidate_owner", owner=key, error=str(e))
            return 0

    def invalidate_kind(self, report_kind: str) -> int:
        kind = report_kind.upper()
        try:
            return self.retire(self.durable.find_valid_by_kind(kind), reason="report_kind")
        except Exception as e:
            logger.error("cache.invalidate_failed", operation="invalidate_kind", report_kind=kind, error=str(e))
            return 0

    # =========================================================================
    # Administrative reads
    # =========================================================================

    def statistics(self) -> CacheStatistics:
        """Aggregate statistics; empty when the durable tier cannot be read."""
        try:
            stats = self.durable.statistics()
        except Exception as e:
            logger.error("cache.statistics_failed", operation="statistics", error=str(e))
            return CacheStatistics(memory_entries=len(self.fast))
        return CacheStatistics(
            total_entries=stats["total_entries"],
            valid_entries=stats["valid_entries"],
            total_size_bytes=stats["total_size_bytes"],
            memory_entries=len(self.fast),
            average_hit_count=stats["average_hit_count"],
            by_kind=stats["by_kind"],
        )

    def list_for_owner(self, owner: Owner) -> list[CacheEntry]:
        return self.durable.list_valid_for_owner(owner_key(owner))

    def popular(self, limit: int = 10) -> list[CacheEntry]:
        return self.durable.popular(limit)


__all__ = [
    "CacheHit",
    "CacheMiss",
    "CacheStatistics",
    "LookupResult",
    "ReportCacheStore",
    "format_size",
]
