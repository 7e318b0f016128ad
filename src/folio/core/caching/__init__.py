"""Two-tier report cache.

Modules
-------
fingerprint   FingerprintBuilder, CacheScope, owner_key
tiers         FastTier / DurableTier protocols, InMemoryTier
artifacts     ArtifactStore protocol, FileArtifactStore
repository    CacheEntryRepository (SQL durable tier)
eviction      EvictionPolicy (per-owner quota, byte budget)
store         ReportCacheStore (lookup / put / invalidate)
janitor       CacheJanitor (periodic sweeps)
"""

from __future__ import annotations

from folio.core.caching.artifacts import ArtifactStore, FileArtifactStore
from folio.core.caching.eviction import EvictionPlan, EvictionPolicy
from folio.core.caching.fingerprint import CacheScope, FingerprintBuilder, Owner, owner_key
from folio.core.caching.janitor import CacheJanitor, SweepReport
from folio.core.caching.repository import CacheEntryRepository
from folio.core.caching.store import (
    CacheHit,
    CacheMiss,
    CacheStatistics,
    LookupResult,
    ReportCacheStore,
    format_size,
)
from folio.core.caching.tiers import DurableTier, FastTier, InMemoryTier
from folio.core.protocols import Connection
from folio.core.settings import FolioSettings, get_settings
from folio.core.timestamps import Clock


def build_cache_store(
    conn: Connection,
    settings: FolioSettings | None = None,
    *,
    clock: Clock | None = None,
    fast: FastTier | None = None,
    artifacts: ArtifactStore | None = None,
) -> ReportCacheStore:
    """Wire a ``ReportCacheStore`` over *conn* from settings.

    Example:
        >>> store = build_cache_store(create_test_db())
        >>> janitor = CacheJanitor(store)
    """
    settings = settings or get_settings()
    return ReportCacheStore(
        CacheEntryRepository(conn),
        fast=fast,
        artifacts=artifacts or FileArtifactStore(settings.artifact_dir),
        settings=settings,
        clock=clock,
    )


__all__ = [
    "ArtifactStore",
    "CacheEntryRepository",
    "CacheHit",
    "CacheJanitor",
    "CacheMiss",
    "CacheScope",
    "CacheStatistics",
    "DurableTier",
    "EvictionPlan",
    "EvictionPolicy",
    "FastTier",
    "FileArtifactStore",
    "FingerprintBuilder",
    "InMemoryTier",
    "LookupResult",
    "Owner",
    "ReportCacheStore",
    "SweepReport",
    "build_cache_store",
    "format_size",
    "owner_key",
]
