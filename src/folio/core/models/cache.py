"""Cache entry model (``report_cache``)."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class CacheStatus(str, Enum):
    """Lifecycle of a cache entry.

    A single closed enum replaces a separate ``valid`` flag: ``INVALID``
    is the soft-deleted state, so "valid but invalid" cannot be expressed.
    """

    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    INVALID = "INVALID"


@dataclass
class CacheEntry:
    """One cached report artifact."""

    fingerprint: str
    owner_key: str
    report_kind: str
    output_format: str
    artifact_location: str
    last_access_at: datetime
    created_at: datetime
    updated_at: datetime
    template_ref: str | None = None
    size_bytes: int = 0
    record_count: int | None = None
    generation_ms: int | None = None
    hit_count: int = 0
    expires_at: datetime | None = None
    status: CacheStatus = CacheStatus.COMPLETED
    parameters: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    @property
    def valid(self) -> bool:
        return self.status is not CacheStatus.INVALID

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def is_available(self, now: datetime) -> bool:
        """Usable, ignoring whether the artifact still exists."""
        return self.status is CacheStatus.COMPLETED and not self.is_expired(now)

    def copy(self, **changes: Any) -> CacheEntry:
        changes.setdefault("metadata", dict(self.metadata))
        return replace(self, **changes)
