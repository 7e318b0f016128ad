"""Folio settings - one validated, environment-driven configuration object.

Every knob of the cache and the scheduler (TTL table, quotas, byte budget,
janitor and poll intervals) lives on ``FolioSettings`` so that factories
such as ``build_cache_store`` and ``create_scheduler`` never read the
environment themselves.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first use
    - **Environment-driven:** ``FOLIO_*`` env vars and ``.env`` files
    - **Sensible defaults:** The defaults are the production values

Examples:
    >>> from folio.core.settings import FolioSettings
    >>> settings = FolioSettings(cache_max_entries_per_owner=3)
    >>> settings.ttl_for("READING_STATS")
    datetime.timedelta(seconds=7200)

Tags:
    settings, configuration, pydantic, environment, folio
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

#: Report kind whose artifacts are shared by every owner.
SYSTEM_KIND = "SYSTEM"


class FolioSettings(BaseSettings):
    """Settings for the report cache and scheduler.

    Fields
    ──────
    database            : SQLite file path or SQLAlchemy URL
    artifact_dir        : Root directory for file artifacts
    cache_*             : TTL table, per-owner quota and byte budget
    janitor_*           : Sweep interval and long grace window
    scheduler_*         : Poll interval, worker pool and wall-clock zone
    """

    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database: str = Field(
        default_factory=lambda: str(Path.home() / ".folio" / "folio.db"),
        description="SQLite path or SQLAlchemy URL",
    )
    artifact_dir: Path = Field(
        default_factory=lambda: Path.home() / ".folio" / "artifacts",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Cache ────────────────────────────────────────────────────
    cache_enabled: bool = True
    cache_default_ttl_minutes: int = Field(default=60, gt=0)
    cache_system_ttl_minutes: int = Field(default=60, gt=0)
    cache_kind_ttl_minutes: dict[str, int] = Field(
        default_factory=lambda: {"READING_STATS": 120, "BOOK_LIST": 60},
    )
    cache_max_entries_per_owner: int = Field(default=10, ge=1)
    cache_max_size_mb: int = Field(default=500, gt=0)
    cache_size_grace_hours: float = Field(default=2, ge=0)

    # ── Janitor ──────────────────────────────────────────────────
    janitor_interval_minutes: float = Field(default=30, gt=0)
    janitor_unused_hours: float = Field(default=24, gt=0)
    memory_tier_stale_minutes: float = Field(default=30, gt=0)
    invalid_retention_days: int = Field(default=7, ge=0)

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_poll_seconds: float = Field(default=60, gt=0)
    scheduler_workers: int = Field(default=4, ge=1)
    never_run_sweep_seconds: float = Field(default=3600, gt=0)
    error_monitor_seconds: float = Field(default=21600, gt=0)
    max_schedules_per_owner: int = Field(default=50, ge=1)
    scheduler_timezone: str = "UTC"
    stale_execution_seconds: float = Field(default=3600, gt=0)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("cache_kind_ttl_minutes")
    @classmethod
    def _positive_ttls(cls, value: dict[str, int]) -> dict[str, int]:
        for kind, minutes in value.items():
            if minutes <= 0:
                raise ValueError(f"TTL for {kind} must be positive, got {minutes}")
        return {kind.upper(): minutes for kind, minutes in value.items()}

    # ── Derived values ───────────────────────────────────────────

    def ttl_for(self, report_kind: str | None) -> timedelta:
        """TTL for a report kind (unlisted kinds get the default)."""
        kind = (report_kind or "").upper()
        if kind == SYSTEM_KIND:
            return timedelta(minutes=self.cache_system_ttl_minutes)
        minutes = self.cache_kind_ttl_minutes.get(kind, self.cache_default_ttl_minutes)
        return timedelta(minutes=minutes)

    @property
    def cache_max_size_bytes(self) -> int:
        return self.cache_max_size_mb * 1024 * 1024

    @property
    def is_database_url(self) -> bool:
        return "://" in self.database


@lru_cache(maxsize=1)
def get_settings() -> FolioSettings:
    """Process-wide settings instance (cached)."""
    return FolioSettings()


__all__ = ["FolioSettings", "SYSTEM_KIND", "get_settings"]
