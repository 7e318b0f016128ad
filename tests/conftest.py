"""
Shared pytest fixtures for folio tests.

This module provides:
- An in-memory SQLite connection with the folio schema applied
- A ManualClock pinned to 2024-01-01 08:00 UTC
- A temporary artifact directory plus a helper that writes artifacts
- Settings and a wired ReportCacheStore built from the above

Usage:
    Fixtures are auto-discovered by pytest::

        def test_round_trip(store, make_artifact, request_for):
            ...
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from folio.core.caching.artifacts import FileArtifactStore
from folio.core.caching.repository import CacheEntryRepository
from folio.core.caching.store import ReportCacheStore
from folio.core.models.request import ReportFilters, ReportOptions, ReportRequest
from folio.core.schema_loader import create_test_db
from folio.core.settings import FolioSettings
from folio.core.sqlite_conn import SqliteConnection
from folio.core.timestamps import ManualClock

START = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast, isolated tests")


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture()
def db_conn() -> Generator[SqliteConnection, None, None]:
    """In-memory SQLite with the folio schema."""
    conn = create_test_db()
    yield conn
    conn.close()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    path = tmp_path / "artifacts"
    path.mkdir()
    return path


@pytest.fixture()
def artifacts(artifact_dir: Path) -> FileArtifactStore:
    return FileArtifactStore(artifact_dir)


@pytest.fixture()
def make_artifact(artifact_dir: Path) -> Callable[..., str]:
    """Write an artifact file and return its location relative to the root."""

    def _make(name: str = "report.pdf", size: int = 128) -> str:
        path = artifact_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)
        return name

    return _make


# =============================================================================
# Settings / cache store
# =============================================================================


@pytest.fixture()
def settings(tmp_path: Path, artifact_dir: Path) -> FolioSettings:
    return FolioSettings(
        database=str(tmp_path / "folio.db"),
        artifact_dir=artifact_dir,
        cache_max_entries_per_owner=3,
        cache_max_size_mb=1,
        cache_size_grace_hours=1,
        cache_kind_ttl_minutes={"READING_STATS": 120, "BOOK_LIST": 60},
    )


@pytest.fixture()
def repository(db_conn: SqliteConnection) -> CacheEntryRepository:
    return CacheEntryRepository(db_conn)


@pytest.fixture()
def store(
    repository: CacheEntryRepository,
    artifacts: FileArtifactStore,
    settings: FolioSettings,
    clock: ManualClock,
) -> ReportCacheStore:
    return ReportCacheStore(repository, artifacts=artifacts, settings=settings, clock=clock)


@pytest.fixture()
def request_for() -> Callable[..., ReportRequest]:
    """Factory for report requests with sensible defaults."""

    def _make(
        kind: str = "BOOK_LIST",
        fmt: str = "PDF",
        statuses: list[str] | None = None,
        template: str | None = None,
        **custom: object,
    ) -> ReportRequest:
        return ReportRequest(
            report_kind=kind,
            output_format=fmt,
            template_ref=template,
            filters=ReportFilters(statuses=list(statuses or [])),
            options=ReportOptions(custom_options=dict(custom)),
        )

    return _make
