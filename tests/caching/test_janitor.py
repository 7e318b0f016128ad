"""Tests for the cache janitor and the artifact store."""

from __future__ import annotations

from datetime import timedelta

import pytest

from folio.core.caching import build_cache_store
from folio.core.caching.artifacts import FileArtifactStore
from folio.core.caching.janitor import CacheJanitor, SweepReport
from folio.core.errors import ArtifactError, DatabaseError
from folio.core.models.cache import CacheStatus


class FakeBackend:
    def __init__(self):
        self.started_with = None
        self.is_running = False

    def start(self, tick_callback, interval_seconds):
        self.started_with = (tick_callback, interval_seconds)
        self.is_running = True

    def stop(self):
        self.is_running = False

    def health(self):
        return {"healthy": True}


@pytest.fixture()
def janitor(store):
    return CacheJanitor(store, backend=FakeBackend())


class TestSweep:
    def test_empty_cache(self, janitor):
        report = janitor.sweep()
        assert isinstance(report, SweepReport)
        assert report.ok
        assert (report.expired, report.unused, report.fast_tier_pruned, report.purged) == (0, 0, 0, 0)
        assert janitor.last_report is report

    def test_retires_expired_entries(self, janitor, store, make_artifact, request_for, clock, artifact_dir):
        entry = store.put(1, request_for(), make_artifact("e.pdf"))
        clock.advance(minutes=61)

        report = janitor.sweep()
        assert report.expired == 1
        assert store.durable.find_by_fingerprint(entry.fingerprint).status is CacheStatus.INVALID
        assert not (artifact_dir / "e.pdf").exists()

    def test_retires_unused_entries(self, janitor, store, make_artifact, request_for, clock):
        store.settings = store.settings.model_copy(update={"cache_kind_ttl_minutes": {"BOOK_LIST": 60 * 48}})
        idle = store.put(1, request_for(), make_artifact("idle.pdf"))
        clock.advance(hours=23)
        busy = store.put(2, request_for(), make_artifact("busy.pdf"))
        clock.advance(hours=2)

        report = janitor.sweep()
        assert report.expired == 0
        assert report.unused == 1
        assert store.durable.find_by_fingerprint(idle.fingerprint).valid is False
        assert store.durable.find_by_fingerprint(busy.fingerprint).valid is True

    def test_prunes_fast_tier_of_invalidated_entries(self, janitor, store, make_artifact, request_for, clock):
        entry = store.put(1, request_for(), make_artifact())
        store.durable.mark_invalid([entry.fingerprint], clock.now())
        assert entry.fingerprint in store.fast

        report = janitor.sweep()
        assert report.fast_tier_pruned == 1
        assert entry.fingerprint not in store.fast

    def test_prunes_idle_fast_tier_entries(self, janitor, store, make_artifact, request_for, clock):
        entry = store.put(1, request_for(), make_artifact())
        clock.advance(minutes=31)
        report = janitor.sweep()
        assert report.fast_tier_pruned == 1
        assert entry.fingerprint not in store.fast
        assert store.durable.find_by_fingerprint(entry.fingerprint).valid is True

    def test_purges_old_invalid_rows(self, janitor, store, make_artifact, request_for, clock):
        entry = store.put(1, request_for(), make_artifact())
        store.invalidate(entry.fingerprint)
        clock.advance(days=8)

        report = janitor.sweep()
        assert report.purged == 1
        assert store.durable.find_by_fingerprint(entry.fingerprint) is None

    def test_failing_pass_does_not_stop_the_rest(self, janitor, store, make_artifact, request_for, clock, monkeypatch):
        entry = store.put(1, request_for(), make_artifact())
        store.invalidate(entry.fingerprint)
        clock.advance(days=8)

        def boom(now):
            raise DatabaseError("locked")

        monkeypatch.setattr(store.durable, "find_expired", boom)
        report = janitor.sweep()
        assert not report.ok
        assert report.errors[0].startswith("expired:")
        assert report.purged == 1
        assert report.to_dict()["errors"] == report.errors


class TestLifecycle:
    def test_start_uses_interval(self, store):
        backend = FakeBackend()
        janitor = CacheJanitor(store, backend=backend, interval=timedelta(minutes=5))
        janitor.start()
        assert janitor.is_running
        assert backend.started_with[1] == 300
        janitor.stop()
        assert not janitor.is_running

    @pytest.mark.asyncio
    async def test_tick_runs_sweep(self, janitor):
        await janitor._tick()
        assert janitor.last_report is not None

    def test_defaults_from_settings(self, store):
        janitor = CacheJanitor(store, backend=FakeBackend())
        assert janitor.interval == timedelta(minutes=30)
        assert janitor.unused_after == timedelta(hours=24)
        assert janitor.invalid_retention == timedelta(days=7)


class TestFileArtifactStore:
    def test_relative_and_absolute_locations(self, artifact_dir, make_artifact):
        store = FileArtifactStore(artifact_dir)
        make_artifact("nested/a.pdf", size=10)
        assert store.exists("nested/a.pdf")
        assert store.exists(str(artifact_dir / "nested" / "a.pdf"))
        assert store.size("nested/a.pdf") == 10

    def test_missing(self, artifact_dir):
        store = FileArtifactStore(artifact_dir)
        assert store.exists("nope.pdf") is False
        assert store.size("nope.pdf") == 0
        assert store.delete("nope.pdf") is False

    def test_delete(self, artifact_dir, make_artifact):
        store = FileArtifactStore(artifact_dir)
        make_artifact("a.pdf")
        assert store.delete("a.pdf") is True
        assert not (artifact_dir / "a.pdf").exists()

    def test_delete_directory_raises(self, artifact_dir):
        (artifact_dir / "dir.pdf").mkdir()
        with pytest.raises(ArtifactError):
            FileArtifactStore(artifact_dir).delete("dir.pdf")


def test_build_cache_store(db_conn, settings, clock):
    store = build_cache_store(db_conn, settings, clock=clock)
    assert store.settings is settings
    assert store.clock is clock
    assert store.artifacts.root == settings.artifact_dir
