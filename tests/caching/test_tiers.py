"""Tests for the in-process fast tier."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

from folio.core.caching.tiers import FastTier, InMemoryTier
from folio.core.models.cache import CacheEntry, CacheStatus

NOW = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


def _entry(fp: str, *, expires_in: timedelta | None = timedelta(hours=1), accessed: datetime = NOW) -> CacheEntry:
    return CacheEntry(
        fingerprint=fp,
        owner_key="user:1",
        report_kind="BOOK_LIST",
        output_format="PDF",
        artifact_location=f"{fp}.pdf",
        last_access_at=accessed,
        created_at=NOW,
        updated_at=NOW,
        expires_at=NOW + expires_in if expires_in is not None else None,
    )


class TestBasics:
    def test_is_a_fast_tier(self):
        assert isinstance(InMemoryTier(), FastTier)

    def test_put_get_remove(self):
        tier = InMemoryTier()
        tier.put(_entry("a"))
        assert "a" in tier
        assert tier.get("a").artifact_location == "a.pdf"
        assert tier.remove("a") is True
        assert tier.remove("a") is False
        assert tier.get("a") is None

    def test_returned_entries_are_copies(self):
        tier = InMemoryTier()
        tier.put(_entry("a"))
        snapshot = tier.get("a")
        snapshot.hit_count = 99
        snapshot.metadata["x"] = 1
        assert tier.get("a").hit_count == 0
        assert tier.get("a").metadata == {}

    def test_remove_many_and_clear(self):
        tier = InMemoryTier()
        for fp in "abc":
            tier.put(_entry(fp))
        assert tier.remove_many(["a", "b", "zz"]) == 2
        assert tier.fingerprints() == ["c"]
        tier.clear()
        assert len(tier) == 0


class TestRecordHit:
    def test_counts_hit_and_touches(self):
        tier = InMemoryTier()
        tier.put(_entry("a"))
        later = NOW + timedelta(minutes=5)
        entry = tier.record_hit("a", later)
        assert entry.hit_count == 1
        assert entry.last_access_at == later
        assert tier.record_hit("a", later).hit_count == 2

    def test_expired_entry_is_dropped(self):
        tier = InMemoryTier()
        tier.put(_entry("a", expires_in=timedelta(minutes=1)))
        assert tier.record_hit("a", NOW + timedelta(minutes=1)) is None
        assert "a" not in tier

    def test_invalid_entry_is_not_served(self):
        tier = InMemoryTier()
        tier.put(_entry("a").copy(status=CacheStatus.INVALID))
        assert tier.record_hit("a", NOW) is None

    def test_missing(self):
        assert InMemoryTier().record_hit("nope", NOW) is None


class TestPrune:
    def test_drops_expired_stale_and_rejected(self):
        tier = InMemoryTier()
        tier.put(_entry("expired", expires_in=timedelta(minutes=1)))
        tier.put(_entry("stale", accessed=NOW - timedelta(hours=2)))
        tier.put(_entry("gone"))
        tier.put(_entry("fresh"))
        removed = tier.prune(
            NOW + timedelta(minutes=5),
            stale_before=NOW - timedelta(hours=1),
            keep=lambda fp: fp != "gone",
        )
        assert removed == 3
        assert tier.fingerprints() == ["fresh"]

    def test_no_expiry_entries_survive(self):
        tier = InMemoryTier()
        tier.put(_entry("forever", expires_in=None))
        assert tier.prune(NOW + timedelta(days=365), stale_before=NOW - timedelta(days=1)) == 0


class TestConcurrency:
    def test_concurrent_hits_are_all_counted(self):
        tier = InMemoryTier()
        tier.put(_entry("a", expires_in=None))
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for _ in range(250):
                tier.record_hit("a", NOW)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tier.get("a").hit_count == 2000

    def test_mixed_writers_and_pruner(self):
        tier = InMemoryTier()
        stop = threading.Event()
        errors: list[BaseException] = []

        def writer(prefix: str):
            i = 0
            while not stop.is_set():
                tier.put(_entry(f"{prefix}{i % 50}"))
                tier.record_hit(f"{prefix}{(i + 7) % 50}", NOW)
                i += 1

        def pruner():
            while not stop.is_set():
                try:
                    tier.prune(NOW, NOW - timedelta(hours=1), keep=lambda fp: not fp.endswith("3"))
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "xyz"]
        threads.append(threading.Thread(target=pruner))
        for t in threads:
            t.start()
        stop.wait(0.3)
        stop.set()
        for t in threads:
            t.join()

        assert errors == []
        assert all(isinstance(fp, str) for fp in tier.fingerprints())
