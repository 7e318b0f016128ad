"""Tests for CacheEntryRepository over in-memory SQLite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from folio.core.caching.repository import CacheEntryRepository
from folio.core.caching.tiers import DurableTier
from folio.core.errors import IntegrityError
from folio.core.models.cache import CacheEntry, CacheStatus

NOW = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


def _entry(fp: str, owner: str = "user:1", *, kind: str = "BOOK_LIST", size: int = 100, **kw) -> CacheEntry:
    base = dict(
        fingerprint=fp,
        owner_key=owner,
        report_kind=kind,
        output_format="PDF",
        artifact_location=f"{fp}.pdf",
        last_access_at=NOW,
        created_at=NOW,
        updated_at=NOW,
        expires_at=NOW + timedelta(hours=1),
        size_bytes=size,
    )
    base.update(kw)
    return CacheEntry(**base)


class TestInsertAndFind:
    def test_satisfies_durable_tier(self, repository):
        assert isinstance(repository, DurableTier)

    def test_round_trip(self, repository):
        stored = repository.insert(
            _entry(
                "fp1",
                parameters={"report_kind": "BOOK_LIST"},
                metadata={"recordCount": 3},
                record_count=3,
                generation_ms=40,
            )
        )
        assert stored.id is not None
        found = repository.find_by_fingerprint("fp1")
        assert found.parameters == {"report_kind": "BOOK_LIST"}
        assert found.metadata == {"recordCount": 3}
        assert found.expires_at == NOW + timedelta(hours=1)
        assert found.status is CacheStatus.COMPLETED

    def test_duplicate_fingerprint_raises_integrity_error(self, repository):
        repository.insert(_entry("fp1"))
        with pytest.raises(IntegrityError):
            repository.insert(_entry("fp1", owner="user:2"))

    def test_find_available_respects_expiry_and_status(self, repository):
        repository.insert(_entry("fp1"))
        repository.insert(_entry("fp2", status=CacheStatus.GENERATING))
        assert repository.find_available("fp1", NOW) is not None
        assert repository.find_available("fp1", NOW + timedelta(hours=1)) is None
        assert repository.find_available("fp2", NOW) is None
        assert repository.find_available("missing", NOW) is None

    def test_entry_without_expiry_is_available(self, repository):
        repository.insert(_entry("fp1", expires_at=None))
        assert repository.find_available("fp1", NOW + timedelta(days=30)) is not None


class TestWrites:
    def test_update(self, repository):
        stored = repository.insert(_entry("fp1"))
        updated = repository.update(stored.copy(artifact_location="new.pdf", size_bytes=5))
        assert updated.artifact_location == "new.pdf"
        assert updated.size_bytes == 5

    def test_record_hit(self, repository):
        repository.insert(_entry("fp1"))
        later = NOW + timedelta(minutes=3)
        repository.record_hit("fp1", later)
        repository.record_hit("fp1", later)
        found = repository.find_by_fingerprint("fp1")
        assert found.hit_count == 2
        assert found.last_access_at == later

    def test_mark_invalid_only_counts_valid_rows(self, repository):
        repository.insert(_entry("fp1"))
        repository.insert(_entry("fp2"))
        assert repository.mark_invalid(["fp1", "fp2", "nope"], NOW) == 2
        assert repository.mark_invalid(["fp1"], NOW) == 0
        assert repository.mark_invalid([], NOW) == 0
        assert repository.find_by_fingerprint("fp1").valid is False

    def test_purge_invalid(self, repository):
        repository.insert(_entry("old"))
        repository.insert(_entry("new"))
        repository.mark_invalid(["old"], NOW - timedelta(days=10))
        repository.mark_invalid(["new"], NOW)
        assert repository.purge_invalid(NOW - timedelta(days=7)) == 1
        assert repository.find_by_fingerprint("old") is None
        assert repository.find_by_fingerprint("new") is not None


class TestQueries:
    def test_list_and_count_for_owner_newest_first(self, repository):
        for i in range(3):
            repository.insert(_entry(f"fp{i}", created_at=NOW + timedelta(minutes=i)))
        repository.insert(_entry("other", owner="user:2"))
        repository.mark_invalid(["fp0"], NOW)

        entries = repository.list_valid_for_owner("user:1")
        assert [e.fingerprint for e in entries] == ["fp2", "fp1"]
        assert repository.count_valid_for_owner("user:1") == 2

    def test_total_valid_bytes(self, repository):
        repository.insert(_entry("a", size=100))
        repository.insert(_entry("b", size=250))
        repository.mark_invalid(["a"], NOW)
        assert repository.total_valid_bytes() == 250

    def test_find_unused_lru_first(self, repository):
        repository.insert(_entry("recent", last_access_at=NOW))
        repository.insert(_entry("older", last_access_at=NOW - timedelta(hours=5)))
        repository.insert(_entry("oldest", last_access_at=NOW - timedelta(hours=9)))
        unused = repository.find_unused(NOW - timedelta(hours=1))
        assert [e.fingerprint for e in unused] == ["oldest", "older"]

    def test_find_expired(self, repository):
        repository.insert(_entry("a", expires_at=NOW - timedelta(seconds=1)))
        repository.insert(_entry("b"))
        assert [e.fingerprint for e in repository.find_expired(NOW)] == ["a"]

    def test_find_valid_by_kind_is_case_insensitive(self, repository):
        repository.insert(_entry("a", kind="READING_STATS"))
        repository.insert(_entry("b"))
        assert [e.fingerprint for e in repository.find_valid_by_kind("reading_stats")] == ["a"]

    def test_valid_fingerprints(self, repository):
        repository.insert(_entry("a"))
        repository.insert(_entry("b"))
        repository.mark_invalid(["b"], NOW)
        assert repository.valid_fingerprints(["a", "b", "c"]) == {"a"}
        assert repository.valid_fingerprints([]) == set()

    def test_popular(self, repository):
        repository.insert(_entry("a"))
        repository.insert(_entry("b"))
        for _ in range(3):
            repository.record_hit("b", NOW)
        assert [e.fingerprint for e in repository.popular(limit=1)] == ["b"]

    def test_statistics(self, repository):
        repository.insert(_entry("a", kind="READING_STATS", size=10))
        repository.insert(_entry("b", size=20))
        repository.insert(_entry("c", size=30))
        repository.record_hit("b", NOW)
        repository.mark_invalid(["c"], NOW)

        stats = repository.statistics()
        assert stats["total_entries"] == 3
        assert stats["valid_entries"] == 2
        assert stats["total_size_bytes"] == 30
        assert stats["average_hit_count"] == pytest.approx(0.5)
        assert stats["by_kind"] == {"BOOK_LIST": 1, "READING_STATS": 1}


def test_explicit_dialect(db_conn):
    from folio.core.dialect import SQLiteDialect

    repo = CacheEntryRepository(db_conn, SQLiteDialect())
    repo.insert(_entry("fp"))
    assert repo.count_valid_for_owner("user:1") == 1
