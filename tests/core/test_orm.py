"""Tests for folio.core.orm: table mirror and the SQLAlchemy connection bridge."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import inspect

from folio.core.caching.repository import CacheEntryRepository
from folio.core.dialect import SQLiteDialect, get_dialect
from folio.core.models.cache import CacheEntry
from folio.core.orm import FolioBase, create_folio_engine, open_bridge
from folio.core.orm.session import _to_named
from folio.core.schema_loader import FOLIO_TABLES

NOW = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


class TestTables:
    def test_metadata_mirrors_schema(self):
        assert set(FolioBase.metadata.tables) == set(FOLIO_TABLES)

    def test_create_all(self, tmp_path):
        engine = create_folio_engine(f"sqlite:///{tmp_path / 'orm.db'}")
        FolioBase.metadata.create_all(engine)
        names = set(inspect(engine).get_table_names())
        assert set(FOLIO_TABLES) <= names
        columns = {c["name"] for c in inspect(engine).get_columns("report_cache")}
        assert "metadata" in columns


class TestPlaceholderRewrite:
    def test_question_marks(self):
        assert _to_named("SELECT * FROM t WHERE a = ? AND b = ?") == "SELECT * FROM t WHERE a = :p0 AND b = :p1"

    def test_percent_s(self):
        assert _to_named("VALUES (%s, %s)") == "VALUES (:p0, :p1)"


class TestBridge:
    def test_dialect_name(self, tmp_path):
        bridge = open_bridge(f"sqlite:///{tmp_path / 'b.db'}")
        assert bridge.dialect_name == "sqlite"
        assert isinstance(get_dialect(bridge), SQLiteDialect)
        bridge.close()

    def test_repository_runs_over_bridge(self, tmp_path):
        bridge = open_bridge(f"sqlite:///{tmp_path / 'b.db'}")
        repo = CacheEntryRepository(bridge)
        entry = CacheEntry(
            fingerprint="fp-bridge",
            owner_key="user:1",
            report_kind="BOOK_LIST",
            output_format="PDF",
            artifact_location="a.pdf",
            last_access_at=NOW,
            created_at=NOW,
            updated_at=NOW,
            size_bytes=10,
        )
        stored = repo.insert(entry)
        assert stored.id is not None
        assert repo.find_by_fingerprint("fp-bridge").size_bytes == 10
        assert repo.count_valid_for_owner("user:1") == 1
        bridge.close()

    def test_rowcount_and_fetch(self, tmp_path):
        bridge = open_bridge(f"sqlite:///{tmp_path / 'b.db'}")
        result = bridge.execute(
            "INSERT INTO report_schedule_locks (schedule_id, locked_by, locked_at, expires_at) VALUES (?, ?, ?, ?)",
            ("s1", "me", "a", "b"),
        )
        assert result.rowcount == 1
        bridge.commit()
        row = bridge.execute("SELECT locked_by FROM report_schedule_locks WHERE schedule_id = ?", ("s1",)).fetchone()
        assert row[0] == "me"
        bridge.close()
