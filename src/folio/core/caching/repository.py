"""Cache entry repository - the durable tier over SQL.

This module is the SQL implementation of
:class:`~folio.core.caching.tiers.DurableTier` for the ``report_cache``
table.  Rows are soft-invalidated; only ``purge_invalid`` deletes.

Tags:
    folio, caching, repository, durable-tier, sql

┌──────────────────────────────────────────────────────────────────────────────┐
│  CACHE ENTRY REPOSITORY                                                       │
│                                                                               │
│   Lookups:                                                                    │
│   ├── find_by_fingerprint(fp)        any status (put updates in place)        │
│   ├── find_available(fp, now)        COMPLETED and unexpired                  │
│   └── valid_fingerprints(fps)        which of fps are still non-INVALID       │
│                                                                               │
│   Writes:                                                                     │
│   ├── insert(entry)                  IntegrityError on fingerprint race       │
│   ├── update(entry)                                                           │
│   ├── record_hit(fp, now)            hit_count + 1, last_access_at = now      │
│   ├── mark_invalid(fps, now)                                                  │
│   └── purge_invalid(before)          maintenance hard delete                  │
│                                                                               │
│   Eviction / janitor queries:                                                 │
│   ├── list_valid_for_owner(owner)    newest first                             │
│   ├── count_valid_for_owner(owner) / total_valid_bytes()                      │
│   ├── find_unused(cutoff)            least recently used first                │
│   └── find_expired(now) / find_valid_by_kind(kind)                            │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from folio.core.dialect import Dialect, get_dialect
from folio.core.errors import DatabaseError, IntegrityError
from folio.core.logging import get_logger
from folio.core.models.cache import CacheEntry, CacheStatus
from folio.core.protocols import Connection
from folio.core.timestamps import from_db, to_db

logger = get_logger(__name__)

TABLE = "report_cache"

COLUMNS = [
    "fingerprint",
    "owner_key",
    "report_kind",
    "output_format",
    "template_ref",
    "parameters",
    "artifact_location",
    "size_bytes",
    "record_count",
    "generation_ms",
    "hit_count",
    "last_access_at",
    "created_at",
    "updated_at",
    "expires_at",
    "status",
    "metadata",
]

_SELECT = f"SELECT id, {', '.join(COLUMNS)} FROM {TABLE}"
_VALID = f"status <> '{CacheStatus.INVALID.value}'"


def _loads(value: str | None) -> Any:
    return json.loads(value) if value else None


class CacheEntryRepository:
    """SQL-backed durable tier.

    Example:
        >>> repo = CacheEntryRepository(conn)
        >>> repo.insert(entry)
        >>> repo.find_available(entry.fingerprint, now).hit_count
        0
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or get_dialect(conn)

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def _in(self, count: int) -> str:
        return f"({self._ph(count)})"

    # === Row mapping ===

    def _row_to_entry(self, row: Any) -> CacheEntry:
        return CacheEntry(
            id=row[0],
            fingerprint=row[1],
            owner_key=row[2],
            report_kind=row[3],
            output_format=row[4],
            template_ref=row[5],
            parameters=_loads(row[6]),
            artifact_location=row[7],
            size_bytes=row[8] or 0,
            record_count=row[9],
            generation_ms=row[10],
            hit_count=row[11] or 0,
            last_access_at=from_db(row[12]),
            created_at=from_db(row[13]),
            updated_at=from_db(row[14]),
            expires_at=from_db(row[15]),
            status=CacheStatus(row[16]),
            metadata=_loads(row[17]) or {},
        )

    def _entry_values(self, entry: CacheEntry) -> tuple:
        return (
            entry.fingerprint,
            entry.owner_key,
            entry.report_kind,
            entry.output_format,
            entry.template_ref,
            json.dumps(entry.parameters, sort_keys=True) if entry.parameters is not None else None,
            entry.artifact_location,
            entry.size_bytes,
            entry.record_count,
            entry.generation_ms,
            entry.hit_count,
            to_db(entry.last_access_at),
            to_db(entry.created_at),
            to_db(entry.updated_at),
            to_db(entry.expires_at),
            entry.status.value,
            json.dumps(entry.metadata, sort_keys=True, default=str),
        )

    def _query(self, sql: str, params: tuple = ()) -> list[CacheEntry]:
        cursor = self.conn.execute(sql, params)
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def _scalar(self, sql: str, params: tuple = ()) -> Any:
        row = self.conn.execute(sql, params).fetchone()
        return row[0] if row else None

    # === Lookups ===

    def find_by_fingerprint(self, fingerprint: str) -> CacheEntry | None:
        rows = self._query(f"{_SELECT} WHERE fingerprint = {self._ph()}", (fingerprint,))
        return rows[0] if rows else None

    def find_available(self, fingerprint: str, now: datetime) -> CacheEntry | None:
        """COMPLETED entry for *fingerprint* that has not expired at *now*."""
        rows = self._query(
            f"""
            {_SELECT}
            WHERE fingerprint = {self._ph()}
              AND status = '{CacheStatus.COMPLETED.value}'
              AND (expires_at IS NULL OR expires_at > {self._ph()})
            """,
            (fingerprint, to_db(now)),
        )
        return rows[0] if rows else None

    def valid_fingerprints(self, fingerprints: list[str]) -> set[str]:
        if not fingerprints:
            return set()
        cursor = self.conn.execute(
            f"SELECT fingerprint FROM {TABLE} WHERE {_VALID} AND fingerprint IN {self._in(len(fingerprints))}",
            tuple(fingerprints),
        )
        return {row[0] for row in cursor.fetchall()}

    # === Writes ===

    def insert(self, entry: CacheEntry) -> CacheEntry:
        """Insert a new row.

        Raises:
            IntegrityError: a row with this fingerprint already exists.
        """
        sql = self.dialect.insert_or_ignore(TABLE, COLUMNS)
        try:
            cursor = self.conn.execute(sql, self._entry_values(entry))
            self.conn.commit()
        except Exception as e:
            self.conn.rollback()
            raise DatabaseError(f"Failed to insert cache entry: {e}", cause=e).with_context(
                fingerprint=entry.fingerprint, operation="insert"
            ) from e
        if cursor.rowcount == 0:
            raise IntegrityError("Fingerprint already cached").with_context(
                fingerprint=entry.fingerprint, operation="insert"
            )
        stored = self.find_by_fingerprint(entry.fingerprint)
        return stored if stored is not None else entry

    def update(self, entry: CacheEntry) -> CacheEntry:
        assignments = ", ".join(f"{col} = {self.dialect.placeholder(i)}" for i, col in enumerate(COLUMNS[1:]))
        self.conn.execute(
            f"UPDATE {TABLE} SET {assignments} WHERE fingerprint = {self._ph()}",
            self._entry_values(entry)[1:] + (entry.fingerprint,),
        )
        self.conn.commit()
        stored = self.find_by_fingerprint(entry.fingerprint)
        return stored if stored is not None else entry

    def record_hit(self, fingerprint: str, now: datetime) -> None:
        self.conn.execute(
            f"""
            UPDATE {TABLE}
            SET hit_count = hit_count + 1, last_access_at = {self._ph()}
            WHERE fingerprint = {self._ph()}
            """,
            (to_db(now), fingerprint),
        )
        self.conn.commit()

    def mark_invalid(self, fingerprints: list[str], now: datetime) -> int:
        if not fingerprints:
            return 0
        cursor = self.conn.execute(
            f"""
            UPDATE {TABLE}
            SET status = '{CacheStatus.INVALID.value}', updated_at = {self._ph()}
            WHERE {_VALID} AND fingerprint IN {self._in(len(fingerprints))}
            """,
            (to_db(now), *fingerprints),
        )
        self.conn.commit()
        return cursor.rowcount

    def purge_invalid(self, before: datetime) -> int:
        """Hard-delete INVALID rows last touched before *before*."""
        cursor = self.conn.execute(
            f"""
            DELETE FROM {TABLE}
            WHERE status = '{CacheStatus.INVALID.value}' AND updated_at < {self._ph()}
            """,
            (to_db(before),),
        )
        self.conn.commit()
        return cursor.rowcount

    # === Eviction / janitor queries ===

    def list_valid_for_owner(self, owner_key: str) -> list[CacheEntry]:
        """Non-INVALID entries of *owner_key*, newest first."""
        return self._query(
            f"{_SELECT} WHERE owner_key = {self._ph()} AND {_VALID} ORDER BY created_at DESC, id DESC",
            (owner_key,),
        )

    def count_valid_for_owner(self, owner_key: str) -> int:
        return self._scalar(
            f"SELECT COUNT(*) FROM {TABLE} WHERE owner_key = {self._ph()} AND {_VALID}",
            (owner_key,),
        ) or 0

    def total_valid_bytes(self) -> int:
        return self._scalar(f"SELECT COALESCE(SUM(size_bytes), 0) FROM {TABLE} WHERE {_VALID}") or 0

    def find_unused(self, cutoff: datetime) -> list[CacheEntry]:
        """Non-INVALID entries last accessed before *cutoff*, least recent first."""
        return self._query(
            f"{_SELECT} WHERE {_VALID} AND last_access_at < {self._ph()} ORDER BY last_access_at, id",
            (to_db(cutoff),),
        )

    def find_expired(self, now: datetime) -> list[CacheEntry]:
        return self._query(
            f"{_SELECT} WHERE {_VALID} AND expires_at IS NOT NULL AND expires_at <= {self._ph()}",
            (to_db(now),),
        )

    def find_valid_by_kind(self, report_kind: str) -> list[CacheEntry]:
        return self._query(
            f"{_SELECT} WHERE report_kind = {self._ph()} AND {_VALID} ORDER BY created_at DESC",
            (report_kind.upper(),),
        )

    def popular(self, limit: int = 10) -> list[CacheEntry]:
        """Valid entries by hit count, then most recent access."""
        return self._query(
            f"{_SELECT} WHERE {_VALID} ORDER BY hit_count DESC, last_access_at DESC LIMIT {int(limit)}"
        )

    # === Statistics ===

    def statistics(self) -> dict[str, Any]:
        total = self._scalar(f"SELECT COUNT(*) FROM {TABLE}") or 0
        valid = self._scalar(f"SELECT COUNT(*) FROM {TABLE} WHERE {_VALID}") or 0
        avg_hits = self._scalar(f"SELECT AVG(hit_count) FROM {TABLE} WHERE {_VALID}")
        cursor = self.conn.execute(
            f"SELECT report_kind, COUNT(*) FROM {TABLE} WHERE {_VALID} GROUP BY report_kind ORDER BY report_kind"
        )
        by_kind = {row[0]: row[1] for row in cursor.fetchall()}
        return {
            "total_entries": total,
            "valid_entries": valid,
            "total_size_bytes": self.total_valid_bytes(),
            "average_hit_count": float(avg_hits or 0.0),
            "by_kind": by_kind,
        }


__all__ = ["CacheEntryRepository", "COLUMNS", "TABLE"]
