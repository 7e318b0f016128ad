"""SQL dialect abstraction for the folio repositories.

Repositories use ``Dialect`` methods to generate the few SQL fragments that
differ between backends (placeholders and insert-if-absent) without
importing any database driver.

Architecture::

    Repository code:
    ┌────────────────────────────────────────────────────────────────┐
    │  sql = d.insert_or_ignore("report_cache", COLUMNS)             │
    │  cur = conn.execute(sql, params)                               │
    │  if cur.rowcount == 0: ...  (fingerprint already present)      │
    └────────────────────────────────────────────────────────────────┘
                              │
                              ▼
            ┌──────────────────────┐   ┌───────────────────────────┐
            │ SQLiteDialect        │   │ PostgreSQLDialect         │
            │ ?, ?, ?              │   │ %s, %s, %s                │
            │ INSERT OR IGNORE     │   │ ON CONFLICT DO NOTHING    │
            └──────────────────────┘   └───────────────────────────┘

Examples:
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.insert_or_ignore("t", ["a", "b"])
    'INSERT OR IGNORE INTO t (a, b) VALUES (?, ?)'

Tags:
    dialect, sql, portability, folio
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL fragment generator for one database backend."""

    @property
    def name(self) -> str:
        """Backend name (``sqlite`` / ``postgresql``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Parameter placeholder at 0-based *index*."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated list of *count* placeholders."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """INSERT that silently skips rows violating a unique constraint."""
        ...

    def table_exists_query(self) -> str:
        """Query returning a row iff the table named by the parameter exists."""
        ...


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, ``INSERT OR IGNORE``."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"


class PostgreSQLDialect:
    """PostgreSQL dialect: ``%s`` placeholders (psycopg), ``ON CONFLICT DO NOTHING``."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"

    def table_exists_query(self) -> str:
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = %s"
        )


def get_dialect(conn: Any) -> Dialect:
    """Pick a dialect for *conn*.

    Connections may advertise their backend through a ``dialect_name``
    attribute (``SAConnectionBridge`` does); anything else is treated as
    SQLite.
    """
    name = getattr(conn, "dialect_name", "sqlite")
    if name.startswith("postgres"):
        return PostgreSQLDialect()
    return SQLiteDialect()


__all__ = ["Dialect", "PostgreSQLDialect", "SQLiteDialect", "get_dialect"]
