"""
Connection protocol shared by every folio repository.

Repositories are written against this structural protocol, so the same
SQL runs over :class:`~folio.core.sqlite_conn.SqliteConnection` (local
deployments and tests) and :class:`~folio.core.orm.session.SAConnectionBridge`
(any SQLAlchemy URL).

Architecture:
    ::

        Connection Protocol:
        ┌────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → cursor-like result            │
        │ executemany(sql, list) → Execute for multiple params   │
        │ fetchone()             → Row from last query           │
        │ fetchall()             → Rows from last query          │
        │ commit()               → Commit transaction            │
        │ rollback()             → Rollback transaction          │
        └────────────────────────────────────────────────────────┘

    The object returned by ``execute`` must expose ``fetchone()``,
    ``fetchall()`` and ``rowcount``.  Repositories read rows from that
    returned result rather than from the connection, which keeps reads
    correct when the scheduler's worker threads share one connection.

Tags:
    protocol, connection, database, folio
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection interface for database operations."""

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from last query."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


__all__ = ["Connection"]
