"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~folio.core.protocols.Connection` protocol.

The scheduler runs report jobs on a worker pool, so one adapter is used
from several threads.  Each ``execute`` therefore gets its own cursor
(returned to the caller), and connection-level ``fetchone`` /
``fetchall`` read the last cursor of the *calling* thread.

Usage::

    from folio.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.execute("CREATE TABLE t (id INTEGER)")
    conn.execute("INSERT INTO t VALUES (?)", (1,))
    row = conn.execute("SELECT * FROM t").fetchone()
    conn.commit()
    conn.close()
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol."""

    dialect_name = "sqlite"

    def __init__(self, path: str | Path = ":memory:", *, row_factory: Any = sqlite3.Row) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = row_factory
        self._local = threading.local()
        self._lock = threading.RLock()

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._conn.execute(sql, params)
        self._local.cursor = cursor
        return cursor

    def executemany(self, sql: str, params: list[tuple]) -> sqlite3.Cursor:
        with self._lock:
            cursor = self._conn.executemany(sql, params)
        self._local.cursor = cursor
        return cursor

    def fetchone(self) -> Any:
        cursor = getattr(self._local, "cursor", None)
        return cursor.fetchone() if cursor is not None else None

    def fetchall(self) -> list:
        cursor = getattr(self._local, "cursor", None)
        return cursor.fetchall() if cursor is not None else []

    def commit(self) -> None:
        with self._lock:
            self._conn.commit()

    def rollback(self) -> None:
        with self._lock:
            self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"
