"""SQLAlchemy engine factory and Connection bridge.

Manifesto:
    The repositories are raw SQL over the ``Connection`` protocol.  To run
    them against any SQLAlchemy URL, ``SAConnectionBridge`` wraps a
    ``Session`` so it satisfies ``folio.core.protocols.Connection``.

This module provides:

* ``create_folio_engine``  -- Create a SA engine from a URL.
* ``folio_session_factory`` -- ``sessionmaker`` with ``expire_on_commit=False``.
* ``SAConnectionBridge``   -- ``Session`` → ``Connection`` adapter.
* ``open_bridge``          -- engine + schema + bridge in one call.

Tags:
    folio, orm, sqlalchemy, session, engine, bridge, connection
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from folio.core.orm.base import FolioBase


def create_folio_engine(
    url: str = "sqlite:///folio.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql+psycopg://…``, etc.)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        if ":memory:" not in url and url != "sqlite://":

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def folio_session_factory(engine: Engine) -> sessionmaker[Session]:
    """``sessionmaker`` bound to *engine* with ``expire_on_commit=False``."""
    return sessionmaker(bind=engine, expire_on_commit=False)


class _BufferedResult:
    """Rows of one statement, fetched while the bridge lock was held."""

    def __init__(self, rows: list[tuple[Any, ...]], rowcount: int, keys: list[str]) -> None:
        self._rows = rows
        self._pos = 0
        self.rowcount = rowcount
        self.keys = keys

    def fetchone(self) -> tuple[Any, ...] | None:
        if self._pos >= len(self._rows):
            return None
        row = self._rows[self._pos]
        self._pos += 1
        return row

    def fetchall(self) -> list[tuple[Any, ...]]:
        rows = self._rows[self._pos :]
        self._pos = len(self._rows)
        return rows


def _to_named(sql: str) -> str:
    """Rewrite positional ``?`` / ``%s`` placeholders into ``:p0, :p1, ...``."""
    out: list[str] = []
    idx = 0
    i = 0
    while i < len(sql):
        ch = sql[i]
        if ch == "?":
            out.append(f":p{idx}")
            idx += 1
        elif ch == "%" and sql[i + 1 : i + 2] == "s":
            out.append(f":p{idx}")
            idx += 1
            i += 1
        else:
            out.append(ch)
        i += 1
    return "".join(out)


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Session`` look like a ``Connection``.

    ``Session`` is not thread-safe, and the scheduler's workers share one
    bridge, so every statement runs (and its rows are buffered) under a lock.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._lock = threading.RLock()
        self._local = threading.local()
        bind = session.get_bind()
        self.dialect_name: str = bind.dialect.name

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> _BufferedResult:
        mapping = {f"p{i}": v for i, v in enumerate(parameters or ())}
        stmt = text(_to_named(sql))
        with self._lock:
            result = self._session.execute(stmt, mapping)
            if result.returns_rows:
                keys = list(result.keys())
                rows = [tuple(r) for r in result.fetchall()]
            else:
                keys, rows = [], []
            buffered = _BufferedResult(rows, result.rowcount, keys)
        self._local.result = buffered
        return buffered

    def executemany(self, sql: str, seq_of_parameters: Sequence[Sequence[Any]]) -> None:
        for params in seq_of_parameters:
            self.execute(sql, params)

    def fetchone(self) -> tuple[Any, ...] | None:
        result = getattr(self._local, "result", None)
        return result.fetchone() if result is not None else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        result = getattr(self._local, "result", None)
        return result.fetchall() if result is not None else []

    def commit(self) -> None:
        with self._lock:
            self._session.commit()

    def rollback(self) -> None:
        with self._lock:
            self._session.rollback()

    def close(self) -> None:
        with self._lock:
            self._session.close()

    @property
    def session(self) -> Session:
        """Access the underlying SA session (e.g., for ORM queries)."""
        return self._session


def open_bridge(url: str, *, echo: bool = False) -> SAConnectionBridge:
    """Create the engine, ensure the folio tables exist and return a bridge."""
    engine = create_folio_engine(url, echo=echo)
    FolioBase.metadata.create_all(engine)
    return SAConnectionBridge(folio_session_factory(engine)())
