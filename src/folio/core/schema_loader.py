"""SQL schema loading utilities.

Applies the ``schema/*.sql`` files (report cache, schedules, schedule
locks) to a connection.  Targets reached through a SQLAlchemy URL use
``FolioBase.metadata.create_all`` instead; see :mod:`folio.core.orm`.
"""

from __future__ import annotations

import logging
from pathlib import Path

from folio.core.dialect import Dialect, SQLiteDialect
from folio.core.protocols import Connection
from folio.core.sqlite_conn import SqliteConnection

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent / "schema"

FOLIO_TABLES = ("report_cache", "report_schedules", "report_schedule_locks")


def _split_sql(sql: str) -> list[str]:
    """Split a SQL script into individual statements.

    Comment-only and blank lines are dropped; a statement ends at a line
    ending with ``;``.
    """
    statements = []
    current: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if stripped.startswith("--") or not stripped:
            continue
        current.append(line)
        if stripped.endswith(";"):
            stmt = "\n".join(current).strip()
            if stmt and stmt != ";":
                statements.append(stmt)
            current = []
    if current:
        stmt = "\n".join(current).strip()
        if stmt:
            statements.append(stmt)
    return statements


def get_schema_files(schema_dir: Path | str | None = None) -> list[Path]:
    """SQL schema files sorted by filename (01_, 02_, ...)."""
    directory = Path(schema_dir) if schema_dir else SCHEMA_DIR
    if not directory.exists():
        return []
    return sorted(directory.glob("*.sql"))


def apply_schema(conn: Connection, schema_dir: Path | str | None = None) -> list[str]:
    """Apply all SQL schema files to *conn*.

    Every statement is ``CREATE ... IF NOT EXISTS``, so re-applying is safe.

    Returns:
        Applied schema filenames.
    """
    applied = []
    for sql_file in get_schema_files(schema_dir):
        for statement in _split_sql(sql_file.read_text(encoding="utf-8")):
            conn.execute(statement)
        applied.append(sql_file.name)
        logger.debug("schema.applied file=%s", sql_file.name)

    conn.commit()
    logger.debug("schema.all_applied count=%d", len(applied))
    return applied


def create_test_db(schema_dir: Path | str | None = None) -> SqliteConnection:
    """In-memory SQLite connection with the folio schema applied."""
    conn = SqliteConnection(":memory:")
    apply_schema(conn, schema_dir)
    return conn


def get_table_list(conn: Connection, dialect: Dialect = SQLiteDialect()) -> list[str]:
    """Folio tables present in the database, sorted."""
    present = []
    for table in FOLIO_TABLES:
        if conn.execute(dialect.table_exists_query(), (table,)).fetchone():
            present.append(table)
    return sorted(present)


__all__ = [
    "FOLIO_TABLES",
    "SCHEMA_DIR",
    "apply_schema",
    "create_test_db",
    "get_schema_files",
    "get_table_list",
]
