"""
CLI utility helpers: output formatting and connection management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from folio.core.errors import FolioError
from folio.core.logging import configure_logging
from folio.core.orm.session import open_bridge
from folio.core.protocols import Connection
from folio.core.schema_loader import apply_schema
from folio.core.settings import FolioSettings
from folio.core.sqlite_conn import SqliteConnection

console = Console()
err_console = Console(stderr=True)


# ── Settings / connection helpers ────────────────────────────────────────


def load_settings(database: str | None = None) -> FolioSettings:
    """Fresh settings from the environment, with an optional database override."""
    settings = FolioSettings()
    # keep command output readable unless FOLIO_LOG_LEVEL asks for more
    level = settings.log_level if "log_level" in settings.model_fields_set else "WARNING"
    if database:
        settings = settings.model_copy(update={"database": database})
    configure_logging(level=level, json_format=settings.json_logs, service="folio-cli")
    return settings


def get_connection(settings: FolioSettings) -> Connection:
    """Open ``settings.database`` (a SQLAlchemy URL or a SQLite file) with the schema applied."""
    if settings.is_database_url:
        return open_bridge(settings.database)
    conn = SqliteConnection(settings.database)
    apply_schema(conn)
    return conn


@contextmanager
def folio_errors() -> Iterator[None]:
    """Turn a ``FolioError`` into a red message and exit code 1."""
    try:
        yield
    except FolioError as e:
        err_console.print(f"[bold red]Error[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_rows(rows: list[dict[str, Any]], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of row dicts as a Rich table (or JSON)."""
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def output_result(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single object as key-value pairs (or JSON)."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in payload.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
