"""
CLI: ``folio cache`` - report cache inspection and maintenance.
"""

from __future__ import annotations

import typer

from folio.cli.utils import folio_errors, get_connection, load_settings, output_result, output_rows
from folio.core.caching import CacheJanitor, CacheScope, Owner, build_cache_store
from folio.core.models.cache import CacheEntry

app = typer.Typer(no_args_is_help=True)


def _owner(owner: int | None, system: bool) -> Owner:
    if system == (owner is not None):
        raise typer.BadParameter("pass exactly one of --owner or --system")
    return CacheScope.ALL_OWNERS if system else owner


def _row(entry: CacheEntry) -> dict:
    return {
        "fingerprint": entry.fingerprint,
        "owner": entry.owner_key,
        "kind": entry.report_kind,
        "format": entry.output_format,
        "status": entry.status.value,
        "hits": entry.hit_count,
        "size_bytes": entry.size_bytes,
        "expires_at": entry.expires_at.isoformat() if entry.expires_at else None,
        "location": entry.artifact_location,
    }


@app.command("stats")
def cache_stats(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show aggregate cache statistics."""
    settings = load_settings(database)
    store = build_cache_store(get_connection(settings), settings)
    output_result(store.statistics(), as_json=json_out, title="Report cache")


@app.command("list")
def list_entries(
    owner: int | None = typer.Option(None, "--owner", help="User id"),
    system: bool = typer.Option(False, "--system", help="System-wide entries"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List valid cache entries of one owner, newest first."""
    settings = load_settings(database)
    store = build_cache_store(get_connection(settings), settings)
    entries = store.list_for_owner(_owner(owner, system))
    output_rows([_row(e) for e in entries], as_json=json_out, title="Cache entries")


@app.command("popular")
def popular_entries(
    limit: int = typer.Option(10, "--limit", "-n", min=1),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the most requested cache entries."""
    settings = load_settings(database)
    store = build_cache_store(get_connection(settings), settings)
    output_rows([_row(e) for e in store.popular(limit)], as_json=json_out, title="Popular reports")


@app.command("invalidate")
def invalidate(
    fingerprint: str | None = typer.Option(None, "--fingerprint", "-f"),
    owner: int | None = typer.Option(None, "--owner"),
    system: bool = typer.Option(False, "--system"),
    kind: str | None = typer.Option(None, "--kind", help="Report kind"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Invalidate entries by fingerprint, by owner or by report kind."""
    selectors = sum([fingerprint is not None, owner is not None or system, kind is not None])
    if selectors != 1:
        raise typer.BadParameter("pass exactly one of --fingerprint, --owner/--system or --kind")

    settings = load_settings(database)
    store = build_cache_store(get_connection(settings), settings)
    with folio_errors():
        if fingerprint is not None:
            count = store.invalidate(fingerprint)
        elif kind is not None:
            count = store.invalidate_kind(kind)
        else:
            count = store.invalidate_owner(_owner(owner, system))
    typer.echo(f"Invalidated {count} entr{'y' if count == 1 else 'ies'}")


@app.command("sweep")
def sweep(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one janitor sweep now."""
    settings = load_settings(database)
    store = build_cache_store(get_connection(settings), settings)
    report = CacheJanitor(store).sweep()
    output_result(report, as_json=json_out, title="Sweep")
    if not report.ok:
        raise typer.Exit(code=1)
