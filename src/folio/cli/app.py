"""
Root Typer application for the folio CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from folio import __version__

app = Typer(
    name="folio",
    help="folio: report cache and report scheduler administration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("folio-core")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"folio-core {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """folio CLI: inspect and maintain the report cache and report schedules."""


# ── Sub-command registration ─────────────────────────────────────────────

from folio.cli.cache import app as cache_app  # noqa: E402
from folio.cli.schedule import app as sched_app  # noqa: E402

app.add_typer(cache_app, name="cache", help="Report cache inspection and maintenance.")
app.add_typer(sched_app, name="schedule", help="Report schedule management.")
