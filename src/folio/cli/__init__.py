"""
CLI layer for folio.

Provides a Typer application with sub-commands that delegate to the
cache store and the schedule repository.  This package handles only
terminal transport: argument parsing, coloured output, and table
formatting.

Entry point::

    folio --help
"""

from folio.cli.app import app

__all__ = ["app"]
