"""Declarative base for the folio ORM mirror.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
matching the SQL DDL in ``folio/core/schema``:

* ``str``  → ``Text`` (timestamps included: UTC ISO-8601 strings)
* ``int``  → ``Integer``
* ``bool`` → ``Integer`` (0/1, identical on SQLite and PostgreSQL)
"""

from __future__ import annotations

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase


class FolioBase(DeclarativeBase):
    """Shared declarative base for every folio table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Integer,
    }
