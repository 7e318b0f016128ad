"""SQLAlchemy 2.0 ORM mirror of the folio schema.

Modules
-------
base        FolioBase (declarative base)
session     Engine factory, session factory, SAConnectionBridge, open_bridge
tables      ReportCacheTable, ReportScheduleTable, ScheduleLockTable
"""

from __future__ import annotations

from folio.core.orm.base import FolioBase
from folio.core.orm.session import (
    SAConnectionBridge,
    create_folio_engine,
    folio_session_factory,
    open_bridge,
)
from folio.core.orm.tables import ReportCacheTable, ReportScheduleTable, ScheduleLockTable

__all__ = [
    "FolioBase",
    "ReportCacheTable",
    "ReportScheduleTable",
    "SAConnectionBridge",
    "ScheduleLockTable",
    "create_folio_engine",
    "folio_session_factory",
    "open_bridge",
]
