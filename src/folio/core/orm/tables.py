"""SQLAlchemy 2.0 table definitions mirroring ``folio/core/schema/*.sql``.

Every ``CREATE TABLE`` in the schema directory has a ``Mapped`` class here,
so ``FolioBase.metadata.create_all(engine)`` produces the same structure on
any SQLAlchemy-supported backend.  JSON payloads stay ``Text`` because the
repositories serialise them themselves.

Usage::

    from folio.core.orm import FolioBase, create_folio_engine

    engine = create_folio_engine("postgresql+psycopg://localhost/folio")
    FolioBase.metadata.create_all(engine)
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from folio.core.orm.base import FolioBase

# =============================================================================
# 01_report_cache.sql
# =============================================================================


class ReportCacheTable(FolioBase):
    __tablename__ = "report_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    owner_key: Mapped[str] = mapped_column(Text, nullable=False)
    report_kind: Mapped[str] = mapped_column(Text, nullable=False)
    output_format: Mapped[str] = mapped_column(Text, nullable=False)
    template_ref: Mapped[str | None] = mapped_column(Text)
    parameters: Mapped[str | None] = mapped_column(Text)
    artifact_location: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    record_count: Mapped[int | None] = mapped_column(Integer)
    generation_ms: Mapped[int | None] = mapped_column(Integer)
    hit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_access_at: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, default="COMPLETED", nullable=False)
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text)

    __table_args__ = (
        Index("idx_report_cache_owner", "owner_key", "status"),
        Index("idx_report_cache_kind", "report_kind", "status"),
        Index("idx_report_cache_expires", "status", "expires_at"),
        Index("idx_report_cache_access", "status", "last_access_at"),
    )


# =============================================================================
# 02_report_schedules.sql
# =============================================================================


class ReportScheduleTable(FolioBase):
    __tablename__ = "report_schedules"

    schedule_id: Mapped[str] = mapped_column(Text, primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    report_kind: Mapped[str] = mapped_column(Text, nullable=False)
    output_format: Mapped[str] = mapped_column(Text, nullable=False)
    template_ref: Mapped[str | None] = mapped_column(Text)
    filters: Mapped[str | None] = mapped_column(Text)
    options: Mapped[str | None] = mapped_column(Text)
    schedule_type: Mapped[str] = mapped_column(Text, nullable=False)
    schedule_config: Mapped[str] = mapped_column(Text, nullable=False)
    output_config: Mapped[str | None] = mapped_column(Text)
    next_run_at: Mapped[str | None] = mapped_column(Text)
    last_run_at: Mapped[str | None] = mapped_column(Text)
    last_error: Mapped[str | None] = mapped_column(Text)
    run_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="ACTIVE", nullable=False)
    active: Mapped[bool] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_report_schedules_due", "status", "next_run_at"),
        Index("idx_report_schedules_owner", "owner_id", "active"),
    )


class ScheduleLockTable(FolioBase):
    __tablename__ = "report_schedule_locks"

    schedule_id: Mapped[str] = mapped_column(Text, primary_key=True)
    locked_by: Mapped[str] = mapped_column(Text, nullable=False)
    locked_at: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = ["ReportCacheTable", "ReportScheduleTable", "ScheduleLockTable"]
