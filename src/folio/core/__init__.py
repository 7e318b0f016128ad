"""Folio core: the report cache and the report scheduler.

Architecture::

    Layer 1 -- Primitives
        errors.py          FolioError hierarchy
        logging.py         structlog configuration
        settings.py        FolioSettings (FOLIO_* environment)
        timestamps.py      Clock protocol, UTC and storage helpers
        protocols.py       Connection protocol
        dialect.py         SQLite / PostgreSQL SQL fragments

    Layer 2 -- Storage
        sqlite_conn.py     SqliteConnection
        schema/            SQL DDL (report_cache, report_schedules)
        schema_loader.py   apply_schema / create_test_db
        orm/               SQLAlchemy mirror + SAConnectionBridge
        models/            CacheEntry, ReportSchedule, ReportRequest

    Layer 3 -- Services
        caching/           fingerprint, tiers, store, eviction, janitor
        scheduling/        recurrence, guards, repository, service
        reporting.py       ReportGenerator
"""
