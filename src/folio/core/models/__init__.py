"""Dataclass models for the folio tables.

Modules
-------
request
    ``ReportRequest`` with its ``ReportFilters`` / ``ReportOptions``.
cache
    ``CacheEntry`` and ``CacheStatus`` (``report_cache``).
schedule
    ``ReportSchedule``, ``ScheduleStatus`` and the recurrence rule
    variants (``report_schedules``).
"""

from folio.core.models.cache import CacheEntry, CacheStatus
from folio.core.models.request import ReportFilters, ReportOptions, ReportRequest
from folio.core.models.schedule import (
    CustomRule,
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    ReportSchedule,
    ScheduleStatus,
    ScheduleType,
    WeeklyRule,
)

__all__ = [
    "CacheEntry",
    "CacheStatus",
    "CustomRule",
    "DailyRule",
    "MonthlyRule",
    "RecurrenceRule",
    "ReportFilters",
    "ReportOptions",
    "ReportRequest",
    "ReportSchedule",
    "ScheduleStatus",
    "ScheduleType",
    "WeeklyRule",
]
