"""Report schedule models (``report_schedules``).

``RecurrenceRule`` is a closed union of four frozen dataclasses; next-run
computation for each variant lives in :mod:`folio.core.scheduling.recurrence`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from folio.core.models.request import ReportRequest


class ScheduleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ERROR = "ERROR"
    DISABLED = "DISABLED"


class ScheduleType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class DailyRule:
    hour: int
    minute: int


@dataclass(frozen=True)
class WeeklyRule:
    """``day_of_week`` is ISO numbering: 1 = Monday ... 7 = Sunday."""

    hour: int
    minute: int
    day_of_week: int


@dataclass(frozen=True)
class MonthlyRule:
    """``day_of_month`` beyond the month's length fires on its last day."""

    hour: int
    minute: int
    day_of_month: int


@dataclass(frozen=True)
class CustomRule:
    cron_expression: str


RecurrenceRule = Union[DailyRule, WeeklyRule, MonthlyRule, CustomRule]

RULE_TYPES: dict[type, ScheduleType] = {
    DailyRule: ScheduleType.DAILY,
    WeeklyRule: ScheduleType.WEEKLY,
    MonthlyRule: ScheduleType.MONTHLY,
    CustomRule: ScheduleType.CUSTOM,
}


@dataclass
class ReportSchedule:
    """A recurring report definition owned by one user."""

    schedule_id: str
    owner_id: int
    name: str
    request: ReportRequest
    rule: RecurrenceRule
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    output_config: dict[str, Any] = field(default_factory=dict)
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_error: str | None = None
    run_count: int = 0
    failure_count: int = 0
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    active: bool = True

    @property
    def schedule_type(self) -> ScheduleType:
        return RULE_TYPES[type(self.rule)]

    @property
    def pollable(self) -> bool:
        return self.active and self.status is ScheduleStatus.ACTIVE

    def is_due(self, now: datetime) -> bool:
        return self.pollable and self.next_run_at is not None and self.next_run_at <= now
