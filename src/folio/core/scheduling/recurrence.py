"""
Schedule clock - next trigger instant for a recurrence rule.

Manifesto:
    Next-run computation is a pure function of (rule, from).  No clock
    reads, no I/O, so every edge case (month clamping, same-minute
    triggers, leap years) is a one-line unit test.

Rules:
    ::

        DailyRule(h, m)           next h:m strictly after `from`
        WeeklyRule(h, m, dow)     next ISO weekday dow (1=Mon..7=Sun) at h:m
        MonthlyRule(h, m, dom)    next day dom at h:m, clamped to month length
        CustomRule(cron)          croniter; unparseable → None

    ``next_run`` never returns ``from`` itself, which guarantees forward
    progress for a schedule fired exactly on its trigger minute.

    Wall-clock rules are evaluated in the timezone of ``from``; callers
    pass ``from`` already converted to the scheduler timezone.

Examples:
    >>> next_run(DailyRule(9, 0), datetime(2024, 1, 1, 9, 0, tzinfo=UTC))
    datetime.datetime(2024, 1, 2, 9, 0, tzinfo=datetime.timezone.utc)
    >>> next_run(MonthlyRule(9, 0, 31), datetime(2024, 2, 1, tzinfo=UTC))
    datetime.datetime(2024, 2, 29, 9, 0, tzinfo=datetime.timezone.utc)

Tags:
    scheduling, recurrence, cron, croniter, pure-function, folio
"""

from __future__ import annotations

import calendar
import zoneinfo
from dataclasses import asdict
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any

from croniter import croniter

from folio.core.errors import ConfigError, RecurrenceRuleError
from folio.core.models.schedule import (
    CustomRule,
    DailyRule,
    MonthlyRule,
    RecurrenceRule,
    ScheduleType,
    WeeklyRule,
)
from folio.core.timestamps import ensure_utc

_CONFIG_ALIASES = {
    "dayOfWeek": "day_of_week",
    "dayOfMonth": "day_of_month",
    "cronExpression": "cron_expression",
}


# =============================================================================
# NEXT RUN
# =============================================================================


def _at(day: datetime, hour: int, minute: int) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _next_daily(rule: DailyRule, from_: datetime) -> datetime:
    candidate = _at(from_, rule.hour, rule.minute)
    if candidate <= from_:
        candidate += timedelta(days=1)
    return candidate


def _next_weekly(rule: WeeklyRule, from_: datetime) -> datetime:
    candidate = _at(from_, rule.hour, rule.minute)
    days = (rule.day_of_week - candidate.isoweekday()) % 7
    if days == 0 and candidate <= from_:
        days = 7
    return candidate + timedelta(days=days)


def _clamped(year: int, month: int, rule: MonthlyRule, tz: Any) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(rule.day_of_month, last_day), rule.hour, rule.minute, tzinfo=tz)


def _next_monthly(rule: MonthlyRule, from_: datetime) -> datetime:
    candidate = _clamped(from_.year, from_.month, rule, from_.tzinfo)
    if candidate <= from_:
        year, month = (from_.year + 1, 1) if from_.month == 12 else (from_.year, from_.month + 1)
        candidate = _clamped(year, month, rule, from_.tzinfo)
    return candidate


def _next_custom(rule: CustomRule, from_: datetime) -> datetime | None:
    try:
        candidate = croniter(rule.cron_expression, from_).get_next(datetime)
    except (ValueError, KeyError, TypeError):
        return None
    # croniter already skips an exact match, but keep forward progress explicit
    if candidate <= from_:
        return None
    return candidate


def next_run(rule: RecurrenceRule, from_: datetime) -> datetime | None:
    """Next trigger strictly after *from_*; ``None`` for an unusable cron rule."""
    match rule:
        case DailyRule():
            return _next_daily(rule, from_)
        case WeeklyRule():
            return _next_weekly(rule, from_)
        case MonthlyRule():
            return _next_monthly(rule, from_)
        case CustomRule():
            return _next_custom(rule, from_)
    raise RecurrenceRuleError(f"Unsupported recurrence rule: {rule!r}")


def resolve_timezone(name: str | tzinfo | None) -> tzinfo:
    if name is None:
        return UTC
    if isinstance(name, tzinfo):
        return name
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown scheduler timezone: {name!r}", cause=e) from e


def next_run_utc(rule: RecurrenceRule, after: datetime, tz: str | tzinfo | None = None) -> datetime | None:
    """Evaluate *rule* on the wall clock of *tz* and return the trigger in UTC."""
    candidate = next_run(rule, ensure_utc(after).astimezone(resolve_timezone(tz)))
    return candidate.astimezone(UTC) if candidate is not None else None


# =============================================================================
# VALIDATION
# =============================================================================


def _check_range(name: str, value: Any, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise RecurrenceRuleError(
            f"{name} must be an integer in {low}-{high}, got {value!r}",
            field=name,
            value=value,
            constraint=f"{low}..{high}",
        )


def validate_rule(rule: RecurrenceRule) -> RecurrenceRule:
    """Reject rules outside their variant's constraints.

    Raises:
        RecurrenceRuleError: hour not 0-23, minute not 0-59, weekday not
            1-7, day of month not 1-31, or an empty/unparseable cron string.
    """
    match rule:
        case CustomRule(cron_expression=expr):
            if not isinstance(expr, str) or not expr.strip():
                raise RecurrenceRuleError(
                    "cron_expression must not be empty", field="cron_expression", value=expr
                )
            if not croniter.is_valid(expr):
                raise RecurrenceRuleError(
                    f"Unparseable cron expression: {expr!r}",
                    field="cron_expression",
                    value=expr,
                )
        case DailyRule() | WeeklyRule() | MonthlyRule():
            _check_range("hour", rule.hour, 0, 23)
            _check_range("minute", rule.minute, 0, 59)
            if isinstance(rule, WeeklyRule):
                _check_range("day_of_week", rule.day_of_week, 1, 7)
            if isinstance(rule, MonthlyRule):
                _check_range("day_of_month", rule.day_of_month, 1, 31)
        case _:
            raise RecurrenceRuleError(f"Unsupported recurrence rule: {rule!r}")
    return rule


# =============================================================================
# CONFIG MAPPING
# =============================================================================


def rule_from_config(schedule_type: str | ScheduleType, config: dict[str, Any]) -> RecurrenceRule:
    """Build and validate a rule from a stored/submitted config dict.

    Accepts snake_case keys and the camelCase keys used by API payloads
    (``dayOfWeek``, ``dayOfMonth``, ``cronExpression``).
    """
    try:
        kind = ScheduleType(str(getattr(schedule_type, "value", schedule_type)).upper())
    except ValueError as e:
        raise RecurrenceRuleError(
            f"Unsupported schedule type: {schedule_type!r}", field="schedule_type", value=schedule_type
        ) from e

    data = {_CONFIG_ALIASES.get(k, k): v for k, v in (config or {}).items()}
    try:
        match kind:
            case ScheduleType.DAILY:
                rule: RecurrenceRule = DailyRule(hour=data["hour"], minute=data["minute"])
            case ScheduleType.WEEKLY:
                rule = WeeklyRule(hour=data["hour"], minute=data["minute"], day_of_week=data["day_of_week"])
            case ScheduleType.MONTHLY:
                rule = MonthlyRule(
                    hour=data["hour"], minute=data["minute"], day_of_month=data["day_of_month"]
                )
            case ScheduleType.CUSTOM:
                rule = CustomRule(cron_expression=data["cron_expression"])
    except KeyError as e:
        missing = e.args[0]
        raise RecurrenceRuleError(
            f"{kind.value} schedule requires '{missing}'", field=missing, constraint="required"
        ) from e
    return validate_rule(rule)


def rule_to_config(rule: RecurrenceRule) -> dict[str, Any]:
    return asdict(rule)


def describe_rule(rule: RecurrenceRule) -> str:
    match rule:
        case DailyRule(hour=h, minute=m):
            return f"daily at {h:02d}:{m:02d}"
        case WeeklyRule(hour=h, minute=m, day_of_week=d):
            return f"weekly on {calendar.day_name[d - 1]} at {h:02d}:{m:02d}"
        case MonthlyRule(hour=h, minute=m, day_of_month=d):
            return f"monthly on day {d} at {h:02d}:{m:02d}"
        case CustomRule(cron_expression=expr):
            return f"cron '{expr}'"
    return repr(rule)


__all__ = [
    "CustomRule",
    "DailyRule",
    "MonthlyRule",
    "RecurrenceRule",
    "WeeklyRule",
    "describe_rule",
    "next_run",
    "next_run_utc",
    "resolve_timezone",
    "rule_from_config",
    "rule_to_config",
    "validate_rule",
]
