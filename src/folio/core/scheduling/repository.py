"""Report schedule repository - CRUD and polling queries.

Manifesto:
    Schedule persistence and its validation rules (rule constraints, name
    uniqueness, per-owner limits, ownership checks) are data operations
    and live here.  The scheduler service only orchestrates: it asks for
    due schedules and records the outcome of each run.

Tags:
    folio, scheduling, repository, CRUD, polling

┌──────────────────────────────────────────────────────────────────────────────┐
│  REPORT SCHEDULE REPOSITORY                                                   │
│                                                                               │
│   CRUD (owner-scoped):                                                        │
│   ├── create(spec) → ReportSchedule      validates rule, name, owner limit    │
│   ├── get(id) / get_for_owner(id, owner)                                      │
│   ├── update(id, owner, changes)         rule change recomputes next_run_at   │
│   ├── delete(id, owner)                  logical: active = 0                  │
│   └── list_for_owner(owner)                                                   │
│                                                                               │
│   Polling:                                                                    │
│   ├── get_due(now)                       active, ACTIVE, next_run_at <= now   │
│   ├── find_never_run(now)                last_run_at IS NULL and overdue      │
│   ├── list_by_status(status)                                                  │
│   └── record_run(id, ran_at, next, error)                                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any
from uuid import uuid4

from folio.core.dialect import Dialect, get_dialect
from folio.core.errors import (
    RecurrenceRuleError,
    ScheduleAccessError,
    ScheduleLimitError,
    ScheduleNotFoundError,
    ValidationError,
)
from folio.core.logging import get_logger
from folio.core.models.request import ReportFilters, ReportOptions, ReportRequest
from folio.core.models.schedule import RULE_TYPES, RecurrenceRule, ReportSchedule, ScheduleStatus, ScheduleType
from folio.core.protocols import Connection
from folio.core.scheduling.recurrence import (
    next_run_utc,
    resolve_timezone,
    rule_from_config,
    rule_to_config,
    validate_rule,
)
from folio.core.timestamps import Clock, SystemClock, from_db, to_db

logger = get_logger(__name__)

TABLE = "report_schedules"

COLUMNS = [
    "schedule_id",
    "owner_id",
    "name",
    "description",
    "report_kind",
    "output_format",
    "template_ref",
    "filters",
    "options",
    "schedule_type",
    "schedule_config",
    "output_config",
    "next_run_at",
    "last_run_at",
    "last_error",
    "run_count",
    "failure_count",
    "status",
    "active",
    "created_at",
    "updated_at",
]

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM {TABLE}"

MAX_ERROR_LENGTH = 2000


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class ScheduleCreate:
    """DTO for creating a new schedule."""

    owner_id: int
    name: str
    request: ReportRequest
    rule: RecurrenceRule
    description: str | None = None
    output_config: dict[str, Any] | None = None


@dataclass
class ScheduleUpdate:
    """DTO for updating a schedule.  ``None`` fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    request: ReportRequest | None = None
    rule: RecurrenceRule | None = None
    output_config: dict[str, Any] | None = None
    status: ScheduleStatus | None = None


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class ReportScheduleRepository:
    """Repository for report schedules.

    Example:
        >>> repo = ReportScheduleRepository(conn, timezone="Europe/Berlin")
        >>> schedule = repo.create(ScheduleCreate(
        ...     owner_id=7,
        ...     name="weekly reading stats",
        ...     request=ReportRequest("READING_STATS"),
        ...     rule=WeeklyRule(hour=8, minute=0, day_of_week=1),
        ... ))
        >>> [s.name for s in repo.get_due(clock.now())]
        []
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        *,
        clock: Clock | None = None,
        timezone: str | tzinfo | None = None,
        max_per_owner: int = 50,
    ) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or get_dialect(conn)
        self.clock = clock or SystemClock()
        self.timezone = resolve_timezone(timezone)
        self.max_per_owner = max_per_owner

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def compute_next_run(self, rule: RecurrenceRule, after: datetime) -> datetime | None:
        """Next trigger of *rule* strictly after *after*, in UTC."""
        return next_run_utc(rule, after, self.timezone)

    # === Row mapping ===

    def _row_to_schedule(self, row: Any) -> ReportSchedule:
        request = ReportRequest(
            report_kind=row[4],
            output_format=row[5],
            template_ref=row[6],
            filters=ReportFilters.from_dict(json.loads(row[7]) if row[7] else None),
            options=ReportOptions.from_dict(json.loads(row[8]) if row[8] else None),
        )
        return ReportSchedule(
            schedule_id=row[0],
            owner_id=row[1],
            name=row[2],
            description=row[3],
            request=request,
            rule=rule_from_config(row[9], json.loads(row[10])),
            output_config=json.loads(row[11]) if row[11] else {},
            next_run_at=from_db(row[12]),
            last_run_at=from_db(row[13]),
            last_error=row[14],
            run_count=row[15] or 0,
            failure_count=row[16] or 0,
            status=ScheduleStatus(row[17]),
            active=bool(row[18]),
            created_at=from_db(row[19]),
            updated_at=from_db(row[20]),
        )

    @staticmethod
    def _request_columns(request: ReportRequest) -> dict[str, Any]:
        return {
            "report_kind": request.report_kind,
            "output_format": request.output_format,
            "template_ref": request.template_ref,
            "filters": json.dumps(request.filters.to_dict(), sort_keys=True),
            "options": json.dumps(request.options.to_dict(), sort_keys=True, default=str),
        }

    @staticmethod
    def _rule_columns(rule: RecurrenceRule) -> dict[str, Any]:
        return {
            "schedule_type": RULE_TYPES[type(rule)].value,
            "schedule_config": json.dumps(rule_to_config(rule), sort_keys=True),
        }

    def _schedule_values(self, schedule: ReportSchedule) -> tuple:
        request = self._request_columns(schedule.request)
        rule = self._rule_columns(schedule.rule)
        return (
            schedule.schedule_id,
            schedule.owner_id,
            schedule.name,
            schedule.description,
            request["report_kind"],
            request["output_format"],
            request["template_ref"],
            request["filters"],
            request["options"],
            rule["schedule_type"],
            rule["schedule_config"],
            json.dumps(schedule.output_config or {}, sort_keys=True, default=str),
            to_db(schedule.next_run_at),
            to_db(schedule.last_run_at),
            schedule.last_error,
            schedule.run_count,
            schedule.failure_count,
            schedule.status.value,
            1 if schedule.active else 0,
            to_db(schedule.created_at),
            to_db(schedule.updated_at),
        )

    def _query(self, sql: str, params: tuple = ()) -> list[ReportSchedule]:
        cursor = self.conn.execute(sql, params)
        return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def _write_columns(self, schedule_id: str, values: dict[str, Any]) -> None:
        """UPDATE only *values*; run bookkeeping columns are left to ``record_run``."""
        assignments = ", ".join(f"{col} = {self.dialect.placeholder(i)}" for i, col in enumerate(values))
        self.conn.execute(
            f"UPDATE {TABLE} SET {assignments} WHERE schedule_id = {self.dialect.placeholder(len(values))}",
            (*values.values(), schedule_id),
        )
        self.conn.commit()

    # === Validation ===

    def _check_name(self, owner_id: int, name: str, exclude_id: str | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Schedule name must not be empty", field="name", value=name)
        row = self.conn.execute(
            f"""
            SELECT schedule_id FROM {TABLE}
            WHERE owner_id = {self._ph()} AND name = {self._ph()} AND active = 1
            """,
            (owner_id, name),
        ).fetchone()
        if row and row[0] != exclude_id:
            raise ValidationError(
                f"A schedule named {name!r} already exists",
                field="name",
                value=name,
                constraint="unique per owner",
            )
        return name

    def _initial_next_run(self, rule: RecurrenceRule, now: datetime) -> datetime:
        next_at = self.compute_next_run(validate_rule(rule), now)
        if next_at is None:
            raise RecurrenceRuleError(f"Rule never fires: {rule!r}", field="rule", value=rule)
        return next_at

    # === CRUD Operations ===

    def create(self, spec: ScheduleCreate) -> ReportSchedule:
        """Validate and store a new schedule.

        Raises:
            RecurrenceRuleError: the rule violates its constraints.
            ValidationError: empty or duplicate name.
            ScheduleLimitError: the owner already has ``max_per_owner``
                active schedules.
        """
        now = self.clock.now()
        next_at = self._initial_next_run(spec.rule, now)
        name = self._check_name(spec.owner_id, spec.name)

        existing = self.count_active_for_owner(spec.owner_id)
        if existing >= self.max_per_owner:
            raise ScheduleLimitError(
                f"Owner {spec.owner_id} already has {existing} schedules (limit {self.max_per_owner})"
            ).with_context(owner=spec.owner_id, operation="create")

        schedule = ReportSchedule(
            schedule_id=str(uuid4()),
            owner_id=spec.owner_id,
            name=name,
            description=spec.description,
            request=spec.request,
            rule=spec.rule,
            output_config=dict(spec.output_config or {}),
            next_run_at=next_at,
            created_at=now,
            updated_at=now,
        )
        self.conn.execute(
            f"INSERT INTO {TABLE} ({', '.join(COLUMNS)}) VALUES ({self._ph(len(COLUMNS))})",
            self._schedule_values(schedule),
        )
        self.conn.commit()

        logger.info(
            "schedule.created",
            schedule_id=schedule.schedule_id,
            owner=spec.owner_id,
            schedule_type=schedule.schedule_type.value,
            next_run_at=to_db(next_at),
        )
        return schedule

    def get(self, schedule_id: str, include_deleted: bool = False) -> ReportSchedule | None:
        sql = f"{_SELECT} WHERE schedule_id = {self._ph()}"
        if not include_deleted:
            sql += " AND active = 1"
        rows = self._query(sql, (schedule_id,))
        return rows[0] if rows else None

    def get_for_owner(self, schedule_id: str, owner_id: int) -> ReportSchedule:
        """Fetch an active schedule the caller owns.

        Raises:
            ScheduleNotFoundError: no active schedule with this id.
            ScheduleAccessError: the schedule belongs to another owner.
        """
        schedule = self.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        if schedule.owner_id != owner_id:
            raise ScheduleAccessError(f"Schedule {schedule_id} is not owned by {owner_id}").with_context(
                schedule_id=schedule_id, owner=owner_id
            )
        return schedule

    def update(self, schedule_id: str, owner_id: int, changes: ScheduleUpdate) -> ReportSchedule:
        """Apply *changes* to an owned schedule.

        A changed rule is validated and ``next_run_at`` recomputed from now.
        Setting ``status`` back to ACTIVE returns an ERROR or DISABLED
        schedule to polling with ``next_run_at`` recomputed from now, as
        ``SchedulerService.resume`` does.

        Only the edited columns are written, so a run finishing while the
        edit is in progress keeps its ``next_run_at`` and counters.
        """
        schedule = self.get_for_owner(schedule_id, owner_id)
        now = self.clock.now()
        values: dict[str, Any] = {}

        if changes.name is not None:
            values["name"] = self._check_name(owner_id, changes.name, exclude_id=schedule_id)
        if changes.description is not None:
            values["description"] = changes.description
        if changes.request is not None:
            values.update(self._request_columns(changes.request))
        if changes.output_config is not None:
            values["output_config"] = json.dumps(changes.output_config, sort_keys=True, default=str)
        rule = schedule.rule
        if changes.rule is not None and changes.rule != schedule.rule:
            values["next_run_at"] = to_db(self._initial_next_run(changes.rule, now))
            values.update(self._rule_columns(changes.rule))
            rule = changes.rule
        if changes.status is not None:
            status = ScheduleStatus(changes.status)
            values["status"] = status.value
            if status is ScheduleStatus.ACTIVE:
                values["last_error"] = None
                if schedule.status is not ScheduleStatus.ACTIVE and "next_run_at" not in values:
                    values["next_run_at"] = to_db(self._initial_next_run(rule, now))

        values["updated_at"] = to_db(now)
        self._write_columns(schedule_id, values)
        logger.info("schedule.updated", schedule_id=schedule_id, owner=owner_id, columns=sorted(values))
        return self.get_for_owner(schedule_id, owner_id)

    def delete(self, schedule_id: str, owner_id: int) -> None:
        """Logically delete an owned schedule (``active = 0``)."""
        self.get_for_owner(schedule_id, owner_id)
        self.conn.execute(
            f"UPDATE {TABLE} SET active = 0, updated_at = {self._ph()} WHERE schedule_id = {self._ph()}",
            (to_db(self.clock.now()), schedule_id),
        )
        self.conn.commit()
        logger.info("schedule.deleted", schedule_id=schedule_id, owner=owner_id)

    def list_for_owner(self, owner_id: int) -> list[ReportSchedule]:
        return self._query(
            f"{_SELECT} WHERE owner_id = {self._ph()} AND active = 1 ORDER BY created_at DESC",
            (owner_id,),
        )

    def list_active(self) -> list[ReportSchedule]:
        return self._query(f"{_SELECT} WHERE active = 1 ORDER BY next_run_at")

    def count_active_for_owner(self, owner_id: int) -> int:
        row = self.conn.execute(
            f"SELECT COUNT(*) FROM {TABLE} WHERE owner_id = {self._ph()} AND active = 1",
            (owner_id,),
        ).fetchone()
        return row[0] if row else 0

    # === Polling ===

    def get_due(self, now: datetime) -> list[ReportSchedule]:
        """Active, ACTIVE-status schedules with ``next_run_at <= now``, oldest trigger first."""
        return self._query(
            f"""
            {_SELECT}
            WHERE active = 1
              AND status = '{ScheduleStatus.ACTIVE.value}'
              AND next_run_at IS NOT NULL
              AND next_run_at <= {self._ph()}
            ORDER BY next_run_at
            """,
            (to_db(now),),
        )

    def find_never_run(self, now: datetime) -> list[ReportSchedule]:
        """Schedules that have never run although their trigger has passed."""
        return self._query(
            f"""
            {_SELECT}
            WHERE active = 1
              AND status = '{ScheduleStatus.ACTIVE.value}'
              AND last_run_at IS NULL
              AND next_run_at IS NOT NULL
              AND next_run_at < {self._ph()}
            ORDER BY next_run_at
            """,
            (to_db(now),),
        )

    def list_by_status(self, status: ScheduleStatus) -> list[ReportSchedule]:
        return self._query(
            f"{_SELECT} WHERE active = 1 AND status = {self._ph()} ORDER BY updated_at DESC",
            (ScheduleStatus(status).value,),
        )

    def record_run(
        self,
        schedule_id: str,
        ran_at: datetime,
        next_run_at: datetime | None,
        error: str | None = None,
    ) -> None:
        """Record the outcome of one execution.

        A failure sets ERROR and keeps the message; a success clears it and
        sets ACTIVE.  A schedule DISABLED while it was running stays DISABLED.
        """
        failed = error is not None
        status = ScheduleStatus.ERROR if failed else ScheduleStatus.ACTIVE
        self.conn.execute(
            f"""
            UPDATE {TABLE}
            SET last_run_at = {self._ph()},
                next_run_at = {self._ph()},
                last_error = {self._ph()},
                run_count = run_count + 1,
                failure_count = failure_count + {self._ph()},
                status = CASE WHEN status = '{ScheduleStatus.DISABLED.value}'
                              THEN status ELSE {self._ph()} END,
                updated_at = {self._ph()}
            WHERE schedule_id = {self._ph()}
            """,
            (
                to_db(ran_at),
                to_db(next_run_at),
                error[:MAX_ERROR_LENGTH] if failed else None,
                1 if failed else 0,
                status.value,
                to_db(self.clock.now()),
                schedule_id,
            ),
        )
        self.conn.commit()

    def set_status(self, schedule_id: str, status: ScheduleStatus) -> bool:
        cursor = self.conn.execute(
            f"UPDATE {TABLE} SET status = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE schedule_id = {self._ph()} AND active = 1",
            (ScheduleStatus(status).value, to_db(self.clock.now()), schedule_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def set_next_run(self, schedule_id: str, next_run_at: datetime | None) -> None:
        self.conn.execute(
            f"UPDATE {TABLE} SET next_run_at = {self._ph()} WHERE schedule_id = {self._ph()}",
            (to_db(next_run_at), schedule_id),
        )
        self.conn.commit()

    def statistics(self) -> dict[str, Any]:
        """Totals of active schedules: overall, per status and per recurrence type."""
        cursor = self.conn.execute(
            f"SELECT status, schedule_type, COUNT(*) FROM {TABLE} WHERE active = 1 GROUP BY status, schedule_type"
        )
        by_status = {s.value: 0 for s in ScheduleStatus}
        by_type = {t.value: 0 for t in ScheduleType}
        total = 0
        for status, schedule_type, count in cursor.fetchall():
            by_status[status] = by_status.get(status, 0) + count
            by_type[schedule_type] = by_type.get(schedule_type, 0) + count
            total += count
        return {
            "total": total,
            "active": by_status[ScheduleStatus.ACTIVE.value],
            "error": by_status[ScheduleStatus.ERROR.value],
            "disabled": by_status[ScheduleStatus.DISABLED.value],
            "by_type": by_type,
        }


__all__ = ["ReportScheduleRepository", "ScheduleCreate", "ScheduleUpdate"]
