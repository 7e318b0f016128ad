"""
CLI: ``folio schedule`` - report schedule CRUD commands.
"""

from __future__ import annotations

import typer

from folio.cli.utils import folio_errors, get_connection, load_settings, output_result, output_rows
from folio.core.models.request import ReportFilters, ReportRequest
from folio.core.models.schedule import RecurrenceRule, ReportSchedule, ScheduleStatus, ScheduleType
from folio.core.scheduling import (
    ReportScheduleRepository,
    ScheduleCreate,
    ScheduleUpdate,
    describe_rule,
    rule_from_config,
)
from folio.core.settings import FolioSettings

app = typer.Typer(no_args_is_help=True)


def _repository(settings: FolioSettings) -> ReportScheduleRepository:
    return ReportScheduleRepository(
        get_connection(settings),
        timezone=settings.scheduler_timezone,
        max_per_owner=settings.max_schedules_per_owner,
    )


def _rule(
    schedule_type: ScheduleType,
    hour: int | None,
    minute: int | None,
    day_of_week: int | None,
    day_of_month: int | None,
    cron: str | None,
) -> RecurrenceRule:
    config = {
        "hour": hour,
        "minute": minute,
        "day_of_week": day_of_week,
        "day_of_month": day_of_month,
        "cron_expression": cron,
    }
    return rule_from_config(schedule_type, {k: v for k, v in config.items() if v is not None})


def _row(schedule: ReportSchedule) -> dict:
    return {
        "id": schedule.schedule_id,
        "owner": schedule.owner_id,
        "name": schedule.name,
        "kind": schedule.request.report_kind,
        "rule": describe_rule(schedule.rule),
        "status": schedule.status.value,
        "next_run_at": schedule.next_run_at.isoformat() if schedule.next_run_at else None,
        "last_run_at": schedule.last_run_at.isoformat() if schedule.last_run_at else None,
        "runs": schedule.run_count,
        "failures": schedule.failure_count,
    }


def _detail(schedule: ReportSchedule) -> dict:
    return {
        **_row(schedule),
        "description": schedule.description,
        "request": schedule.request.to_dict(),
        "output_config": schedule.output_config,
        "last_error": schedule.last_error,
    }


@app.command("list")
def list_schedules(
    owner: int | None = typer.Option(None, "--owner", help="Only this user's schedules"),
    status: ScheduleStatus | None = typer.Option(None, "--status", case_sensitive=False),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List active report schedules."""
    repo = _repository(load_settings(database))
    if owner is not None:
        schedules = repo.list_for_owner(owner)
    elif status is not None:
        schedules = repo.list_by_status(status)
    else:
        schedules = repo.list_active()
    if status is not None:
        schedules = [s for s in schedules if s.status is status]
    output_rows([_row(s) for s in schedules], as_json=json_out, title="Schedules")


@app.command("show")
def show_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule details."""
    repo = _repository(load_settings(database))
    schedule = repo.get(schedule_id)
    if schedule is None:
        typer.echo(f"Schedule not found: {schedule_id}", err=True)
        raise typer.Exit(code=1)
    output_result(_detail(schedule), as_json=json_out, title=f"Schedule: {schedule.name}")


@app.command("create")
def create_schedule(
    owner: int = typer.Argument(..., help="Owning user id"),
    name: str = typer.Argument(..., help="Schedule name"),
    kind: str = typer.Option(..., "--kind", "-k", help="Report kind"),
    output_format: str = typer.Option("PDF", "--format"),
    schedule_type: ScheduleType = typer.Option(ScheduleType.DAILY, "--type", "-t", case_sensitive=False),
    hour: int | None = typer.Option(None, "--hour"),
    minute: int | None = typer.Option(None, "--minute"),
    day_of_week: int | None = typer.Option(None, "--day-of-week", help="1=Monday .. 7=Sunday"),
    day_of_month: int | None = typer.Option(None, "--day-of-month"),
    cron: str | None = typer.Option(None, "--cron", help="Cron expression (CUSTOM)"),
    template: str | None = typer.Option(None, "--template"),
    status_filter: list[str] = typer.Option([], "--read-status", help="Filter by read status"),
    description: str | None = typer.Option(None, "--description"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create a new report schedule."""
    repo = _repository(load_settings(database))
    with folio_errors():
        spec = ScheduleCreate(
            owner_id=owner,
            name=name,
            description=description,
            request=ReportRequest(
                report_kind=kind,
                output_format=output_format,
                template_ref=template,
                filters=ReportFilters(statuses=list(status_filter)),
            ),
            rule=_rule(schedule_type, hour, minute, day_of_week, day_of_month, cron),
        )
        schedule = repo.create(spec)
    output_result(_detail(schedule), as_json=json_out, title="Schedule Created")


@app.command("update")
def update_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    owner: int = typer.Option(..., "--owner", help="Owning user id"),
    name: str | None = typer.Option(None, "--name"),
    description: str | None = typer.Option(None, "--description"),
    schedule_type: ScheduleType | None = typer.Option(None, "--type", "-t", case_sensitive=False),
    hour: int | None = typer.Option(None, "--hour"),
    minute: int | None = typer.Option(None, "--minute"),
    day_of_week: int | None = typer.Option(None, "--day-of-week"),
    day_of_month: int | None = typer.Option(None, "--day-of-month"),
    cron: str | None = typer.Option(None, "--cron"),
    status: ScheduleStatus | None = typer.Option(None, "--status", case_sensitive=False),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Update an existing schedule (a new rule needs --type and its fields)."""
    repo = _repository(load_settings(database))
    with folio_errors():
        rule = None
        if schedule_type is not None:
            rule = _rule(schedule_type, hour, minute, day_of_week, day_of_month, cron)
        changes = ScheduleUpdate(name=name, description=description, rule=rule, status=status)
        schedule = repo.update(schedule_id, owner, changes)
    output_result(_detail(schedule), as_json=json_out, title="Schedule Updated")


@app.command("delete")
def delete_schedule(
    schedule_id: str = typer.Argument(..., help="Schedule ID"),
    owner: int = typer.Option(..., "--owner", help="Owning user id"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a schedule (it is kept as an inactive row)."""
    repo = _repository(load_settings(database))
    with folio_errors():
        repo.delete(schedule_id, owner)
    typer.echo(f"Deleted schedule {schedule_id}")


@app.command("due")
def due_schedules(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List schedules the next poll would dispatch."""
    repo = _repository(load_settings(database))
    due = repo.get_due(repo.clock.now())
    output_rows([_row(s) for s in due], as_json=json_out, title="Due schedules")


@app.command("stats")
def schedule_stats(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show schedule totals by status and recurrence type."""
    repo = _repository(load_settings(database))
    output_result(repo.statistics(), as_json=json_out, title="Schedules")
