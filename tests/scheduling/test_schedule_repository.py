"""Tests for ReportScheduleRepository."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from folio.core.errors import (
    RecurrenceRuleError,
    ScheduleAccessError,
    ScheduleLimitError,
    ScheduleNotFoundError,
    ValidationError,
)
from folio.core.models.request import ReportFilters, ReportRequest
from folio.core.models.schedule import (
    CustomRule,
    DailyRule,
    MonthlyRule,
    ScheduleStatus,
    ScheduleType,
    WeeklyRule,
)
from folio.core.scheduling.repository import ReportScheduleRepository, ScheduleCreate, ScheduleUpdate

START = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)


@pytest.fixture()
def repo(db_conn, clock):
    return ReportScheduleRepository(db_conn, clock=clock, max_per_owner=3)


def _spec(owner: int = 7, name: str = "morning stats", rule=DailyRule(9, 0), **kw) -> ScheduleCreate:
    return ScheduleCreate(
        owner_id=owner,
        name=name,
        request=kw.pop("request", ReportRequest("READING_STATS", filters=ReportFilters(statuses=["READ"]))),
        rule=rule,
        **kw,
    )


class TestCreate:
    def test_create_computes_first_run(self, repo):
        schedule = repo.create(_spec())
        assert schedule.next_run_at == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        assert schedule.status is ScheduleStatus.ACTIVE
        assert schedule.run_count == 0
        assert len(schedule.schedule_id) == 36

    def test_round_trip(self, repo):
        created = repo.create(
            _spec(
                rule=WeeklyRule(18, 30, 5),
                description="friday digest",
                output_config={"email": "reader@example.com"},
            )
        )
        loaded = repo.get(created.schedule_id)
        assert loaded.rule == WeeklyRule(18, 30, 5)
        assert loaded.schedule_type is ScheduleType.WEEKLY
        assert loaded.request.report_kind == "READING_STATS"
        assert loaded.request.filters.statuses == ["READ"]
        assert loaded.output_config == {"email": "reader@example.com"}
        assert loaded.description == "friday digest"
        assert loaded.next_run_at == datetime(2024, 1, 5, 18, 30, tzinfo=UTC)
        assert loaded.active is True

    def test_invalid_rule(self, repo):
        with pytest.raises(RecurrenceRuleError):
            repo.create(_spec(rule=MonthlyRule(9, 0, 32)))

    def test_unparseable_cron(self, repo):
        with pytest.raises(RecurrenceRuleError):
            repo.create(_spec(rule=CustomRule("sometimes")))

    def test_empty_name(self, repo):
        with pytest.raises(ValidationError):
            repo.create(_spec(name="   "))

    def test_name_is_trimmed(self, repo):
        assert repo.create(_spec(name="  weekly  ")).name == "weekly"

    def test_duplicate_name_per_owner(self, repo):
        repo.create(_spec(name="stats"))
        with pytest.raises(ValidationError):
            repo.create(_spec(name="stats"))
        assert repo.create(_spec(owner=8, name="stats")).owner_id == 8

    def test_deleted_name_can_be_reused(self, repo):
        first = repo.create(_spec(name="stats"))
        repo.delete(first.schedule_id, 7)
        assert repo.create(_spec(name="stats")).schedule_id != first.schedule_id

    def test_owner_limit(self, repo):
        for i in range(3):
            repo.create(_spec(name=f"s{i}"))
        with pytest.raises(ScheduleLimitError):
            repo.create(_spec(name="one too many"))

    def test_timezone(self, db_conn, clock):
        repo = ReportScheduleRepository(db_conn, clock=clock, timezone="Europe/Berlin")
        # 08:00 UTC is 09:00 in Berlin, so 09:00 local has just passed
        schedule = repo.create(_spec(rule=DailyRule(9, 0)))
        assert schedule.next_run_at == datetime(2024, 1, 2, 8, 0, tzinfo=UTC)


class TestOwnership:
    def test_get_for_owner(self, repo):
        schedule = repo.create(_spec())
        assert repo.get_for_owner(schedule.schedule_id, 7).name == "morning stats"

    def test_wrong_owner(self, repo):
        schedule = repo.create(_spec())
        with pytest.raises(ScheduleAccessError):
            repo.get_for_owner(schedule.schedule_id, 8)

    def test_missing(self, repo):
        with pytest.raises(ScheduleNotFoundError):
            repo.get_for_owner("nope", 7)

    def test_delete_is_logical(self, repo):
        schedule = repo.create(_spec())
        repo.delete(schedule.schedule_id, 7)
        assert repo.get(schedule.schedule_id) is None
        assert repo.get(schedule.schedule_id, include_deleted=True).active is False
        assert repo.list_for_owner(7) == []

    def test_delete_requires_owner(self, repo):
        schedule = repo.create(_spec())
        with pytest.raises(ScheduleAccessError):
            repo.delete(schedule.schedule_id, 99)


class TestUpdate:
    def test_rule_change_recomputes_next_run(self, repo, clock):
        schedule = repo.create(_spec())
        clock.advance(hours=4)
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(rule=MonthlyRule(6, 0, 1)))
        assert updated.schedule_type is ScheduleType.MONTHLY
        assert updated.next_run_at == datetime(2024, 2, 1, 6, 0, tzinfo=UTC)
        assert repo.get(schedule.schedule_id).next_run_at == updated.next_run_at

    def test_same_rule_keeps_next_run(self, repo, clock):
        schedule = repo.create(_spec())
        clock.advance(hours=4)
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(rule=DailyRule(9, 0)))
        assert updated.next_run_at == schedule.next_run_at

    def test_rename_and_describe(self, repo):
        schedule = repo.create(_spec())
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(name="evening", description="d"))
        assert (updated.name, updated.description) == ("evening", "d")

    def test_rename_to_existing_name(self, repo):
        repo.create(_spec(name="a"))
        b = repo.create(_spec(name="b"))
        with pytest.raises(ValidationError):
            repo.update(b.schedule_id, 7, ScheduleUpdate(name="a"))
        assert repo.update(b.schedule_id, 7, ScheduleUpdate(name="b")).name == "b"

    def test_reactivate_clears_error(self, repo, clock):
        schedule = repo.create(_spec())
        repo.record_run(schedule.schedule_id, clock.now(), schedule.next_run_at, error="boom")
        assert repo.get(schedule.schedule_id).status is ScheduleStatus.ERROR

        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(status=ScheduleStatus.ACTIVE))
        assert updated.status is ScheduleStatus.ACTIVE
        assert updated.last_error is None
        assert repo.get(schedule.schedule_id).last_error is None

    def test_reactivate_recomputes_next_run_from_now(self, repo, clock):
        schedule = repo.create(_spec())
        repo.set_status(schedule.schedule_id, ScheduleStatus.DISABLED)
        clock.advance(days=3)

        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(status=ScheduleStatus.ACTIVE))
        assert updated.next_run_at == datetime(2024, 1, 4, 9, 0, tzinfo=UTC)
        assert repo.get_due(clock.now()) == []

    def test_active_to_active_keeps_next_run(self, repo, clock):
        schedule = repo.create(_spec())
        clock.advance(hours=4)
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(status=ScheduleStatus.ACTIVE))
        assert updated.next_run_at == schedule.next_run_at

    def test_run_finishing_mid_update_keeps_its_bookkeeping(self, repo, clock, monkeypatch):
        schedule = repo.create(_spec())
        clock.set(datetime(2024, 1, 1, 9, 0, tzinfo=UTC))
        tomorrow = datetime(2024, 1, 2, 9, 0, tzinfo=UTC)
        check_name = repo._check_name

        def run_finishes_first(*args, **kwargs):
            repo.record_run(schedule.schedule_id, clock.now(), tomorrow)
            return check_name(*args, **kwargs)

        monkeypatch.setattr(repo, "_check_name", run_finishes_first)
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(name="renamed", description="d"))

        assert updated.name == "renamed"
        assert updated.next_run_at == tomorrow
        assert updated.last_run_at == clock.now()
        assert updated.run_count == 1
        assert repo.get_due(clock.now()) == []

    def test_replace_request(self, repo):
        schedule = repo.create(_spec())
        updated = repo.update(schedule.schedule_id, 7, ScheduleUpdate(request=ReportRequest("BOOK_LIST", "EXCEL")))
        loaded = repo.get(updated.schedule_id)
        assert (loaded.request.report_kind, loaded.request.output_format) == ("BOOK_LIST", "EXCEL")


class TestPolling:
    def test_get_due(self, repo, clock):
        a = repo.create(_spec(name="a", rule=DailyRule(9, 0)))
        b = repo.create(_spec(name="b", rule=DailyRule(8, 30)))
        repo.create(_spec(name="c", rule=DailyRule(12, 0)))

        assert repo.get_due(clock.now()) == []
        due = repo.get_due(clock.now() + timedelta(hours=1))
        assert [s.schedule_id for s in due] == [b.schedule_id, a.schedule_id]

    def test_get_due_includes_exact_instant(self, repo):
        schedule = repo.create(_spec())
        assert [s.schedule_id for s in repo.get_due(schedule.next_run_at)] == [schedule.schedule_id]

    def test_error_and_disabled_are_not_due(self, repo, clock):
        errored = repo.create(_spec(name="a"))
        disabled = repo.create(_spec(name="b"))
        repo.record_run(errored.schedule_id, clock.now(), errored.next_run_at, error="boom")
        repo.set_status(disabled.schedule_id, ScheduleStatus.DISABLED)
        assert repo.get_due(clock.now() + timedelta(days=1)) == []

    def test_find_never_run(self, repo, clock):
        fresh = repo.create(_spec(name="a"))
        ran = repo.create(_spec(name="b"))
        repo.record_run(ran.schedule_id, clock.now(), ran.next_run_at)

        later = clock.now() + timedelta(hours=2)
        assert [s.schedule_id for s in repo.find_never_run(later)] == [fresh.schedule_id]
        assert repo.find_never_run(clock.now()) == []

    def test_list_by_status(self, repo, clock):
        schedule = repo.create(_spec())
        repo.record_run(schedule.schedule_id, clock.now(), schedule.next_run_at, error="boom")
        assert [s.schedule_id for s in repo.list_by_status(ScheduleStatus.ERROR)] == [schedule.schedule_id]
        assert repo.list_by_status("ACTIVE") == []


class TestRecordRun:
    def test_success(self, repo, clock):
        schedule = repo.create(_spec())
        ran_at = clock.advance(hours=1)
        nxt = datetime(2024, 1, 2, 9, 0, tzinfo=UTC)
        repo.record_run(schedule.schedule_id, ran_at, nxt)

        loaded = repo.get(schedule.schedule_id)
        assert loaded.last_run_at == ran_at
        assert loaded.next_run_at == nxt
        assert loaded.run_count == 1
        assert loaded.failure_count == 0
        assert loaded.last_error is None

    def test_failure_then_success(self, repo, clock):
        schedule = repo.create(_spec())
        repo.record_run(schedule.schedule_id, clock.now(), schedule.next_run_at, error="x" * 5000)
        loaded = repo.get(schedule.schedule_id)
        assert loaded.status is ScheduleStatus.ERROR
        assert loaded.failure_count == 1
        assert len(loaded.last_error) == 2000

        repo.record_run(schedule.schedule_id, clock.now(), schedule.next_run_at)
        loaded = repo.get(schedule.schedule_id)
        assert loaded.status is ScheduleStatus.ACTIVE
        assert loaded.last_error is None
        assert (loaded.run_count, loaded.failure_count) == (2, 1)

    def test_disabled_stays_disabled(self, repo, clock):
        schedule = repo.create(_spec())
        repo.set_status(schedule.schedule_id, ScheduleStatus.DISABLED)
        repo.record_run(schedule.schedule_id, clock.now(), schedule.next_run_at)
        assert repo.get(schedule.schedule_id).status is ScheduleStatus.DISABLED

    def test_set_status_ignores_deleted(self, repo):
        schedule = repo.create(_spec())
        repo.delete(schedule.schedule_id, 7)
        assert repo.set_status(schedule.schedule_id, ScheduleStatus.DISABLED) is False


def test_statistics(repo, clock):
    repo.create(_spec(name="a"))
    b = repo.create(_spec(name="b", rule=WeeklyRule(9, 0, 1)))
    c = repo.create(_spec(name="c", rule=CustomRule("0 9 * * *")))
    repo.record_run(b.schedule_id, clock.now(), b.next_run_at, error="boom")
    repo.set_status(c.schedule_id, ScheduleStatus.DISABLED)
    repo.create(_spec(owner=8, name="d"))

    stats = repo.statistics()
    assert stats["total"] == 4
    assert (stats["active"], stats["error"], stats["disabled"]) == (2, 1, 1)
    assert stats["by_type"] == {"DAILY": 2, "WEEKLY": 1, "MONTHLY": 0, "CUSTOM": 1}
