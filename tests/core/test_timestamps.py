"""Tests for folio.core.timestamps."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from folio.core.timestamps import Clock, ManualClock, SystemClock, ensure_utc, from_db, to_db


class TestStorageFormat:
    def test_to_db_is_utc_with_microseconds(self):
        dt = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=1)))
        assert to_db(dt) == "2024-01-01T08:00:00.000000+00:00"

    def test_string_order_matches_time_order(self):
        early = datetime(2024, 1, 1, 8, 0, 0, 999999, tzinfo=UTC)
        late = datetime(2024, 1, 1, 8, 0, 1, tzinfo=UTC)
        assert to_db(early) < to_db(late)

    def test_round_trip(self):
        dt = datetime(2024, 2, 29, 23, 59, 59, 123456, tzinfo=UTC)
        assert from_db(to_db(dt)) == dt

    def test_none_and_empty(self):
        assert to_db(None) is None
        assert from_db(None) is None
        assert from_db("") is None

    def test_naive_values_are_taken_as_utc(self):
        assert ensure_utc(datetime(2024, 1, 1)).tzinfo is UTC
        assert from_db("2024-01-01T00:00:00") == datetime(2024, 1, 1, tzinfo=UTC)


class TestClocks:
    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
        assert isinstance(SystemClock(), Clock)

    def test_manual_clock_advance(self):
        clock = ManualClock(datetime(2024, 1, 1, 8, 0, tzinfo=UTC))
        assert clock.advance(hours=1) == datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        assert clock.advance(timedelta(minutes=30)).minute == 30
        assert clock.now() == datetime(2024, 1, 1, 9, 30, tzinfo=UTC)

    def test_manual_clock_set(self):
        clock = ManualClock()
        when = datetime(2030, 6, 1, tzinfo=UTC)
        clock.set(when)
        assert clock.now() == when
