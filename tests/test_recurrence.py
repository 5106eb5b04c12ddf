"""Tests for recurring-rule evaluation."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from hosting_notifier.domain.models import RecurringSchedule
from hosting_notifier.scheduler.recurrence import (
    day_of_week_sunday_first,
    effective_month_day,
    should_fire_now,
)


def at(*args, tz=timezone.utc) -> datetime:
    return datetime(*args, tzinfo=tz)


class TestDayHelpers:
    """Tests for weekday numbering and month-day clamping."""

    def test_sunday_is_zero(self):
        assert day_of_week_sunday_first(date(2024, 6, 2)) == 0  # Sunday
        assert day_of_week_sunday_first(date(2024, 6, 3)) == 1  # Monday
        assert day_of_week_sunday_first(date(2024, 6, 8)) == 6  # Saturday

    @pytest.mark.parametrize(
        "year,month,configured,expected",
        [
            (2023, 2, 31, 28),
            (2024, 2, 31, 29),
            (2024, 4, 31, 30),
            (2024, 1, 31, 31),
            (2024, 2, 15, 15),
        ],
    )
    def test_effective_month_day(self, year, month, configured, expected):
        assert effective_month_day(year, month, configured) == expected


class TestDaily:
    """Tests for daily rules."""

    schedule = RecurringSchedule(frequency="daily", run_at_time="09:00")

    def test_fires_at_run_time_when_never_sent(self):
        assert should_fire_now(self.schedule, None, at(2024, 6, 1, 9, 0))

    def test_does_not_fire_at_other_minutes(self):
        assert not should_fire_now(self.schedule, None, at(2024, 6, 1, 9, 1))
        assert not should_fire_now(self.schedule, None, at(2024, 6, 1, 8, 59))
        assert not should_fire_now(self.schedule, None, at(2024, 6, 1, 10, 0))

    def test_already_sent_today_suppresses(self):
        """Sent at today 09:00 -> no second send today, fires again tomorrow."""
        last = at(2024, 6, 1, 9, 0)

        assert not should_fire_now(self.schedule, last, at(2024, 6, 1, 9, 0))
        assert should_fire_now(self.schedule, last, at(2024, 6, 2, 9, 0))

    def test_sent_yesterday_fires(self):
        assert should_fire_now(self.schedule, at(2024, 5, 31, 9, 0), at(2024, 6, 1, 9, 0))

    def test_fires_once_per_day_across_ticks(self):
        """Simulating a day of minute ticks yields exactly one fire."""
        last = None
        fires = 0
        tick = at(2024, 6, 1, 0, 0)
        while tick < at(2024, 6, 2, 0, 0):
            if should_fire_now(self.schedule, last, tick):
                fires += 1
                last = tick
            tick += timedelta(minutes=1)

        assert fires == 1

    def test_last_dispatch_compared_in_local_zone(self):
        """A UTC last_dispatch from the previous local day does not suppress."""
        zone = ZoneInfo("Europe/Belgrade")
        # 2024-06-01 23:30 UTC is already 2024-06-02 01:30 in Belgrade
        last = at(2024, 6, 1, 23, 30)
        now = at(2024, 6, 2, 9, 0, tz=zone)

        assert not should_fire_now(self.schedule, last, now)
        assert should_fire_now(self.schedule, at(2024, 6, 1, 7, 0), now)

    def test_naive_last_dispatch_treated_as_utc(self):
        last = datetime(2024, 6, 1, 7, 0)
        now = at(2024, 6, 1, 9, 0)
        assert not should_fire_now(self.schedule, last, now)


class TestHourly:
    """Tests for hourly rules: only the minute of run_at_time matters."""

    schedule = RecurringSchedule(frequency="hourly", run_at_time="09:15")

    def test_fires_at_matching_minute_every_hour(self):
        assert should_fire_now(self.schedule, None, at(2024, 6, 1, 3, 15))
        assert should_fire_now(self.schedule, None, at(2024, 6, 1, 17, 15))

    def test_does_not_fire_at_other_minutes(self):
        assert not should_fire_now(self.schedule, None, at(2024, 6, 1, 3, 16))

    def test_same_hour_suppresses(self):
        last = at(2024, 6, 1, 3, 15)
        assert not should_fire_now(self.schedule, last, at(2024, 6, 1, 3, 15))
        assert should_fire_now(self.schedule, last, at(2024, 6, 1, 4, 15))

    def test_same_hour_on_other_day_does_not_suppress(self):
        last = at(2024, 5, 31, 3, 15)
        assert should_fire_now(self.schedule, last, at(2024, 6, 1, 3, 15))


class TestWeekly:
    """Tests for weekly rules (0 = Sunday)."""

    def test_fires_on_configured_weekday(self):
        schedule = RecurringSchedule(frequency="weekly", run_at_time="09:00", day_of_week=1)

        assert should_fire_now(schedule, None, at(2024, 6, 3, 9, 0))  # Monday
        assert not should_fire_now(schedule, None, at(2024, 6, 4, 9, 0))  # Tuesday

    def test_sunday(self):
        schedule = RecurringSchedule(frequency="weekly", run_at_time="18:30", day_of_week=0)

        assert should_fire_now(schedule, None, at(2024, 6, 2, 18, 30))

    def test_default_weekday_is_monday(self):
        schedule = RecurringSchedule(frequency="weekly")
        assert schedule.day_of_week == 1

    def test_already_sent_today_suppresses(self):
        schedule = RecurringSchedule(frequency="weekly", run_at_time="09:00", day_of_week=1)
        now = at(2024, 6, 3, 9, 0)
        assert not should_fire_now(schedule, now, now)


class TestMonthly:
    """Tests for monthly rules including day clamping."""

    def test_fires_on_configured_day(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=15)

        assert should_fire_now(schedule, None, at(2024, 6, 15, 9, 0))
        assert not should_fire_now(schedule, None, at(2024, 6, 14, 9, 0))

    def test_day_31_clamps_to_feb_28(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=31)

        assert should_fire_now(schedule, None, at(2023, 2, 28, 9, 0))
        assert not should_fire_now(schedule, None, at(2023, 2, 27, 9, 0))

    def test_day_31_clamps_to_feb_29_in_leap_year(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=31)

        assert should_fire_now(schedule, None, at(2024, 2, 29, 9, 0))
        assert not should_fire_now(schedule, None, at(2024, 2, 28, 9, 0))

    def test_day_31_clamps_to_30_day_month(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=31)

        assert should_fire_now(schedule, None, at(2024, 4, 30, 9, 0))
        assert should_fire_now(schedule, None, at(2024, 6, 30, 9, 0))

    def test_day_30_does_not_fire_on_31st(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=30)

        assert should_fire_now(schedule, None, at(2024, 5, 30, 9, 0))
        assert not should_fire_now(schedule, None, at(2024, 5, 31, 9, 0))

    def test_fires_once_per_month(self):
        schedule = RecurringSchedule(frequency="monthly", run_at_time="09:00", day_of_month=31)
        last = None
        fires = []
        day = date(2024, 1, 1)
        while day <= date(2024, 12, 31):
            now = at(day.year, day.month, day.day, 9, 0)
            if should_fire_now(schedule, last, now):
                fires.append(day)
                last = now
            day += timedelta(days=1)

        assert len(fires) == 12
        assert date(2024, 2, 29) in fires
        assert date(2024, 9, 30) in fires
