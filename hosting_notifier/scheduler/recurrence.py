"""Decides whether a recurring rule is due at a given minute.

Matching is done on wall-clock fields of ``now``, so callers pass ``now``
in the scheduler's timezone. ``last_dispatch`` is stored in UTC and is
converted to ``now``'s timezone before it is compared.

The evaluator only looks at the current minute. If the process is down at
the configured minute, that period's message is not sent later.
"""

import calendar
from datetime import date, datetime, timezone
from typing import Optional

from hosting_notifier.domain.models import Frequency, RecurringSchedule


def day_of_week_sunday_first(value: date) -> int:
    """Weekday as stored on rules: 0 = Sunday ... 6 = Saturday."""
    return value.isoweekday() % 7


def effective_month_day(year: int, month: int, day_of_month: int) -> int:
    """Configured day clamped to the month's last day (31 -> 28/29/30)."""
    return min(day_of_month, calendar.monthrange(year, month)[1])


def _align(last_dispatch: datetime, now: datetime) -> datetime:
    if now.tzinfo is None:
        if last_dispatch.tzinfo is None:
            return last_dispatch
        return last_dispatch.astimezone(timezone.utc).replace(tzinfo=None)

    if last_dispatch.tzinfo is None:
        last_dispatch = last_dispatch.replace(tzinfo=timezone.utc)
    return last_dispatch.astimezone(now.tzinfo)


def _same_hour(a: datetime, b: datetime) -> bool:
    return a.date() == b.date() and a.hour == b.hour


def should_fire_now(
    schedule: RecurringSchedule,
    last_dispatch: Optional[datetime],
    now: datetime,
) -> bool:
    """True when ``now`` is a fire instant and this period has not been served.

    - hourly: minute matches ``run_at_time``'s minute; suppressed if
      ``last_dispatch`` is in the same calendar hour
    - daily: HH:MM matches; suppressed if ``last_dispatch`` is on the same date
    - weekly: daily rule plus weekday match (0 = Sunday)
    - monthly: daily rule plus day-of-month match, clamped to the month end

    Raises:
        ValueError: If the schedule carries an unknown frequency
    """
    last = _align(last_dispatch, now) if last_dispatch is not None else None
    frequency = Frequency(schedule.frequency)

    if frequency is Frequency.HOURLY:
        if now.minute != schedule.minute:
            return False
        return last is None or not _same_hour(last, now)

    if now.hour != schedule.hour or now.minute != schedule.minute:
        return False

    if frequency is Frequency.WEEKLY:
        if day_of_week_sunday_first(now) != schedule.day_of_week:
            return False
    elif frequency is Frequency.MONTHLY:
        if now.day != effective_month_day(now.year, now.month, schedule.day_of_month):
            return False
    elif frequency is not Frequency.DAILY:
        raise ValueError(f"Unhandled frequency: {frequency}")

    return last is None or last.date() != now.date()
