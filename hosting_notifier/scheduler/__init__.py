"""Scheduling: wall-clock triggers and the date/recurrence evaluators they drive."""

from .expiry_window import days_until, offset_window, target_date, target_dates
from .recurrence import day_of_week_sunday_first, effective_month_day, should_fire_now
from .service import SchedulerService

__all__ = [
    "SchedulerService",
    "should_fire_now",
    "day_of_week_sunday_first",
    "effective_month_day",
    "target_date",
    "target_dates",
    "offset_window",
    "days_until",
]
