"""Date arithmetic for expiry-class rules.

The automatic sweep only looks at items whose expiry date equals
``today + offset`` exactly. A day on which the sweep does not run is not
made up later.
"""

from datetime import date, timedelta
from typing import List, Tuple

from hosting_notifier.domain.models import ExpirySchedule


def target_date(offset_days: int, today: date) -> date:
    """Expiry date that is ``offset_days`` away from ``today``."""
    return today + timedelta(days=offset_days)


def target_dates(schedule: ExpirySchedule, today: date) -> List[Tuple[int, date]]:
    """``(offset, target date)`` for each offset, in schedule order."""
    return [(offset, target_date(offset, today)) for offset in schedule.offsets]


def offset_window(schedule: ExpirySchedule, today: date) -> Tuple[date, date]:
    """Inclusive date window ``[today + min(offsets), today + max(offsets)]``."""
    return (
        target_date(min(schedule.offsets), today),
        target_date(max(schedule.offsets), today),
    )


def days_until(expiry_date: date, today: date) -> int:
    """Days left before expiry; negative once expired."""
    return (expiry_date - today).days
