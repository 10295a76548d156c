"""Due-date arithmetic for recurring reminders.

Calendar-month steps clamp the day of month to the length of the target
month, so a bill due on January 31st next falls due on the last day of
February rather than spilling into March.
"""

import calendar
from datetime import date, timedelta

from fintrack.db.models import Recurrence

DAY_STEPS = {
    Recurrence.WEEKLY: 7,
    Recurrence.BI_WEEKLY: 14,
}

MONTH_STEPS = {
    Recurrence.MONTHLY: 1,
    Recurrence.QUARTERLY: 3,
    Recurrence.HALF_YEARLY: 6,
    Recurrence.YEARLY: 12,
}


def add_months(value: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping the day."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_due_date(current: date, recurrence: Recurrence) -> date:
    """Compute the due date following ``current`` for a recurring reminder.

    Raises ValueError for one-time reminders, which are removed once paid
    instead of being advanced.
    """
    if recurrence in DAY_STEPS:
        return current + timedelta(days=DAY_STEPS[recurrence])
    if recurrence in MONTH_STEPS:
        return add_months(current, MONTH_STEPS[recurrence])
    raise ValueError(f"{recurrence.value} reminders have no next due date")


def month_bounds(anchor: date) -> tuple[date, date]:
    """First and last day of the month containing ``anchor``."""
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


def shift_month(anchor: date, delta: int) -> date:
    """First day of the month ``delta`` months away from ``anchor``."""
    return add_months(anchor.replace(day=1), delta)
