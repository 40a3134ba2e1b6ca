# backend/appointments/services/slots/recurrence.py
"""
Recurrence matching for advanced availability schedules.

Decides whether a schedule applies on a calendar date. Pure functions:
schedules are read through attributes only, so ORM rows and plain
objects both work.

Weekdays follow the 0 = Sunday ... 6 = Saturday convention used by
time slots and days_of_week.
"""

import logging
from datetime import date, datetime
from math import ceil

from ...models.enums import RecurrenceType

logger = logging.getLogger(__name__)


def day_of_week(target_date: date) -> int:
    """Weekday number with 0 = Sunday."""
    return (target_date.weekday() + 1) % 7


def _as_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


def is_schedule_active_on_date(schedule, target_date: date) -> bool:
    """
    Check whether a schedule applies on target_date.

    Non-recurring schedules cover [start_date, end_date] inclusive, or only
    start_date when there is no end_date. Recurring schedules must also
    match their recurrence pattern.
    """
    target_date = _as_date(target_date)
    start_date = _as_date(schedule.start_date)
    end_date = _as_date(schedule.end_date)

    if target_date < start_date:
        return False
    if end_date and target_date > end_date:
        return False

    if not schedule.is_recurring:
        if end_date:
            return start_date <= target_date <= end_date
        return target_date == start_date

    recurrence_end = _as_date(getattr(schedule, "recurrence_end_date", None))
    if recurrence_end and target_date > recurrence_end:
        return False

    return is_recurrence_match(schedule, target_date, start_date)


def is_recurrence_match(schedule, target_date: date, start_date: date) -> bool:
    """Check target_date against the schedule's recurrence pattern."""
    days_since_start = (target_date - start_date).days
    interval = schedule.recurrence_interval or 1
    days_of_week = set(schedule.days_of_week or [])
    weekday = day_of_week(target_date)

    try:
        recurrence_type = RecurrenceType(schedule.recurrence_type)
    except ValueError:
        logger.warning(
            f"Schedule {getattr(schedule, 'id', None)} has unknown recurrence type "
            f"{schedule.recurrence_type!r}, treating as inactive"
        )
        return False

    if recurrence_type == RecurrenceType.DAILY:
        return days_since_start % interval == 0

    if recurrence_type == RecurrenceType.WEEKLY:
        weeks_since_start = days_since_start // 7
        return weekday in days_of_week and weeks_since_start % interval == 0

    if recurrence_type == RecurrenceType.BIWEEKLY:
        # Every other week counted from the start week; interval stretches the gap
        weeks_since_start = days_since_start // 7
        return weekday in days_of_week and weeks_since_start % (2 * interval) == 0

    if recurrence_type == RecurrenceType.MONTHLY:
        if schedule.month_of_year and target_date.month != schedule.month_of_year:
            return False
        if schedule.week_of_month:
            week_in_month = ceil(target_date.day / 7)
            return week_in_month == schedule.week_of_month and weekday in days_of_week
        return weekday in days_of_week

    # BIMONTHLY / QUARTERLY / YEARLY / CUSTOM are refused at creation time;
    # rows that predate that check never apply.
    logger.warning(
        f"Schedule {getattr(schedule, 'id', None)} uses unsupported recurrence "
        f"{recurrence_type.value}, treating as inactive"
    )
    return False
