"""
backend/appointments/services/schedules.py

Advanced availability schedules: prioritized, optionally recurring
overrides of a template's weekly pattern.

Recurrence types the matcher cannot evaluate are refused here with
UnsupportedRecurrenceError instead of being stored and never applying.
Every write invalidates the template's cached day windows.
"""

import logging
from typing import Optional

from redis import Redis

from ..exceptions import NotFoundError, UnsupportedRecurrenceError, ValidationError
from ..models import (
    SUPPORTED_RECURRENCE_TYPES,
    AvailabilitySchedule,
    RecurrenceType,
    ScheduleTimeSlot,
)
from .slots.config import time_str_to_minutes
from .slots.invalidator import get_affected_dates_from_schedule, invalidate_template_cache

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "name",
    "start_date",
    "end_date",
    "is_recurring",
    "recurrence_type",
    "recurrence_interval",
    "days_of_week",
    "week_of_month",
    "month_of_year",
    "recurrence_end_date",
    "priority",
    "is_active",
)

# Types whose pattern is defined by days_of_week
WEEKDAY_PATTERNS = {RecurrenceType.WEEKLY, RecurrenceType.BIWEEKLY, RecurrenceType.MONTHLY}


def list_schedules(store, template_id: int) -> list[AvailabilitySchedule]:
    _get_template(store, template_id)
    return store.get_schedules(template_id)


def get_schedule(store, schedule_id: int) -> AvailabilitySchedule:
    schedule = store.get_schedule(schedule_id)
    if schedule is None:
        raise NotFoundError(f"Schedule {schedule_id} not found")
    return schedule


def create_schedule(store, template_id: int, data: dict, redis: Optional[Redis] = None) -> AvailabilitySchedule:
    """
    Create a schedule with its time slots.

    Raises:
        NotFoundError: unknown template
        UnsupportedRecurrenceError: BIMONTHLY/QUARTERLY/YEARLY/CUSTOM
        ValidationError: any other invalid field
    """
    _get_template(store, template_id)

    fields = {key: data[key] for key in SCHEDULE_FIELDS if data.get(key) is not None}
    fields.setdefault("days_of_week", [])
    fields.setdefault("recurrence_interval", 1)
    fields.setdefault("priority", 0)
    fields.setdefault("is_recurring", False)
    fields.setdefault("is_active", True)
    time_slots = data.get("time_slots") or []

    schedule = AvailabilitySchedule(template_id=template_id, **fields)
    _validate_schedule(schedule)
    _validate_time_slots(time_slots)

    with store.transaction():
        schedule.time_slots = [_build_slot(slot) for slot in time_slots]
        store.add_schedule(schedule)

    logger.info(
        f"Schedule created: schedule_id={schedule.id}, template_id={template_id}, "
        f"priority={schedule.priority}, recurrence={schedule.recurrence_type}"
    )
    invalidate_template_cache(redis, template_id, get_affected_dates_from_schedule(schedule))
    return schedule


def update_schedule(store, schedule_id: int, data: dict, redis: Optional[Redis] = None) -> AvailabilitySchedule:
    """
    Partially update a schedule. time_slots, when given, replace the
    existing ones.
    """
    schedule = get_schedule(store, schedule_id)
    before = get_affected_dates_from_schedule(schedule)

    changes = {key: data[key] for key in SCHEDULE_FIELDS if key in data}
    time_slots = data.get("time_slots")

    with store.transaction():
        for key, value in changes.items():
            setattr(schedule, key, value)
        _validate_schedule(schedule)
        if time_slots is not None:
            _validate_time_slots(time_slots)
            schedule.time_slots = [_build_slot(slot) for slot in time_slots]

    logger.info(f"Schedule updated: schedule_id={schedule.id}, fields={sorted(changes)}")

    after = get_affected_dates_from_schedule(schedule)
    if before is None or after is None:
        invalidate_template_cache(redis, schedule.template_id)
    else:
        invalidate_template_cache(redis, schedule.template_id, sorted(set(before) | set(after)))
    return schedule


def delete_schedule(store, schedule_id: int, redis: Optional[Redis] = None) -> None:
    schedule = get_schedule(store, schedule_id)
    template_id = schedule.template_id
    affected = get_affected_dates_from_schedule(schedule)

    with store.transaction():
        store.delete_schedule(schedule)

    logger.info(f"Schedule deleted: schedule_id={schedule_id}, template_id={template_id}")
    invalidate_template_cache(redis, template_id, affected)


# ── Validation ───────────────────────────────────────────────────────────


def _get_template(store, template_id: int):
    template = store.get_template(template_id)
    if template is None:
        raise NotFoundError(f"Template {template_id} not found")
    return template


def _validate_schedule(schedule: AvailabilitySchedule) -> None:
    if not (schedule.name or "").strip():
        raise ValidationError("Schedule name is required")
    if schedule.start_date is None:
        raise ValidationError("start_date is required")
    if schedule.end_date and schedule.end_date < schedule.start_date:
        raise ValidationError("end_date must not be before start_date")

    days = schedule.days_of_week or []
    if any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
        raise ValidationError("days_of_week must contain numbers 0 (Sunday) to 6 (Saturday)")

    if not schedule.is_recurring:
        return

    if not schedule.recurrence_type:
        raise ValidationError("recurrence_type is required for recurring schedules")
    try:
        recurrence_type = RecurrenceType(schedule.recurrence_type)
    except ValueError:
        raise ValidationError(f"Unknown recurrence type: {schedule.recurrence_type}")
    if recurrence_type not in SUPPORTED_RECURRENCE_TYPES:
        raise UnsupportedRecurrenceError(
            f"{recurrence_type.value} recurrence is not supported; "
            f"use one of {sorted(t.value for t in SUPPORTED_RECURRENCE_TYPES)}"
        )

    if schedule.recurrence_interval is not None and schedule.recurrence_interval < 1:
        raise ValidationError("recurrence_interval must be at least 1")
    if recurrence_type in WEEKDAY_PATTERNS and not days:
        raise ValidationError(f"{recurrence_type.value} schedules need at least one day in days_of_week")
    if schedule.week_of_month is not None and not 1 <= schedule.week_of_month <= 5:
        raise ValidationError("week_of_month must be between 1 and 5")
    if schedule.month_of_year is not None and not 1 <= schedule.month_of_year <= 12:
        raise ValidationError("month_of_year must be between 1 and 12")
    if schedule.recurrence_end_date and schedule.recurrence_end_date < schedule.start_date:
        raise ValidationError("recurrence_end_date must not be before start_date")


def _validate_time_slots(time_slots: list[dict]) -> None:
    for slot in time_slots:
        if not 0 <= slot["day_of_week"] <= 6:
            raise ValidationError(f"Invalid day_of_week: {slot['day_of_week']}")
        try:
            start = time_str_to_minutes(slot["start_time"])
            end = time_str_to_minutes(slot["end_time"])
        except ValueError as e:
            raise ValidationError(str(e))
        if start >= end:
            raise ValidationError(f"Time slot {slot['start_time']}-{slot['end_time']} ends before it starts")


def _build_slot(slot: dict) -> ScheduleTimeSlot:
    return ScheduleTimeSlot(
        day_of_week=slot["day_of_week"],
        start_time=slot["start_time"],
        end_time=slot["end_time"],
        is_enabled=slot.get("is_enabled", True),
    )
