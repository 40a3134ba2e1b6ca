# backend/appointments/services/slots/resolver.py
"""
Schedule resolution: which windows apply on a date.

Order of precedence:
1. Highest-priority advanced schedule active on the date (ties: oldest wins).
   Only the winner contributes windows; every active schedule is reported.
2. Otherwise the template's weekly pattern for that weekday.
"""

import logging
from datetime import date

from .recurrence import day_of_week, is_schedule_active_on_date
from .types import EffectiveAvailability, ScheduleRef, TimeWindow

logger = logging.getLogger(__name__)


def _schedule_order_key(schedule):
    return (-(schedule.priority or 0), schedule.created_at, schedule.id or 0)


def _enabled_windows(time_slots, weekday: int) -> tuple[TimeWindow, ...]:
    windows = [
        TimeWindow(slot.day_of_week, slot.start_time, slot.end_time)
        for slot in time_slots
        if slot.is_enabled and slot.day_of_week == weekday
    ]
    windows.sort(key=lambda w: (w.start_minutes, w.end_minutes))
    return tuple(windows)


def resolve_effective_availability(store, template_id: int, target_date: date) -> EffectiveAvailability:
    """
    Merge the template's active override schedules for target_date.

    Returns an empty result when no schedule applies; the caller then
    falls back to the template's weekly pattern.
    """
    schedules = sorted(store.get_active_schedules(template_id), key=_schedule_order_key)

    active = [s for s in schedules if is_schedule_active_on_date(s, target_date)]
    if not active:
        return EffectiveAvailability()

    winner = active[0]
    applied = tuple(ScheduleRef(id=s.id, name=s.name, priority=s.priority or 0) for s in active)

    if len(active) > 1:
        logger.debug(
            f"Template {template_id} on {target_date}: schedule {winner.id} "
            f"wins over {[s.id for s in active[1:]]}"
        )

    return EffectiveAvailability(
        time_slots=_enabled_windows(winner.time_slots, day_of_week(target_date)),
        applied_schedules=applied,
    )


def template_windows(template, target_date: date) -> tuple[TimeWindow, ...]:
    """Weekly pattern windows of a template for target_date's weekday."""
    return _enabled_windows(template.time_slots, day_of_week(target_date))


def resolve_day_windows(store, template, target_date: date) -> EffectiveAvailability:
    """Effective windows for a date: override schedules first, template as fallback."""
    effective = resolve_effective_availability(store, template.id, target_date)
    if effective.has_override:
        return effective
    return EffectiveAvailability(time_slots=template_windows(template, target_date))


def select_template(store, provider_id: int, target_date: date):
    """
    Pick the template that governs a provider on target_date.

    A template assigned to a range covering the date beats the default one;
    with no default, the oldest active template is used. Returns None when
    the provider has no active template.
    """
    templates = [t for t in store.get_templates(provider_id) if t.is_active]
    if not templates:
        logger.info(f"Provider {provider_id} has no active availability template")
        return None

    assigned = []
    for template in templates:
        for assignment in template.assignments:
            if assignment.start_date <= target_date and (
                assignment.end_date is None or target_date <= assignment.end_date
            ):
                assigned.append((assignment.start_date, template))

    if assigned:
        # Most recently started assignment wins
        assigned.sort(key=lambda item: item[0], reverse=True)
        return assigned[0][1]

    for template in templates:
        if template.is_default:
            return template

    return min(templates, key=lambda t: (t.created_at, t.id))
