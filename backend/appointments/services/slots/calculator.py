# backend/appointments/services/slots/calculator.py
"""
Slot generation: effective windows -> concrete UTC slots.

Two stages:
  1. generate_slot_times   local "HH:MM" candidate starts (pure)
  2. materialize_slots     local starts -> Slot in UTC, lead time applied

Contains:
✓ windows of the winning schedule or template
✓ requested duration and step
✓ lead time (now + lead_time_minutes)

Does NOT contain:
✗ Bookings and calendar events (see busy.py / conflicts.py)
"""

import logging
from datetime import date, datetime, timedelta

from .config import MINUTES_PER_DAY, minutes_to_time_str
from .timezones import local_to_utc
from .types import Slot, TimeWindow

logger = logging.getLogger(__name__)


def generate_slot_times(
    windows: list[TimeWindow] | tuple[TimeWindow, ...],
    duration: int,
    step_minutes: int = 15,
) -> list[str]:
    """
    Candidate local start times fitting `duration` inside each window.

    Walks each window from its start in `step_minutes` increments while
    start + duration <= end. Overlapping windows yield each time once.

    Returns:
        Sorted list of "HH:MM" strings.
    """
    if duration <= 0 or step_minutes <= 0:
        return []

    starts: set[int] = set()
    for window in windows:
        start_min = window.start_minutes
        end_min = min(window.end_minutes, MINUTES_PER_DAY)
        if end_min <= start_min:
            logger.debug(f"Skipping empty window {window.start_time}-{window.end_time}")
            continue

        t = start_min
        while t + duration <= end_min:
            starts.add(t)
            t += step_minutes

    return [minutes_to_time_str(t) for t in sorted(starts)]


def materialize_slots(
    provider_id: int,
    target_date: date,
    time_strs: list[str],
    duration: int,
    tz,
    now: datetime,
    lead_time_minutes: int = 15,
    location_display: str = "",
) -> list[Slot]:
    """
    Turn local start times on target_date into UTC slots.

    Starts at or before now + lead time are dropped, as are wall-clock
    times that do not exist in tz.
    """
    cutoff = now + timedelta(minutes=lead_time_minutes)
    slots: list[Slot] = []

    for time_str in time_strs:
        start = local_to_utc(target_date, time_str, tz)
        if start is None or start <= cutoff:
            continue

        slots.append(Slot(
            provider_id=provider_id,
            start=start,
            end=start + timedelta(minutes=duration),
            duration=duration,
            local_date=target_date,
            local_time=time_str,
            timezone=tz.zone,
            location_display=location_display,
        ))

    return slots
