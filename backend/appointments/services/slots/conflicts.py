# backend/appointments/services/slots/conflicts.py
"""
Conflict resolution between requested times and busy intervals.

Intervals are half-open: [a, b) and [c, d) conflict iff a < d and c < b.
Buffer padding lives on the existing-booking side only, so a request
that ends exactly where a padded booking starts is free.
"""

from datetime import datetime, timedelta

from ...exceptions import ConflictReason
from .busy import collect_busy_intervals
from .config import BookingConfig
from .types import BusyInterval, BusySource, Conflict, Slot

_REASONS = {
    BusySource.BOOKING: ConflictReason.BOOKING_OVERLAP,
    BusySource.CALENDAR_EVENT: ConflictReason.CALENDAR_EVENT_OVERLAP,
}


def find_conflict(start: datetime, end: datetime, busy: list[BusyInterval]) -> Conflict | None:
    """First busy interval overlapping [start, end); bookings are reported before events."""
    hits = [interval for interval in busy if interval.overlaps(start, end)]
    if not hits:
        return None

    hits.sort(key=lambda i: (i.source != BusySource.BOOKING, i.start))
    return Conflict(reason=_REASONS[hits[0].source], interval=hits[0])


def filter_available(slots: list[Slot], busy: list[BusyInterval]) -> list[Slot]:
    """Drop slots that intersect any busy interval."""
    if not busy:
        return list(slots)
    return [
        slot for slot in slots
        if not any(interval.overlaps(slot.start, slot.end) for interval in busy)
    ]


def validate_booking_request(
    store,
    provider,
    start: datetime,
    duration: int,
    config: BookingConfig | None = None,
    exclude_booking_id: int | None = None,
) -> Conflict | None:
    """
    Re-check a requested time against current bookings and events.

    Returns:
        None when the time is free, otherwise the Conflict found.
    """
    end = start + timedelta(minutes=duration)
    busy = collect_busy_intervals(
        store, provider, start, end,
        config=config,
        exclude_booking_id=exclude_booking_id,
    )
    return find_conflict(start, end, busy)
