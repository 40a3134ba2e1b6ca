# backend/appointments/services/slots/busy.py
"""
Busy-time aggregation.

Sources:
✓ PENDING/CONFIRMED bookings, padded by the provider's buffer on both sides.
  Fetched from far enough before the range that the provider's longest
  booking plus buffer (at least the lookaround) is seen, so a long or
  buffered booking starting outside the range still blocks.
✓ Synced calendar events overlapping the range, unpadded. Every event
  blocks, whatever its legacy allow_bookings flag says.
"""

import logging
from datetime import datetime, timedelta

from .config import BookingConfig, get_booking_config
from .types import BusyInterval, BusySource

logger = logging.getLogger(__name__)


def booking_interval(booking, buffer_minutes: int) -> BusyInterval:
    """Busy interval of an existing booking, padded by buffer_minutes."""
    pad = timedelta(minutes=buffer_minutes or 0)
    start = booking.scheduled_at
    return BusyInterval(
        start=start - pad,
        end=start + timedelta(minutes=booking.duration) + pad,
        source=BusySource.BOOKING,
        reference_id=booking.id,
    )


def event_interval(event) -> BusyInterval:
    return BusyInterval(
        start=event.start_time,
        end=event.end_time,
        source=BusySource.CALENDAR_EVENT,
        reference_id=event.id,
    )


def collect_busy_intervals(
    store,
    provider,
    range_start: datetime,
    range_end: datetime,
    config: BookingConfig | None = None,
    exclude_booking_id: int | None = None,
) -> list[BusyInterval]:
    """
    All intervals in which the provider cannot take a new booking.

    Args:
        store: Store handle
        provider: Provider row (buffer_time is read from it)
        range_start, range_end: UTC range of interest
        exclude_booking_id: Booking to leave out, used when rescheduling

    Returns:
        Busy intervals sorted by start.
    """
    config = config or get_booking_config()
    buffer = provider.buffer_time or 0

    # A booking reaches into the range if it starts less than its padded
    # length before range_start, or less than one buffer after range_end
    reach_back = max(
        config.booking_lookaround_minutes,
        store.get_longest_booking_duration(provider.id) + buffer,
    )
    reach_ahead = max(config.booking_lookaround_minutes, buffer)

    bookings = store.get_bookings(
        provider.id,
        range_start - timedelta(minutes=reach_back),
        range_end + timedelta(minutes=reach_ahead),
    )
    events = store.get_calendar_events(provider.id, range_start, range_end)

    intervals = [
        booking_interval(b, provider.buffer_time)
        for b in bookings
        if b.id != exclude_booking_id
    ]
    intervals.extend(event_interval(e) for e in events)
    intervals.sort(key=lambda i: (i.start, i.end))

    logger.debug(
        f"Provider {provider.id}: {len(intervals)} busy intervals "
        f"in {range_start.isoformat()}..{range_end.isoformat()}"
    )
    return intervals
