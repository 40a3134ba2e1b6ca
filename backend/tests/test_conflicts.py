# backend/tests/test_conflicts.py

from datetime import datetime, timezone

from appointments.exceptions import ConflictReason
from appointments.services.slots.busy import collect_busy_intervals
from appointments.services.slots.conflicts import filter_available, find_conflict, validate_booking_request
from appointments.services.slots.types import BusyInterval, BusySource, Slot


def at(hour, minute=0, day=17):
    return datetime(2025, 11, day, hour, minute, tzinfo=timezone.utc)


def test_request_inside_buffer_conflicts(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.booking(provider, at(10, 0), duration=30)

    conflict = validate_booking_request(store, provider, at(10, 35), 30)

    assert conflict is not None
    assert conflict.reason == ConflictReason.BOOKING_OVERLAP


def test_request_meeting_buffer_edge_is_free(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.booking(provider, at(10, 0), duration=30)

    # Padded booking is [09:45, 10:45); a request starting at 10:45 touches it only
    assert validate_booking_request(store, provider, at(10, 45), 30) is None
    # Ending exactly at 09:45 is free too
    assert validate_booking_request(store, provider, at(9, 15), 30) is None
    assert validate_booking_request(store, provider, at(9, 20), 30) is not None


def test_cancelled_bookings_do_not_block(store, factory):
    provider = factory.provider()
    factory.booking(provider, at(10, 0), status="CANCELLED")
    factory.booking(provider, at(11, 0), status="RESCHEDULED")

    assert validate_booking_request(store, provider, at(10, 0), 30) is None
    assert validate_booking_request(store, provider, at(11, 0), 30) is None


def test_calendar_event_blocks_without_buffer(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.event(provider, at(12, 0), at(13, 0), allow_bookings=True)

    conflict = validate_booking_request(store, provider, at(12, 30), 30)
    assert conflict.reason == ConflictReason.CALENDAR_EVENT_OVERLAP

    # No padding around events: back-to-back is fine
    assert validate_booking_request(store, provider, at(13, 0), 30) is None
    assert validate_booking_request(store, provider, at(11, 30), 30) is None


def test_booking_reported_before_event(store, factory):
    provider = factory.provider()
    factory.event(provider, at(10, 0), at(11, 0))
    factory.booking(provider, at(10, 30), duration=30)

    conflict = validate_booking_request(store, provider, at(10, 0), 60)

    assert conflict.reason == ConflictReason.BOOKING_OVERLAP


def test_lookaround_catches_buffer_across_range_start(store, factory):
    provider = factory.provider(buffer_time=60)
    factory.booking(provider, at(8, 0), duration=60)

    busy = collect_busy_intervals(store, provider, at(9, 30), at(10, 0))

    assert len(busy) == 1
    assert busy[0].source == BusySource.BOOKING
    assert (busy[0].start, busy[0].end) == (at(7, 0), at(10, 0))


def test_long_booking_blocks_until_its_padded_end(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.booking(provider, at(9, 0), duration=180)

    conflict = validate_booking_request(store, provider, at(11, 30), 30)

    assert conflict is not None
    assert conflict.reason == ConflictReason.BOOKING_OVERLAP
    # Padded booking is [08:45, 12:15)
    assert validate_booking_request(store, provider, at(12, 15), 30) is None


def test_booking_longer_than_lookaround_is_collected(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.booking(provider, at(5, 0), duration=300)

    busy = collect_busy_intervals(store, provider, at(9, 45), at(10, 0))

    assert [(b.start, b.end) for b in busy] == [(at(4, 45), at(10, 15))]


def test_excluded_booking_is_ignored(store, factory):
    provider = factory.provider()
    booking = factory.booking(provider, at(10, 0))

    assert validate_booking_request(store, provider, at(10, 0), 30, exclude_booking_id=booking.id) is None


def test_other_providers_do_not_interfere(store, factory):
    provider = factory.provider()
    other = factory.provider()
    factory.booking(other, at(10, 0))
    factory.event(other, at(11, 0), at(12, 0))

    assert collect_busy_intervals(store, provider, at(0), at(23)) == []


def _slot(hour, minute=0, duration=30):
    start = at(hour, minute)
    return Slot(
        provider_id=1,
        start=start,
        end=datetime.fromtimestamp(start.timestamp() + duration * 60, tz=timezone.utc),
        duration=duration,
        local_date=start.date(),
        local_time=f"{hour:02d}:{minute:02d}",
        timezone="UTC",
    )


def test_filter_available_drops_intersecting_slots():
    busy = [BusyInterval(at(10, 0), at(11, 0), BusySource.CALENDAR_EVENT)]
    slots = [_slot(9, 30), _slot(9, 45), _slot(10, 30), _slot(11, 0)]

    kept = filter_available(slots, busy)

    assert [s.local_time for s in kept] == ["09:30", "11:00"]


def test_find_conflict_half_open():
    busy = [BusyInterval(at(10, 0), at(11, 0), BusySource.BOOKING)]

    assert find_conflict(at(11, 0), at(11, 30), busy) is None
    assert find_conflict(at(9, 30), at(10, 0), busy) is None
    assert find_conflict(at(10, 59), at(11, 30), busy) is not None
