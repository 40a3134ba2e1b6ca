# backend/tests/test_availability.py

import logging
from datetime import date, datetime, timezone
from unittest.mock import Mock

import pytest

from appointments.exceptions import NotFoundError, ValidationError
from appointments.services.slots.availability import (
    calculate_day_slots,
    get_available_slots,
    get_open_slots_range,
    is_slot_available,
)
from appointments.services.slots.config import BookingConfig

# Monday 2025-11-10, 08:00 UTC
NOW = datetime(2025, 11, 10, 8, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2025, 11, 17)


def at(day, hour, minute=0):
    return datetime(2025, 11, day, hour, minute, tzinfo=timezone.utc)


def test_next_monday_has_sixteen_half_hour_slots(store, factory):
    provider = factory.provider()
    factory.template(provider)

    times = get_available_slots(store, provider.id, NEXT_MONDAY, 30, now=NOW)

    assert len(times) == 16
    assert times[0] == "09:00"
    assert times[-1] == "16:30"


def test_quarter_hour_step_when_configured(store, factory):
    provider = factory.provider()
    factory.template(provider)

    times = get_available_slots(
        store, provider.id, NEXT_MONDAY, 30,
        config=BookingConfig(slot_step_minutes=15), now=NOW,
    )

    assert times[:3] == ["09:00", "09:15", "09:30"]
    assert times[-1] == "16:30"


def test_long_duration_steps_by_half_hour(store, factory):
    provider = factory.provider()
    factory.template(provider)

    times = get_available_slots(store, provider.id, NEXT_MONDAY, 90, now=NOW)

    # 09:30 and 10:00 would be lost if the grid followed the duration
    assert times[:3] == ["09:00", "09:30", "10:00"]
    assert times[-1] == "15:30"
    assert len(times) == 14


def test_short_duration_steps_by_its_own_length(store, factory):
    provider = factory.provider()
    factory.template(provider)

    times = get_available_slots(store, provider.id, NEXT_MONDAY, 15, now=NOW)

    assert times[:2] == ["09:00", "09:15"]
    assert len(times) == 32


def test_today_respects_lead_time(store, factory):
    provider = factory.provider()
    factory.template(provider)
    now = at(10, 9, 50)

    times = get_available_slots(store, provider.id, date(2025, 11, 10), 30, now=now)

    # 10:00 is within 15 minutes of 09:50
    assert times[0] == "10:30"


def test_weekend_has_no_slots(store, factory):
    provider = factory.provider()
    factory.template(provider)

    assert get_available_slots(store, provider.id, date(2025, 11, 15), 30, now=NOW) == []


def test_slots_are_in_provider_timezone(store, factory):
    provider = factory.provider(timezone="America/New_York")
    factory.template(provider)

    slots = calculate_day_slots(store, provider.id, NEXT_MONDAY, 60, now=NOW)

    assert slots[0].local_time == "09:00"
    assert slots[0].start == at(17, 14, 0)
    assert slots[0].timezone == "America/New_York"


def test_date_specific_location_timezone_and_display(store, factory):
    provider = factory.provider(timezone="America/New_York")
    factory.template(provider)
    factory.location(provider)
    factory.location(provider, city="Denver", state_province="CO", description="Clinic B",
                     is_default=False, start_date=date(2025, 11, 16), end_date=date(2025, 11, 18),
                     timezone="America/Denver")

    slots = calculate_day_slots(store, provider.id, NEXT_MONDAY, 60, now=NOW)

    assert slots[0].start == at(17, 16, 0)
    assert slots[0].location_display == "Denver, CO, USA - Clinic B"


def test_existing_booking_and_event_are_subtracted(store, factory):
    provider = factory.provider(buffer_time=15)
    factory.template(provider)
    factory.booking(provider, at(17, 10, 0), duration=30)
    factory.event(provider, at(17, 13, 0), at(17, 14, 0))

    times = get_available_slots(store, provider.id, NEXT_MONDAY, 30, now=NOW)

    # Booking blocks [09:45, 10:45) and the event blocks [13:00, 14:00)
    for blocked in ("09:30", "10:00", "10:30", "13:00", "13:30"):
        assert blocked not in times
    assert "09:00" in times
    assert "11:00" in times
    assert "14:00" in times


def test_override_schedule_replaces_template(store, factory):
    provider = factory.provider()
    template = factory.template(provider)
    factory.schedule(template, start_date=NEXT_MONDAY, slots=[(1, "18:00", "19:00")])

    assert get_available_slots(store, provider.id, NEXT_MONDAY, 30, now=NOW) == ["18:00", "18:30"]


def test_past_date_and_horizon_are_refused(store, factory):
    provider = factory.provider(advance_booking_days=10)
    factory.template(provider)

    with pytest.raises(ValidationError):
        get_available_slots(store, provider.id, date(2025, 11, 9), 30, now=NOW)
    with pytest.raises(ValidationError):
        get_available_slots(store, provider.id, date(2025, 11, 21), 30, now=NOW)


def test_disallowed_duration_and_unknown_provider(store, factory):
    provider = factory.provider(allowed_durations=[30, 60])
    factory.template(provider)

    with pytest.raises(ValidationError):
        get_available_slots(store, provider.id, NEXT_MONDAY, 45, now=NOW)
    with pytest.raises(NotFoundError):
        get_available_slots(store, 9999, NEXT_MONDAY, 30, now=NOW)


def test_calendar_resync_failure_is_not_fatal(store, factory, caplog):
    provider = factory.provider()
    factory.template(provider)
    calendar_sync = Mock()
    calendar_sync.sync_for_booking_lookup.side_effect = RuntimeError("google down")

    with caplog.at_level(logging.WARNING):
        times = get_available_slots(store, provider.id, NEXT_MONDAY, 30, calendar_sync=calendar_sync, now=NOW)

    assert len(times) == 16
    assert "SyncDegradedWarning" in caplog.text


def test_open_range_syncs_once_and_sorts(store, factory):
    provider = factory.provider(allowed_durations=[30, 60])
    factory.template(provider)
    calendar_sync = Mock()
    calendar_sync.sync_for_booking_lookup.return_value = {"synced": 0, "failed": 0}

    slots = get_open_slots_range(
        store, provider.id, NEXT_MONDAY, date(2025, 11, 18),
        calendar_sync=calendar_sync, now=NOW,
    )

    calendar_sync.sync_for_booking_lookup.assert_called_once()
    # Mon + Tue, 16 half-hour + 15 one-hour slots each (both on a 30 minute grid)
    assert len(slots) == 62
    assert slots == sorted(slots, key=lambda s: (s.start, s.duration))
    assert {s.local_date for s in slots} == {NEXT_MONDAY, date(2025, 11, 18)}
    assert len({s.id for s in slots}) == 62


def test_open_range_is_clamped_to_today_and_horizon(store, factory):
    provider = factory.provider(advance_booking_days=7)
    factory.template(provider)

    slots = get_open_slots_range(store, provider.id, date(2025, 11, 1), date(2025, 12, 31), [60], now=NOW)

    days = {s.local_date for s in slots}
    assert min(days) == date(2025, 11, 10)
    assert max(days) == date(2025, 11, 17)


def test_is_slot_available(store, factory):
    provider = factory.provider()
    factory.template(provider)
    factory.booking(provider, at(17, 10, 0))

    assert is_slot_available(store, provider.id, at(17, 9, 0), 30, now=NOW)
    assert not is_slot_available(store, provider.id, at(17, 10, 15), 30, now=NOW)
    assert not is_slot_available(store, provider.id, at(17, 7, 0), 30, now=NOW)
    assert not is_slot_available(store, provider.id, at(17, 9, 0), 25, now=NOW)
    assert not is_slot_available(store, provider.id, at(10, 8, 10), 30, now=NOW)
