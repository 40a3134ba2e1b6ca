# backend/appointments/services/slots/availability.py
"""
Availability queries: the public face of the slots pipeline.

Pipeline per date:
  template (assignment / default) -> override schedules -> windows
  -> candidate starts -> UTC slots (lead time) -> minus busy time

Busy time is computed once per query over the whole UTC span, after a
best-effort calendar resync that never aborts the query.
"""

import logging
from datetime import date, datetime, timedelta, timezone

from redis import Redis

from ...exceptions import NotFoundError, SyncDegradedWarning, ValidationError
from .busy import collect_busy_intervals
from .calculator import generate_slot_times, materialize_slots
from .config import DEFAULT_MAX_STEP_MINUTES, BookingConfig, get_booking_config, time_str_to_minutes
from .conflicts import filter_available, find_conflict
from .redis_store import WindowsRedisStore
from .resolver import resolve_day_windows, select_template
from .timezones import (
    format_location_display,
    get_timezone,
    local_today,
    resolve_timezone_name,
    select_location,
    utc_to_local,
)
from .types import EffectiveAvailability, Slot

logger = logging.getLogger(__name__)


def get_available_slots(
    store,
    provider_id: int,
    target_date: date,
    duration: int,
    calendar_sync=None,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> list[str]:
    """
    Free start times for one day.

    Returns:
        Sorted local "HH:MM" strings.
    """
    slots = calculate_day_slots(
        store, provider_id, target_date, duration,
        calendar_sync=calendar_sync, redis=redis, config=config, now=now,
    )
    return [slot.local_time for slot in slots]


def calculate_day_slots(
    store,
    provider_id: int,
    target_date: date,
    duration: int,
    calendar_sync=None,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> list[Slot]:
    """
    Free slots for one day and duration.

    Raises:
        NotFoundError: unknown provider
        ValidationError: disallowed duration, past date or date beyond
            the provider's booking horizon
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)

    provider = _get_provider(store, provider_id)
    _validate_duration(provider, duration)

    today = local_today(get_timezone(provider.timezone), now)
    if target_date < today:
        raise ValidationError("Cannot book appointments in the past")
    if target_date > today + timedelta(days=provider.advance_booking_days):
        raise ValidationError(
            f"Date is beyond the {provider.advance_booking_days}-day booking horizon"
        )

    locations = store.get_locations(provider.id)
    candidates = _day_candidates(store, provider, locations, target_date, duration, now, config, redis)
    return _subtract_busy(store, provider, candidates, config, calendar_sync)


def get_open_slots_range(
    store,
    provider_id: int,
    start_date: date,
    end_date: date | None = None,
    durations: list[int] | None = None,
    calendar_sync=None,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
    now: datetime | None = None,
) -> list[Slot]:
    """
    Free slots over a date range for several durations.

    The range is clamped to [today, today + advance_booking_days] in the
    provider's timezone. durations defaults to the provider's allowed
    durations.

    Returns:
        Slots sorted by start, then duration.
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)

    provider = _get_provider(store, provider_id)
    durations = sorted(set(durations or provider.allowed_durations or [provider.default_booking_duration]))
    for duration in durations:
        _validate_duration(provider, duration)

    today = local_today(get_timezone(provider.timezone), now)
    horizon = today + timedelta(days=provider.advance_booking_days)
    if end_date is None:
        end_date = start_date + timedelta(days=config.default_days_ahead)
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    first_day = max(start_date, today)
    last_day = min(end_date, horizon)
    if first_day > last_day:
        return []

    locations = store.get_locations(provider.id)
    candidates: list[Slot] = []
    day = first_day
    while day <= last_day:
        for duration in durations:
            candidates.extend(
                _day_candidates(store, provider, locations, day, duration, now, config, redis)
            )
        day += timedelta(days=1)

    slots = _subtract_busy(store, provider, candidates, config, calendar_sync)
    slots.sort(key=lambda s: (s.start, s.duration))

    logger.info(
        f"Provider {provider.id}: {len(slots)} open slots "
        f"{first_day}..{last_day} for durations {durations}"
    )
    return slots


def is_slot_available(
    store,
    provider_id: int,
    start: datetime,
    duration: int,
    config: BookingConfig | None = None,
    now: datetime | None = None,
    exclude_booking_id: int | None = None,
) -> bool:
    """
    Whether a booking of `duration` minutes at `start` would be accepted now.

    Checks the allowed durations, the lead time, the effective windows of
    the local date and current busy time.
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)

    provider = _get_provider(store, provider_id)
    if duration not in (provider.allowed_durations or []):
        return False
    if start <= now + timedelta(minutes=config.lead_time_minutes):
        return False
    if not is_within_availability(store, provider, start, duration, config=config):
        return False

    busy = collect_busy_intervals(
        store, provider, start, start + timedelta(minutes=duration),
        config=config,
        exclude_booking_id=exclude_booking_id,
    )
    return find_conflict(start, start + timedelta(minutes=duration), busy) is None


def is_within_availability(
    store,
    provider,
    start: datetime,
    duration: int,
    config: BookingConfig | None = None,
    redis: Redis | None = None,
) -> bool:
    """Whether [start, start + duration) fits inside one effective window of its local date."""
    local_date, _ = utc_to_local(start, get_timezone(provider.timezone))
    location = select_location(store.get_locations(provider.id), local_date)

    tz = get_timezone(resolve_timezone_name(provider, location=location))
    local_date, local_time = utc_to_local(start, tz)

    template = select_template(store, provider.id, local_date)
    if template is None:
        return False

    effective = get_day_windows(store, template, local_date, redis=redis, config=config)
    start_min = time_str_to_minutes(local_time)
    end_min = start_min + duration

    return any(
        w.start_minutes <= start_min and end_min <= w.end_minutes
        for w in effective.time_slots
    )


def get_day_windows(
    store,
    template,
    target_date: date,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
) -> EffectiveAvailability:
    """Effective windows for a template and date, through the Redis cache when given."""
    if redis is None:
        return resolve_day_windows(store, template, target_date)

    cache = WindowsRedisStore(redis, config)
    cached = cache.get_day_windows(template.id, target_date)
    if cached is not None:
        return cached

    effective = resolve_day_windows(store, template, target_date)
    cache.store_day_windows(template.id, target_date, effective)
    return effective


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_provider(store, provider_id: int):
    provider = store.get_provider(provider_id)
    if provider is None:
        raise NotFoundError(f"Provider {provider_id} not found")
    return provider


def _validate_duration(provider, duration: int) -> None:
    allowed = provider.allowed_durations or []
    if duration not in allowed:
        raise ValidationError(
            f"Duration {duration} is not allowed for provider {provider.id} (allowed: {allowed})"
        )


def _day_candidates(
    store,
    provider,
    locations,
    target_date: date,
    duration: int,
    now: datetime,
    config: BookingConfig,
    redis: Redis | None,
) -> list[Slot]:
    """Candidate slots for one day before busy time is removed."""
    template = select_template(store, provider.id, target_date)
    if template is None:
        return []

    effective = get_day_windows(store, template, target_date, redis=redis, config=config)
    if not effective.time_slots:
        return []

    location = select_location(locations, target_date)
    tz = get_timezone(resolve_timezone_name(provider, template, location))
    step = config.slot_step_minutes or min(DEFAULT_MAX_STEP_MINUTES, duration)

    times = generate_slot_times(effective.time_slots, duration, step)
    return materialize_slots(
        provider.id,
        target_date,
        times,
        duration,
        tz,
        now,
        lead_time_minutes=config.lead_time_minutes,
        location_display=format_location_display(location),
    )


def _subtract_busy(store, provider, candidates: list[Slot], config: BookingConfig, calendar_sync) -> list[Slot]:
    if not candidates:
        return []

    range_start = min(s.start for s in candidates)
    range_end = max(s.end for s in candidates)

    _resync_calendars(calendar_sync, provider.id, range_start, range_end)
    busy = collect_busy_intervals(store, provider, range_start, range_end, config=config)
    return filter_available(candidates, busy)


def _resync_calendars(calendar_sync, provider_id: int, start: datetime, end: datetime) -> None:
    """Best-effort refresh of calendar events; failures leave stale data in place."""
    if calendar_sync is None:
        return

    try:
        result = calendar_sync.sync_for_booking_lookup(provider_id, start, end)
    except Exception as e:
        logger.warning(
            f"{SyncDegradedWarning.__name__}: calendar resync failed for provider "
            f"{provider_id}, using stored events: {e}"
        )
        return

    logger.debug(f"Calendar resync for provider {provider_id}: {result}")
