# backend/appointments/services/slots/invalidator.py
"""
Cache invalidation for resolved day windows.

Triggers:
✓ Advanced schedule created/updated/deleted -> affected dates of its template

Does NOT trigger:
✗ Booking created/cancelled (busy time is never cached)
✗ Calendar resync (events are never cached)
"""

import logging
from datetime import date, timedelta

from redis import Redis
from redis.exceptions import RedisError

from .redis_store import WindowsRedisStore

logger = logging.getLogger(__name__)

# Open-ended ranges are not enumerated past this many days
MAX_ENUMERATED_DAYS = 366


def invalidate_template_cache(
    redis: Redis | None,
    template_id: int,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached windows for a template.

    Args:
        redis: Redis client, or None when caching is disabled
        template_id: Template ID
        dates: Specific dates, or None for every cached date

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    try:
        deleted = WindowsRedisStore(redis).delete_day_windows(template_id, dates)
    except RedisError as e:
        # Entries still expire through their TTL
        logger.warning(f"Failed to invalidate windows cache for template {template_id}: {e}")
        return 0

    logger.debug(f"Invalidated {deleted} cached days for template {template_id}")
    return deleted


def get_affected_dates(date_start: date, date_end: date | None) -> list[date] | None:
    """
    Dates in [date_start, date_end].

    Returns None (meaning "all dates") when the range is open or too long
    to enumerate.
    """
    if date_end is None:
        return None
    if date_start > date_end:
        date_start, date_end = date_end, date_start
    if (date_end - date_start).days > MAX_ENUMERATED_DAYS:
        return None

    return [date_start + timedelta(days=i) for i in range((date_end - date_start).days + 1)]


def get_affected_dates_from_schedule(schedule) -> list[date] | None:
    """Dates a schedule can touch; recurring schedules may touch any date."""
    if schedule.is_recurring:
        return None
    return get_affected_dates(schedule.start_date, schedule.end_date or schedule.start_date)
