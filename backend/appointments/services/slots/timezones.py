# backend/appointments/services/slots/timezones.py
"""
Timezone handling at the slot boundary.

Windows are local "HH:MM" strings; slots are UTC instants. Conversion
happens only here, so a generated slot formatted back in the same zone
gives the original local date and time.
"""

import logging
from datetime import date, datetime, time
from typing import Optional

import pytz

from .config import minutes_to_time_str, time_str_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
NO_LOCATION_DISPLAY = "Contact provider for location details"


def get_timezone(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """Load a pytz zone, falling back to UTC for unknown names."""
    try:
        return pytz.timezone(tz_name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.error(f"Invalid timezone '{tz_name}', using UTC")
        return pytz.UTC


def local_to_utc(target_date: date, time_str: str, tz: pytz.BaseTzInfo) -> Optional[datetime]:
    """
    Combine a local date and "HH:MM" in tz and convert to UTC.

    Returns None for wall-clock times skipped by a DST jump. Ambiguous
    times (clocks going back) resolve to the first occurrence.
    """
    minutes = time_str_to_minutes(time_str)
    naive = datetime.combine(target_date, time(minutes // 60, minutes % 60))

    try:
        local_dt = tz.localize(naive, is_dst=None)
    except pytz.exceptions.NonExistentTimeError:
        logger.debug(f"{naive} does not exist in {tz.zone}, skipping")
        return None
    except pytz.exceptions.AmbiguousTimeError:
        local_dt = tz.localize(naive, is_dst=True)

    return local_dt.astimezone(pytz.UTC)


def utc_to_local(instant: datetime, tz: pytz.BaseTzInfo) -> tuple[date, str]:
    """Split a UTC instant into local (date, "HH:MM") in tz."""
    if instant.tzinfo is None:
        instant = pytz.UTC.localize(instant)
    local_dt = instant.astimezone(tz)
    return local_dt.date(), minutes_to_time_str(local_dt.hour * 60 + local_dt.minute)


def local_today(tz: pytz.BaseTzInfo, now: datetime) -> date:
    return now.astimezone(tz).date()


def _covers(location, target_date: date) -> bool:
    if location.start_date and target_date < location.start_date:
        return False
    if location.end_date and target_date > location.end_date:
        return False
    return True


def select_location(locations, target_date: date):
    """
    Location that applies on target_date.

    A date-specific (non-default) location covering the date wins over
    the default location.
    """
    active = [loc for loc in locations if loc.is_active]

    date_specific = [
        loc for loc in active if not loc.is_default and _covers(loc, target_date)
    ]
    if date_specific:
        # Latest-starting window is the most specific
        return max(date_specific, key=lambda loc: loc.start_date)

    for loc in active:
        if loc.is_default and _covers(loc, target_date):
            return loc

    return None


def resolve_timezone_name(provider, template=None, location=None) -> str:
    """Timezone for a date: location override, then provider, then template."""
    if location is not None and location.timezone:
        return location.timezone
    if provider.timezone:
        return provider.timezone
    if template is not None and template.timezone:
        return template.timezone
    return DEFAULT_TIMEZONE


def format_location_display(location) -> str:
    """"City, State, Country - description" or a placeholder."""
    if location is None:
        return NO_LOCATION_DISPLAY

    parts = [p for p in (location.city, location.state_province, location.country) if p]
    display = ", ".join(parts)
    if location.description:
        display = f"{display} - {location.description}" if display else location.description

    return display or NO_LOCATION_DISPLAY
