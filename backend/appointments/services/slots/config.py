# backend/appointments/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for booking/slots system.

    Attributes:
        slot_step_minutes: Grid step for candidate start times (5/10/15/30/60);
            None steps by the requested duration, capped at 30 minutes
        lead_time_minutes: Minimum notice before a slot stops being bookable
        booking_lookaround_minutes: How far around the range existing bookings
            are fetched, so buffers reaching across the boundary are seen
        default_days_ahead: Range length when the caller does not give one
        cache_ttl_seconds: Redis TTL for resolved day windows
    """
    slot_step_minutes: int | None = None
    lead_time_minutes: int = 15
    booking_lookaround_minutes: int = 120
    default_days_ahead: int = 14
    cache_ttl_seconds: int = 3600

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_step_minutes is not None and self.slot_step_minutes not in (5, 10, 15, 30, 60):
            raise ValueError(f"slot_step_minutes must be 5, 10, 15, 30 or 60, got {self.slot_step_minutes}")
        if self.lead_time_minutes < 0:
            raise ValueError(f"lead_time_minutes must be >= 0, got {self.lead_time_minutes}")
        if self.default_days_ahead < 0:
            raise ValueError(f"default_days_ahead must be >= 0, got {self.default_days_ahead}")


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton)."""
    return BookingConfig(cache_ttl_seconds=settings.availability_cache_ttl_seconds)


MINUTES_PER_DAY = 24 * 60

# Step used when slot_step_minutes is None, unless the duration is shorter
DEFAULT_MAX_STEP_MINUTES = 30


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight. "24:00" is end of day."""
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time string: {value!r}")

    if not (0 <= minutes < 60) or not (0 <= hours <= 24) or (hours == 24 and minutes):
        raise ValueError(f"Invalid time string: {value!r}")
    return hours * 60 + minutes


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
