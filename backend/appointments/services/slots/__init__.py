# backend/appointments/services/slots/__init__.py
"""
Slots calculation module.

Recurrence matching -> schedule resolution -> slot generation
-> busy-time subtraction. Resolved day windows are cached in Redis;
busy time is always read fresh.
"""

from .config import BookingConfig, get_booking_config
from .recurrence import is_schedule_active_on_date
from .resolver import resolve_effective_availability
from .calculator import generate_slot_times
from .busy import collect_busy_intervals
from .conflicts import filter_available, validate_booking_request
from .redis_store import WindowsRedisStore
from .invalidator import invalidate_template_cache
from .availability import (
    calculate_day_slots,
    get_available_slots,
    get_open_slots_range,
    is_slot_available,
)
from .types import BusyInterval, Conflict, EffectiveAvailability, Slot, TimeWindow

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "is_schedule_active_on_date",
    "resolve_effective_availability",
    "generate_slot_times",
    "collect_busy_intervals",
    "filter_available",
    "validate_booking_request",
    "WindowsRedisStore",
    "invalidate_template_cache",
    "calculate_day_slots",
    "get_available_slots",
    "get_open_slots_range",
    "is_slot_available",
    "BusyInterval",
    "Conflict",
    "EffectiveAvailability",
    "Slot",
    "TimeWindow",
]
