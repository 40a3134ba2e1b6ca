# backend/appointments/exceptions.py
"""
Domain errors raised by the availability and booking services.

Validation and slot errors are recoverable by the caller (different input).
PersistenceError is an infrastructure failure and is surfaced as-is.
SyncDegradedWarning and NotificationFailure are only ever logged.
"""

from enum import Enum


class ConflictReason(str, Enum):
    BOOKING_OVERLAP = "BOOKING_OVERLAP"
    CALENDAR_EVENT_OVERLAP = "CALENDAR_EVENT_OVERLAP"
    OUTSIDE_AVAILABILITY = "OUTSIDE_AVAILABILITY"


class AppointmentsError(Exception):
    """Base class for all domain errors."""


class ValidationError(AppointmentsError):
    """Missing or invalid input: disallowed duration, malformed date, etc."""


class NotFoundError(ValidationError):
    """Referenced provider/template/booking does not exist."""


class UnsupportedRecurrenceError(ValidationError):
    """Recurrence type is known but not supported by the matcher."""


class InvalidTransitionError(ValidationError):
    """Booking status change not allowed by the state machine."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from {current} to {target}")


class SlotUnavailableError(AppointmentsError):
    """Requested slot is taken. The caller should pick another time."""

    def __init__(self, reason: ConflictReason, detail: str | None = None):
        self.reason = reason
        self.detail = detail or "Selected time slot is no longer available"
        super().__init__(f"{self.detail} ({reason.value})")


class PersistenceError(AppointmentsError):
    """Store unreachable or write failed. Fatal for the current request."""


class SyncDegradedWarning(UserWarning):
    """Calendar resync failed; busy data may be stale."""


class NotificationFailure(UserWarning):
    """A notification side effect could not be delivered."""
