"""
backend/appointments/services/booking.py

Booking lifecycle.

State machine:
    PENDING   -> CONFIRMED | CANCELLED | RESCHEDULED
    CONFIRMED -> CANCELLED
    CANCELLED, RESCHEDULED: terminal

request_booking re-validates the requested time inside a per-provider
transaction, so two requests for the same time cannot both be written.
Notifications and calendar pushes happen after commit and never undo it.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..exceptions import (
    ConflictReason,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    ValidationError,
)
from ..models import Booking, BookingStatus
from .slots.availability import is_within_availability
from .slots.config import BookingConfig, get_booking_config
from .slots.conflicts import validate_booking_request

logger = logging.getLogger(__name__)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.RESCHEDULED: frozenset(),
}

CUSTOMER_FIELDS = ("first_name", "last_name", "phone", "address", "city", "state", "zip_code")


def can_transition(current: str, target: str) -> bool:
    return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]


def request_booking(
    store,
    provider_id: int,
    start: datetime,
    duration: int,
    customer: dict,
    service_type: str = "consultation",
    notes: Optional[str] = None,
    notifier=None,
    config: Optional[BookingConfig] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Create a PENDING booking.

    Steps:
    1. Validate provider, duration and start time
    2. Re-check availability and busy time (SlotUnavailableError on conflict)
    3. Find or create the customer by email
    4. Persist the booking
    5. Fire-and-forget notifications

    Steps 1-4 run in one provider-scoped transaction.
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)

    if start.tzinfo is None:
        raise ValidationError("Start time must include a UTC offset")
    email = (customer.get("email") or "").strip()
    if not email:
        raise ValidationError("Customer email is required")

    with store.provider_transaction(provider_id) as provider:
        _validate_request(store, provider, start, duration, config, now)

        client = store.upsert_customer_by_email(
            email, **{key: customer.get(key) for key in CUSTOMER_FIELDS}
        )
        booking = store.create_booking(
            customer_id=client.id,
            provider_id=provider.id,
            scheduled_at=start,
            duration=duration,
            status=BookingStatus.PENDING.value,
            service_type=service_type or "consultation",
            notes=notes,
            confirmation_token=secrets.token_urlsafe(32),
        )

    logger.info(
        f"Booking created: booking_id={booking.id}, provider_id={provider_id}, "
        f"customer_id={booking.customer_id}, start={start.isoformat()}, duration={duration}"
    )

    if notifier is not None:
        notifier.notify_booking_requested(booking)

    return booking


def confirm_booking(store, booking_id: int, notifier=None, calendar_sync=None) -> Booking:
    """Move a PENDING booking to CONFIRMED and push it to the provider calendar."""
    booking = _get_booking(store, booking_id)
    _transition(store, booking, BookingStatus.CONFIRMED)

    if calendar_sync is not None:
        event_id = calendar_sync.push_confirmed_booking(booking)
        if event_id:
            store.commit()

    if notifier is not None:
        notifier.notify_status_change(booking)
    return booking


def confirm_booking_by_token(store, token: str, notifier=None, calendar_sync=None) -> Booking:
    """
    Confirm through the customer's magic link.

    Clicking the link again on a confirmed booking is a no-op.
    """
    booking = store.get_booking_by_token(token)
    if booking is None:
        raise NotFoundError("Invalid or expired confirmation link")

    if booking.status == BookingStatus.CONFIRMED.value:
        return booking

    return confirm_booking(store, booking.id, notifier=notifier, calendar_sync=calendar_sync)


def cancel_booking(
    store,
    booking_id: int,
    reason: Optional[str] = None,
    notifier=None,
    calendar_sync=None,
) -> Booking:
    booking = _get_booking(store, booking_id)
    _transition(store, booking, BookingStatus.CANCELLED, cancel_reason=reason)

    if calendar_sync is not None:
        calendar_sync.remove_booking_event(booking)
        store.commit()

    if notifier is not None:
        notifier.notify_status_change(booking)
    return booking


def reschedule_booking(
    store,
    booking_id: int,
    new_start: Optional[datetime] = None,
    new_duration: Optional[int] = None,
    notifier=None,
    config: Optional[BookingConfig] = None,
    now: Optional[datetime] = None,
) -> tuple[Booking, Optional[Booking]]:
    """
    Mark a PENDING booking RESCHEDULED.

    With new_start, the new time is validated (ignoring the booking being
    moved) and a replacement PENDING booking is created for the same
    customer in the same transaction.

    Returns:
        (original booking, replacement booking or None)
    """
    config = config or get_booking_config()
    now = now or datetime.now(timezone.utc)

    booking = _get_booking(store, booking_id)
    _check_transition(booking, BookingStatus.RESCHEDULED)

    if new_start is None:
        _transition(store, booking, BookingStatus.RESCHEDULED)
        if notifier is not None:
            notifier.notify_status_change(booking)
        return booking, None

    if new_start.tzinfo is None:
        raise ValidationError("Start time must include a UTC offset")
    duration = new_duration or booking.duration

    with store.provider_transaction(booking.provider_id) as provider:
        _validate_request(store, provider, new_start, duration, config, now, exclude_booking_id=booking.id)

        store.update_booking(booking, status=BookingStatus.RESCHEDULED.value)
        replacement = store.create_booking(
            customer_id=booking.customer_id,
            provider_id=booking.provider_id,
            scheduled_at=new_start,
            duration=duration,
            status=BookingStatus.PENDING.value,
            service_type=booking.service_type,
            notes=booking.notes,
            confirmation_token=secrets.token_urlsafe(32),
        )

    logger.info(
        f"Booking {booking.id} rescheduled to booking {replacement.id} at {new_start.isoformat()}"
    )

    if notifier is not None:
        notifier.notify_status_change(booking)
        notifier.notify_booking_requested(replacement)

    return booking, replacement


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_booking(store, booking_id: int) -> Booking:
    booking = store.get_booking(booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def _check_transition(booking: Booking, target: BookingStatus) -> None:
    if not can_transition(booking.status, target.value):
        raise InvalidTransitionError(booking.status, target.value)


def _transition(store, booking: Booking, target: BookingStatus, **fields) -> None:
    _check_transition(booking, target)
    previous = booking.status
    with store.transaction():
        store.update_booking(booking, status=target.value, **fields)
    logger.info(f"Booking {booking.id}: {previous} → {target.value}")


def _validate_request(
    store,
    provider,
    start: datetime,
    duration: int,
    config: BookingConfig,
    now: datetime,
    exclude_booking_id: Optional[int] = None,
) -> None:
    allowed = provider.allowed_durations or []
    if duration not in allowed:
        raise ValidationError(f"Duration {duration} is not allowed (allowed: {allowed})")

    if start <= now + timedelta(minutes=config.lead_time_minutes):
        raise ValidationError("Selected time is in the past or too soon")

    if start > now + timedelta(days=provider.advance_booking_days + 1):
        raise ValidationError(f"Bookings are only taken {provider.advance_booking_days} days ahead")

    if not is_within_availability(store, provider, start, duration, config=config):
        raise SlotUnavailableError(
            ConflictReason.OUTSIDE_AVAILABILITY,
            "Selected time is outside the provider's availability",
        )

    conflict = validate_booking_request(
        store, provider, start, duration,
        config=config,
        exclude_booking_id=exclude_booking_id,
    )
    if conflict is not None:
        logger.info(
            f"Booking rejected for provider {provider.id} at {start.isoformat()}: "
            f"{conflict.reason.value} with {conflict.interval.source.value} "
            f"{conflict.interval.reference_id}"
        )
        raise SlotUnavailableError(conflict.reason)
