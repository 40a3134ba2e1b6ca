"""
backend/appointments/services/notifications.py

Booking notifications as fire-and-forget side effects.

Every send goes through fire_and_forget(), whose contract is: the outcome
is logged, and a failure never reaches the booking flow. A booking that
was written stays written even when nobody hears about it.
"""

import logging
from concurrent.futures import Executor, Future
from typing import Callable, Optional

from redis import Redis

from ..exceptions import NotificationFailure
from .events import emit_event

logger = logging.getLogger(__name__)


def _run_logged(label: str, func: Callable, *args) -> bool:
    try:
        func(*args)
    except Exception as e:
        logger.error(f"{NotificationFailure.__name__}: {label} failed: {e}")
        return False
    logger.info(f"Notification delivered: {label}")
    return True


def fire_and_forget(label: str, func: Callable, *args, executor: Optional[Executor] = None) -> Optional[Future]:
    """
    Run a notification side effect without letting it fail the caller.

    With an executor the call is submitted and the future returned;
    otherwise it runs inline. Either way the result is only logged.
    """
    if executor is None:
        _run_logged(label, func, *args)
        return None
    return executor.submit(_run_logged, label, func, *args)


class EventNotifier:
    """Notifier that enqueues booking events on Redis for the mail consumer."""

    def __init__(self, redis: Redis, magic_link_base_url: str, executor: Optional[Executor] = None):
        self.redis = redis
        self.magic_link_base_url = magic_link_base_url.rstrip("/")
        self.executor = executor

    def confirmation_link(self, booking) -> str:
        return f"{self.magic_link_base_url}?token={booking.confirmation_token}"

    # ── Senders (raise on failure) ───────────────────────────────────────

    def send_customer_magic_link(self, booking) -> None:
        emit_event(self.redis, "booking_magic_link", {
            **_booking_payload(booking),
            "customer_email": booking.customer.email,
            "customer_name": booking.customer.display_name,
            "confirmation_link": self.confirmation_link(booking),
        })

    def send_provider_notification(self, booking) -> None:
        emit_event(self.redis, "booking_requested", {
            **_booking_payload(booking),
            "provider_email": booking.provider.email,
            "customer_name": booking.customer.display_name,
            "customer_email": booking.customer.email,
            "notes": booking.notes,
        })

    def send_booking_confirmed(self, booking) -> None:
        emit_event(self.redis, "booking_confirmed", {
            **_booking_payload(booking),
            "customer_email": booking.customer.email,
        })

    def send_booking_cancelled(self, booking) -> None:
        emit_event(self.redis, "booking_cancelled", {
            **_booking_payload(booking),
            "customer_email": booking.customer.email,
            "reason": booking.cancel_reason,
        })

    def send_booking_rescheduled(self, booking) -> None:
        emit_event(self.redis, "booking_rescheduled", {
            **_booking_payload(booking),
            "customer_email": booking.customer.email,
        })

    # ── Fire-and-forget entry points ─────────────────────────────────────

    def notify_booking_requested(self, booking) -> None:
        fire_and_forget(f"magic link for booking {booking.id}", self.send_customer_magic_link, booking,
                        executor=self.executor)
        fire_and_forget(f"provider notice for booking {booking.id}", self.send_provider_notification, booking,
                        executor=self.executor)

    def notify_status_change(self, booking) -> None:
        senders = {
            "CONFIRMED": self.send_booking_confirmed,
            "CANCELLED": self.send_booking_cancelled,
            "RESCHEDULED": self.send_booking_rescheduled,
        }
        sender = senders.get(booking.status)
        if sender is None:
            return
        fire_and_forget(f"{booking.status.lower()} notice for booking {booking.id}", sender, booking,
                        executor=self.executor)


def _booking_payload(booking) -> dict:
    return {
        "booking_id": booking.id,
        "provider_id": booking.provider_id,
        "scheduled_at": booking.scheduled_at.isoformat(),
        "duration": booking.duration,
        "service_type": booking.service_type,
        "status": booking.status,
    }
