# backend/tests/test_notifications.py

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from appointments.services.events import P2P_QUEUE, emit_event
from appointments.services.notifications import EventNotifier, fire_and_forget


def test_emit_event_pushes_json_to_queue(fake_redis):
    emit_event(fake_redis, "booking_confirmed", {"booking_id": 7, "scheduled_at": datetime(2025, 11, 17, 10, 0)})

    event = json.loads(fake_redis.lists[P2P_QUEUE][0])
    assert event["type"] == "booking_confirmed"
    assert event["booking_id"] == 7
    assert event["scheduled_at"] == "2025-11-17 10:00:00"
    assert isinstance(event["ts"], int)


def test_fire_and_forget_logs_failures(caplog):
    def boom():
        raise RuntimeError("smtp down")

    with caplog.at_level(logging.INFO):
        assert fire_and_forget("magic link", boom) is None

    assert "NotificationFailure: magic link failed: smtp down" in caplog.text


def test_fire_and_forget_on_executor():
    calls = []
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = fire_and_forget("provider notice", calls.append, "sent", executor=executor)
        assert future.result(timeout=1) is True

    assert calls == ["sent"]


@pytest.fixture
def booking(factory, db):
    provider = factory.provider()
    customer = factory.customer(first_name="Ana")
    booking = factory.booking(
        provider,
        datetime(2025, 11, 17, 10, 0, tzinfo=timezone.utc),
        customer=customer,
        confirmation_token="tok",
    )
    db.refresh(booking)
    return booking


@pytest.mark.parametrize("status, event_type", [
    ("CONFIRMED", "booking_confirmed"),
    ("CANCELLED", "booking_cancelled"),
    ("RESCHEDULED", "booking_rescheduled"),
])
def test_status_change_events(fake_redis, booking, status, event_type):
    booking.status = status
    booking.cancel_reason = "Conflict" if status == "CANCELLED" else None

    EventNotifier(fake_redis, "https://book.example.com/confirm").notify_status_change(booking)

    event = json.loads(fake_redis.lists[P2P_QUEUE][0])
    assert event["type"] == event_type
    assert event["status"] == status
    assert event["customer_email"] == "client@example.com"
    if status == "CANCELLED":
        assert event["reason"] == "Conflict"


def test_pending_status_change_sends_nothing(fake_redis, booking):
    EventNotifier(fake_redis, "https://book.example.com/confirm").notify_status_change(booking)

    assert fake_redis.lists == {}


def test_confirmation_link(fake_redis, booking):
    notifier = EventNotifier(fake_redis, "https://book.example.com/confirm/")

    assert notifier.confirmation_link(booking) == "https://book.example.com/confirm?token=tok"
