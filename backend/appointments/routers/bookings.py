# backend/appointments/routers/bookings.py
"""
Bookings API endpoints.

Domain errors (not found, validation, slot taken) propagate to the
exception handlers registered in main.py.
"""

from fastapi import APIRouter, Depends, status

from ..dependencies import get_calendar_sync, get_notifier, get_store
from ..exceptions import NotFoundError
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingReschedule,
    RescheduleResponse,
)
from ..services.booking import (
    cancel_booking,
    confirm_booking,
    confirm_booking_by_token,
    request_booking,
    reschedule_booking,
)
from ..services.notifications import EventNotifier
from ..services.store import SqlAlchemyStore

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    store: SqlAlchemyStore = Depends(get_store),
    notifier: EventNotifier = Depends(get_notifier),
):
    """
    Request a booking.

    The slot is re-checked against current bookings and calendar events;
    a taken slot answers 409 with the conflict reason. The booking starts
    PENDING until the customer follows the emailed confirmation link.
    """
    return request_booking(
        store,
        provider_id=data.provider_id,
        start=data.scheduled_at,
        duration=data.duration,
        customer=data.customer.model_dump(),
        service_type=data.service_type,
        notes=data.notes,
        notifier=notifier,
    )


@router.get("/confirm/{token}", response_model=BookingRead)
def confirm_by_link(
    token: str,
    store: SqlAlchemyStore = Depends(get_store),
    notifier: EventNotifier = Depends(get_notifier),
    calendar_sync=Depends(get_calendar_sync),
):
    """Magic-link confirmation from the customer's email."""
    return confirm_booking_by_token(store, token, notifier=notifier, calendar_sync=calendar_sync)


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, store: SqlAlchemyStore = Depends(get_store)):
    booking = store.get_booking(id)
    if not booking:
        raise NotFoundError(f"Booking {id} not found")
    return booking


@router.post("/{id}/confirm", response_model=BookingRead)
def confirm(
    id: int,
    store: SqlAlchemyStore = Depends(get_store),
    notifier: EventNotifier = Depends(get_notifier),
    calendar_sync=Depends(get_calendar_sync),
):
    return confirm_booking(store, id, notifier=notifier, calendar_sync=calendar_sync)


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel(
    id: int,
    data: BookingCancel,
    store: SqlAlchemyStore = Depends(get_store),
    notifier: EventNotifier = Depends(get_notifier),
    calendar_sync=Depends(get_calendar_sync),
):
    return cancel_booking(store, id, reason=data.reason, notifier=notifier, calendar_sync=calendar_sync)


@router.post("/{id}/reschedule", response_model=RescheduleResponse)
def reschedule(
    id: int,
    data: BookingReschedule,
    store: SqlAlchemyStore = Depends(get_store),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Mark a pending booking rescheduled, optionally booking the new time."""
    booking, replacement = reschedule_booking(
        store, id,
        new_start=data.new_start,
        new_duration=data.duration,
        notifier=notifier,
    )
    return RescheduleResponse(
        booking=BookingRead.model_validate(booking),
        replacement=BookingRead.model_validate(replacement) if replacement else None,
    )
