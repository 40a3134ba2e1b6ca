# backend/appointments/routers/slots.py
"""
Slots API endpoints.

GET /slots/day       - Free start times for one day and duration
GET /slots/open      - Free slots over a date range, several durations
GET /slots/check     - Whether one start time can still be booked
GET /slots/effective - Windows a template resolves to on a date (debug)
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from redis import Redis

from ..dependencies import get_calendar_sync, get_redis, get_store
from ..schemas.slots import (
    EffectiveAvailabilityResponse,
    OpenSlotsResponse,
    ScheduleRefRead,
    SlotCheckResponse,
    SlotRead,
    SlotsDayResponse,
    TimeWindowRead,
)
from ..services.slots import (
    get_available_slots,
    get_booking_config,
    get_open_slots_range,
    is_slot_available,
)
from ..services.slots.availability import get_day_windows
from ..services.store import SqlAlchemyStore

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/day", response_model=SlotsDayResponse)
def get_slots_day(
    provider_id: int,
    duration: int,
    target_date: date = Query(..., alias="date"),
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
    calendar_sync=Depends(get_calendar_sync),
):
    """Get free start times ("HH:MM", provider local) for a day."""
    times = get_available_slots(
        store, provider_id, target_date, duration,
        calendar_sync=calendar_sync,
        redis=redis,
    )
    return SlotsDayResponse(
        provider_id=provider_id,
        date=target_date,
        duration=duration,
        available_times=times,
    )


@router.get("/open", response_model=OpenSlotsResponse)
def get_open_slots(
    provider_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    durations: Optional[list[int]] = Query(None),
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
    calendar_sync=Depends(get_calendar_sync),
):
    """Get free slots for every date in range and every requested duration."""
    config = get_booking_config()
    if start_date is None:
        start_date = datetime.now(timezone.utc).date()
    if end_date is None:
        end_date = start_date + timedelta(days=config.default_days_ahead)

    slots = get_open_slots_range(
        store, provider_id, start_date, end_date, durations,
        calendar_sync=calendar_sync,
        redis=redis,
        config=config,
    )
    return OpenSlotsResponse(
        provider_id=provider_id,
        start_date=start_date,
        end_date=end_date,
        durations=sorted(set(durations or store.get_provider(provider_id).allowed_durations)),
        slots=[SlotRead.model_validate(s) for s in slots],
        total=len(slots),
    )


@router.get("/check", response_model=SlotCheckResponse)
def check_slot(
    provider_id: int,
    start: datetime,
    duration: int,
    store: SqlAlchemyStore = Depends(get_store),
):
    """Check a single start time against availability and current busy time."""
    if start.tzinfo is None:
        raise HTTPException(status_code=400, detail="start must include a UTC offset")

    return SlotCheckResponse(
        provider_id=provider_id,
        start=start,
        duration=duration,
        available=is_slot_available(store, provider_id, start, duration),
    )


@router.get("/effective", response_model=EffectiveAvailabilityResponse)
def get_effective_availability(
    template_id: int,
    target_date: date = Query(..., alias="date"),
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
):
    """Show which windows apply to a template on a date and which schedules are active."""
    template = store.get_template(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")

    effective = get_day_windows(store, template, target_date, redis=redis)
    return EffectiveAvailabilityResponse(
        template_id=template_id,
        date=target_date,
        source="schedule" if effective.has_override else "template",
        time_slots=[TimeWindowRead.model_validate(w) for w in effective.time_slots],
        applied_schedules=[ScheduleRefRead.model_validate(s) for s in effective.applied_schedules],
    )
