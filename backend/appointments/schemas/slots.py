# backend/appointments/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """A bookable slot, start/end in UTC."""
    id: str
    provider_id: int
    start: datetime
    end: datetime
    duration: int
    local_date: date
    local_time: str = Field(description="Start in the slot's timezone, HH:MM")
    timezone: str
    location_display: str
    type: str = "automatic"

    model_config = {"from_attributes": True}


class SlotsDayResponse(BaseModel):
    """Free start times of one day."""
    provider_id: int
    date: date
    duration: int
    available_times: list[str]

    model_config = {"from_attributes": True}


class OpenSlotsResponse(BaseModel):
    """Free slots over a date range for one or more durations."""
    provider_id: int
    start_date: date
    end_date: date
    durations: list[int]
    slots: list[SlotRead]
    total: int


class SlotCheckResponse(BaseModel):
    provider_id: int
    start: datetime
    duration: int
    available: bool


class TimeWindowRead(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}


class ScheduleRefRead(BaseModel):
    id: int
    name: str
    priority: int

    model_config = {"from_attributes": True}


class EffectiveAvailabilityResponse(BaseModel):
    """Windows that apply to a template on a date, and where they come from."""
    template_id: int
    date: date
    source: Literal["schedule", "template"]
    time_slots: list[TimeWindowRead]
    applied_schedules: list[ScheduleRefRead]
