# backend/appointments/schemas/schedules.py

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$|^24:00$"


class TimeSlotInput(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday")
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    is_enabled: bool = True


class TimeSlotRead(BaseModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
    is_enabled: bool

    model_config = {"from_attributes": True}


class ScheduleCreate(BaseModel):
    name: str = Field(min_length=1)
    start_date: date
    end_date: Optional[date] = None
    is_recurring: bool = False
    recurrence_type: Optional[str] = None
    recurrence_interval: int = 1
    days_of_week: list[int] = []
    week_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    priority: int = 0
    is_active: bool = True
    time_slots: list[TimeSlotInput] = []


class ScheduleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_recurring: Optional[bool] = None
    recurrence_type: Optional[str] = None
    recurrence_interval: Optional[int] = None
    days_of_week: Optional[list[int]] = None
    week_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    time_slots: Optional[list[TimeSlotInput]] = None


class ScheduleRead(BaseModel):
    id: int
    template_id: int
    name: str
    start_date: date
    end_date: Optional[date] = None
    is_recurring: bool
    recurrence_type: Optional[str] = None
    recurrence_interval: int
    days_of_week: list[int]
    week_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    priority: int
    is_active: bool
    created_at: datetime
    time_slots: list[TimeSlotRead]

    model_config = {"from_attributes": True}
