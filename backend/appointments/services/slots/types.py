# backend/appointments/services/slots/types.py
"""
Value types shared by every stage of the slots pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from ...exceptions import ConflictReason
from .config import time_str_to_minutes


@dataclass(frozen=True)
class TimeWindow:
    """Local "HH:MM" window on a weekday (0 = Sunday)."""
    day_of_week: int
    start_time: str
    end_time: str

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end_time)

    def to_dict(self) -> dict:
        return {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(frozen=True)
class ScheduleRef:
    id: int
    name: str
    priority: int


@dataclass(frozen=True)
class EffectiveAvailability:
    """Windows for one date and the override schedules active on it."""
    time_slots: tuple[TimeWindow, ...] = ()
    applied_schedules: tuple[ScheduleRef, ...] = ()

    @property
    def has_override(self) -> bool:
        return bool(self.applied_schedules)


class BusySource(str, Enum):
    BOOKING = "booking"
    CALENDAR_EVENT = "calendar_event"


@dataclass(frozen=True)
class BusyInterval:
    """Half-open [start, end) UTC interval that must not be double-booked."""
    start: datetime
    end: datetime
    source: BusySource
    reference_id: int | None = None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and self.start < end


@dataclass(frozen=True)
class Conflict:
    reason: ConflictReason
    interval: BusyInterval


@dataclass(frozen=True)
class Slot:
    """A concrete bookable start time, resolved to UTC."""
    provider_id: int
    start: datetime
    end: datetime
    duration: int
    local_date: date
    local_time: str
    timezone: str
    location_display: str = ""
    type: str = field(default="automatic")

    @property
    def id(self) -> str:
        return f"slot-{int(self.start.timestamp())}-{self.duration}"
