# backend/appointments/schemas/bookings.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class CustomerInput(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class BookingCreate(BaseModel):
    provider_id: int
    scheduled_at: datetime = Field(description="ISO-8601 instant with offset")
    duration: int = Field(gt=0)
    customer: CustomerInput
    service_type: str = "consultation"
    notes: Optional[str] = None

    @field_validator("scheduled_at")
    @classmethod
    def require_offset(cls, v: datetime) -> datetime:
        """Naive times are ambiguous across provider timezones."""
        if v.tzinfo is None:
            raise ValueError("scheduled_at must include a UTC offset")
        return v


class BookingRead(BaseModel):
    id: int
    provider_id: int
    customer_id: int
    calendar_event_id: Optional[int] = None

    scheduled_at: datetime
    duration: int

    status: str
    service_type: str
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingReschedule(BaseModel):
    new_start: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, gt=0)

    @field_validator("new_start")
    @classmethod
    def require_offset(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            raise ValueError("new_start must include a UTC offset")
        return v


class RescheduleResponse(BaseModel):
    booking: BookingRead
    replacement: Optional[BookingRead] = None
