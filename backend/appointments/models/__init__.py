from .entities import (
    AvailabilitySchedule,
    AvailabilityTemplate,
    Base,
    Booking,
    CalendarConnection,
    CalendarEvent,
    Customer,
    Provider,
    ProviderLocation,
    ScheduleTimeSlot,
    TemplateAssignment,
    TemplateTimeSlot,
    UTCDateTime,
    metadata,
)
from .enums import (
    ACTIVE_BOOKING_STATUSES,
    SUPPORTED_RECURRENCE_TYPES,
    BookingStatus,
    RecurrenceType,
)

__all__ = [
    "Base",
    "metadata",
    "UTCDateTime",
    "Provider",
    "Customer",
    "AvailabilityTemplate",
    "TemplateTimeSlot",
    "TemplateAssignment",
    "AvailabilitySchedule",
    "ScheduleTimeSlot",
    "ProviderLocation",
    "CalendarConnection",
    "CalendarEvent",
    "Booking",
    "BookingStatus",
    "RecurrenceType",
    "ACTIVE_BOOKING_STATUSES",
    "SUPPORTED_RECURRENCE_TYPES",
]
