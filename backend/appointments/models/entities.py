from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .enums import BookingStatus

Base = declarative_base()
metadata = Base.metadata


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            # Naive input is taken as UTC
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Provider(Base):
    __tablename__ = 'providers'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    phone = Column(Text)
    timezone = Column(Text, nullable=False, default='America/New_York')
    default_booking_duration = Column(Integer, nullable=False, default=60)
    buffer_time = Column(Integer, nullable=False, default=15)
    advance_booking_days = Column(Integer, nullable=False, default=30)
    allowed_durations = Column(JSON, nullable=False, default=lambda: [15, 30, 45, 60, 90])
    lock_version = Column(Integer, nullable=False, default=0, server_default='0')  # bumped to take the booking lock
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    templates = relationship('AvailabilityTemplate', back_populates='provider', cascade='all, delete-orphan')
    locations = relationship('ProviderLocation', back_populates='provider', cascade='all, delete-orphan')
    calendar_connections = relationship('CalendarConnection', back_populates='provider', cascade='all, delete-orphan')
    calendar_events = relationship('CalendarEvent', back_populates='provider', cascade='all, delete-orphan')
    bookings = relationship('Booking', back_populates='provider', cascade='all, delete-orphan')


class Customer(Base):
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    email = Column(Text, nullable=False, unique=True)
    first_name = Column(Text)
    last_name = Column(Text)
    phone = Column(Text)
    address = Column(Text)
    city = Column(Text)
    state = Column(Text)
    zip_code = Column(Text)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    bookings = relationship('Booking', back_populates='customer')

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or 'Valued Customer'


class AvailabilityTemplate(Base):
    __tablename__ = 'availability_templates'

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, default='America/New_York')
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    provider = relationship('Provider', back_populates='templates')
    time_slots = relationship(
        'TemplateTimeSlot',
        back_populates='template',
        cascade='all, delete-orphan',
        order_by=lambda: [TemplateTimeSlot.day_of_week, TemplateTimeSlot.start_time],
    )
    assignments = relationship('TemplateAssignment', back_populates='template', cascade='all, delete-orphan')
    schedules = relationship('AvailabilitySchedule', back_populates='template', cascade='all, delete-orphan')


class TemplateTimeSlot(Base):
    __tablename__ = 'template_time_slots'

    id = Column(Integer, primary_key=True)
    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Text, nullable=False)  # "HH:MM"
    end_time = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    template = relationship('AvailabilityTemplate', back_populates='time_slots')


class TemplateAssignment(Base):
    __tablename__ = 'template_assignments'

    id = Column(Integer, primary_key=True)
    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)  # NULL = indefinite
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    template = relationship('AvailabilityTemplate', back_populates='assignments')


class AvailabilitySchedule(Base):
    __tablename__ = 'availability_schedules'

    id = Column(Integer, primary_key=True)
    template_id = Column(ForeignKey('availability_templates.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_type = Column(Text)
    recurrence_interval = Column(Integer, nullable=False, default=1)
    days_of_week = Column(JSON, nullable=False, default=list)
    week_of_month = Column(Integer)
    month_of_year = Column(Integer)
    recurrence_end_date = Column(Date)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    template = relationship('AvailabilityTemplate', back_populates='schedules')
    time_slots = relationship(
        'ScheduleTimeSlot',
        back_populates='schedule',
        cascade='all, delete-orphan',
        order_by=lambda: [ScheduleTimeSlot.day_of_week, ScheduleTimeSlot.start_time],
    )


class ScheduleTimeSlot(Base):
    __tablename__ = 'schedule_time_slots'

    id = Column(Integer, primary_key=True)
    schedule_id = Column(ForeignKey('availability_schedules.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    schedule = relationship('AvailabilitySchedule', back_populates='time_slots')


class ProviderLocation(Base):
    __tablename__ = 'provider_locations'

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    address = Column(Text)
    city = Column(Text)
    state_province = Column(Text)
    country = Column(Text)
    postal_code = Column(Text)
    description = Column(Text)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    timezone = Column(Text)  # overrides provider timezone while the location applies

    provider = relationship('Provider', back_populates='locations')


class CalendarConnection(Base):
    __tablename__ = 'calendar_connections'

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    platform = Column(Text, nullable=False, default='google')
    calendar_id = Column(Text, nullable=False, default='primary')
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(UTCDateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    sync_events = Column(Boolean, nullable=False, default=True)
    is_default_for_bookings = Column(Boolean, nullable=False, default=False)
    last_sync_at = Column(UTCDateTime)

    provider = relationship('Provider', back_populates='calendar_connections')
    events = relationship('CalendarEvent', back_populates='connection')


class CalendarEvent(Base):
    __tablename__ = 'calendar_events'
    __table_args__ = (
        UniqueConstraint('connection_id', 'external_event_id'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    connection_id = Column(ForeignKey('calendar_connections.id', ondelete='SET NULL'))
    external_event_id = Column(Text)
    title = Column(Text)
    location = Column(Text)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    is_all_day = Column(Boolean, nullable=False, default=False)
    # Legacy manual-slot fields; events always count as busy time
    allow_bookings = Column(Boolean, nullable=False, default=False)
    max_bookings = Column(Integer, nullable=False, default=1)
    last_synced_at = Column(UTCDateTime, default=utcnow)

    provider = relationship('Provider', back_populates='calendar_events')
    connection = relationship('CalendarConnection', back_populates='events')


class Booking(Base):
    __tablename__ = 'bookings'

    id = Column(Integer, primary_key=True)
    customer_id = Column(ForeignKey('customers.id'), nullable=False)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    calendar_event_id = Column(ForeignKey('calendar_events.id', ondelete='SET NULL'))  # NULL for automatic slots
    scheduled_at = Column(UTCDateTime, nullable=False)
    duration = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default=BookingStatus.PENDING.value)
    service_type = Column(Text, nullable=False, default='consultation')
    notes = Column(Text)
    confirmation_token = Column(Text, unique=True)
    external_event_id = Column(Text)  # event pushed to the provider calendar
    cancel_reason = Column(Text)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship('Customer', back_populates='bookings')
    provider = relationship('Provider', back_populates='bookings')
    calendar_event = relationship('CalendarEvent')

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)
