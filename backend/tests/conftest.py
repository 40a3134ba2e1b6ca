# backend/tests/conftest.py

import fnmatch
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from appointments.database import build_engine
from appointments.models import (
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
)
from appointments.services.slots.config import BookingConfig
from appointments.services.store import SqlAlchemyStore

WEEKDAYS = (1, 2, 3, 4, 5)  # Monday..Friday with 0 = Sunday


class FakeRedis:
    """Dict-backed stand-in for the few Redis commands the service uses."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.lists: dict[str, list[str]] = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def keys(self, pattern):
        return [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
        return deleted

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def ping(self):
        return True


class Factory:
    """Creates rows with sensible defaults and flushes them."""

    def __init__(self, db):
        self.db = db
        self._created = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        # Distinct, increasing created_at values for tie-break tests
        self._created += timedelta(minutes=1)
        return self._created

    def _save(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def provider(self, **kw):
        defaults = dict(
            name="Dr. Test",
            email=f"provider{len(self.db.query(Provider).all())}@example.com",
            timezone="UTC",
            buffer_time=15,
            advance_booking_days=30,
            allowed_durations=[15, 30, 45, 60, 90],
            created_at=self._tick(),
        )
        defaults.update(kw)
        return self._save(Provider(**defaults))

    def template(self, provider, windows=None, days=WEEKDAYS, **kw):
        """windows: list of ("HH:MM", "HH:MM") applied to every day in days."""
        defaults = dict(
            provider_id=provider.id,
            name="Default hours",
            timezone=provider.timezone,
            is_default=True,
            is_active=True,
            created_at=self._tick(),
        )
        defaults.update(kw)
        template = AvailabilityTemplate(**defaults)
        template.time_slots = [
            TemplateTimeSlot(day_of_week=day, start_time=start, end_time=end)
            for day in days
            for start, end in (windows or [("09:00", "17:00")])
        ]
        self._save(template)
        self.db.refresh(template)
        return template

    def assignment(self, template, start_date, end_date=None):
        return self._save(TemplateAssignment(
            template_id=template.id,
            start_date=start_date,
            end_date=end_date,
            created_at=self._tick(),
        ))

    def schedule(self, template, slots=None, **kw):
        """slots: list of (day_of_week, "HH:MM", "HH:MM")."""
        defaults = dict(
            template_id=template.id,
            name="Override",
            start_date=date(2025, 1, 1),
            is_recurring=False,
            recurrence_interval=1,
            days_of_week=[],
            priority=0,
            is_active=True,
            created_at=self._tick(),
        )
        defaults.update(kw)
        schedule = AvailabilitySchedule(**defaults)
        schedule.time_slots = [
            ScheduleTimeSlot(day_of_week=day, start_time=start, end_time=end)
            for day, start, end in (slots or [])
        ]
        return self._save(schedule)

    def customer(self, email="client@example.com", **kw):
        return self._save(Customer(email=email, **kw))

    def booking(self, provider, scheduled_at, duration=30, status="PENDING", customer=None, **kw):
        customer = customer or self.db.query(Customer).first() or self.customer()
        return self._save(Booking(
            provider_id=provider.id,
            customer_id=customer.id,
            scheduled_at=scheduled_at,
            duration=duration,
            status=status,
            **kw,
        ))

    def connection(self, provider, **kw):
        defaults = dict(
            provider_id=provider.id,
            platform="google",
            calendar_id="primary",
            access_token="access",
            refresh_token="refresh",
            is_active=True,
            sync_events=True,
        )
        defaults.update(kw)
        return self._save(CalendarConnection(**defaults))

    def event(self, provider, start, end, connection=None, **kw):
        return self._save(CalendarEvent(
            provider_id=provider.id,
            connection_id=connection.id if connection else None,
            start_time=start,
            end_time=end,
            **kw,
        ))

    def location(self, provider, **kw):
        defaults = dict(
            provider_id=provider.id,
            city="Springfield",
            state_province="IL",
            country="USA",
            start_date=date(2025, 1, 1),
            is_default=True,
            is_active=True,
        )
        defaults.update(kw)
        return self._save(ProviderLocation(**defaults))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def enable_sqlite_fk(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return SqlAlchemyStore(db)


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite shared by several connections, for locking tests."""
    engine = build_engine(f"sqlite:///{tmp_path / 'appointments.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()
