# backend/appointments/services/store.py
"""
Persistence surface used by the availability and booking services.

Services receive a store handle explicitly; nothing here is a module
level singleton. SqlAlchemyStore wraps one Session per request.

Write methods only flush. The caller commits, either through commit()
or by running inside transaction() / provider_transaction().
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Protocol

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, PersistenceError
from ..models import (
    ACTIVE_BOOKING_STATUSES,
    AvailabilitySchedule,
    AvailabilityTemplate,
    Booking,
    CalendarConnection,
    CalendarEvent,
    Customer,
    Provider,
    ProviderLocation,
)

logger = logging.getLogger(__name__)


class Store(Protocol):
    """What the engine needs from persistence."""

    def get_provider(self, provider_id: int) -> Optional[Provider]: ...
    def get_templates(self, provider_id: int) -> list[AvailabilityTemplate]: ...
    def get_template(self, template_id: int) -> Optional[AvailabilityTemplate]: ...
    def get_active_schedules(self, template_id: int) -> list[AvailabilitySchedule]: ...
    def get_locations(self, provider_id: int) -> list[ProviderLocation]: ...
    def get_bookings(self, provider_id: int, start: datetime, end: datetime) -> list[Booking]: ...
    def get_longest_booking_duration(self, provider_id: int) -> int: ...
    def get_calendar_events(self, provider_id: int, start: datetime, end: datetime) -> list[CalendarEvent]: ...
    def create_booking(self, **fields) -> Booking: ...
    def upsert_customer_by_email(self, email: str, **fields) -> Customer: ...


class SqlAlchemyStore:
    """Store backed by a SQLAlchemy Session."""

    def __init__(self, db: Session):
        self.db = db

    # ── Transactions ─────────────────────────────────────────────────────

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Store failure during {action}: {e}")
            raise PersistenceError(f"Database error during {action}") from e

    def commit(self) -> None:
        with self._guard("commit"):
            self.db.commit()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on any error."""
        try:
            yield
            self.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Database error, transaction rolled back") from e
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def provider_transaction(self, provider_id: int) -> Iterator[Provider]:
        """
        Transaction serialised per provider.

        The first statement bumps providers.lock_version. That write takes
        the provider row lock on PostgreSQL and the database write lock on
        SQLite (where FOR UPDATE is ignored and the driver only begins a
        transaction on the first write), so concurrent check-then-insert
        for the same provider run one after the other. Yields the locked
        provider, reloaded after the lock is held.
        """
        with self.transaction():
            with self._guard("provider lock"):
                locked = self.db.execute(
                    update(Provider)
                    .where(Provider.id == provider_id)
                    .values(lock_version=Provider.lock_version + 1)
                    .execution_options(synchronize_session=False)
                ).rowcount
                provider = self.db.get(Provider, provider_id, populate_existing=True) if locked else None
            if provider is None:
                raise NotFoundError(f"Provider {provider_id} not found")
            yield provider

    # ── Providers & templates ────────────────────────────────────────────

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        with self._guard("get_provider"):
            return self.db.get(Provider, provider_id)

    def get_templates(self, provider_id: int) -> list[AvailabilityTemplate]:
        with self._guard("get_templates"):
            return (
                self.db.query(AvailabilityTemplate)
                .filter(AvailabilityTemplate.provider_id == provider_id)
                .order_by(AvailabilityTemplate.created_at, AvailabilityTemplate.id)
                .all()
            )

    def get_template(self, template_id: int) -> Optional[AvailabilityTemplate]:
        with self._guard("get_template"):
            return self.db.get(AvailabilityTemplate, template_id)

    def get_locations(self, provider_id: int) -> list[ProviderLocation]:
        with self._guard("get_locations"):
            return (
                self.db.query(ProviderLocation)
                .filter(
                    ProviderLocation.provider_id == provider_id,
                    ProviderLocation.is_active.is_(True),
                )
                .order_by(ProviderLocation.start_date)
                .all()
            )

    # ── Schedules ────────────────────────────────────────────────────────

    def get_active_schedules(self, template_id: int) -> list[AvailabilitySchedule]:
        """Active schedules, highest priority first, oldest first on ties."""
        with self._guard("get_active_schedules"):
            return (
                self.db.query(AvailabilitySchedule)
                .filter(
                    AvailabilitySchedule.template_id == template_id,
                    AvailabilitySchedule.is_active.is_(True),
                )
                .order_by(
                    AvailabilitySchedule.priority.desc(),
                    AvailabilitySchedule.created_at.asc(),
                    AvailabilitySchedule.id.asc(),
                )
                .all()
            )

    def get_schedule(self, schedule_id: int) -> Optional[AvailabilitySchedule]:
        with self._guard("get_schedule"):
            return self.db.get(AvailabilitySchedule, schedule_id)

    def get_schedules(self, template_id: int) -> list[AvailabilitySchedule]:
        with self._guard("get_schedules"):
            return (
                self.db.query(AvailabilitySchedule)
                .filter(AvailabilitySchedule.template_id == template_id)
                .order_by(AvailabilitySchedule.priority.desc(), AvailabilitySchedule.created_at)
                .all()
            )

    def add_schedule(self, schedule: AvailabilitySchedule) -> AvailabilitySchedule:
        with self._guard("add_schedule"):
            self.db.add(schedule)
            self.db.flush()
        return schedule

    def delete_schedule(self, schedule: AvailabilitySchedule) -> None:
        with self._guard("delete_schedule"):
            self.db.delete(schedule)
            self.db.flush()

    # ── Bookings ─────────────────────────────────────────────────────────

    def get_bookings(
        self,
        provider_id: int,
        start: datetime,
        end: datetime,
        statuses: tuple[str, ...] = ACTIVE_BOOKING_STATUSES,
    ) -> list[Booking]:
        """Bookings of a provider scheduled in [start, end]."""
        with self._guard("get_bookings"):
            return (
                self.db.query(Booking)
                .filter(
                    Booking.provider_id == provider_id,
                    Booking.status.in_(statuses),
                    Booking.scheduled_at >= start,
                    Booking.scheduled_at <= end,
                )
                .order_by(Booking.scheduled_at)
                .all()
            )

    def get_longest_booking_duration(
        self,
        provider_id: int,
        statuses: tuple[str, ...] = ACTIVE_BOOKING_STATUSES,
    ) -> int:
        """Longest duration among a provider's bookings, 0 when there are none."""
        with self._guard("get_longest_booking_duration"):
            longest = (
                self.db.query(func.max(Booking.duration))
                .filter(Booking.provider_id == provider_id, Booking.status.in_(statuses))
                .scalar()
            )
        return longest or 0

    def get_booking_event_ids(self, provider_id: int) -> set[str]:
        """External calendar ids of events pushed for the provider's bookings."""
        with self._guard("get_booking_event_ids"):
            rows = (
                self.db.query(Booking.external_event_id)
                .filter(Booking.provider_id == provider_id, Booking.external_event_id.isnot(None))
                .all()
            )
        return {row[0] for row in rows}

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._guard("get_booking"):
            return self.db.get(Booking, booking_id)

    def get_booking_by_token(self, token: str) -> Optional[Booking]:
        with self._guard("get_booking_by_token"):
            return self.db.query(Booking).filter(Booking.confirmation_token == token).first()

    def create_booking(self, **fields) -> Booking:
        booking = Booking(**fields)
        with self._guard("create_booking"):
            self.db.add(booking)
            self.db.flush()
        return booking

    def update_booking(self, booking: Booking, **fields) -> Booking:
        for key, value in fields.items():
            setattr(booking, key, value)
        with self._guard("update_booking"):
            self.db.flush()
        return booking

    # ── Customers ────────────────────────────────────────────────────────

    def upsert_customer_by_email(self, email: str, **fields) -> Customer:
        """
        Find a customer by email or create one.

        Existing customers only get empty fields filled in; stored details
        are never overwritten by a booking form.
        """
        email = email.strip().lower()
        with self._guard("upsert_customer_by_email"):
            customer = self.db.query(Customer).filter(Customer.email == email).first()

            if customer:
                for key, value in fields.items():
                    if value and not getattr(customer, key):
                        setattr(customer, key, value)
                self.db.flush()
                return customer

            customer = Customer(email=email, **{k: v for k, v in fields.items() if v is not None})
            self.db.add(customer)
            self.db.flush()

        logger.info(f"Created customer: customer_id={customer.id}, email={email}")
        return customer

    # ── Calendar ─────────────────────────────────────────────────────────

    def get_calendar_connections(self, provider_id: int) -> list[CalendarConnection]:
        """Active calendar connections of a provider."""
        with self._guard("get_calendar_connections"):
            return (
                self.db.query(CalendarConnection)
                .filter(
                    CalendarConnection.provider_id == provider_id,
                    CalendarConnection.is_active.is_(True),
                )
                .order_by(CalendarConnection.id)
                .all()
            )

    def get_calendar_events(self, provider_id: int, start: datetime, end: datetime) -> list[CalendarEvent]:
        """Events of a provider overlapping [start, end]."""
        with self._guard("get_calendar_events"):
            return (
                self.db.query(CalendarEvent)
                .filter(
                    CalendarEvent.provider_id == provider_id,
                    CalendarEvent.start_time < end,
                    CalendarEvent.end_time > start,
                )
                .order_by(CalendarEvent.start_time)
                .all()
            )

    def upsert_calendar_event(
        self,
        connection: CalendarConnection,
        external_event_id: str,
        **fields,
    ) -> CalendarEvent:
        with self._guard("upsert_calendar_event"):
            event = (
                self.db.query(CalendarEvent)
                .filter(
                    CalendarEvent.connection_id == connection.id,
                    CalendarEvent.external_event_id == external_event_id,
                )
                .first()
            )
            if event is None:
                event = CalendarEvent(
                    provider_id=connection.provider_id,
                    connection_id=connection.id,
                    external_event_id=external_event_id,
                )
                self.db.add(event)

            for key, value in fields.items():
                setattr(event, key, value)
            self.db.flush()
        return event

    def delete_stale_calendar_events(
        self,
        connection: CalendarConnection,
        start: datetime,
        end: datetime,
        keep_external_ids: set[str],
    ) -> int:
        """Remove events in [start, end] of a connection that the remote no longer returns."""
        with self._guard("delete_stale_calendar_events"):
            query = self.db.query(CalendarEvent).filter(
                CalendarEvent.connection_id == connection.id,
                CalendarEvent.start_time < end,
                CalendarEvent.end_time > start,
            )
            if keep_external_ids:
                query = query.filter(or_(
                    CalendarEvent.external_event_id.is_(None),
                    CalendarEvent.external_event_id.notin_(keep_external_ids),
                ))
            stale = query.all()
            for event in stale:
                self.db.delete(event)
            self.db.flush()
        return len(stale)

    def delete_calendar_events_by_external_id(self, provider_id: int, external_event_id: str) -> int:
        """Remove the local copies of one remote event."""
        with self._guard("delete_calendar_events_by_external_id"):
            events = (
                self.db.query(CalendarEvent)
                .filter(
                    CalendarEvent.provider_id == provider_id,
                    CalendarEvent.external_event_id == external_event_id,
                )
                .all()
            )
            for event in events:
                self.db.delete(event)
            self.db.flush()
        return len(events)

    def mark_connection_synced(self, connection: CalendarConnection, when: datetime) -> None:
        with self._guard("mark_connection_synced"):
            connection.last_sync_at = when
            self.db.flush()

    def update_connection_tokens(
        self,
        connection: CalendarConnection,
        access_token: str,
        expires_at: Optional[datetime],
    ) -> None:
        with self._guard("update_connection_tokens"):
            connection.access_token = access_token
            connection.token_expires_at = expires_at
            self.db.flush()
