"""
backend/appointments/services/calendar_sync.py

Calendar synchronisation for booking lookups.

Before availability is computed, each active Google connection of the
provider is re-read for the query range and mirrored into CalendarEvent
rows. The remote calls run in a worker thread under a timeout; store
writes stay in the caller's thread (the Session is not thread-safe).

A connection that fails or times out is skipped with a warning and the
stored events are used as they are.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..exceptions import SyncDegradedWarning
from ..models import Booking, CalendarConnection
from . import google_calendar

logger = logging.getLogger(__name__)

# Refresh tokens that expire within this window before using them
TOKEN_REFRESH_MARGIN = timedelta(minutes=1)


class GoogleCalendarSync:
    """CalendarSync backed by the Google Calendar API."""

    def __init__(self, store, timeout_seconds: float = 5.0, client=google_calendar):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.client = client

    # ── Lookup sync ──────────────────────────────────────────────────────

    def sync_for_booking_lookup(self, provider_id: int, start: datetime, end: datetime) -> dict:
        """
        Refresh CalendarEvent rows of a provider for [start, end].

        Returns:
            {"synced": int, "failed": int}
        """
        provider = self.store.get_provider(provider_id)
        if provider is None:
            return {"synced": 0, "failed": 0}

        connections = [
            c for c in self.store.get_calendar_connections(provider_id)
            if c.platform == "google" and c.sync_events
        ]
        if not connections:
            return {"synced": 0, "failed": 0}

        synced = failed = 0
        executor = ThreadPoolExecutor(max_workers=len(connections), thread_name_prefix="calendar-sync")
        try:
            futures = {
                c.id: executor.submit(
                    self._fetch,
                    c.access_token,
                    c.refresh_token,
                    _needs_refresh(c),
                    c.calendar_id,
                    start,
                    end,
                    provider.timezone,
                )
                for c in connections
            }

            for connection in connections:
                try:
                    tokens, events = futures[connection.id].result(timeout=self.timeout_seconds)
                except FuturesTimeout:
                    failed += 1
                    logger.warning(
                        f"{SyncDegradedWarning.__name__}: connection {connection.id} timed out "
                        f"after {self.timeout_seconds}s, using stored events"
                    )
                    continue
                except Exception as e:
                    failed += 1
                    logger.warning(
                        f"{SyncDegradedWarning.__name__}: connection {connection.id} sync failed, "
                        f"using stored events: {e}"
                    )
                    continue

                synced += self._apply(connection, tokens, events, start, end)
        finally:
            # Hung remote calls are abandoned, not awaited
            executor.shutdown(wait=False, cancel_futures=True)

        self.store.commit()
        logger.info(f"Calendar sync for provider {provider_id}: {synced} events, {failed} connections failed")
        return {"synced": synced, "failed": failed}

    def _fetch(
        self,
        access_token: Optional[str],
        refresh_token: Optional[str],
        refresh: bool,
        calendar_id: str,
        start: datetime,
        end: datetime,
        tz_name: str,
    ) -> tuple[Optional[dict], list[dict]]:
        """Remote part of a sync. Runs in a worker thread; touches no ORM objects."""
        tokens = None
        if refresh and refresh_token:
            tokens = self.client.refresh_access_token(refresh_token)
            access_token = tokens["access_token"]

        events = self.client.list_events(access_token, refresh_token, calendar_id, start, end, tz_name)
        return tokens, events

    def _apply(
        self,
        connection: CalendarConnection,
        tokens: Optional[dict],
        events: list[dict],
        start: datetime,
        end: datetime,
    ) -> int:
        if tokens:
            self.store.update_connection_tokens(connection, tokens["access_token"], tokens["token_expires_at"])

        now = datetime.now(timezone.utc)
        # Events pushed for bookings are blocked by the booking rows themselves
        own = self.store.get_booking_event_ids(connection.provider_id)
        live = [e for e in events if not e["cancelled"] and e["id"] not in own]
        for event in live:
            self.store.upsert_calendar_event(
                connection,
                event["id"],
                title=event["title"],
                location=event["location"],
                start_time=event["start"],
                end_time=event["end"],
                is_all_day=event["is_all_day"],
                last_synced_at=now,
            )

        removed = self.store.delete_stale_calendar_events(connection, start, end, {e["id"] for e in live})
        self.store.mark_connection_synced(connection, now)

        if removed:
            logger.debug(f"Connection {connection.id}: removed {removed} stale events")
        return len(live)

    # ── Booking push ─────────────────────────────────────────────────────

    def push_confirmed_booking(self, booking: Booking) -> Optional[str]:
        """
        Put a confirmed booking on the provider's booking calendar.

        Best effort: failures are logged and None is returned. The caller
        commits the stored external_event_id.
        """
        connection = self._booking_connection(booking.provider_id)
        if connection is None:
            logger.debug(f"Provider {booking.provider_id} has no calendar for bookings")
            return None

        payload = {
            "start": booking.scheduled_at,
            "end": booking.ends_at,
            "timezone": booking.provider.timezone,
            "service_type": booking.service_type,
            "customer_name": booking.customer.display_name,
            "customer_email": booking.customer.email,
            "notes": booking.notes,
        }

        try:
            access_token = self._fresh_access_token(connection)
            created = self.client.create_event(
                access_token, connection.refresh_token, connection.calendar_id, payload
            )
        except Exception as e:
            logger.warning(
                f"{SyncDegradedWarning.__name__}: could not add booking {booking.id} "
                f"to calendar {connection.id}: {e}"
            )
            return None

        self.store.update_booking(booking, external_event_id=created["event_id"])
        return created["event_id"]

    def remove_booking_event(self, booking: Booking) -> bool:
        """
        Delete the pushed calendar event of a cancelled booking.

        Local copies of the event are always dropped so the freed time is
        bookable right away; the remote delete is best effort. The caller
        commits.
        """
        if not booking.external_event_id:
            return False

        self.store.delete_calendar_events_by_external_id(booking.provider_id, booking.external_event_id)

        connection = self._booking_connection(booking.provider_id)
        if connection is None:
            return False

        try:
            access_token = self._fresh_access_token(connection)
            self.client.delete_event(
                access_token, connection.refresh_token, connection.calendar_id, booking.external_event_id
            )
        except Exception as e:
            logger.warning(
                f"{SyncDegradedWarning.__name__}: could not remove calendar event of booking {booking.id}: {e}"
            )
            return False

        self.store.update_booking(booking, external_event_id=None)
        return True

    # ── Helpers ──────────────────────────────────────────────────────────

    def _booking_connection(self, provider_id: int) -> Optional[CalendarConnection]:
        connections = [c for c in self.store.get_calendar_connections(provider_id) if c.platform == "google"]
        for connection in connections:
            if connection.is_default_for_bookings:
                return connection
        return connections[0] if connections else None

    def _fresh_access_token(self, connection: CalendarConnection) -> str:
        if _needs_refresh(connection) and connection.refresh_token:
            tokens = self.client.refresh_access_token(connection.refresh_token)
            self.store.update_connection_tokens(connection, tokens["access_token"], tokens["token_expires_at"])
        return connection.access_token


def _needs_refresh(connection: CalendarConnection) -> bool:
    if not connection.access_token:
        return True
    if connection.token_expires_at is None:
        return False
    return connection.token_expires_at <= datetime.now(timezone.utc) + TOKEN_REFRESH_MARGIN
