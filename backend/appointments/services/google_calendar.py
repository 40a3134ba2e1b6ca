"""
backend/appointments/services/google_calendar.py

Google Calendar API client for provider calendar connections.

Handles:
- Access token refresh
- Listing events in a time range (busy time)
- Creating / deleting the event of a confirmed booking

OAuth consent and code exchange happen outside this service; connections
arrive here with tokens already stored.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Optional

import pytz
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import settings

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


def refresh_access_token(refresh_token: str) -> dict:
    """
    Refresh an expired access token.

    Returns:
        {"access_token": str, "token_expires_at": datetime | None}

    Raises:
        ValueError: If refresh fails (token revoked or invalid)
    """
    credentials = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
    )

    try:
        credentials.refresh(Request())
    except RefreshError as e:
        logger.error(f"Token refresh failed: {e}")
        raise ValueError(f"Token refresh failed: {e}") from e

    expires_at = None
    if credentials.expiry:
        # google-auth reports expiry as naive UTC
        expires_at = credentials.expiry.replace(tzinfo=timezone.utc)

    return {
        "access_token": credentials.token,
        "token_expires_at": expires_at,
    }


def _get_calendar_service(access_token: str, refresh_token: Optional[str]):
    """Build Google Calendar API service client."""
    credentials = Credentials(
        token=access_token,
        refresh_token=refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
    )
    return build("calendar", "v3", credentials=credentials, cache_discovery=False)


def _parse_event_time(value: dict, tz_name: str) -> tuple[datetime, bool]:
    """
    Parse a Google start/end object into an aware UTC datetime.

    All-day events only carry a date; it is taken as local midnight in
    tz_name. Returns (instant, is_all_day).
    """
    if "dateTime" in value:
        parsed = datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = pytz.timezone(value.get("timeZone") or tz_name).localize(parsed)
        return parsed.astimezone(timezone.utc), False

    day = date.fromisoformat(value["date"])
    local_midnight = pytz.timezone(tz_name).localize(datetime.combine(day, time.min))
    return local_midnight.astimezone(timezone.utc), True


def list_events(
    access_token: str,
    refresh_token: Optional[str],
    calendar_id: str,
    time_min: datetime,
    time_max: datetime,
    tz_name: str = "UTC",
) -> list[dict]:
    """
    List events overlapping [time_min, time_max].

    Recurring events are expanded into single instances.

    Returns:
        List of dicts:
        {
            "id": str,
            "title": str,
            "location": str | None,
            "start": datetime (UTC),
            "end": datetime (UTC),
            "is_all_day": bool,
            "cancelled": bool,
        }

    Raises:
        HttpError: If API call fails
    """
    service = _get_calendar_service(access_token, refresh_token)
    events: list[dict] = []
    page_token = None

    try:
        while True:
            response = service.events().list(
                calendarId=calendar_id,
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                singleEvents=True,
                orderBy="startTime",
                showDeleted=True,
                pageToken=page_token,
            ).execute()

            for item in response.get("items", []):
                if "start" not in item or "end" not in item:
                    continue
                start, is_all_day = _parse_event_time(item["start"], tz_name)
                end, _ = _parse_event_time(item["end"], tz_name)
                events.append({
                    "id": item["id"],
                    "title": item.get("summary") or "Busy",
                    "location": item.get("location"),
                    "start": start,
                    "end": end,
                    "is_all_day": is_all_day,
                    "cancelled": item.get("status") == "cancelled",
                })

            page_token = response.get("nextPageToken")
            if not page_token:
                break
    except HttpError as e:
        logger.error(f"Failed to list calendar events for {calendar_id}: {e}")
        raise

    return events


def create_event(
    access_token: str,
    refresh_token: Optional[str],
    calendar_id: str,
    booking: dict,
) -> dict:
    """
    Create a calendar event for a booking.

    Args:
        booking: Booking data dictionary with keys:
            - start: aware datetime
            - end: aware datetime
            - timezone: str
            - service_type: str
            - customer_name: str
            - customer_email: str
            - location: str (optional)
            - notes: str (optional)

    Returns:
        {"event_id": str, "html_link": str}

    Raises:
        HttpError: If API call fails
    """
    service = _get_calendar_service(access_token, refresh_token)

    title = f"{booking.get('service_type', 'Appointment').title()} with {booking.get('customer_name', 'Customer')}"

    description_parts = [f"Customer: {booking.get('customer_name')} <{booking.get('customer_email')}>"]
    if booking.get("notes"):
        description_parts.append(f"Notes: {booking['notes']}")

    tz_name = booking.get("timezone", "UTC")
    event = {
        "summary": title,
        "description": "\n".join(description_parts),
        "start": {
            "dateTime": booking["start"].isoformat(),
            "timeZone": tz_name,
        },
        "end": {
            "dateTime": booking["end"].isoformat(),
            "timeZone": tz_name,
        },
        "attendees": [{"email": booking["customer_email"]}] if booking.get("customer_email") else [],
    }
    if booking.get("location"):
        event["location"] = booking["location"]

    try:
        created_event = service.events().insert(
            calendarId=calendar_id,
            body=event,
        ).execute()
    except HttpError as e:
        logger.error(f"Failed to create calendar event: {e}")
        raise

    logger.info(f"Created Google Calendar event: {created_event.get('id')}")
    return {
        "event_id": created_event.get("id"),
        "html_link": created_event.get("htmlLink"),
    }


def delete_event(
    access_token: str,
    refresh_token: Optional[str],
    calendar_id: str,
    event_id: str,
) -> bool:
    """
    Delete a calendar event.

    Returns:
        True if deletion was successful (or the event was already gone)

    Raises:
        HttpError: If API call fails
    """
    service = _get_calendar_service(access_token, refresh_token)

    try:
        service.events().delete(
            calendarId=calendar_id,
            eventId=event_id,
        ).execute()
    except HttpError as e:
        if e.resp.status in (404, 410):
            logger.warning(f"Calendar event not found: {event_id}")
            return True
        logger.error(f"Failed to delete calendar event: {e}")
        raise

    logger.info(f"Deleted Google Calendar event: {event_id}")
    return True
