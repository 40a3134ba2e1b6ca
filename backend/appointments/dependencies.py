# backend/appointments/dependencies.py
"""
FastAPI dependencies wiring request-scoped collaborators.

Everything the services need is built here per request and injected;
tests override these with in-memory doubles.
"""

from typing import Optional

from fastapi import Depends
from redis import Redis
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .redis_client import redis_client
from .services.calendar_sync import GoogleCalendarSync
from .services.notifications import EventNotifier
from .services.store import SqlAlchemyStore


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyStore:
    return SqlAlchemyStore(db)


def get_redis() -> Redis:
    return redis_client


def get_notifier(redis: Redis = Depends(get_redis)) -> EventNotifier:
    return EventNotifier(redis, settings.magic_link_base_url)


def get_calendar_sync(store: SqlAlchemyStore = Depends(get_store)) -> Optional[GoogleCalendarSync]:
    """Google sync, or None when no OAuth client is configured."""
    if not settings.google_sync_enabled:
        return None
    return GoogleCalendarSync(store, timeout_seconds=settings.calendar_sync_timeout_seconds)
