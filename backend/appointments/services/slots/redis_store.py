# backend/appointments/services/slots/redis_store.py
"""
Redis cache for resolved day windows.

Key format: availability:windows:{template_id}:{date}
Value: JSON {"time_slots": [...], "applied_schedules": [...]}, with TTL.

Only the schedule/template resolution is cached. Bookings and calendar
events change too often and are always read from the store.
"""

import json
import logging
from datetime import date

from redis import Redis
from redis.exceptions import RedisError

from .config import BookingConfig, get_booking_config
from .types import EffectiveAvailability, ScheduleRef, TimeWindow

logger = logging.getLogger(__name__)


class WindowsRedisStore:
    """Redis wrapper for cached EffectiveAvailability per template and date."""

    KEY_PREFIX = "availability:windows"

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, template_id: int, dt: date) -> str:
        return f"{self.KEY_PREFIX}:{template_id}:{dt.isoformat()}"

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_windows(self, template_id: int, dt: date, effective: EffectiveAvailability) -> None:
        payload = {
            "time_slots": [w.to_dict() for w in effective.time_slots],
            "applied_schedules": [
                {"id": s.id, "name": s.name, "priority": s.priority}
                for s in effective.applied_schedules
            ],
        }
        try:
            self.redis.setex(self._key(template_id, dt), self.config.cache_ttl_seconds, json.dumps(payload))
        except RedisError as e:
            logger.warning(f"Could not cache windows for template {template_id} on {dt}: {e}")

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_windows(self, template_id: int, dt: date) -> EffectiveAvailability | None:
        """
        Cached windows for a day.

        Returns:
            EffectiveAvailability, or None on cache miss or Redis failure.
        """
        try:
            raw = self.redis.get(self._key(template_id, dt))
        except RedisError as e:
            logger.warning(f"Windows cache unavailable: {e}")
            return None

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Corrupt windows cache entry for template {template_id} on {dt}")
            return None

        return EffectiveAvailability(
            time_slots=tuple(TimeWindow(**w) for w in data.get("time_slots", [])),
            applied_schedules=tuple(ScheduleRef(**s) for s in data.get("applied_schedules", [])),
        )

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_windows(self, template_id: int, dates: list[date] | None = None) -> int:
        """
        Delete cached windows.

        Args:
            template_id: Template ID
            dates: Specific dates, or None to delete all for the template.

        Returns:
            Number of deleted keys.
        """
        if dates:
            keys = [self._key(template_id, dt) for dt in dates]
        else:
            keys = self.redis.keys(f"{self.KEY_PREFIX}:{template_id}:*")

        if not keys:
            return 0

        return self.redis.delete(*keys)
