"""
backend/appointments/services/events.py

Event emitter: pushes booking events to a Redis queue.

Mail delivery (magic links, provider notices) is done by the consumer
of `events:p2p`; this process only enqueues.
"""

import json
import logging
import time

from redis import Redis

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(redis: Redis, event_type: str, payload: dict) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop. Redis errors
    propagate; callers decide whether a lost event matters.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
    logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
