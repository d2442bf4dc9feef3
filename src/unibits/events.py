"""Best-effort Redis pub/sub events for the presentation layer."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_UP = "pubsub:level_up"
ACHIEVEMENT_EARNED = "pubsub:achievement_earned"
MODULE_UNLOCKED = "pubsub:module_unlocked"
FRIEND_REQUEST = "pubsub:friend_request"


async def publish_event(redis: Any, channel: str, payload: dict[str, Any]) -> None:  # noqa: ANN401
    """Publish a JSON payload. A missing client is a no-op; failures are logged, never raised."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
