"""
"Rides changed" signals for external consumers (UI refresh, notifiers).

Published on a Redis pub/sub channel after every committed mutation.
Delivery is fire-and-forget: a Redis outage is logged and never fails
the operation that already committed.
"""

from __future__ import annotations

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RideEventPublisher:
    def __init__(self, client: aioredis.Redis, channel: str = "rides:updated"):
        self.redis = client
        self.channel = channel

    async def publish(self, event: str, ride_id: int, **payload) -> None:
        message = json.dumps({"event": event, "ride_id": ride_id, **payload})
        try:
            await self.redis.publish(self.channel, message)
        except RedisError:
            logger.warning(
                "Could not publish %s for ride %s", event, ride_id, exc_info=True
            )
