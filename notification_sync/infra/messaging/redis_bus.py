"""Redis message bus."""
import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisBus:
    """Redis pub/sub bus."""

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis."""
        self._redis = redis.from_url(self._redis_url, decode_responses=True)

    async def disconnect(self):
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, channel: str, message: dict):
        """Publish a message to a channel."""
        if not self._redis:
            await self.connect()
        await self._redis.publish(channel, json.dumps(message))

    async def subscribe_forever(
        self,
        channel: str,
        handler: Callable[[dict], Awaitable[None]],
        ready: Optional[asyncio.Event] = None,
    ) -> None:
        """Subscribe to a channel and call handler for each message. Runs until cancelled.

        ``ready`` is set once the subscription is registered with the server.
        """
        if not self._redis:
            await self.connect()
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        if ready is not None:
            ready.set()
        try:
            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("type") == "message" and msg.get("data"):
                    try:
                        data = json.loads(msg["data"])
                    except json.JSONDecodeError:
                        logger.warning("Dropping non-JSON message on %s", channel)
                        continue
                    await handler(data)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
