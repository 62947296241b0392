"""Change feeds: announce that a user's notification collection changed.

The repository publishes after every committed mutation; each live query
listens on its user's feed and re-runs its query once per change.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any

from notification_sync.domain.notifications.repositories import ChangeHandler, Unsubscribe
from notification_sync.infra.messaging.redis_bus import RedisBus

logger = logging.getLogger(__name__)


class InProcessChangeFeed:
    """Single-process feed. publish() calls handlers synchronously, in registration order."""

    def __init__(self):
        self._handlers: dict[str, list[ChangeHandler]] = defaultdict(list)

    async def publish(self, user_id: str, change: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(user_id, ())):
            try:
                handler(change)
            except Exception:
                logger.exception("Change handler failed for user %s", user_id)

    async def listen(self, user_id: str, handler: ChangeHandler) -> Unsubscribe:
        self._handlers[user_id].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(user_id)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[user_id]

        return unsubscribe

    def listener_count(self, user_id: str) -> int:
        return len(self._handlers.get(user_id, ()))


class RedisChangeFeed:
    """Multi-process feed over Redis pub/sub, channel ``<prefix>:<user_id>``."""

    def __init__(self, bus: RedisBus, channel_prefix: str = "notification_changes"):
        self._bus = bus
        self._prefix = channel_prefix
        self._tasks: set[asyncio.Task] = set()

    def channel_for(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    async def publish(self, user_id: str, change: dict[str, Any]) -> None:
        await self._bus.publish(self.channel_for(user_id), change)

    async def listen(self, user_id: str, handler: ChangeHandler) -> Unsubscribe:
        async def on_message(data: dict) -> None:
            try:
                handler(data)
            except Exception:
                logger.exception("Change handler failed for user %s", user_id)

        ready = asyncio.Event()
        task = asyncio.create_task(
            self._bus.subscribe_forever(self.channel_for(user_id), on_message, ready=ready)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        ready_wait = asyncio.create_task(ready.wait())
        await asyncio.wait({task, ready_wait}, return_when=asyncio.FIRST_COMPLETED)
        if not ready_wait.done():
            ready_wait.cancel()
            # subscribe_forever exited before subscribing; surface its error
            task.result()

        def unsubscribe() -> None:
            if not task.done():
                task.cancel()

        return unsubscribe

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._bus.disconnect()
