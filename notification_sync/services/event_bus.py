"""Typed event fan-out to presentation-layer subscribers."""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Optional

from notification_sync.domain.notifications.events import EventKind, SyncEvent
from notification_sync.domain.notifications.repositories import Unsubscribe

logger = logging.getLogger(__name__)

EventHandler = Callable[[SyncEvent], None]


class EventBus:
    """Synchronous fan-out. A failing handler is logged and does not stop the others."""

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[EventHandler]] = defaultdict(list)
        self._any: list[EventHandler] = []

    def subscribe(self, kind: Optional[EventKind], handler: EventHandler) -> Unsubscribe:
        """Register for one kind, or for every kind when kind is None."""
        handlers = self._any if kind is None else self._handlers[kind]
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, event: SyncEvent) -> None:
        for handler in [*self._handlers.get(event.kind, ()), *self._any]:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.kind.value)

    def clear(self) -> None:
        self._handlers.clear()
        self._any.clear()

    def subscriber_count(self, kind: Optional[EventKind] = None) -> int:
        if kind is None:
            return sum(len(h) for h in self._handlers.values()) + len(self._any)
        return len(self._handlers.get(kind, ()))
