"""Events emitted to the presentation layer.

One frozen dataclass per event kind; ``SyncEvent`` is the closed union of them.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from notification_sync.domain.notifications.models import Notification


class EventKind(str, Enum):
    NOTIFICATIONS_UPDATED = "notifications_updated"
    UNREAD_COUNT_CHANGED = "unread_count_changed"
    NOTIFICATION_RECEIVED = "notification_received"
    ERROR = "error"


@dataclass(frozen=True)
class NotificationsUpdated:
    """Full current list from one repository snapshot."""
    kind: ClassVar[EventKind] = EventKind.NOTIFICATIONS_UPDATED
    notifications: tuple[Notification, ...]

    def to_payload(self) -> dict:
        return {
            "type": self.kind.value,
            "payload": [n.model_dump(mode="json") for n in self.notifications],
        }


@dataclass(frozen=True)
class UnreadCountChanged:
    kind: ClassVar[EventKind] = EventKind.UNREAD_COUNT_CHANGED
    count: int

    def to_payload(self) -> dict:
        return {"type": self.kind.value, "payload": self.count}


@dataclass(frozen=True)
class NotificationReceived:
    """A push message that arrived while the app was in the foreground."""
    kind: ClassVar[EventKind] = EventKind.NOTIFICATION_RECEIVED
    notification: Notification

    def to_payload(self) -> dict:
        return {"type": self.kind.value, "payload": self.notification.model_dump(mode="json")}


@dataclass(frozen=True)
class ErrorOccurred:
    kind: ClassVar[EventKind] = EventKind.ERROR
    error: BaseException

    def to_payload(self) -> dict:
        return {
            "type": self.kind.value,
            "payload": {"error": type(self.error).__name__, "message": str(self.error)},
        }


SyncEvent = Union[NotificationsUpdated, UnreadCountChanged, NotificationReceived, ErrorOccurred]
