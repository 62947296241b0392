"""Notification domain protocols for the external collaborators."""
from typing import Any, Awaitable, Callable, Optional, Protocol

from notification_sync.domain.notifications.models import PermissionStatus, PushMessage

Unsubscribe = Callable[[], None]
ChangeHandler = Callable[[dict[str, Any]], None]


class KeyValueCache(Protocol):
    """Local key-value cache (last known token, device id)."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class ChangeFeed(Protocol):
    """Per-user change notifications from the remote notification store."""

    async def publish(self, user_id: str, change: dict[str, Any]) -> None:
        """Announce that the user's collection changed."""
        ...

    async def listen(self, user_id: str, handler: ChangeHandler) -> Unsubscribe:
        """Call handler for every change to the user's collection, in publish order."""
        ...


class PushProvider(Protocol):
    """Push-messaging SDK surface consumed by PushChannel."""

    async def request_permission(self) -> PermissionStatus:
        ...

    async def get_token(self) -> Optional[str]:
        ...

    async def delete_token(self) -> None:
        ...

    def on_token_refresh(self, handler: Callable[[str], Awaitable[None]]) -> Unsubscribe:
        ...

    def on_message(self, handler: Callable[[PushMessage], Awaitable[None]]) -> Unsubscribe:
        ...

    def on_background_message(self, handler: Callable[[PushMessage], Awaitable[None]]) -> Unsubscribe:
        ...

    def on_notification_opened(self, handler: Callable[[PushMessage], Awaitable[None]]) -> Unsubscribe:
        ...

    async def get_initial_notification(self) -> Optional[PushMessage]:
        """Message that cold-started the app, if any."""
        ...


class CrashReporter(Protocol):
    """Optional crash-reporting capability; NullCrashReporter when absent."""

    def record_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        ...

    def log(self, message: str) -> None:
        ...
