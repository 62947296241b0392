"""In-process push provider.

Stands in for a device push SDK: permission, token and incoming messages are
driven by the host process (the HTTP bridge, tests) instead of a platform
service.
"""
import logging
from typing import Awaitable, Callable, Optional

from notification_sync.domain.common.types import generate_id
from notification_sync.domain.notifications.models import PermissionStatus, PushMessage
from notification_sync.domain.notifications.repositories import Unsubscribe

logger = logging.getLogger(__name__)

MessageHandler = Callable[[PushMessage], Awaitable[None]]
TokenHandler = Callable[[str], Awaitable[None]]


def _register(handlers: list, handler) -> Unsubscribe:
    handlers.append(handler)

    def unsubscribe() -> None:
        if handler in handlers:
            handlers.remove(handler)

    return unsubscribe


class LoopbackPushProvider:
    """PushProvider whose events are triggered programmatically."""

    def __init__(
        self,
        permission: PermissionStatus = PermissionStatus.GRANTED,
        token: Optional[str] = None,
        initial_notification: Optional[PushMessage] = None,
    ):
        self.permission = permission
        self.token: Optional[str] = token or f"loopback-{generate_id()}"
        self.initial_notification = initial_notification
        self.fail_with: Optional[Exception] = None
        self._token_handlers: list[TokenHandler] = []
        self._message_handlers: list[MessageHandler] = []
        self._background_handlers: list[MessageHandler] = []
        self._opened_handlers: list[MessageHandler] = []

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def request_permission(self) -> PermissionStatus:
        self._check()
        return self.permission

    async def get_token(self) -> Optional[str]:
        self._check()
        return self.token

    async def delete_token(self) -> None:
        self._check()
        self.token = None

    def on_token_refresh(self, handler: TokenHandler) -> Unsubscribe:
        return _register(self._token_handlers, handler)

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        return _register(self._message_handlers, handler)

    def on_background_message(self, handler: MessageHandler) -> Unsubscribe:
        return _register(self._background_handlers, handler)

    def on_notification_opened(self, handler: MessageHandler) -> Unsubscribe:
        return _register(self._opened_handlers, handler)

    async def get_initial_notification(self) -> Optional[PushMessage]:
        return self.initial_notification

    # ---- drivers ----

    async def rotate_token(self, token: Optional[str] = None) -> str:
        """Issue a new token and notify refresh listeners."""
        self.token = token or f"loopback-{generate_id()}"
        for handler in list(self._token_handlers):
            await handler(self.token)
        return self.token

    async def deliver(self, message: PushMessage, *, foreground: bool = True) -> None:
        """Deliver a message as if it arrived from the push service."""
        handlers = self._message_handlers if foreground else self._background_handlers
        logger.debug("Loopback delivering %s (foreground=%s)", message.message_id, foreground)
        for handler in list(handlers):
            await handler(message)

    async def open(self, message: PushMessage) -> None:
        """Simulate the user tapping a notification while the app is in the background."""
        for handler in list(self._opened_handlers):
            await handler(message)

    @property
    def listener_count(self) -> int:
        return (
            len(self._token_handlers)
            + len(self._message_handlers)
            + len(self._background_handlers)
            + len(self._opened_handlers)
        )
