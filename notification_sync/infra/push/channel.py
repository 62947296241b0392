"""Push channel: permission, token lifecycle and incoming messages from a push provider."""
import logging
from typing import Awaitable, Callable, Optional

from notification_sync.domain.common.errors import PermissionDeniedError, RemoteUnavailableError
from notification_sync.domain.common.types import utcnow
from notification_sync.domain.notifications.models import PermissionStatus, PushMessage, PushToken
from notification_sync.domain.notifications.repositories import CrashReporter, PushProvider, Unsubscribe
from notification_sync.infra.observability.crash_reporter import NullCrashReporter

logger = logging.getLogger(__name__)

MessageHandler = Callable[[PushMessage], Awaitable[None]]
TokenRefreshHandler = Callable[[PushToken], Awaitable[None]]
ErrorHandler = Callable[[BaseException], None]


class PushChannel:
    """Wraps a PushProvider.

    Permission denial and provider failures are reported to error handlers,
    never raised; the last good token survives a failed refresh.
    """

    def __init__(
        self,
        provider: PushProvider,
        platform: str = "android",
        crash_reporter: Optional[CrashReporter] = None,
    ):
        self._provider = provider
        self.platform = platform
        self._crash = crash_reporter or NullCrashReporter()
        self.device_id: str = ""
        self.permission: Optional[PermissionStatus] = None
        self._token: Optional[PushToken] = None
        self._error_handlers: list[ErrorHandler] = []
        self._registrations: list[Unsubscribe] = []
        self._launch_consumed = False

    @property
    def token(self) -> Optional[PushToken]:
        """Last known good token (no provider round-trip)."""
        return self._token

    def on_error(self, handler: ErrorHandler) -> Unsubscribe:
        self._error_handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._error_handlers:
                self._error_handlers.remove(handler)

        return unsubscribe

    def _report(self, error: BaseException) -> None:
        self._crash.record_error(error, {"component": "push_channel"})
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Push error handler failed")

    def _make_token(self, raw: str) -> PushToken:
        now = utcnow()
        if self._token is not None and self._token.token == raw:
            return self._token
        created = self._token.created_at if self._token is not None else now
        return PushToken(token=raw, platform=self.platform, device_id=self.device_id,
                         created_at=created, updated_at=now)

    async def request_permission(self) -> PermissionStatus:
        try:
            status = await self._provider.request_permission()
        except Exception as e:
            logger.warning("Push permission request failed: %s", e)
            self._report(RemoteUnavailableError("request permission", e))
            status = PermissionStatus.DENIED
        self.permission = status
        if not status.allows_delivery:
            self._report(PermissionDeniedError(status.value))
        return status

    async def current_token(self) -> Optional[PushToken]:
        """Fetch the token from the provider. On failure the prior token is returned."""
        try:
            raw = await self._provider.get_token()
        except Exception as e:
            logger.warning("Push token fetch failed: %s", e)
            self._report(RemoteUnavailableError("get push token", e))
            return self._token
        if raw:
            self._token = self._make_token(raw)
        return self._token

    async def initialize(self, user_id: str, device_id: str) -> Optional[PushToken]:
        """Request permission and fetch the token. Returns None when permission is refused."""
        self.device_id = device_id
        status = await self.request_permission()
        if not status.allows_delivery:
            logger.info("Push permission %s for user %s; token not requested", status.value, user_id)
            return None
        return await self.current_token()

    async def refresh_token(self) -> Optional[PushToken]:
        return await self.current_token()

    async def remove_token(self) -> None:
        """Delete the token from the provider (logout)."""
        try:
            await self._provider.delete_token()
        except Exception as e:
            logger.warning("Push token delete failed: %s", e)
            self._report(RemoteUnavailableError("delete push token", e))
            return
        self._token = None

    def _track(self, unsubscribe: Unsubscribe) -> Unsubscribe:
        self._registrations.append(unsubscribe)

        def release() -> None:
            if unsubscribe in self._registrations:
                self._registrations.remove(unsubscribe)
                unsubscribe()

        return release

    def on_token_refresh(self, handler: TokenRefreshHandler) -> Unsubscribe:
        async def refreshed(raw: str) -> None:
            self._token = self._make_token(raw)
            await handler(self._token)

        return self._track(self._provider.on_token_refresh(refreshed))

    def on_foreground_message(self, handler: MessageHandler) -> Unsubscribe:
        return self._track(self._provider.on_message(handler))

    def on_background_message(self, handler: MessageHandler) -> Unsubscribe:
        return self._track(self._provider.on_background_message(handler))

    def on_notification_opened(self, handler: MessageHandler) -> Unsubscribe:
        return self._track(self._provider.on_notification_opened(handler))

    async def consume_launch_notification(self) -> Optional[PushMessage]:
        """The message that cold-started the app; None after the first call."""
        if self._launch_consumed:
            return None
        self._launch_consumed = True
        try:
            return await self._provider.get_initial_notification()
        except Exception as e:
            logger.warning("Reading launch notification failed: %s", e)
            self._report(RemoteUnavailableError("get initial notification", e))
            return None

    def release(self) -> None:
        """Drop every provider listener registered through this channel."""
        for unsubscribe in list(self._registrations):
            unsubscribe()
        self._registrations.clear()
        self._error_handlers.clear()
