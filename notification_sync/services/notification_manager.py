"""
Notification manager: keeps one user's notification list in sync.

Composes the push channel, the token store and the notification repository,
owns the single live subscription for the signed-in user, and emits typed
events (notifications_updated, unread_count_changed, notification_received,
error) to the presentation layer.

Lifecycle: uninitialized -> initializing -> ready -> cleaning_up -> uninitialized.
Transitions run one at a time under an asyncio.Lock; a second initialize()
for the same user awaits the first call's outcome instead of starting over.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Callable, Optional

from notification_sync.domain.common.errors import (
    NotInitializedError,
    RemoteUnavailableError,
    ValidationError,
)
from notification_sync.domain.common.types import utcnow
from notification_sync.domain.notifications.events import (
    ErrorOccurred,
    EventKind,
    NotificationReceived,
    NotificationsUpdated,
    SyncEvent,
    UnreadCountChanged,
)
from notification_sync.domain.notifications.models import (
    Notification,
    NotificationDraft,
    NotificationFilter,
    NotificationPriority,
    NotificationType,
    PushMessage,
    PushToken,
)
from notification_sync.domain.notifications.repositories import CrashReporter, Unsubscribe
from notification_sync.infra.db.repositories.notification_repo import NotificationRepository
from notification_sync.infra.observability.crash_reporter import NullCrashReporter
from notification_sync.infra.push.channel import PushChannel
from notification_sync.services.event_bus import EventBus, EventHandler
from notification_sync.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLEANING_UP = "cleaning_up"


_TEST_NOTIFICATIONS = (
    (NotificationType.NEW_FOLLOWER, "New follower", "Someone started following you"),
    (NotificationType.DELIVERY, "Order on its way", "Your order has been dispatched"),
    (NotificationType.RECOMMENDATIONS, "Picked for you", "New recommendations are ready"),
    (NotificationType.REFERRALS, "Invite friends", "Earn rewards for every referral"),
    (NotificationType.REWARDS, "Reward unlocked", "You earned a new reward"),
    (NotificationType.ACCOUNT, "Account update", "Your account settings changed"),
)


class NotificationManager:
    """Sync coordinator for one signed-in user."""

    def __init__(
        self,
        repository: NotificationRepository,
        push_channel: PushChannel,
        token_store: TokenStore,
        events: Optional[EventBus] = None,
        crash_reporter: Optional[CrashReporter] = None,
        live_filter: Optional[NotificationFilter] = None,
    ):
        self._repo = repository
        self._push = push_channel
        self._tokens = token_store
        self._events = events or EventBus()
        self._crash = crash_reporter or NullCrashReporter()
        self._live_filter = live_filter or NotificationFilter()

        self._lock = asyncio.Lock()
        self._inflight: Optional[tuple[str, asyncio.Task]] = None
        self._state = ManagerState.UNINITIALIZED
        self._user_id: Optional[str] = None
        self._handle: Optional[str] = None
        self._push_subs: list[Unsubscribe] = []
        self._notifications: list[Notification] = []
        # bumped on every (re)initialize and cleanup; snapshots from older generations are dropped
        self._generation = 0

    # ---- state ----

    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ManagerState.READY

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def subscription_handle(self) -> Optional[str]:
        return self._handle

    @property
    def notifications(self) -> list[Notification]:
        """Latest list delivered by the live subscription."""
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.is_read)

    def _require_ready(self) -> str:
        if self._state is not ManagerState.READY or self._user_id is None:
            raise NotInitializedError()
        return self._user_id

    # ---- lifecycle ----

    async def initialize(self, user_id: str) -> None:
        """Bring the manager to ready for user_id. Re-raises the failure after emitting an error."""
        if self.is_ready and self._user_id == user_id:
            return
        inflight = self._inflight
        if inflight is not None and inflight[0] == user_id:
            await asyncio.shield(inflight[1])
            return
        task = asyncio.create_task(self._initialize(user_id))
        self._inflight = (user_id, task)

        def clear(done: asyncio.Task) -> None:
            if self._inflight is not None and self._inflight[1] is done:
                self._inflight = None

        task.add_done_callback(clear)
        await asyncio.shield(task)

    async def _initialize(self, user_id: str) -> None:
        async with self._lock:
            if self.is_ready and self._user_id == user_id:
                return
            if self._state is not ManagerState.UNINITIALIZED:
                logger.info("Switching notification user %s -> %s", self._user_id, user_id)
                await self._cleanup_locked()

            self._state = ManagerState.INITIALIZING
            self._user_id = user_id
            self._generation += 1
            generation = self._generation
            logger.info("Initializing notifications for user %s", user_id)
            try:
                self._tokens.bind_user(user_id)
                device_id = await self._tokens.device_id()
                self._wire_push()
                token = await self._push.initialize(user_id, device_id)
                if token is not None and not await self._tokens.persist(token):
                    self._emit(ErrorOccurred(RemoteUnavailableError("persist push token")))
                self._handle = await self._repo.subscribe(
                    user_id,
                    self._live_filter,
                    lambda snapshot: self._on_snapshot(generation, snapshot),
                    lambda error: self._on_subscription_error(generation, error),
                )
                self._state = ManagerState.READY
            except Exception as e:
                logger.error("Notification initialize failed for user %s: %s", user_id, e)
                self._crash.record_error(e, {"operation": "initialize", "user_id": user_id})
                self._emit(ErrorOccurred(e))
                self._release_resources()
                self._state = ManagerState.UNINITIALIZED
                self._user_id = None
                raise

        launch = await self._push.consume_launch_notification()
        if launch is not None:
            await self._on_notification_opened(launch)
        logger.info("Notifications ready for user %s (%d items)", user_id, len(self._notifications))

    def _wire_push(self) -> None:
        self._push_subs = [
            self._push.on_error(self._on_push_error),
            self._push.on_token_refresh(self._on_token_refresh),
            self._push.on_foreground_message(self._on_foreground_message),
            self._push.on_background_message(self._on_background_message),
            self._push.on_notification_opened(self._on_notification_opened),
        ]

    def _release_resources(self) -> None:
        self._repo.unsubscribe(self._handle)
        self._handle = None
        for unsubscribe in self._push_subs:
            unsubscribe()
        self._push_subs = []
        self._push.release()
        self._tokens.bind_user(None)
        self._notifications = []
        self._generation += 1

    async def cleanup(self) -> None:
        """Release the live subscription and push listeners and drop every event subscriber."""
        async with self._lock:
            await self._cleanup_locked()

    async def _cleanup_locked(self) -> None:
        if self._state is ManagerState.UNINITIALIZED:
            return
        self._state = ManagerState.CLEANING_UP
        logger.info("Cleaning up notifications for user %s", self._user_id)
        self._release_resources()
        self._events.clear()
        self._user_id = None
        self._state = ManagerState.UNINITIALIZED

    # ---- inbound ----

    def _on_snapshot(self, generation: int, snapshot: list[Notification]) -> None:
        if generation != self._generation:
            logger.debug("Dropping snapshot from stale subscription")
            return
        self._notifications = list(snapshot)
        self._emit(NotificationsUpdated(tuple(snapshot)))
        self._emit(UnreadCountChanged(sum(1 for n in snapshot if not n.is_read)))

    def _on_subscription_error(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        self._crash.record_error(error, {"operation": "live_subscription"})
        self._emit(ErrorOccurred(error))

    def _on_push_error(self, error: BaseException) -> None:
        self._emit(ErrorOccurred(error))

    async def _on_token_refresh(self, token: PushToken) -> None:
        logger.info("Push token refreshed for user %s", self._user_id)
        if not await self._tokens.persist(token):
            self._emit(ErrorOccurred(RemoteUnavailableError("persist push token")))

    async def _on_foreground_message(self, message: PushMessage) -> None:
        if not self.is_ready:
            return
        try:
            notification = await self._notification_for(message)
        except RemoteUnavailableError as e:
            self._emit(ErrorOccurred(e))
            return
        self._emit(NotificationReceived(notification))
        self._repo.refresh(self._handle)

    async def _on_background_message(self, message: PushMessage) -> None:
        logger.debug("Background push message %s", message.message_id)

    async def _on_notification_opened(self, message: PushMessage) -> None:
        logger.info("App opened from notification %s", message.notification_id or message.message_id)
        if self.is_ready:
            self._repo.refresh(self._handle)

    async def _notification_for(self, message: PushMessage) -> Notification:
        """Stored record named by the message, or one built from the message itself."""
        if message.notification_id and self._user_id:
            stored = await self._repo.get_one(self._user_id, message.notification_id)
            if stored is not None:
                return stored
        try:
            type_ = NotificationType(message.data.get("type", ""))
        except ValueError:
            type_ = NotificationType.ACCOUNT
        return Notification(
            id=message.notification_id or message.message_id,
            user_id=self._user_id or "",
            title=message.title or "",
            description=message.body or "",
            type=type_,
            created_at=message.sent_at,
            updated_at=message.sent_at,
            metadata=dict(message.data),
        )

    # ---- events ----

    def _emit(self, event: SyncEvent) -> None:
        self._events.emit(event)

    def subscribe(self, kind: Optional[EventKind], handler: EventHandler) -> Unsubscribe:
        """Subscribe to one event kind (or all when kind is None)."""
        return self._events.subscribe(kind, handler)

    def on_notifications_updated(self, handler: Callable[[list[Notification]], None]) -> Unsubscribe:
        return self._events.subscribe(
            EventKind.NOTIFICATIONS_UPDATED, lambda e: handler(list(e.notifications))
        )

    def on_unread_count_changed(self, handler: Callable[[int], None]) -> Unsubscribe:
        return self._events.subscribe(EventKind.UNREAD_COUNT_CHANGED, lambda e: handler(e.count))

    def on_notification_received(self, handler: Callable[[Notification], None]) -> Unsubscribe:
        return self._events.subscribe(
            EventKind.NOTIFICATION_RECEIVED, lambda e: handler(e.notification)
        )

    def on_error(self, handler: Callable[[BaseException], None]) -> Unsubscribe:
        return self._events.subscribe(EventKind.ERROR, lambda e: handler(e.error))

    # ---- operations ----

    async def _mutate(self, operation: str, coro):
        try:
            return await coro
        except Exception as e:
            logger.warning("%s failed for user %s: %s", operation, self._user_id, e)
            self._crash.record_error(e, {"operation": operation})
            self._emit(ErrorOccurred(e))
            raise

    async def mark_as_read(self, notification_id: str) -> bool:
        user_id = self._require_ready()
        return await self._mutate("mark_as_read", self._repo.mark_read(user_id, notification_id))

    async def mark_as_unread(self, notification_id: str) -> bool:
        user_id = self._require_ready()
        return await self._mutate("mark_as_unread", self._repo.mark_unread(user_id, notification_id))

    async def delete_notification(self, notification_id: str) -> None:
        user_id = self._require_ready()
        await self._mutate("delete_notification", self._repo.delete(user_id, notification_id))

    async def mark_multiple_as_read(self, notification_ids: list[str]) -> int:
        user_id = self._require_ready()
        if not notification_ids:
            raise ValidationError("notification_ids must not be empty")
        return await self._mutate(
            "mark_multiple_as_read", self._repo.mark_multiple_read(user_id, list(notification_ids))
        )

    async def get_notifications(self, filter: Optional[NotificationFilter] = None) -> list[Notification]:
        """Current live list, or a one-shot filtered fetch when a filter is given."""
        user_id = self._require_ready()
        if filter is None:
            return self.notifications
        return await self._repo.get(user_id, filter)

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        user_id = self._require_ready()
        for n in self._notifications:
            if n.id == notification_id:
                return n
        return await self._repo.get_one(user_id, notification_id)

    async def get_unread_count(self) -> int:
        """Fresh count from the store. Returns 0 and emits an error event when the store fails."""
        user_id = self._require_ready()
        try:
            return await self._repo.count_unread(user_id)
        except RemoteUnavailableError as e:
            self._crash.record_error(e, {"operation": "get_unread_count"})
            self._emit(ErrorOccurred(e))
            return 0

    async def create_test_notification(self) -> Notification:
        user_id = self._require_ready()
        type_, title, description = random.choice(_TEST_NOTIFICATIONS)
        draft = NotificationDraft(
            title=title,
            description=description,
            type=type_,
            priority=random.choice(list(NotificationPriority)),
            category=type_.value,
            metadata={"test": True, "created": utcnow().isoformat()},
        )
        return await self._mutate("create_test_notification", self._repo.create(user_id, draft))

    async def refresh_push_token(self) -> Optional[PushToken]:
        """Fetch the provider token again and persist it."""
        self._require_ready()
        token = await self._push.refresh_token()
        if token is not None and not await self._tokens.persist(token):
            self._emit(ErrorOccurred(RemoteUnavailableError("persist push token")))
        return token

    def handle_app_state_change(self, app_state: str) -> None:
        """On return to the foreground, re-query the live subscription."""
        if app_state == "active" and self.is_ready:
            logger.debug("App active; refreshing notifications for %s", self._user_id)
            self._repo.refresh(self._handle)

    async def wait_until_idle(self) -> None:
        """Wait for queued snapshots to be delivered."""
        await self._repo.wait_until_idle()
