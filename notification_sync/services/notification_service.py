"""
Request/response facade over the notification manager.

Adds filtering, search and pagination on top of the live list and returns
uniform result shapes. Apart from initialize(), nothing here raises to the
caller: failures come back as UpdateResult(success=False, ...) or as an
empty NotificationPage carrying the error message.
"""
import logging
import math
from typing import Callable, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_sync.domain.common.errors import DomainError, NotFoundError, NotInitializedError
from notification_sync.domain.notifications.models import (
    Notification,
    NotificationAction,
    NotificationFilter,
    NotificationSettings,
    default_settings,
)
from notification_sync.domain.notifications.repositories import Unsubscribe
from notification_sync.infra.db.repositories.settings_repo import SettingsRepository
from notification_sync.services.notification_manager import NotificationManager

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = {"label", "description", "enabled", "push_enabled", "email_enabled"}


class NotificationPage(BaseModel):
    items: list[Notification] = Field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    total_pages: int = 0
    has_more: bool = False
    unread_count: int = 0
    error: Optional[str] = None


class UpdateResult(BaseModel):
    success: bool
    message: str
    unread_count: Optional[int] = None
    error: Optional[str] = None


def _describe(action: str) -> str:
    return action.replace("_", " ")


class NotificationService:
    """Notification facade."""

    def __init__(
        self,
        manager: NotificationManager,
        session_factory: async_sessionmaker[AsyncSession],
        default_page_size: int = 20,
    ):
        self.manager = manager
        self._session_factory = session_factory
        self.default_page_size = default_page_size
        self._listener_sets: dict[int, list[Unsubscribe]] = {}
        self._next_listener_set = 0

    async def initialize(self, user_id: str) -> None:
        """Initialize the manager for user_id. Failures propagate so startup can block on them."""
        try:
            await self.manager.initialize(user_id)
        except Exception as e:
            logger.error("Failed to initialize notifications for %s: %s", user_id, e)
            raise
        logger.info("Notification service initialized for user %s", user_id)

    async def cleanup(self) -> None:
        self._listener_sets.clear()
        await self.manager.cleanup()

    # ---- reads ----

    async def get_notifications(
        self,
        filters: Optional[NotificationFilter] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> NotificationPage:
        """Filter the live list and return one page of it (pages start at 1)."""
        page_size = page_size or self.default_page_size
        page = max(page, 1)
        if not self.manager.is_ready:
            return NotificationPage(current_page=page, error=str(NotInitializedError()))
        filtered = (filters or NotificationFilter()).apply(self.manager.notifications)
        total_count = len(filtered)
        total_pages = math.ceil(total_count / page_size) if page_size > 0 else 0
        start = (page - 1) * page_size
        items = filtered[start:start + page_size]
        logger.debug("Retrieved %d notifications for page %d", len(items), page)
        return NotificationPage(
            items=items,
            total_count=total_count,
            current_page=page,
            total_pages=total_pages,
            has_more=page < total_pages,
            unread_count=self.manager.unread_count,
        )

    async def get_notification(self, notification_id: str) -> Optional[Notification]:
        try:
            return await self.manager.get_notification(notification_id)
        except DomainError as e:
            logger.warning("Failed to get notification %s: %s", notification_id, e)
            return None

    async def get_unread_count(self) -> int:
        try:
            return await self.manager.get_unread_count()
        except DomainError as e:
            logger.warning("Failed to get unread count: %s", e)
            return 0

    # ---- mutations ----

    async def update_notification(self, notification_id: str, action: NotificationAction) -> UpdateResult:
        """Apply mark_read, mark_unread or delete to one notification."""
        try:
            action = NotificationAction(action)
        except ValueError as e:
            return UpdateResult(success=False, message="Unknown action", error=str(e))
        try:
            if action is NotificationAction.MARK_READ:
                await self.manager.mark_as_read(notification_id)
            elif action is NotificationAction.MARK_UNREAD:
                await self.manager.mark_as_unread(notification_id)
            else:
                await self.manager.delete_notification(notification_id)
        except NotFoundError as e:
            return UpdateResult(success=False, message="Notification not found", error=str(e))
        except Exception as e:
            logger.warning("Failed to %s notification %s: %s", _describe(action.value), notification_id, e)
            return UpdateResult(
                success=False,
                message=f"Failed to {_describe(action.value)} notification",
                error=str(e),
            )
        return UpdateResult(
            success=True,
            message=f"Notification {_describe(action.value)} successfully",
            unread_count=await self.get_unread_count(),
        )

    async def mark_multiple_as_read(self, notification_ids: list[str]) -> UpdateResult:
        try:
            changed = await self.manager.mark_multiple_as_read(notification_ids)
        except Exception as e:
            logger.warning("Failed to mark notifications as read: %s", e)
            return UpdateResult(success=False, message="Failed to mark notifications as read", error=str(e))
        return UpdateResult(
            success=True,
            message=f"{changed} notifications marked as read",
            unread_count=await self.get_unread_count(),
        )

    async def create_test_notification(self) -> Optional[str]:
        try:
            notification = await self.manager.create_test_notification()
        except Exception as e:
            logger.warning("Failed to create test notification: %s", e)
            return None
        logger.info("Created test notification %s", notification.id)
        return notification.id

    async def refresh_push_token(self) -> Optional[str]:
        try:
            token = await self.manager.refresh_push_token()
        except DomainError as e:
            logger.warning("Failed to refresh push token: %s", e)
            return None
        return token.token if token is not None else None

    # ---- settings ----

    async def get_settings(self) -> list[NotificationSettings]:
        """Stored settings, or the defaults when none are stored or the store fails."""
        user_id = self.manager.user_id
        if not self.manager.is_ready or user_id is None:
            logger.warning("Settings requested before initialize; returning defaults")
            return default_settings(user_id or "")
        try:
            async with self._session_factory() as session:
                stored = await SettingsRepository(session).list_by_user(user_id)
        except SQLAlchemyError as e:
            logger.warning("Failed to get notification settings: %s", e)
            return default_settings(user_id)
        if not stored:
            return default_settings(user_id)
        # fill in well-known categories that have no stored record yet
        by_id = {s.id: s for s in stored}
        merged = [by_id.pop(d.id, d) for d in default_settings(user_id)]
        return merged + list(by_id.values())

    async def update_settings(self, setting_id: str, updates: dict) -> UpdateResult:
        """Update one setting by id; a well-known id with no stored record is created from its default."""
        user_id = self.manager.user_id
        if not self.manager.is_ready or user_id is None:
            error = NotInitializedError()
            return UpdateResult(success=False, message="Failed to update settings", error=str(error))
        unknown = set(updates) - _SETTINGS_FIELDS
        if unknown:
            return UpdateResult(
                success=False,
                message="Failed to update settings",
                error=f"Unknown settings fields: {', '.join(sorted(unknown))}",
            )
        try:
            async with self._session_factory() as session:
                repo = SettingsRepository(session)
                current = await repo.get(user_id, setting_id)
                if current is None:
                    current = next((d for d in default_settings(user_id) if d.id == setting_id), None)
                if current is None:
                    return UpdateResult(success=False, message="Setting not found",
                                        error=str(NotFoundError("Setting", setting_id)))
                await repo.upsert(current.model_copy(update=updates))
        except SQLAlchemyError as e:
            logger.warning("Failed to update notification settings: %s", e)
            return UpdateResult(success=False, message="Failed to update settings", error=str(e))
        logger.info("Updated notification setting %s for user %s", setting_id, user_id)
        return UpdateResult(success=True, message="Settings updated successfully")

    # ---- realtime ----

    def setup_realtime_listeners(
        self,
        on_notifications_updated: Optional[Callable[[list[Notification]], None]] = None,
        on_unread_count_changed: Optional[Callable[[int], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        on_notification_received: Optional[Callable[[Notification], None]] = None,
    ) -> int:
        """Register callbacks on the manager. Returns an id for remove_realtime_listeners()."""
        unsubscribes: list[Unsubscribe] = []
        if on_notifications_updated:
            unsubscribes.append(self.manager.on_notifications_updated(on_notifications_updated))
        if on_unread_count_changed:
            unsubscribes.append(self.manager.on_unread_count_changed(on_unread_count_changed))
        if on_error:
            unsubscribes.append(self.manager.on_error(on_error))
        if on_notification_received:
            unsubscribes.append(self.manager.on_notification_received(on_notification_received))
        self._next_listener_set += 1
        self._listener_sets[self._next_listener_set] = unsubscribes
        logger.debug("Realtime listeners set up (%d)", len(unsubscribes))
        return self._next_listener_set

    def remove_realtime_listeners(self, listener_set: Optional[int] = None) -> None:
        """Remove one registered set, or every set when listener_set is None."""
        keys = list(self._listener_sets) if listener_set is None else [listener_set]
        for key in keys:
            for unsubscribe in self._listener_sets.pop(key, []):
                unsubscribe()

    def handle_app_state_change(self, app_state: str) -> None:
        self.manager.handle_app_state_change(app_state)
