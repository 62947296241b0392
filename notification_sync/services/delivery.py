"""
Central notification delivery: one call for the inbox record and the push fan-out.

The record is created through the repository, which publishes the change so
every live query for the user sees it; the push goes to every active device
token when FCM is configured.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_sync.domain.notifications.models import Notification, NotificationDraft
from notification_sync.infra.db.repositories.notification_repo import NotificationRepository
from notification_sync.infra.push.sender import PushSender

logger = logging.getLogger(__name__)


async def deliver_notification(
    repository: NotificationRepository,
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    draft: NotificationDraft,
    *,
    sender: Optional[PushSender] = None,
) -> Notification:
    """
    Create the notification in the store, then push it to the user's devices.

    Args:
        repository: Notification repository (publishes the change to live queries).
        session_factory: Session factory for the push token lookup.
        user_id: Recipient user id.
        draft: Title, description, type and optional fields of the notification.
        sender: FCM sender; push is skipped when None.

    Returns:
        The created Notification. Push failures are logged, never raised.
    """
    notification = await repository.create(user_id, draft)
    if sender is None:
        return notification
    try:
        async with session_factory() as session:
            await sender.send_to_user(
                session,
                user_id,
                notification.title,
                notification.description,
                {"notificationId": notification.id, "type": notification.type.value},
            )
    except Exception as e:
        logger.warning("Push send failed for user %s: %s", user_id, e)
    return notification
