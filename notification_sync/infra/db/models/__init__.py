"""Database models."""
from notification_sync.infra.db.models.notification import NotificationModel
from notification_sync.infra.db.models.push_token import PushTokenModel
from notification_sync.infra.db.models.settings import NotificationSettingsModel

__all__ = [
    "NotificationModel",
    "PushTokenModel",
    "NotificationSettingsModel",
]
