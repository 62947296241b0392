"""Notification domain models."""
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, model_validator

from notification_sync.domain.common.types import as_utc, generate_id, utcnow


class NotificationType(str, Enum):
    """Closed set of notification kinds."""
    NEW_FOLLOWER = "new_follower"
    DELIVERY = "delivery"
    RECOMMENDATIONS = "recommendations"
    REFERRALS = "referrals"
    REWARDS = "rewards"
    ACCOUNT = "account"


class NotificationStatus(str, Enum):
    """Ordered progression new -> downloaded -> read."""
    NEW = "new"
    DOWNLOADED = "downloaded"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    NotificationStatus.NEW: 0,
    NotificationStatus.DOWNLOADED: 1,
    NotificationStatus.READ: 2,
}


def next_status(
    current: NotificationStatus, target: NotificationStatus, *, reset: bool = False
) -> NotificationStatus:
    """Status after a transition. Only an explicit reset (mark unread) moves backwards."""
    if reset:
        return target
    return target if target.rank > current.rank else current


class NotificationPriority(str, Enum):
    """Notification priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationAction(str, Enum):
    """Actions accepted by NotificationService.update_notification."""
    MARK_READ = "mark_read"
    MARK_UNREAD = "mark_unread"
    DELETE = "delete"


class PermissionStatus(str, Enum):
    """Push permission as reported by the provider."""
    GRANTED = "granted"
    DENIED = "denied"
    PROVISIONAL = "provisional"

    @property
    def allows_delivery(self) -> bool:
        return self in (PermissionStatus.GRANTED, PermissionStatus.PROVISIONAL)


class Notification(BaseModel):
    """A persistent notification record for one user."""

    id: str
    user_id: str
    title: str
    description: str = ""
    type: NotificationType
    status: NotificationStatus = NotificationStatus.NEW
    priority: NotificationPriority = NotificationPriority.MEDIUM
    category: str = ""
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    action_text: Optional[str] = None
    action_url: Optional[str] = None
    image_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _derive_read_state(cls, data: Any) -> Any:
        # status is authoritative; is_read only decides status when status is absent
        if not isinstance(data, dict):
            return data
        data = dict(data)
        status = data.get("status")
        if status is None:
            data["status"] = NotificationStatus.READ if data.get("is_read") else NotificationStatus.NEW
        else:
            data["is_read"] = NotificationStatus(status) is NotificationStatus.READ
        for key in ("created_at", "updated_at"):
            if isinstance(data.get(key), datetime):
                data[key] = as_utc(data[key])
        return data


class NotificationDraft(BaseModel):
    """Fields a client supplies when creating a notification; the store assigns id and timestamps."""

    title: str
    description: str = ""
    type: NotificationType
    status: NotificationStatus = NotificationStatus.NEW
    priority: NotificationPriority = NotificationPriority.MEDIUM
    category: str = ""
    action_text: Optional[str] = None
    action_url: Optional[str] = None
    image_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationFilter(BaseModel):
    """Query shape shared by live subscriptions, one-shot fetches and the facade.

    types/statuses/priorities/is_read are pushed down to the store; the date
    range and search query are applied client-side by refine().
    """

    types: Optional[list[NotificationType]] = None
    statuses: Optional[list[NotificationStatus]] = None
    priorities: Optional[list[NotificationPriority]] = None
    is_read: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search_query: Optional[str] = None
    limit: Optional[int] = None

    def matches_server_fields(self, notification: Notification) -> bool:
        if self.types and notification.type not in self.types:
            return False
        if self.statuses and notification.status not in self.statuses:
            return False
        if self.priorities and notification.priority not in self.priorities:
            return False
        if self.is_read is not None and notification.is_read != self.is_read:
            return False
        return True

    def matches_client_fields(self, notification: Notification) -> bool:
        if self.date_from is not None and notification.created_at < as_utc(self.date_from):
            return False
        if self.date_to is not None and notification.created_at > as_utc(self.date_to):
            return False
        if self.search_query:
            query = self.search_query.lower()
            if query not in notification.title.lower() and query not in notification.description.lower():
                return False
        return True

    def refine(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Apply the client-side conditions the store cannot index."""
        return [n for n in notifications if self.matches_client_fields(n)]

    def apply(self, notifications: Iterable[Notification]) -> list[Notification]:
        """Apply every condition to an in-memory list, preserving order."""
        return [
            n for n in notifications
            if self.matches_server_fields(n) and self.matches_client_fields(n)
        ]


class PushToken(BaseModel):
    """One device's push registration."""

    token: str
    platform: str
    device_id: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PushMessage(BaseModel):
    """A message delivered by the push provider."""

    message_id: str = Field(default_factory=generate_id)
    title: Optional[str] = None
    body: Optional[str] = None
    data: dict[str, str] = Field(default_factory=dict)
    sent_at: datetime = Field(default_factory=utcnow)

    @property
    def notification_id(self) -> Optional[str]:
        return self.data.get("notificationId")


class NotificationSettings(BaseModel):
    """Per-category opt-in record."""

    id: str
    user_id: str
    type: NotificationType
    label: str
    description: str = ""
    enabled: bool = True
    push_enabled: bool = True
    email_enabled: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# (id, type, label, description, enabled, push_enabled, email_enabled)
_DEFAULT_SETTINGS = (
    ("new_followers", NotificationType.NEW_FOLLOWER, "New Followers",
     "Get notified when someone follows you", True, True, False),
    ("delivery_updates", NotificationType.DELIVERY, "Delivery Updates",
     "Get notified about order deliveries", True, True, True),
    ("recommendations", NotificationType.RECOMMENDATIONS, "Recommendations",
     "Get personalized recommendations", True, False, True),
    ("referrals", NotificationType.REFERRALS, "Referrals",
     "Get notified about referral opportunities", False, False, False),
    ("rewards", NotificationType.REWARDS, "Rewards",
     "Get notified about rewards and achievements", True, True, False),
    ("account", NotificationType.ACCOUNT, "Account Updates",
     "Get notified about account changes", True, True, True),
)


def default_settings(user_id: str) -> list[NotificationSettings]:
    """Well-known settings returned when the user has no stored record."""
    now = utcnow()
    return [
        NotificationSettings(
            id=setting_id,
            user_id=user_id,
            type=type_,
            label=label,
            description=description,
            enabled=enabled,
            push_enabled=push_enabled,
            email_enabled=email_enabled,
            created_at=now,
            updated_at=now,
        )
        for setting_id, type_, label, description, enabled, push_enabled, email_enabled in _DEFAULT_SETTINGS
    ]
