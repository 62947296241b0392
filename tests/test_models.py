"""Tests for notification domain models."""
import re
from datetime import datetime, timedelta, timezone

from notification_sync.domain.common.types import generate_device_id
from notification_sync.domain.notifications.models import (
    Notification,
    NotificationFilter,
    NotificationStatus,
    NotificationType,
    PermissionStatus,
    PushMessage,
    default_settings,
    next_status,
)


def _notification(**overrides) -> Notification:
    data = {
        "id": "n1",
        "user_id": "u1",
        "title": "Order shipped",
        "description": "Your parcel is on its way",
        "type": "delivery",
    }
    data.update(overrides)
    return Notification(**data)


def test_status_decides_is_read():
    assert _notification(status="read").is_read is True
    assert _notification(status="downloaded").is_read is False
    # is_read cannot contradict status
    assert _notification(status="new", is_read=True).is_read is False


def test_is_read_decides_status_when_status_missing():
    assert _notification(is_read=True).status is NotificationStatus.READ
    assert _notification().status is NotificationStatus.NEW


def test_naive_timestamps_are_utc():
    n = _notification(created_at=datetime(2026, 1, 1, 12, 0))
    assert n.created_at.tzinfo == timezone.utc


def test_status_only_moves_forward_without_reset():
    assert next_status(NotificationStatus.NEW, NotificationStatus.READ) is NotificationStatus.READ
    assert next_status(NotificationStatus.READ, NotificationStatus.DOWNLOADED) is NotificationStatus.READ
    assert next_status(NotificationStatus.DOWNLOADED, NotificationStatus.NEW) is NotificationStatus.DOWNLOADED
    assert next_status(NotificationStatus.READ, NotificationStatus.NEW, reset=True) is NotificationStatus.NEW


def test_permission_delivery():
    assert PermissionStatus.GRANTED.allows_delivery
    assert PermissionStatus.PROVISIONAL.allows_delivery
    assert not PermissionStatus.DENIED.allows_delivery


def test_filter_search_is_case_insensitive_over_title_and_description():
    items = [
        _notification(id="a", title="Reward unlocked", description="x"),
        _notification(id="b", title="Hello", description="You earned a REWARD"),
        _notification(id="c", title="Hello", description="nothing"),
    ]
    result = NotificationFilter(search_query="reward").refine(items)
    assert [n.id for n in result] == ["a", "b"]


def test_filter_date_range_and_server_fields():
    now = datetime.now(timezone.utc)
    items = [
        _notification(id="old", created_at=now - timedelta(days=10)),
        _notification(id="new", created_at=now - timedelta(hours=1), status="read"),
        _notification(id="follow", created_at=now, type="new_follower"),
    ]
    recent = NotificationFilter(date_from=now - timedelta(days=1))
    assert [n.id for n in recent.apply(items)] == ["new", "follow"]
    unread_delivery = NotificationFilter(types=[NotificationType.DELIVERY], is_read=False)
    assert [n.id for n in unread_delivery.apply(items)] == ["old"]


def test_default_settings_cover_every_type():
    settings = default_settings("u1")
    assert len(settings) == 6
    assert {s.type for s in settings} == set(NotificationType)
    referrals = next(s for s in settings if s.id == "referrals")
    assert referrals.enabled is False
    assert all(s.user_id == "u1" for s in settings)


def test_push_message_notification_id():
    assert PushMessage(data={"notificationId": "n9"}).notification_id == "n9"
    assert PushMessage().notification_id is None


def test_device_id_format():
    assert re.fullmatch(r"device_\d{13}_[a-z0-9]{9}", generate_device_id())
