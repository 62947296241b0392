"""Tests for the typed event bus."""
from notification_sync.domain.notifications.events import (
    ErrorOccurred,
    EventKind,
    NotificationsUpdated,
    UnreadCountChanged,
)
from notification_sync.services.event_bus import EventBus


def test_fan_out_to_every_subscriber_of_the_kind():
    bus = EventBus()
    a, b, other = [], [], []
    bus.subscribe(EventKind.UNREAD_COUNT_CHANGED, a.append)
    bus.subscribe(EventKind.UNREAD_COUNT_CHANGED, b.append)
    bus.subscribe(EventKind.NOTIFICATIONS_UPDATED, other.append)
    bus.emit(UnreadCountChanged(3))
    assert [e.count for e in a] == [3]
    assert [e.count for e in b] == [3]
    assert other == []


def test_unsubscribing_one_leaves_the_others():
    bus = EventBus()
    a, b = [], []
    unsubscribe_a = bus.subscribe(EventKind.UNREAD_COUNT_CHANGED, a.append)
    bus.subscribe(EventKind.UNREAD_COUNT_CHANGED, b.append)
    unsubscribe_a()
    unsubscribe_a()
    bus.emit(UnreadCountChanged(1))
    assert a == []
    assert len(b) == 1


def test_failing_handler_does_not_stop_delivery():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(EventKind.ERROR, broken)
    bus.subscribe(EventKind.ERROR, received.append)
    bus.emit(ErrorOccurred(ValueError("x")))
    assert len(received) == 1


def test_wildcard_subscriber_and_clear():
    bus = EventBus()
    seen = []
    bus.subscribe(None, seen.append)
    bus.emit(NotificationsUpdated(()))
    bus.emit(UnreadCountChanged(0))
    assert [e.kind for e in seen] == [EventKind.NOTIFICATIONS_UPDATED, EventKind.UNREAD_COUNT_CHANGED]
    bus.clear()
    assert bus.subscriber_count() == 0
    bus.emit(UnreadCountChanged(5))
    assert len(seen) == 2


def test_payload_shapes():
    assert UnreadCountChanged(2).to_payload() == {"type": "unread_count_changed", "payload": 2}
    payload = ErrorOccurred(ValueError("bad")).to_payload()
    assert payload["payload"] == {"error": "ValueError", "message": "bad"}
