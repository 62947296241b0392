"""Tests for the notification manager (sync coordinator)."""
import asyncio

import pytest

from notification_sync.domain.common.errors import (
    NotInitializedError,
    PermissionDeniedError,
    RemoteUnavailableError,
    ValidationError,
)
from notification_sync.domain.notifications.events import EventKind
from notification_sync.domain.notifications.models import (
    NotificationDraft,
    NotificationType,
    PermissionStatus,
    PushMessage,
)
from notification_sync.infra.db.repositories.notification_repo import NotificationRepository
from notification_sync.infra.db.repositories.push_token_repo import PushTokenRepository
from notification_sync.infra.push.channel import PushChannel
from notification_sync.infra.push.loopback import LoopbackPushProvider
from notification_sync.services.notification_manager import ManagerState, NotificationManager

from conftest import EventRecorder, FailingSessionFactory


def _draft(title="Hello") -> NotificationDraft:
    return NotificationDraft(title=title, type=NotificationType.ACCOUNT)


async def test_initialize_reaches_ready_and_emits_first_snapshot(manager, recorder, seed):
    await seed("u1", 4, unread=2)
    await manager.initialize("u1")
    assert manager.state is ManagerState.READY
    assert manager.user_id == "u1"
    kinds = [e.kind for e in recorder.events]
    assert kinds == [EventKind.NOTIFICATIONS_UPDATED, EventKind.UNREAD_COUNT_CHANGED]
    assert len(recorder.of(EventKind.NOTIFICATIONS_UPDATED)[0].notifications) == 4
    assert recorder.last_count == 2


async def test_unread_count_matches_every_snapshot(manager, recorder, repo, seed):
    ids = await seed("u1", 5, unread=3)
    await manager.initialize("u1")
    await repo.create("u1", _draft())
    await manager.mark_as_read(ids[0])
    await manager.mark_as_unread(ids[4])
    await manager.delete_notification(ids[1])
    await manager.wait_until_idle()
    updates = recorder.of(EventKind.NOTIFICATIONS_UPDATED)
    counts = recorder.of(EventKind.UNREAD_COUNT_CHANGED)
    assert len(updates) == len(counts) == 5
    for update, count in zip(updates, counts):
        assert count.count == sum(1 for n in update.notifications if not n.is_read)
    assert manager.unread_count == counts[-1].count


async def test_double_initialize_creates_one_subscription(manager, recorder, repo, feed):
    await asyncio.gather(manager.initialize("u1"), manager.initialize("u1"))
    await manager.initialize("u1")
    assert repo.live_count == 1
    assert feed.listener_count("u1") == 1
    assert len(recorder.of(EventKind.NOTIFICATIONS_UPDATED)) == 1
    recorder.clear()
    await repo.create("u1", _draft())
    await manager.wait_until_idle()
    assert len(recorder.of(EventKind.NOTIFICATIONS_UPDATED)) == 1
    assert len(recorder.of(EventKind.UNREAD_COUNT_CHANGED)) == 1


async def test_cleanup_is_idempotent_and_blocks_mutations(manager, repo, provider):
    await manager.initialize("u1")
    await manager.cleanup()
    await manager.cleanup()
    assert manager.state is ManagerState.UNINITIALIZED
    assert repo.live_count == 0
    assert provider.listener_count == 0
    with pytest.raises(NotInitializedError):
        await manager.mark_as_read("any")
    with pytest.raises(NotInitializedError):
        await manager.mark_multiple_as_read(["any"])
    with pytest.raises(NotInitializedError):
        await manager.delete_notification("any")


async def test_cleanup_drops_event_subscribers(manager, recorder, events):
    await manager.initialize("u1")
    await manager.cleanup()
    assert events.subscriber_count() == 0


async def test_mark_read_on_read_record_emits_nothing(manager, recorder, seed):
    ids = await seed("u1", 3, unread=1)
    await manager.initialize("u1")
    recorder.clear()
    # ids[-1] is the oldest item, already read
    assert await manager.mark_as_read(ids[-1]) is False
    await manager.wait_until_idle()
    assert recorder.events == []
    assert manager.unread_count == 1


async def test_empty_batch_is_rejected_before_io(manager):
    await manager.initialize("u1")
    manager._repo._session_factory = FailingSessionFactory()
    with pytest.raises(ValidationError):
        await manager.mark_multiple_as_read([])


async def test_ten_notifications_three_unread_then_mark_multiple(manager, recorder, seed):
    ids = await seed("u1", 10, unread=3)
    await manager.initialize("u1")
    assert recorder.last_count == 3
    unread_ids = [n.id for n in manager.notifications if not n.is_read]
    assert sorted(unread_ids) == sorted(ids[:3])
    await manager.mark_multiple_as_read(unread_ids)
    await manager.wait_until_idle()
    assert recorder.last_count == 0
    last_list = recorder.of(EventKind.NOTIFICATIONS_UPDATED)[-1].notifications
    assert all(n.is_read for n in last_list)


async def test_user_switch_releases_prior_subscription_first(manager, repo, feed, seed):
    await seed("userA", 2, unread=1)
    await manager.initialize("userA")
    await manager.initialize("userB")
    assert manager.user_id == "userB"
    assert feed.listener_count("userA") == 0
    assert repo.live_count == 1

    after_switch = EventRecorder()
    manager.subscribe(None, after_switch)
    await repo.create("userA", _draft("for A"))
    await manager.wait_until_idle()
    assert after_switch.events == []

    await repo.create("userB", _draft("for B"))
    await manager.wait_until_idle()
    lists = after_switch.of(EventKind.NOTIFICATIONS_UPDATED)
    assert [n.title for n in lists[-1].notifications] == ["for B"]


async def test_initialize_failure_releases_and_reraises(feed, push_channel, provider, token_store):
    repo = NotificationRepository(FailingSessionFactory(), feed)
    manager = NotificationManager(repo, push_channel, token_store)
    recorder = EventRecorder()
    manager.subscribe(None, recorder)
    with pytest.raises(RemoteUnavailableError):
        await manager.initialize("u1")
    assert manager.state is ManagerState.UNINITIALIZED
    assert manager.user_id is None
    assert provider.listener_count == 0
    assert feed.listener_count("u1") == 0
    assert recorder.of(EventKind.ERROR)


async def test_permission_denied_is_an_error_event_not_a_failure(repo, token_store, cache):
    provider = LoopbackPushProvider(permission=PermissionStatus.DENIED)
    manager = NotificationManager(repo, PushChannel(provider), token_store)
    recorder = EventRecorder()
    manager.subscribe(None, recorder)
    await manager.initialize("u1")
    assert manager.is_ready
    errors = [e.error for e in recorder.of(EventKind.ERROR)]
    assert any(isinstance(e, PermissionDeniedError) for e in errors)
    assert await token_store.get_current() is None
    await manager.cleanup()


async def test_initialize_persists_push_token(manager, session_factory, token_store):
    await manager.initialize("u1")
    current = await token_store.get_current()
    assert current.token == "token-1"
    async with session_factory() as session:
        rows = await PushTokenRepository(session).list_active_tokens("u1")
    assert [r[0] for r in rows] == ["token-1"]


async def test_token_refresh_event_persists_new_token(manager, provider, token_store):
    await manager.initialize("u1")
    await provider.rotate_token("token-2")
    assert (await token_store.get_current()).token == "token-2"


async def test_foreground_message_emits_received_and_refreshes(manager, recorder, repo, provider):
    await manager.initialize("u1")
    stored = await repo.create("u1", _draft("Stored"))
    await manager.wait_until_idle()
    recorder.clear()
    await provider.deliver(PushMessage(title="Push", data={"notificationId": stored.id}))
    received = recorder.of(EventKind.NOTIFICATION_RECEIVED)
    assert [e.notification.title for e in received] == ["Stored"]
    await manager.wait_until_idle()
    assert len(recorder.of(EventKind.NOTIFICATIONS_UPDATED)) == 1


async def test_foreground_message_without_record_is_built_from_message(manager, recorder, provider):
    await manager.initialize("u1")
    await provider.deliver(PushMessage(title="Hi", body="there", data={"type": "rewards"}))
    notification = recorder.of(EventKind.NOTIFICATION_RECEIVED)[0].notification
    assert notification.title == "Hi"
    assert notification.type is NotificationType.REWARDS


async def test_unread_count_failure_returns_zero_and_emits_error(manager, recorder, seed):
    await seed("u1", 3, unread=2)
    await manager.initialize("u1")
    assert await manager.get_unread_count() == 2
    manager._repo._session_factory = FailingSessionFactory()
    assert await manager.get_unread_count() == 0
    assert isinstance(recorder.of(EventKind.ERROR)[-1].error, RemoteUnavailableError)


async def test_app_becoming_active_requeries(manager, recorder):
    await manager.initialize("u1")
    recorder.clear()
    manager.handle_app_state_change("background")
    manager.handle_app_state_change("active")
    await manager.wait_until_idle()
    assert len(recorder.of(EventKind.NOTIFICATIONS_UPDATED)) == 1


async def test_create_test_notification_appears_in_list(manager):
    await manager.initialize("u1")
    created = await manager.create_test_notification()
    await manager.wait_until_idle()
    assert [n.id for n in manager.notifications] == [created.id]
    fetched = await manager.get_notification(created.id)
    assert (fetched.id, fetched.title) == (created.id, created.title)


async def test_launch_notification_is_handled_once(repo, token_store):
    provider = LoopbackPushProvider(initial_notification=PushMessage(title="launch"))
    channel = PushChannel(provider)
    manager = NotificationManager(repo, channel, token_store)
    await manager.initialize("u1")
    assert await channel.consume_launch_notification() is None
    await manager.cleanup()


async def test_failed_mutation_emits_error_and_reraises(manager, recorder, seed):
    ids = await seed("u1", 2, unread=1)
    await manager.initialize("u1")
    recorder.clear()
    manager._repo._session_factory = FailingSessionFactory()
    with pytest.raises(RemoteUnavailableError):
        await manager.mark_as_read(ids[0])
    errors = recorder.of(EventKind.ERROR)
    assert len(errors) == 1
    assert isinstance(errors[0].error, RemoteUnavailableError)
    assert recorder.of(EventKind.NOTIFICATIONS_UPDATED) == []
