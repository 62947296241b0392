"""Tests for the request/response notification facade."""
from notification_sync.domain.notifications.models import NotificationAction, NotificationFilter

from conftest import FailingSessionFactory


async def test_pagination_over_45_items(service, manager, seed):
    await seed("u1", 45, unread=5)
    await manager.initialize("u1")
    pages = [await service.get_notifications(page=p, page_size=20) for p in (1, 2, 3)]
    assert [len(p.items) for p in pages] == [20, 20, 5]
    assert [p.has_more for p in pages] == [True, True, False]
    assert {p.total_pages for p in pages} == {3}
    assert {p.total_count for p in pages} == {45}
    assert pages[0].unread_count == 5
    all_ids = [n.id for p in pages for n in p.items]
    assert len(set(all_ids)) == 45


async def test_filters_apply_before_pagination(service, manager, seed):
    await seed("u1", 6, title="Parcel moving")
    await seed("u1", 4, title="Something else")
    await manager.initialize("u1")
    page = await service.get_notifications(NotificationFilter(search_query="parcel"), page=1, page_size=4)
    assert page.total_count == 6
    assert page.total_pages == 2
    assert page.has_more is True


async def test_get_notifications_before_initialize_is_an_error_page(service):
    page = await service.get_notifications()
    assert page.items == []
    assert page.error


async def test_update_notification_success(service, manager, seed):
    ids = await seed("u1", 3, unread=2)
    await manager.initialize("u1")
    result = await service.update_notification(ids[0], NotificationAction.MARK_READ)
    assert result.success is True
    assert result.message == "Notification mark read successfully"
    assert result.unread_count == 1


async def test_update_notification_failures_never_raise(service, manager):
    result = await service.update_notification("x", NotificationAction.DELETE)
    assert result.success is False
    assert result.error
    await manager.initialize("u1")
    missing = await service.update_notification("missing", NotificationAction.MARK_READ)
    assert missing.success is False
    assert missing.message == "Notification not found"


async def test_update_notification_unknown_action_is_a_failed_result(service, manager, seed):
    ids = await seed("u1", 1, unread=1)
    await manager.initialize("u1")
    result = await service.update_notification(ids[0], "archive")
    assert result.success is False
    assert result.message == "Unknown action"
    assert "archive" in result.error
    assert manager.unread_count == 1


async def test_mark_multiple_as_read_results(service, manager, seed):
    ids = await seed("u1", 4, unread=2)
    await manager.initialize("u1")
    empty = await service.mark_multiple_as_read([])
    assert empty.success is False
    result = await service.mark_multiple_as_read(ids[:2])
    assert result.success is True
    assert result.message == "2 notifications marked as read"
    assert result.unread_count == 0
    again = await service.mark_multiple_as_read(ids[:3])
    assert again.success is True
    assert again.message == "0 notifications marked as read"


async def test_settings_default_when_absent_or_failing(service, manager):
    defaults = await service.get_settings()
    assert len(defaults) == 6
    await manager.initialize("u1")
    assert len(await service.get_settings()) == 6
    service._session_factory = FailingSessionFactory()
    assert len(await service.get_settings()) == 6


async def test_update_settings_upserts_from_default(service, manager):
    await manager.initialize("u1")
    result = await service.update_settings("referrals", {"enabled": True, "push_enabled": True})
    assert result.success is True
    settings = {s.id: s for s in await service.get_settings()}
    assert settings["referrals"].enabled is True
    assert settings["referrals"].push_enabled is True
    assert settings["rewards"].enabled is True
    assert len(settings) == 6


async def test_update_settings_rejects_unknown(service, manager):
    await manager.initialize("u1")
    assert (await service.update_settings("nope", {"enabled": False})).message == "Setting not found"
    assert (await service.update_settings("rewards", {"colour": "red"})).success is False


async def test_realtime_listeners_can_be_removed(service, manager, repo):
    await manager.initialize("u1")
    counts = []
    listener_set = service.setup_realtime_listeners(on_unread_count_changed=counts.append)
    await manager.create_test_notification()
    await manager.wait_until_idle()
    assert counts == [1]
    service.remove_realtime_listeners(listener_set)
    await manager.create_test_notification()
    await manager.wait_until_idle()
    assert counts == [1]


async def test_create_test_notification_returns_id(service, manager):
    assert await service.create_test_notification() is None
    await manager.initialize("u1")
    assert await service.create_test_notification()
