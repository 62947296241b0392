"""Tests for the push channel over the loopback provider."""
from notification_sync.domain.common.errors import PermissionDeniedError, RemoteUnavailableError
from notification_sync.domain.notifications.models import PermissionStatus, PushMessage
from notification_sync.infra.push.channel import PushChannel
from notification_sync.infra.push.loopback import LoopbackPushProvider


async def test_initialize_returns_token_when_granted(push_channel):
    token = await push_channel.initialize("u1", "device_1")
    assert token.token == "token-1"
    assert token.device_id == "device_1"
    assert token.platform == "android"


async def test_denied_permission_is_reported_not_raised():
    channel = PushChannel(LoopbackPushProvider(permission=PermissionStatus.DENIED))
    errors = []
    channel.on_error(errors.append)
    assert await channel.initialize("u1", "device_1") is None
    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDeniedError)


async def test_provisional_permission_allows_token():
    channel = PushChannel(LoopbackPushProvider(permission=PermissionStatus.PROVISIONAL, token="t"))
    assert (await channel.initialize("u1", "d")).token == "t"


async def test_provider_failure_keeps_prior_token(provider, push_channel):
    errors = []
    push_channel.on_error(errors.append)
    await push_channel.initialize("u1", "device_1")
    provider.fail_with = ConnectionError("offline")
    token = await push_channel.refresh_token()
    assert token.token == "token-1"
    assert isinstance(errors[0], RemoteUnavailableError)


async def test_token_refresh_handler_gets_new_token(provider, push_channel):
    await push_channel.initialize("u1", "device_1")
    seen = []

    async def on_refresh(token):
        seen.append(token)

    push_channel.on_token_refresh(on_refresh)
    await provider.rotate_token("token-2")
    assert [t.token for t in seen] == ["token-2"]
    assert push_channel.token.token == "token-2"


async def test_message_handlers_and_release(provider, push_channel):
    foreground, background, opened = [], [], []

    async def fg(message):
        foreground.append(message)

    async def bg(message):
        background.append(message)

    async def op(message):
        opened.append(message)

    push_channel.on_foreground_message(fg)
    push_channel.on_background_message(bg)
    unsubscribe_opened = push_channel.on_notification_opened(op)
    message = PushMessage(title="Hi", data={"notificationId": "n1"})
    await provider.deliver(message)
    await provider.deliver(message, foreground=False)
    unsubscribe_opened()
    await provider.open(message)
    assert len(foreground) == 1
    assert len(background) == 1
    assert opened == []
    push_channel.release()
    assert provider.listener_count == 0


async def test_launch_notification_consumed_once():
    launch = PushMessage(title="Cold start")
    channel = PushChannel(LoopbackPushProvider(initial_notification=launch))
    assert (await channel.consume_launch_notification()).title == "Cold start"
    assert await channel.consume_launch_notification() is None


async def test_remove_token(provider, push_channel):
    await push_channel.initialize("u1", "device_1")
    await push_channel.remove_token()
    assert push_channel.token is None
    assert provider.token is None
