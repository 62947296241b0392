"""Process-scoped service wiring: one manager, token store and facade per process."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notification_sync.domain.notifications.repositories import (
    ChangeFeed,
    CrashReporter,
    KeyValueCache,
    PushProvider,
    Unsubscribe,
)
from notification_sync.infra.cache.local_cache import JsonFileCache, RedisCache
from notification_sync.infra.db.base import create_engine_from_url, create_session_factory
from notification_sync.infra.db.repositories.notification_repo import NotificationRepository
from notification_sync.infra.messaging.change_feed import InProcessChangeFeed, RedisChangeFeed
from notification_sync.infra.messaging.redis_bus import RedisBus
from notification_sync.infra.observability.crash_reporter import NullCrashReporter
from notification_sync.infra.push.channel import PushChannel
from notification_sync.infra.push.loopback import LoopbackPushProvider
from notification_sync.infra.push.sender import PushSender
from notification_sync.services.event_bus import EventBus
from notification_sync.services.in_app_alerts import InAppAlertCenter
from notification_sync.services.notification_manager import NotificationManager
from notification_sync.services.notification_service import NotificationService
from notification_sync.services.token_store import TokenStore
from notification_sync.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    change_feed: ChangeFeed
    cache: KeyValueCache
    repository: NotificationRepository
    push_provider: PushProvider
    push_channel: PushChannel
    token_store: TokenStore
    events: EventBus
    manager: NotificationManager
    service: NotificationService
    sender: PushSender
    alerts: InAppAlertCenter
    crash_reporter: CrashReporter
    engine: Optional[AsyncEngine] = None
    alert_binding: Optional[Unsubscribe] = None
    _closers: list = field(default_factory=list)

    async def close(self) -> None:
        await self.manager.cleanup()
        await self.repository.close()
        for close in self._closers:
            await close()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(
    settings: Settings,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    change_feed: Optional[ChangeFeed] = None,
    cache: Optional[KeyValueCache] = None,
    push_provider: Optional[PushProvider] = None,
    crash_reporter: Optional[CrashReporter] = None,
) -> Container:
    """Build every service once from settings. Any collaborator can be injected (tests)."""
    closers = []
    engine = None
    if session_factory is None:
        engine = create_engine_from_url(settings.database_url, echo=settings.database_echo)
        session_factory = create_session_factory(engine)

    if change_feed is None:
        if settings.change_feed == "redis":
            feed = RedisChangeFeed(RedisBus(settings.redis_url), settings.change_feed_channel_prefix)
            closers.append(feed.close)
            change_feed = feed
        else:
            change_feed = InProcessChangeFeed()

    if cache is None:
        if settings.local_cache_backend == "redis":
            redis_cache = RedisCache(settings.redis_url, settings.local_cache_key_prefix)
            closers.append(redis_cache.close)
            cache = redis_cache
        else:
            cache = JsonFileCache(settings.local_cache_path)

    crash_reporter = crash_reporter or NullCrashReporter()
    push_provider = push_provider or LoopbackPushProvider()
    repository = NotificationRepository(session_factory, change_feed, max_page_size=settings.max_page_size)
    push_channel = PushChannel(push_provider, platform=settings.platform, crash_reporter=crash_reporter)
    token_store = TokenStore(cache, session_factory)
    events = EventBus()
    manager = NotificationManager(
        repository,
        push_channel,
        token_store,
        events=events,
        crash_reporter=crash_reporter,
    )
    service = NotificationService(manager, session_factory, default_page_size=settings.default_page_size)
    logger.info("Notification services built (change_feed=%s, cache=%s)",
                type(change_feed).__name__, type(cache).__name__)
    return Container(
        settings=settings,
        session_factory=session_factory,
        change_feed=change_feed,
        cache=cache,
        repository=repository,
        push_provider=push_provider,
        push_channel=push_channel,
        token_store=token_store,
        events=events,
        manager=manager,
        service=service,
        sender=PushSender(settings.push_enabled, settings.google_application_credentials),
        alerts=InAppAlertCenter(),
        crash_reporter=crash_reporter,
        engine=engine,
        _closers=closers,
    )
