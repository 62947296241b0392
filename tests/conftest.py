"""Shared fixtures: a SQLite-backed store, in-process feed and loopback push provider."""
from datetime import timedelta
from typing import Optional

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from notification_sync.domain.common.types import generate_id, utcnow
from notification_sync.domain.notifications.events import EventKind
from notification_sync.infra.cache.local_cache import MemoryCache
from notification_sync.infra.db.base import Base, create_session_factory
from notification_sync.infra.db.models import NotificationModel
from notification_sync.infra.db.repositories.notification_repo import NotificationRepository
from notification_sync.infra.messaging.change_feed import InProcessChangeFeed
from notification_sync.infra.push.channel import PushChannel
from notification_sync.infra.push.loopback import LoopbackPushProvider
from notification_sync.services.event_bus import EventBus
from notification_sync.services.notification_manager import NotificationManager
from notification_sync.services.notification_service import NotificationService
from notification_sync.services.token_store import TokenStore


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: marks tests that need a real DB (deselect with '-m \"not integration\"')"
    )


class FailingSessionFactory:
    """Stands in for async_sessionmaker when the store is unreachable."""

    def __call__(self):
        return self

    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, ConnectionError("store unreachable"))

    async def __aexit__(self, *exc):
        return False


class EventRecorder:
    """Collects every event emitted by a manager."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of(self, kind: EventKind) -> list:
        return [e for e in self.events if e.kind is kind]

    def clear(self) -> None:
        self.events.clear()

    @property
    def last_count(self) -> Optional[int]:
        counts = self.of(EventKind.UNREAD_COUNT_CHANGED)
        return counts[-1].count if counts else None


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def feed():
    return InProcessChangeFeed()


@pytest.fixture
async def repo(session_factory, feed):
    repository = NotificationRepository(session_factory, feed, max_page_size=50)
    yield repository
    await repository.close()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def provider():
    return LoopbackPushProvider(token="token-1")


@pytest.fixture
def push_channel(provider):
    return PushChannel(provider, platform="android")


@pytest.fixture
def token_store(cache, session_factory):
    return TokenStore(cache, session_factory)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
async def manager(repo, push_channel, token_store, events):
    mgr = NotificationManager(repo, push_channel, token_store, events=events)
    yield mgr
    await mgr.cleanup()


@pytest.fixture
def recorder(manager):
    rec = EventRecorder()
    manager.subscribe(None, rec)
    return rec


@pytest.fixture
def service(manager, session_factory):
    return NotificationService(manager, session_factory, default_page_size=20)


@pytest.fixture
def seed(session_factory):
    """Insert notifications directly, newest last, one second apart. Returns their ids newest first."""

    async def _seed(user_id: str, count: int, unread: int = 0, **fields) -> list[str]:
        base = utcnow() - timedelta(seconds=count + 1)
        ids = []
        async with session_factory() as session:
            for i in range(count):
                # the newest `unread` items are unread
                is_unread = i >= count - unread
                model = NotificationModel(
                    id=generate_id(),
                    user_id=user_id,
                    title=fields.get("title", f"Notification {i}"),
                    description=fields.get("description", f"Body {i}"),
                    type=fields.get("type", "account"),
                    status="new" if is_unread else "read",
                    priority=fields.get("priority", "medium"),
                    category=fields.get("category", "account"),
                    is_read=not is_unread,
                    notification_metadata={},
                    created_at=base + timedelta(seconds=i),
                    updated_at=base + timedelta(seconds=i),
                )
                session.add(model)
                ids.append(model.id)
            await session.commit()
        return list(reversed(ids))

    return _seed
