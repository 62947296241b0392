"""Notification repository: CRUD plus live queries over one user's collection."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_sync.domain.common.errors import NotFoundError, RemoteUnavailableError
from notification_sync.domain.common.types import generate_id, utcnow
from notification_sync.domain.notifications.models import (
    Notification,
    NotificationDraft,
    NotificationFilter,
    NotificationStatus,
    next_status,
)
from notification_sync.domain.notifications.repositories import ChangeFeed, Unsubscribe
from notification_sync.infra.db.models.notification import NotificationModel

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[Notification]], None]
ErrorCallback = Callable[[BaseException], None]


def _to_domain(model: NotificationModel) -> Notification:
    return Notification(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        description=model.description or "",
        type=model.type,
        status=model.status,
        priority=model.priority,
        category=model.category or "",
        is_read=model.is_read,
        created_at=model.created_at,
        updated_at=model.updated_at,
        action_text=model.action_text,
        action_url=model.action_url,
        image_url=model.image_url,
        metadata=model.notification_metadata or {},
    )


@dataclass
class LiveQuery:
    """One live listener bound to (user_id, filter)."""
    handle: str
    user_id: str
    filter: NotificationFilter
    callback: SnapshotCallback
    on_error: Optional[ErrorCallback]
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    worker: Optional[asyncio.Task] = None
    stop_listening: Optional[Unsubscribe] = None


class NotificationRepository:
    """Notification repository.

    Each mutation commits and then publishes one change on the user's feed.
    Every live query for that user re-runs once per change, in order, on its
    own worker task; there is no coalescing and no optimistic local state.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        change_feed: ChangeFeed,
        max_page_size: int = 50,
    ):
        self._session_factory = session_factory
        self._feed = change_feed
        self.max_page_size = max_page_size
        self._live: dict[str, LiveQuery] = {}

    # ---- reads ----

    def _query(self, user_id: str, filter: NotificationFilter):
        limit = min(filter.limit or self.max_page_size, self.max_page_size)
        q = (
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc())
            .limit(limit)
        )
        if filter.types:
            q = q.where(NotificationModel.type.in_([t.value for t in filter.types]))
        if filter.statuses:
            q = q.where(NotificationModel.status.in_([s.value for s in filter.statuses]))
        if filter.priorities:
            q = q.where(NotificationModel.priority.in_([p.value for p in filter.priorities]))
        if filter.is_read is not None:
            q = q.where(NotificationModel.is_read.is_(filter.is_read))
        return q

    async def get(self, user_id: str, filter: Optional[NotificationFilter] = None) -> list[Notification]:
        """One-shot fetch: store-side filters first, then date range and search refinement."""
        filter = filter or NotificationFilter()
        try:
            async with self._session_factory() as session:
                result = await session.execute(self._query(user_id, filter))
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("get notifications", e) from e
        return filter.refine(_to_domain(r) for r in rows)

    async def get_one(self, user_id: str, notification_id: str) -> Optional[Notification]:
        """Get a notification by ID if it belongs to the user."""
        try:
            async with self._session_factory() as session:
                model = await self._load(session, user_id, notification_id)
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("get notification", e) from e
        return _to_domain(model) if model is not None else None

    async def count_unread(self, user_id: str) -> int:
        """Count unread notifications for a user."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(NotificationModel).where(
                        NotificationModel.user_id == user_id,
                        NotificationModel.is_read.is_(False),
                    )
                )
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("count unread", e) from e

    @staticmethod
    async def _load(session: AsyncSession, user_id: str, notification_id: str) -> Optional[NotificationModel]:
        result = await session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    # ---- mutations ----

    async def _publish(self, user_id: str, change_type: str, **extra: Any) -> None:
        await self._feed.publish(user_id, {"type": change_type, "user_id": user_id, **extra})

    async def create(self, user_id: str, draft: NotificationDraft) -> Notification:
        """Create a notification. The store assigns id and timestamps."""
        now = utcnow()
        model = NotificationModel(
            id=generate_id(),
            user_id=user_id,
            title=draft.title,
            description=draft.description,
            type=draft.type.value,
            status=draft.status.value,
            priority=draft.priority.value,
            category=draft.category,
            is_read=draft.status is NotificationStatus.READ,
            action_text=draft.action_text,
            action_url=draft.action_url,
            image_url=draft.image_url,
            notification_metadata=dict(draft.metadata),
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.commit()
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("create notification", e) from e
        await self._publish(user_id, "added", id=model.id)
        return _to_domain(model)

    async def _transition(
        self, user_id: str, notification_id: str, target: NotificationStatus, *, reset: bool = False
    ) -> bool:
        """Move a record's status. Returns False (and publishes nothing) when nothing changed."""
        try:
            async with self._session_factory() as session:
                model = await self._load(session, user_id, notification_id)
                if model is None:
                    raise NotFoundError("Notification", notification_id)
                current = NotificationStatus(model.status)
                new_status = next_status(current, target, reset=reset)
                if new_status is current:
                    return False
                model.status = new_status.value
                model.is_read = new_status is NotificationStatus.READ
                model.updated_at = utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("update notification", e) from e
        await self._publish(user_id, "modified", id=notification_id)
        return True

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        """Mark as read. An already-read record is left untouched."""
        return await self._transition(user_id, notification_id, NotificationStatus.READ)

    async def mark_unread(self, user_id: str, notification_id: str) -> bool:
        """Reset to new."""
        return await self._transition(user_id, notification_id, NotificationStatus.NEW, reset=True)

    async def delete(self, user_id: str, notification_id: str) -> None:
        """Hard delete."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(NotificationModel).where(
                        NotificationModel.id == notification_id,
                        NotificationModel.user_id == user_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("delete notification", e) from e
        if result.rowcount == 0:
            raise NotFoundError("Notification", notification_id)
        await self._publish(user_id, "removed", id=notification_id)

    async def mark_multiple_read(self, user_id: str, notification_ids: list[str]) -> int:
        """Mark several notifications read in one commit. Returns the number changed."""
        if not notification_ids:
            return 0
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(NotificationModel)
                    .where(
                        NotificationModel.user_id == user_id,
                        NotificationModel.id.in_(notification_ids),
                        NotificationModel.is_read.is_(False),
                    )
                    .values(status=NotificationStatus.READ.value, is_read=True, updated_at=utcnow())
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise RemoteUnavailableError("mark multiple read", e) from e
        changed = result.rowcount or 0
        if changed:
            await self._publish(user_id, "modified", ids=list(notification_ids))
        return changed

    # ---- live queries ----

    async def subscribe(
        self,
        user_id: str,
        filter: Optional[NotificationFilter],
        callback: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> str:
        """Start a live query. The first snapshot is delivered before this returns."""
        live = LiveQuery(
            handle=generate_id(),
            user_id=user_id,
            filter=filter or NotificationFilter(),
            callback=callback,
            on_error=on_error,
        )
        # listen before the first read so no change between the two is lost
        live.stop_listening = await self._feed.listen(user_id, live.queue.put_nowait)
        try:
            live.callback(await self.get(user_id, live.filter))
        except Exception:
            live.stop_listening()
            raise
        live.worker = asyncio.create_task(self._run(live))
        self._live[live.handle] = live
        logger.debug("Live query %s started for user %s", live.handle, user_id)
        return live.handle

    async def _run(self, live: LiveQuery) -> None:
        while True:
            change = await live.queue.get()
            try:
                snapshot = await self.get(live.user_id, live.filter)
                live.callback(snapshot)
            except Exception as e:
                logger.warning("Live query %s failed on %s: %s", live.handle, change.get("type"), e)
                if live.on_error is not None:
                    live.on_error(e)
            finally:
                live.queue.task_done()

    def refresh(self, handle: str) -> bool:
        """Queue an on-demand re-query. Returns False for an unknown handle."""
        live = self._live.get(handle)
        if live is None:
            return False
        live.queue.put_nowait({"type": "refresh", "user_id": live.user_id})
        return True

    def unsubscribe(self, handle: Optional[str]) -> None:
        """Stop a live query. Unknown or already-released handles are ignored."""
        live = self._live.pop(handle, None) if handle else None
        if live is None:
            return
        if live.stop_listening is not None:
            live.stop_listening()
        if live.worker is not None and not live.worker.done():
            live.worker.cancel()
        logger.debug("Live query %s stopped", handle)

    def is_live(self, handle: Optional[str]) -> bool:
        return handle is not None and handle in self._live

    @property
    def live_count(self) -> int:
        return len(self._live)

    async def wait_until_idle(self) -> None:
        """Wait until every queued change has been delivered to its live query."""
        await asyncio.gather(*(live.queue.join() for live in list(self._live.values())))

    async def close(self) -> None:
        workers = [live.worker for live in self._live.values() if live.worker is not None]
        for handle in list(self._live):
            self.unsubscribe(handle)
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
