"""Owns the device's push token: local cache first, then the remote per-device record."""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_sync.domain.common.types import generate_device_id
from notification_sync.domain.notifications.models import PushToken
from notification_sync.domain.notifications.repositories import KeyValueCache
from notification_sync.infra.db.repositories.push_token_repo import PushTokenRepository

logger = logging.getLogger(__name__)

TOKEN_KEY = "fcm_token"
DEVICE_ID_KEY = "device_id"


class TokenStore:
    def __init__(self, cache: KeyValueCache, session_factory: async_sessionmaker[AsyncSession]):
        self._cache = cache
        self._session_factory = session_factory
        self._user_id: Optional[str] = None
        self._current: Optional[PushToken] = None
        self._device_id: Optional[str] = None
        # (user_id, token, device_id) of the last fully persisted token
        self._persisted: Optional[tuple] = None

    def bind_user(self, user_id: Optional[str]) -> None:
        """Set the owner of the remote token record."""
        self._user_id = user_id

    async def device_id(self) -> str:
        """Stable per-device identifier, generated once and kept in the local cache."""
        if self._device_id:
            return self._device_id
        stored = await self._cache.get(DEVICE_ID_KEY)
        if not stored:
            stored = generate_device_id()
            await self._cache.set(DEVICE_ID_KEY, stored)
        self._device_id = stored
        return stored

    async def get_current(self) -> Optional[PushToken]:
        """Last persisted token, from memory or the local cache."""
        if self._current is not None:
            return self._current
        raw = await self._cache.get(TOKEN_KEY)
        if not raw:
            return None
        try:
            self._current = PushToken.model_validate_json(raw)
        except ValueError:
            # older caches stored the bare token string
            self._current = PushToken(token=raw, platform="unknown", device_id=await self.device_id())
        return self._current

    async def persist(self, token: PushToken) -> bool:
        """Write the local cache, then the remote record.

        Returns False when the remote write failed; the local value is kept
        either way. Persisting the current token again is a no-op.
        """
        key = (self._user_id, token.token, token.device_id)
        if self._persisted == key:
            return True
        await self._cache.set(TOKEN_KEY, token.model_dump_json())
        self._current = token
        if self._user_id is None:
            logger.debug("No user bound; push token cached locally only")
            self._persisted = key
            return True
        try:
            async with self._session_factory() as session:
                await PushTokenRepository(session).upsert(self._user_id, token)
        except SQLAlchemyError as e:
            logger.warning("Remote push token write failed for user %s: %s", self._user_id, e)
            return False
        self._persisted = key
        logger.info("Push token stored for user %s device %s", self._user_id, token.device_id)
        return True

    async def clear(self) -> None:
        """Drop the local token and deactivate the remote record for this device."""
        current = await self.get_current()
        await self._cache.delete(TOKEN_KEY)
        self._current = None
        self._persisted = None
        if self._user_id is None or current is None:
            return
        try:
            async with self._session_factory() as session:
                await PushTokenRepository(session).deactivate(self._user_id, current.device_id)
        except SQLAlchemyError as e:
            logger.warning("Remote push token deactivate failed for user %s: %s", self._user_id, e)

