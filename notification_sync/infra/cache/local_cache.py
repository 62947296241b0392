"""Local key-value caches for the last known push token and the device id."""
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class JsonFileCache:
    """Key-value cache persisted as one JSON object on disk. File I/O runs in a worker thread."""

    def __init__(self, path: str):
        self._path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except json.JSONDecodeError as e:
            logger.warning("Local cache %s is corrupt, starting empty: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data))
        tmp.replace(self._path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            await asyncio.to_thread(self._write, data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if data.pop(key, None) is not None:
                await asyncio.to_thread(self._write, data)


class MemoryCache:
    """Process-local cache (tests, ephemeral sessions)."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class RedisCache:
    """Key-value cache in Redis under a key prefix."""

    def __init__(self, redis_url: str, key_prefix: str = "notification_sync:"):
        self._redis_url = redis_url
        self._prefix = key_prefix
        self._redis: Optional[redis.Redis] = None

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        return await self._client().get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._client().set(self._prefix + key, value)

    async def delete(self, key: str) -> None:
        await self._client().delete(self._prefix + key)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
