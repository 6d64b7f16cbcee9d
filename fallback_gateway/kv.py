"""Durable key-value store used by the rate limiter.

The gateway only needs ``get``, ``put`` with a TTL, and a reachability
check. Redis backs it in deployment; the in-process store serves single
process development and tests.
"""

import asyncio
import time
from typing import Dict, Optional, Protocol, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError


class KeyValueStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisKeyValueStore:
    """Key-value store backed by a Redis server."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client = aioredis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise KeyValueStoreError("get {} failed: {}".format(key, exc)) from exc

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise KeyValueStoreError("put {} failed: {}".format(key, exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


class MemoryKeyValueStore:
    """In-process key-value store with per-key expiry."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._data: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= time.time():
                del self._data[key]
                return None
            return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (time.time() + ttl_seconds, value)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()


def build_store(url: str) -> KeyValueStore:
    """Create a store from a URL (``redis://``, ``rediss://`` or ``memory://``)."""
    if url.startswith("memory://"):
        return MemoryKeyValueStore()
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisKeyValueStore(url)
    raise ValueError("Unsupported key-value store URL: {}".format(url))
