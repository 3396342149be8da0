"""
Cache Infrastructure
====================

Cache-aside helpers used by the ticket manager.

Values are serialised to JSON through a pydantic ``TypeAdapter`` so the same
payload works for the in-process backend and for Redis.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar
from urllib.parse import quote

from pydantic import TypeAdapter
from redis import asyncio as aioredis

from ticket_manager.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ICacheManager(ABC):
    """Interface for cache backends."""

    def __init__(self, default_ttl: int = 300):
        self.default_ttl = default_ttl

    @abstractmethod
    async def get_raw(self, key: str) -> Optional[bytes]:
        """Get the serialised value stored under key."""
        pass

    @abstractmethod
    async def set_raw(self, key: str, payload: bytes, ttl: Optional[int] = None) -> None:
        """Store a serialised value."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove one key."""
        pass

    @abstractmethod
    async def remove_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix; returns the number removed."""
        pass

    async def close(self) -> None:
        pass

    async def get(self, key: str, adapter: TypeAdapter) -> Optional[Any]:
        payload = await self.get_raw(key)
        if payload is None:
            return None
        return adapter.validate_json(payload)

    async def set(self, key: str, value: Any, adapter: TypeAdapter, ttl: Optional[int] = None) -> None:
        await self.set_raw(key, adapter.dump_json(value), ttl)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        adapter: TypeAdapter,
        ttl: Optional[int] = None,
    ) -> T:
        """
        Return the cached value for key, computing and storing it on a miss.

        ``None`` results are not cached so a missing ticket is looked up again
        on the next call.
        """
        cached = await self.get(key, adapter)
        if cached is not None:
            logger.debug("Cache hit", extra={"cache_key": key})
            return cached

        value = await factory()
        if value is not None:
            await self.set(key, value, adapter, ttl)
        return value


class InMemoryCacheManager(ICacheManager):
    """Process-local cache with per-entry expiry."""

    def __init__(self, default_ttl: int = 300):
        super().__init__(default_ttl)
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = asyncio.Lock()

    async def get_raw(self, key: str) -> Optional[bytes]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return payload

    async def set_raw(self, key: str, payload: bytes, ttl: Optional[int] = None) -> None:
        async with self._lock:
            self._entries[key] = (payload, time.monotonic() + (ttl or self.default_ttl))

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def remove_by_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheManager(ICacheManager):
    """Redis-backed cache using ``redis.asyncio``."""

    def __init__(self, client, default_ttl: int = 300):
        super().__init__(default_ttl)
        self._client = client

    @classmethod
    def from_url(cls, url: str, default_ttl: int = 300) -> "RedisCacheManager":
        return cls(aioredis.from_url(url), default_ttl)

    async def get_raw(self, key: str) -> Optional[bytes]:
        return await self._client.get(key)

    async def set_raw(self, key: str, payload: bytes, ttl: Optional[int] = None) -> None:
        await self._client.setex(key, ttl or self.default_ttl, payload)

    async def remove(self, key: str) -> None:
        await self._client.delete(key)

    async def remove_by_prefix(self, prefix: str) -> int:
        keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
        if not keys:
            return 0
        return await self._client.delete(*keys)

    async def close(self) -> None:
        await self._client.aclose()


class CacheKeyBuilder:
    """Builds namespaced cache keys such as ``TicketService:ticket:42``."""

    def __init__(self, namespace: str = "TicketService"):
        self.namespace = namespace

    def build_key(self, *parts: Any) -> str:
        return ":".join([self.namespace, *(self._format(p) for p in parts)])

    def prefix(self, *parts: Any) -> str:
        """Key prefix matching every key built from ``parts`` plus more parts."""
        return self.build_key(*parts) + ":"

    @staticmethod
    def _format(part: Any) -> str:
        if part is None:
            return "-"
        if isinstance(part, bool):
            return "1" if part else "0"
        value = getattr(part, "value", part)
        # percent-encoded: never contains ":" and never equals the None marker
        encoded = quote(str(value).strip().lower(), safe="")
        return "%2D" if encoded == "-" else encoded


def build_cache_manager(settings) -> ICacheManager:
    """Create the cache backend selected in settings."""
    if settings.cache_backend == "redis":
        logger.info("Using Redis cache", extra={"redis_url": settings.redis_url})
        return RedisCacheManager.from_url(settings.redis_url, settings.cache_ttl_seconds)
    return InMemoryCacheManager(settings.cache_ttl_seconds)


__all__ = [
    "ICacheManager",
    "InMemoryCacheManager",
    "RedisCacheManager",
    "CacheKeyBuilder",
    "build_cache_manager",
]
