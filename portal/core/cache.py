"""Key/value TTL cache with an optional Redis backend.

When ``CACHE_URL`` is set the cache is shared through Redis. Otherwise an
in-process dictionary is used, which is enough for a single worker.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any

import redis

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value with expiration."""

    value: Any
    expires_at: float

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return time.time() > self.expires_at


class MemoryCache:
    """Thread-safe in-process cache with TTL and periodic cleanup."""

    backend = "memory"

    def __init__(self, default_ttl: int = 300, max_size: int = 1000, cleanup_interval_seconds: int = 600) -> None:
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._cache: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Cache cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Cache cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            count = self.cleanup()
            if count > 0:
                logger.debug("Cache cleaned up %d expired entries", count)

    def get(self, key: str) -> Any | None:
        """Get a cached value, or None if missing or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._cache[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Cache a value for ``ttl`` seconds."""
        expires_at = time.time() + (ttl or self.default_ttl)
        with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_size:
                self._evict_oldest()
            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

    def _evict_oldest(self) -> None:
        """Evict the entry closest to expiry. Must be called with lock held."""
        oldest = min(self._cache.items(), key=lambda item: item[1].expires_at)[0]
        del self._cache[oldest]

    def cleanup(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            expired_keys = [k for k, v in self._cache.items() if v.is_expired()]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    def get_stats(self) -> dict:
        """Get cache statistics for monitoring."""
        with self._lock:
            return {"backend": self.backend, "entries": len(self._cache)}


class RedisCache:
    """Redis-backed cache storing JSON-encoded values."""

    backend = "redis"

    def __init__(self, url: str, default_ttl: int = 300, prefix: str = "portal:") -> None:
        self.default_ttl = default_ttl
        self.prefix = prefix
        self._client = redis.Redis.from_url(url, decode_responses=True)
        logger.info("Redis cache configured")

    async def start_cleanup_task(self) -> None:
        """Redis expires keys itself."""

    async def stop_cleanup_task(self) -> None:
        """Close the connection pool."""
        self._client.close()

    def get(self, key: str) -> Any | None:
        """Get a cached value. Connection errors are treated as a miss."""
        try:
            raw = self._client.get(self.prefix + key)
        except redis.RedisError as e:
            logger.warning("Redis GET failed for %s: %s", key, str(e))
            return None
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Cache a JSON-serializable value for ``ttl`` seconds."""
        try:
            self._client.set(self.prefix + key, json.dumps(value, default=str), ex=ttl or self.default_ttl)
        except redis.RedisError as e:
            logger.warning("Redis SET failed for %s: %s", key, str(e))

    def cleanup(self) -> int:
        """Redis handles expiry; nothing to sweep."""
        return 0

    def get_stats(self) -> dict:
        """Get cache statistics for monitoring."""
        return {"backend": self.backend}


Cache = MemoryCache | RedisCache

_cache: Cache | None = None


def create_cache() -> Cache:
    """Build the cache selected by settings."""
    from portal.core.config import get_settings

    settings = get_settings()
    if settings.cache_url:
        return RedisCache(settings.cache_url, default_ttl=settings.cache_ttl_seconds)
    logger.info("CACHE_URL not set, using in-process cache")
    return MemoryCache(default_ttl=settings.cache_ttl_seconds)


def get_cache() -> Cache:
    """Get or create the global cache instance."""
    global _cache
    if _cache is None:
        _cache = create_cache()
    return _cache


async def init_cache() -> Cache:
    """Initialize the cache with its cleanup task. Call at app startup."""
    cache = get_cache()
    await cache.start_cleanup_task()
    return cache


async def shutdown_cache() -> None:
    """Stop the cache cleanup task. Call at app shutdown."""
    global _cache
    if _cache:
        await _cache.stop_cleanup_task()
        _cache = None
