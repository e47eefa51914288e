"""Redis store for caching and stampede locks.

Handles:
- Cache entries with TTL (full overwrite on every write)
- Set-if-absent with expiry (lock acquisition)
- Compare-and-delete (ownership-checked lock release)

The client is constructed explicitly, connected on startup and closed on
shutdown; components receive the instance instead of reaching for a global.
Connection errors and timeouts surface as StoreUnavailable.
"""

import logging
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from geolookup.services.errors import StoreUnavailable

logger = logging.getLogger("uvicorn.error")

# Delete KEYS[1] only while it still holds ARGV[1].
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class KeyValueStore(Protocol):
    """The store boundary the lookup core depends on."""

    async def get(self, key: str) -> str | None: ...

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: float) -> None: ...

    async def set_if_absent_with_ttl(self, key: str, marker: str, ttl_seconds: float) -> bool: ...

    async def delete(self, key: str) -> None: ...

    async def delete_if_equals(self, key: str, marker: str) -> bool: ...


def _ttl_ms(ttl_seconds: float) -> int:
    return max(1, int(round(ttl_seconds * 1000)))


class RedisStore:
    """Key-value store backed by redis.asyncio."""

    def __init__(self, url: str, client: redis.Redis | None = None):
        self.url = url
        self._redis: redis.Redis | None = client

    async def connect(self) -> None:
        """Open the connection pool and validate connectivity."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        # Validate connectivity early (especially for `rediss://` in production).
        try:
            await self._redis.ping()
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis unreachable: {e}") from e
        logger.info("Redis connected")

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            raise StoreUnavailable("Redis not initialized. Call connect() first.")
        return self._redis

    async def get(self, key: str) -> str | None:
        """Get value from cache.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found.
        """
        try:
            return await self._get_redis().get(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis GET failed: {e}") from e

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: float) -> None:
        """Set value in cache with TTL.

        Args:
            key: Cache key.
            value: Serialized payload.
            ttl_seconds: Time-to-live in seconds.
        """
        try:
            await self._get_redis().set(key, value, px=_ttl_ms(ttl_seconds))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis SET failed: {e}") from e

    async def set_if_absent_with_ttl(self, key: str, marker: str, ttl_seconds: float) -> bool:
        """Atomically set `key` only if it does not exist yet.

        Returns:
            True if this call created the key, False if it already existed.
        """
        try:
            # SET NX (only if not exists) with TTL
            result = await self._get_redis().set(key, marker, nx=True, px=_ttl_ms(ttl_seconds))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis SET NX failed: {e}") from e
        return bool(result)

    async def delete(self, key: str) -> None:
        """Delete a key unconditionally."""
        try:
            await self._get_redis().delete(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis DEL failed: {e}") from e

    async def delete_if_equals(self, key: str, marker: str) -> bool:
        """Delete `key` only while it still holds `marker`.

        Returns:
            True if the key was deleted.
        """
        try:
            deleted = await self._get_redis().eval(_COMPARE_AND_DELETE, 1, key, marker)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"Redis compare-and-delete failed: {e}") from e
        return int(deleted or 0) == 1
