"""Best-effort stampede lock over the shared store.

Acquire is a single SET NX with expiry; the winner fetches upstream and fills
the cache while everyone else polls the cache at a fixed interval up to a
bound. The lock is advisory: the store does not stop a non-holder from writing
the guarded cache entry.

Release deletes the lock only while it still holds the caller's token, so a
fetcher whose lock already expired cannot free a newer holder's lock. The lock
is never renewed; a fetch that outlives the TTL may overlap a second fetch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
import secrets
from typing import TypeVar

from geolookup.services.cache_keys import lock_key
from geolookup.stores.redis import KeyValueStore

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


@dataclass(frozen=True)
class LockToken:
    key: str
    marker: str
    ttl_seconds: float


class StampedeLock:
    """Per-cache-key mutual exclusion for upstream fetches."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: float,
        poll_interval_seconds: float,
        max_wait_seconds: float,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.max_wait_seconds = max_wait_seconds

    async def try_acquire(self, cache_key: str) -> LockToken | None:
        """Try to become the exclusive fetcher for `cache_key`.

        Returns:
            LockToken if acquired, None if another caller holds the lock.
        """
        token = LockToken(
            key=lock_key(cache_key),
            marker=secrets.token_hex(16),
            ttl_seconds=self.ttl_seconds,
        )
        acquired = await self.store.set_if_absent_with_ttl(token.key, token.marker, token.ttl_seconds)
        return token if acquired else None

    async def release(self, token: LockToken) -> bool:
        """Release a lock we hold.

        Returns:
            False if the lock had already expired or passed to another holder.
        """
        released = await self.store.delete_if_equals(token.key, token.marker)
        if not released:
            logger.warning(f"Lock {token.key} expired before release (fetch outlived lock TTL)")
        return released

    async def wait_for(self, read: Callable[[], Awaitable[T | None]]) -> T | None:
        """Poll `read` until it yields a value or the wait bound elapses.

        Returns:
            The first non-None value read, or None on timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_wait_seconds
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(self.poll_interval_seconds, remaining))
            value = await read()
            if value is not None:
                return value
