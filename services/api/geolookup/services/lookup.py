"""Cache-aside lookup orchestration.

Flow (per query):
1. Normalize coordinates to the grid, build the versioned cache key
2. Cache HIT -> return
3. Cache MISS -> try to take the stampede lock
   - winner: re-check cache, fetch upstream (planner / directions), fall back
     on failure, write the cache, release the lock
   - loser: poll the cache up to the wait bound; on timeout either raise
     LockWaitExhausted (policy `fail`) or fetch anyway (policy `proceed`)

UpstreamError never reaches the caller. StoreUnavailable always does.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import TypeVar

from geolookup.schemas.geo import (
    DirectionQuery,
    DirectionResult,
    DirectionSource,
    GeoQuery,
    PlaceResult,
)
from geolookup.services.cache_keys import directions_key, places_key
from geolookup.services.errors import LockWaitExhausted, UpstreamError
from geolookup.services.fallback import FallbackChain
from geolookup.services.geo import convert_meters, normalize_coordinate
from geolookup.services.maps_client import GoogleMapsClient
from geolookup.services.planner import UpstreamQueryPlanner
from geolookup.services.ranking import ResultFilterRanker
from geolookup.services.result_store import CachedDistance, ResultStore
from geolookup.services.stampede import StampedeLock
from geolookup.settings import LockWaitPolicy, Settings
from geolookup.stores.redis import KeyValueStore

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")


class LookupService:
    """Place and direction lookups with shared, stampede-safe caching."""

    def __init__(self, settings: Settings, store: KeyValueStore, maps: GoogleMapsClient):
        self.settings = settings
        self.results = ResultStore(store)
        self.lock = StampedeLock(
            store,
            ttl_seconds=settings.lock_ttl_seconds,
            poll_interval_seconds=settings.lock_poll_interval_seconds,
            max_wait_seconds=settings.lock_max_wait_seconds,
        )
        self.planner = UpstreamQueryPlanner(
            maps,
            ResultFilterRanker.from_settings(settings),
            relaxed_radius_floor=settings.relaxed_radius_floor,
            expanded_radius=settings.expanded_radius,
        )
        self.fallback = FallbackChain(
            maps,
            sample_offset=settings.geocode_sample_offset,
            cap=settings.geocode_fallback_cap,
        )
        self.maps = maps

    # ============================================================
    # Places
    # ============================================================

    async def get_nearby_places(self, query: GeoQuery) -> list[PlaceResult]:
        """Nearby places for a query, nearest first.

        Returns:
            At most max_results places. Empty only when the primary search
            and the geocoding fallback both found nothing.
        """
        cell = normalize_coordinate(query.latitude, query.longitude, self.settings.grid_decimal_places)
        cache_key = places_key(query, cell, self.settings.cache_key_version)

        async def read() -> list[PlaceResult] | None:
            return await self.results.get_places(cache_key)

        cached = await read()
        if cached is not None:
            logger.info(f"Places cache HIT key={cache_key}")
            return cached

        logger.info(f"Places cache MISS key={cache_key}")

        async def compute() -> list[PlaceResult]:
            return await self._fetch_places(query, (cell.latitude, cell.longitude), cache_key)

        return await self._resolve(cache_key, read, compute)

    async def _fetch_places(
        self,
        query: GeoQuery,
        origin: tuple[float, float],
        cache_key: str,
    ) -> list[PlaceResult]:
        places: list[PlaceResult] = []
        try:
            outcome = await self.planner.plan(query, origin)
            places = outcome.places
        except UpstreamError as e:
            logger.warning(f"Nearby search failed, engaging fallback: {e}")

        if not places:
            logger.info("Nearby search returned no usable places, falling back to geocoding")
            places = await self.fallback.reconstruct_from_geocoding(query.latitude, query.longitude)

        ttl = self.settings.places_ttl_seconds if places else self.settings.empty_places_ttl_seconds
        await self.results.set_places(cache_key, places, ttl)
        return places

    # ============================================================
    # Directions
    # ============================================================

    async def get_directions_distance(self, query: DirectionQuery) -> DirectionResult:
        """Route distance between two points in the requested unit.

        Never fails for upstream reasons: the great-circle estimate is the
        terminal fallback.
        """
        decimals = self.settings.grid_decimal_places
        origin = normalize_coordinate(query.origin_latitude, query.origin_longitude, decimals)
        destination = normalize_coordinate(query.dest_latitude, query.dest_longitude, decimals)
        cache_key = directions_key(origin, destination, self.settings.cache_key_version)

        async def read() -> CachedDistance | None:
            return await self.results.get_distance(cache_key)

        cached = await read()
        if cached is not None:
            logger.info(f"Directions cache HIT key={cache_key}")
            return self._direction_result(cached.meters, query, DirectionSource.CACHE)

        logger.info(f"Directions cache MISS key={cache_key}")

        async def compute() -> CachedDistance:
            return await self._fetch_distance(
                (origin.latitude, origin.longitude),
                (destination.latitude, destination.longitude),
                query,
                cache_key,
            )

        resolved = await self._resolve(cache_key, read, compute)
        return self._direction_result(resolved.meters, query, resolved.source)

    async def _fetch_distance(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
        query: DirectionQuery,
        cache_key: str,
    ) -> CachedDistance:
        try:
            meters = await self.maps.directions_distance(origin, destination)
            source = DirectionSource.PROVIDER
        except UpstreamError as e:
            logger.warning(f"Directions failed, using great-circle estimate: {e}")
            meters = self.fallback.estimate_distance_meters(
                (query.origin_latitude, query.origin_longitude),
                (query.dest_latitude, query.dest_longitude),
            )
            source = DirectionSource.ESTIMATED

        await self.results.set_distance(cache_key, meters, source, self.settings.directions_ttl_seconds)
        return CachedDistance(meters=meters, source=source)

    def _direction_result(
        self,
        meters: float,
        query: DirectionQuery,
        source: DirectionSource,
    ) -> DirectionResult:
        return DirectionResult(
            distance=convert_meters(meters, query.unit),
            unit=query.unit,
            source=source,
        )

    # ============================================================
    # Stampede coordination
    # ============================================================

    async def _resolve(
        self,
        cache_key: str,
        read: Callable[[], Awaitable[T | None]],
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        """Run `compute` at most once per key across callers, best-effort."""
        token = await self.lock.try_acquire(cache_key)

        if token is None:
            logger.info(f"Lock held, waiting for cache fill key={cache_key}")
            value = await self.lock.wait_for(read)
            if value is not None:
                logger.info(f"Cache HIT after wait key={cache_key}")
                return value

            if self.settings.lock_wait_policy is LockWaitPolicy.FAIL:
                logger.warning(f"Lock wait exhausted key={cache_key}")
                raise LockWaitExhausted(cache_key, self.lock.max_wait_seconds)

            logger.warning(f"Lock wait timed out, proceeding anyway key={cache_key}")
            # The holder may have crashed and its lock expired.
            token = await self.lock.try_acquire(cache_key)
        else:
            logger.info(f"Lock acquired key={cache_key}")

        try:
            if token is not None:
                # Another holder may have filled the cache between our miss and our acquire.
                value = await read()
                if value is not None:
                    logger.info(f"Cache HIT after lock acquire key={cache_key}")
                    return value
            return await compute()
        finally:
            if token is not None:
                await self.lock.release(token)
