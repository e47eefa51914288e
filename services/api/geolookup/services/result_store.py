"""Serialized lookup results over the shared key-value store.

Places are cached as a JSON array of PlaceResult (by alias); route distances
as {"meters": float, "source": "provider" | "estimated"}. Entries are only
ever fully overwritten. An entry that no longer parses is treated as a miss.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging

from pydantic import TypeAdapter, ValidationError

from geolookup.schemas.geo import DirectionSource, PlaceResult
from geolookup.stores.redis import KeyValueStore

logger = logging.getLogger("uvicorn.error")

_PLACES_ADAPTER = TypeAdapter(list[PlaceResult])


@dataclass(frozen=True)
class CachedDistance:
    meters: float
    source: DirectionSource


class ResultStore:
    """Get/set of lookup payloads with per-class TTLs."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_places(self, key: str) -> list[PlaceResult] | None:
        """Get cached places.

        Returns:
            Place list (possibly empty) or None on a miss.
        """
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            return _PLACES_ADAPTER.validate_json(raw)
        except ValidationError:
            logger.warning(f"Unreadable places entry ignored: key={key}")
            return None

    async def set_places(self, key: str, places: list[PlaceResult], ttl_seconds: int) -> None:
        payload = _PLACES_ADAPTER.dump_json(places, by_alias=True).decode("utf-8")
        await self.store.set_with_ttl(key, payload, ttl_seconds)
        logger.info(f"Cached {len(places)} places for {key} (ttl={ttl_seconds}s)")

    async def get_distance(self, key: str) -> CachedDistance | None:
        """Get a cached route distance, or None on a miss."""
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
            meters = float(payload["meters"])
            source = DirectionSource(payload["source"])
        except (TypeError, ValueError, KeyError):
            logger.warning(f"Unreadable directions entry ignored: key={key}")
            return None
        if meters < 0:
            return None
        return CachedDistance(meters=meters, source=source)

    async def set_distance(
        self,
        key: str,
        meters: float,
        source: DirectionSource,
        ttl_seconds: int,
    ) -> None:
        payload = json.dumps({"meters": meters, "source": source.value})
        await self.store.set_with_ttl(key, payload, ttl_seconds)
        logger.info(f"Cached {source.value} distance for {key} (ttl={ttl_seconds}s)")
