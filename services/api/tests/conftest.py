"""Shared fixtures: in-memory store, stub provider client, fast settings."""

import asyncio
import time
from typing import Any, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from geolookup.main import create_app
from geolookup.services.errors import UpstreamError
from geolookup.services.lookup import LookupService
from geolookup.services.maps_client import GeocodeHit, NearbyCandidate
from geolookup.settings import Settings


class InMemoryStore:
    """Single-process stand-in for the Redis store with the same semantics."""

    def __init__(self) -> None:
        self.data: dict[str, tuple[str, float]] = {}
        self.ttls: dict[str, float] = {}

    def _live(self, key: str) -> str | None:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self.data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: float) -> None:
        self.data[key] = (value, time.monotonic() + ttl_seconds)
        self.ttls[key] = ttl_seconds

    async def set_if_absent_with_ttl(self, key: str, marker: str, ttl_seconds: float) -> bool:
        if self._live(key) is not None:
            return False
        self.data[key] = (marker, time.monotonic() + ttl_seconds)
        return True

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def delete_if_equals(self, key: str, marker: str) -> bool:
        if self._live(key) == marker:
            del self.data[key]
            return True
        return False


def _no_results(*args: Any) -> list:
    return []


def _route_unavailable(*args: Any) -> float:
    raise UpstreamError("No routes returned")


class StubMapsClient:
    """Records calls; each handler returns a value or raises (e.g. UpstreamError)."""

    def __init__(
        self,
        *,
        nearby: Callable[..., list[NearbyCandidate]] = _no_results,
        geocode: Callable[..., list[GeocodeHit]] = _no_results,
        directions: Callable[..., float] = _route_unavailable,
        delay: float = 0.0,
    ) -> None:
        self.nearby = nearby
        self.geocode = geocode
        self.directions = directions
        self.delay = delay
        self.nearby_calls: list[tuple[float, float, int, str | None]] = []
        self.geocode_calls: list[tuple[float, float]] = []
        self.directions_calls: list[tuple[tuple[float, float], tuple[float, float]]] = []

    async def nearby_search(self, latitude, longitude, radius, category=None):
        self.nearby_calls.append((latitude, longitude, radius, category))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.nearby(latitude, longitude, radius, category)

    async def reverse_geocode(self, latitude, longitude):
        self.geocode_calls.append((latitude, longitude))
        return self.geocode(latitude, longitude)

    async def directions_distance(self, origin, destination):
        self.directions_calls.append((origin, destination))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.directions(origin, destination)

    async def close(self) -> None:
        return None


def make_candidate(
    name: str,
    lat: float,
    lng: float,
    *,
    types: list[str] | None = None,
    rating: float | None = None,
    place_id: str | None = None,
    vicinity: str = "",
) -> NearbyCandidate:
    return NearbyCandidate(
        place_id=place_id or f"pid-{name.lower().replace(' ', '-')}",
        name=name,
        vicinity=vicinity,
        latitude=lat,
        longitude=lng,
        rating=rating,
        types=types if types is not None else ["restaurant", "food"],
    )


def fast_settings(**overrides: Any) -> Settings:
    """Settings with short lock timings so wait paths finish quickly."""
    values: dict[str, Any] = {
        "upstream_timeout_seconds": 5.0,
        "lock_ttl_seconds": 2.0,
        "lock_poll_interval_seconds": 0.01,
        "lock_max_wait_seconds": 1.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return fast_settings()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def maps() -> StubMapsClient:
    return StubMapsClient()


@pytest.fixture
def service(settings: Settings, store: InMemoryStore, maps: StubMapsClient) -> LookupService:
    return LookupService(settings, store, maps)


@pytest.fixture
async def client(settings: Settings, service: LookupService):
    """Create test client wired to the in-memory store and stub provider."""
    app = create_app(settings)
    app.state.lookup_service = service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
