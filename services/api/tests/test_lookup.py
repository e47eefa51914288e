"""End-to-end tests for cache-aside lookups with the stampede lock."""

import asyncio
import json

import pytest

from conftest import InMemoryStore, StubMapsClient, fast_settings, make_candidate

from geolookup.schemas import DirectionQuery, DirectionSource, DistanceUnit, GeoQuery, QueryMode
from geolookup.services.errors import LockWaitExhausted, StoreUnavailable, UpstreamError
from geolookup.services.geo import great_circle_meters
from geolookup.services.lookup import LookupService
from geolookup.services.maps_client import GeocodeHit
from geolookup.settings import LockWaitPolicy

ATLANTA = GeoQuery(latitude=33.749, longitude=-84.388, radius=200, category="restaurant")
PLACES_KEY = "places:v2:33.749:-84.388:200:restaurant|food_and_retail"


def three_restaurants(lat, lng, radius, category):
    return [
        make_candidate("Far Grill", 33.7560, -84.3880, rating=4.1),
        make_candidate("Near Diner", 33.7492, -84.3881),
        make_candidate("Mid Pho", 33.7520, -84.3880, rating=3.9, vicinity="12 Edgewood Ave"),
    ]


def _failing(*args):
    raise UpstreamError("status=UNKNOWN_ERROR")


@pytest.mark.asyncio
async def test_scenario_three_restaurants_sorted_by_distance() -> None:
    maps = StubMapsClient(nearby=three_restaurants)
    service = LookupService(fast_settings(), InMemoryStore(), maps)

    places = await service.get_nearby_places(ATLANTA)

    assert [p.name for p in places] == ["Near Diner", "Mid Pho", "Far Grill"]
    assert len(places) <= 10
    dumped = [p.model_dump(by_alias=True) for p in places]
    for item in dumped:
        assert {"name", "address", "lat", "lng", "rating"} <= set(item)
        assert "distance" not in item
    assert dumped[0]["rating"] is None
    assert dumped[1]["rating"] == 3.9
    assert maps.nearby_calls == [(33.749, -84.388, 200, "restaurant")]


@pytest.mark.asyncio
async def test_repeat_query_is_served_from_cache() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants)
    service = LookupService(fast_settings(), store, maps)

    first = await service.get_nearby_places(ATLANTA)
    payload = await store.get(PLACES_KEY)
    # GPS jitter inside the same grid cell.
    second = await service.get_nearby_places(
        GeoQuery(latitude=33.7494, longitude=-84.3876, radius=200, category="restaurant")
    )

    assert second == first
    assert await store.get(PLACES_KEY) == payload
    assert len(maps.nearby_calls) == 1
    assert store.ttls[PLACES_KEY] == 21600


@pytest.mark.asyncio
async def test_concurrent_cold_queries_share_one_fetch() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants, delay=0.05)
    service = LookupService(fast_settings(), store, maps)

    results = await asyncio.gather(*(service.get_nearby_places(ATLANTA) for _ in range(25)))

    assert len(maps.nearby_calls) == 1
    assert all(r == results[0] for r in results)
    # Winner released its lock.
    assert await store.get(f"lock:{PLACES_KEY}") is None


@pytest.mark.asyncio
async def test_fail_policy_raises_when_wait_bound_elapses() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants)
    settings = fast_settings(lock_wait_policy=LockWaitPolicy.FAIL, lock_max_wait_seconds=0.05)
    service = LookupService(settings, store, maps)
    # A holder that never fills the cache.
    await store.set_if_absent_with_ttl(f"lock:{PLACES_KEY}", "stuck-holder", 2.0)

    with pytest.raises(LockWaitExhausted):
        await service.get_nearby_places(ATLANTA)
    assert maps.nearby_calls == []


@pytest.mark.asyncio
async def test_proceed_policy_fetches_after_wait_bound() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants)
    settings = fast_settings(lock_wait_policy=LockWaitPolicy.PROCEED, lock_max_wait_seconds=0.05)
    service = LookupService(settings, store, maps)
    await store.set_if_absent_with_ttl(f"lock:{PLACES_KEY}", "stuck-holder", 2.0)

    places = await service.get_nearby_places(ATLANTA)

    assert [p.name for p in places] == ["Near Diner", "Mid Pho", "Far Grill"]
    assert len(maps.nearby_calls) == 1
    # The redundant fetcher never held the lock, so it must not release it.
    assert await store.get(f"lock:{PLACES_KEY}") == "stuck-holder"
    assert await store.get(PLACES_KEY) is not None


@pytest.mark.asyncio
async def test_proceed_policy_takes_over_expired_lock() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants)
    settings = fast_settings(lock_max_wait_seconds=0.1)
    service = LookupService(settings, store, maps)
    # Crashed holder whose lock expires during the wait.
    await store.set_if_absent_with_ttl(f"lock:{PLACES_KEY}", "crashed-holder", 0.03)

    await service.get_nearby_places(ATLANTA)

    assert len(maps.nearby_calls) == 1
    assert await store.get(f"lock:{PLACES_KEY}") is None


@pytest.mark.asyncio
async def test_waiter_resolves_from_cache_filled_by_holder() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(nearby=three_restaurants)
    service = LookupService(fast_settings(), store, maps)
    await store.set_if_absent_with_ttl(f"lock:{PLACES_KEY}", "other-worker", 2.0)

    async def other_worker_fills() -> None:
        await asyncio.sleep(0.05)
        await store.set_with_ttl(PLACES_KEY, json.dumps([]), 60)

    filler = asyncio.create_task(other_worker_fills())
    places = await service.get_nearby_places(ATLANTA)
    await filler

    assert places == []
    assert maps.nearby_calls == []


@pytest.mark.asyncio
async def test_retailer_only_with_food_results_uses_geocoding_fallback() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(
        nearby=three_restaurants,
        geocode=lambda lat, lng: [GeocodeHit(place_id="g1", formatted_address="55 Trinity Ave SW")],
    )
    service = LookupService(fast_settings(), store, maps)
    query = GeoQuery(latitude=33.7491, longitude=-84.3881, radius=200, mode=QueryMode.RETAILER_ONLY)

    places = await service.get_nearby_places(query)

    assert len(places) == 1
    assert places[0].name == ""
    assert places[0].address == "55 Trinity Ave SW"
    # Fallback answers carry the raw query point.
    assert (places[0].latitude, places[0].longitude) == (33.7491, -84.3881)
    assert len(maps.geocode_calls) == 9


@pytest.mark.asyncio
async def test_upstream_outage_fallback_is_cached_with_full_ttl() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(
        nearby=_failing,
        geocode=lambda lat, lng: [GeocodeHit(place_id="g1", formatted_address="55 Trinity Ave SW")],
    )
    service = LookupService(fast_settings(), store, maps)

    first = await service.get_nearby_places(ATLANTA)
    second = await service.get_nearby_places(ATLANTA)

    assert first == second
    assert len(maps.nearby_calls) == 1
    assert len(maps.geocode_calls) == 9
    assert store.ttls[PLACES_KEY] == 21600


@pytest.mark.asyncio
async def test_no_data_anywhere_returns_empty_list_with_short_ttl() -> None:
    store = InMemoryStore()
    maps = StubMapsClient()
    service = LookupService(fast_settings(), store, maps)
    ocean = GeoQuery(latitude=-30.0, longitude=-140.0, radius=200, category="restaurant")

    assert await service.get_nearby_places(ocean) == []
    assert await service.get_nearby_places(ocean) == []
    assert len(maps.nearby_calls) == 3
    key = "places:v2:-30.000:-140.000:200:restaurant|food_and_retail"
    assert store.ttls[key] == 300


@pytest.mark.asyncio
async def test_directions_fall_back_to_great_circle_when_upstream_errors() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(directions=_failing)
    service = LookupService(fast_settings(), store, maps)
    query = DirectionQuery(
        origin_latitude=33.7491,
        origin_longitude=-84.3881,
        dest_latitude=33.7553,
        dest_longitude=-84.3902,
    )

    result = await service.get_directions_distance(query)

    expected_miles = great_circle_meters(33.7491, -84.3881, 33.7553, -84.3902) / 1609.344
    assert result.source is DirectionSource.ESTIMATED
    assert result.unit is DistanceUnit.MILES
    assert result.distance >= 0
    assert result.distance == pytest.approx(expected_miles)

    again = await service.get_directions_distance(query)
    assert again.source is DirectionSource.CACHE
    assert again.distance == pytest.approx(expected_miles)
    assert len(maps.directions_calls) == 1


@pytest.mark.asyncio
async def test_directions_provider_distance_converted_per_unit() -> None:
    store = InMemoryStore()
    maps = StubMapsClient(directions=lambda origin, dest: 2500.0)
    service = LookupService(fast_settings(), store, maps)
    base = dict(origin_latitude=33.749, origin_longitude=-84.388, dest_latitude=33.755, dest_longitude=-84.39)

    km = await service.get_directions_distance(DirectionQuery(**base, unit=DistanceUnit.KILOMETERS))
    meters = await service.get_directions_distance(DirectionQuery(**base, unit=DistanceUnit.METERS))

    assert km.source is DirectionSource.PROVIDER
    assert km.distance == 2.5
    assert meters.source is DirectionSource.CACHE
    assert meters.distance == 2500.0
    assert maps.directions_calls == [((33.749, -84.388), (33.755, -84.39))]
    assert store.ttls["directions:v2:33.749:-84.388:-:to=33.755,-84.390"] == 86400


@pytest.mark.asyncio
async def test_concurrent_direction_queries_share_one_fetch() -> None:
    maps = StubMapsClient(directions=lambda origin, dest: 1000.0, delay=0.05)
    service = LookupService(fast_settings(), InMemoryStore(), maps)
    query = DirectionQuery(origin_latitude=1.0, origin_longitude=2.0, dest_latitude=1.01, dest_longitude=2.01)

    results = await asyncio.gather(*(service.get_directions_distance(query) for _ in range(10)))

    assert len(maps.directions_calls) == 1
    assert {round(r.distance, 6) for r in results} == {round(1000.0 / 1609.344, 6)}


class UnreachableStore(InMemoryStore):
    async def get(self, key):
        raise StoreUnavailable("Redis GET failed: Connection refused")


@pytest.mark.asyncio
async def test_store_unavailable_propagates() -> None:
    maps = StubMapsClient(nearby=three_restaurants)
    service = LookupService(fast_settings(), UnreachableStore(), maps)

    with pytest.raises(StoreUnavailable):
        await service.get_nearby_places(ATLANTA)
    assert maps.nearby_calls == []
