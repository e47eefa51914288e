"""Google Maps web-services client (Places Nearby, Geocoding, Directions).

Upstream failure handling:
- non-2xx response, undecodable or malformed body, timeout, transport error,
  and any provider `status` other than OK / ZERO_RESULTS all raise UpstreamError
- ZERO_RESULTS is a successful empty answer
- the caller (planner / fallback chain) decides what an UpstreamError means;
  this client never retries

Every request carries the configured timeout; there is no caller-driven
cancellation of an in-flight call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

import httpx

from geolookup.services.errors import UpstreamError

logger = logging.getLogger("uvicorn.error")

STATUS_OK = "OK"
STATUS_ZERO_RESULTS = "ZERO_RESULTS"


@dataclass
class NearbyCandidate:
    """Parsed result from the nearby-search API, before filtering."""

    place_id: str
    name: str
    vicinity: str
    latitude: float
    longitude: float
    rating: float | None = None
    types: list[str] = field(default_factory=list)


@dataclass
class GeocodeHit:
    """Parsed result from the reverse-geocoding API."""

    place_id: str
    formatted_address: str


class GoogleMapsClient:
    """Client for the Google Maps nearby, geocode and directions endpoints."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://maps.googleapis.com/maps/api",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _get_json(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise UpstreamError("Google Maps API key is not configured")

        url = f"{self.base_url}/{endpoint}"
        client = await self._get_client()
        try:
            response = await client.get(url, params={**params, "key": self.api_key})
        except httpx.TimeoutException as e:
            raise UpstreamError(f"{endpoint} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"{endpoint} request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Maps API {endpoint} returned {response.status_code}: {response.text[:200]}")
            raise UpstreamError(f"{endpoint} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"{endpoint} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected response from {endpoint}")

        status = data.get("status")
        if status not in (STATUS_OK, STATUS_ZERO_RESULTS):
            message = data.get("error_message") or ""
            raise UpstreamError(f"{endpoint} status={status} {message}".strip())
        return data

    async def nearby_search(
        self,
        latitude: float,
        longitude: float,
        radius: int,
        category: str | None = None,
    ) -> list[NearbyCandidate]:
        """Search places around a point.

        Args:
            latitude: Search center latitude.
            longitude: Search center longitude.
            radius: Search radius in meters.
            category: Provider place type filter (e.g., "restaurant"), or None.

        Returns:
            Candidates in provider order.
        """
        params: dict[str, Any] = {"location": f"{latitude},{longitude}", "radius": radius}
        if category:
            params["type"] = category
        data = await self._get_json("place/nearbysearch/json", params)
        return self._parse_nearby_results(data)

    async def reverse_geocode(self, latitude: float, longitude: float) -> list[GeocodeHit]:
        """Reverse-geocode a point into zero or more addresses."""
        data = await self._get_json("geocode/json", {"latlng": f"{latitude},{longitude}"})
        return self._parse_geocode_results(data)

    async def directions_distance(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
    ) -> float:
        """Route distance in meters along the first route's first leg.

        Raises:
            UpstreamError: On any failure, including "no route".
        """
        data = await self._get_json(
            "directions/json",
            {
                "origin": f"{origin[0]},{origin[1]}",
                "destination": f"{destination[0]},{destination[1]}",
            },
        )
        return self._parse_directions_distance(data)

    def _parse_nearby_results(self, data: dict[str, Any]) -> list[NearbyCandidate]:
        results = data.get("results", [])
        if not isinstance(results, list):
            raise UpstreamError("Malformed nearby-search body: results is not a list")

        candidates: list[NearbyCandidate] = []
        for item in results:
            try:
                location = item["geometry"]["location"]
                rating = item.get("rating")
                candidates.append(
                    NearbyCandidate(
                        place_id=str(item.get("place_id") or ""),
                        name=str(item.get("name") or ""),
                        # Nearby Search has no formatted address; vicinity is best-effort.
                        vicinity=str(item.get("vicinity") or ""),
                        latitude=float(location["lat"]),
                        longitude=float(location["lng"]),
                        rating=float(rating) if rating is not None else None,
                        types=[str(t).lower() for t in item.get("types") or []],
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed nearby result: {str(item)[:200]}")
                continue
        return candidates

    def _parse_geocode_results(self, data: dict[str, Any]) -> list[GeocodeHit]:
        results = data.get("results", [])
        if not isinstance(results, list):
            raise UpstreamError("Malformed geocode body: results is not a list")

        hits: list[GeocodeHit] = []
        for item in results:
            if not isinstance(item, dict):
                continue
            address = str(item.get("formatted_address") or "").strip()
            if address:
                hits.append(GeocodeHit(place_id=str(item.get("place_id") or ""), formatted_address=address))
        return hits

    def _parse_directions_distance(self, data: dict[str, Any]) -> float:
        routes = data.get("routes") or []
        if not routes:
            raise UpstreamError("No routes returned")
        try:
            meters = float(routes[0]["legs"][0]["distance"]["value"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise UpstreamError("Malformed directions body") from e
        if meters < 0:
            raise UpstreamError("Negative route distance")
        return meters
