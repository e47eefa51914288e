"""Fallbacks used when the primary lookup yields nothing usable.

- Geocoding reconstruction (places): reverse-geocode a 3x3 grid of ~11 m
  offsets around the raw query point. Reverse geocoding sometimes returns
  nothing for an exact point but succeeds next door. Stops once the cap is
  collected.
- Distance estimate (directions): great-circle distance; cannot fail.

Results from here are cached by the caller exactly like primary results.
"""

from __future__ import annotations

import hashlib
import logging

from geolookup.schemas.geo import PlaceResult
from geolookup.services.errors import UpstreamError
from geolookup.services.geo import great_circle_meters
from geolookup.services.maps_client import GoogleMapsClient

logger = logging.getLogger("uvicorn.error")

# (lat, lng) multipliers of the sample offset, queried in this order.
SAMPLE_PATTERN: tuple[tuple[int, int], ...] = (
    (0, 0),
    (1, 0),
    (-1, 0),
    (0, 1),
    (0, -1),
    (1, 1),
    (-1, 1),
    (1, -1),
    (-1, -1),
)


def _address_id(address: str) -> str:
    return hashlib.sha256(address.encode()).hexdigest()[:16]


class FallbackChain:
    def __init__(
        self,
        maps: GoogleMapsClient,
        *,
        sample_offset: float = 0.0001,
        cap: int = 10,
    ):
        self.maps = maps
        self.sample_offset = sample_offset
        self.cap = cap

    def sample_points(self, latitude: float, longitude: float) -> list[tuple[float, float]]:
        d = self.sample_offset
        return [(latitude + dy * d, longitude + dx * d) for dy, dx in SAMPLE_PATTERN]

    async def reconstruct_from_geocoding(self, latitude: float, longitude: float) -> list[PlaceResult]:
        """Build nameless places from reverse-geocoded addresses.

        Args:
            latitude: Raw (not normalized) query latitude.
            longitude: Raw (not normalized) query longitude.

        Returns:
            Up to `cap` places, each with an empty name, the address, the
            original query coordinates and no rating. Empty when every sample point
            came back empty or failed.
        """
        places: list[PlaceResult] = []
        seen: set[str] = set()

        for sample_lat, sample_lng in self.sample_points(latitude, longitude):
            try:
                hits = await self.maps.reverse_geocode(sample_lat, sample_lng)
            except UpstreamError as e:
                logger.warning(f"Reverse geocode at ({sample_lat:.5f},{sample_lng:.5f}) failed: {e}")
                continue

            if not hits:
                continue
            # Results run most to least specific (street, neighborhood, city, ..., country).
            hit = hits[0]
            if hit.formatted_address in seen:
                continue
            seen.add(hit.formatted_address)
            places.append(
                PlaceResult(
                    id=hit.place_id or _address_id(hit.formatted_address),
                    name="",
                    address=hit.formatted_address,
                    latitude=latitude,
                    longitude=longitude,
                    rating=None,
                )
            )
            if len(places) >= self.cap:
                break

        logger.info(f"Geocoding fallback collected {len(places)} addresses")
        return places

    def estimate_distance_meters(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
    ) -> float:
        """Closed-form terminal fallback for route distance."""
        return great_circle_meters(origin[0], origin[1], destination[0], destination[1])
