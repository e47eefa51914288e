"""Coordinate normalization and great-circle distance.

Normalization floors raw degrees onto a fixed decimal grid so that nearby
queries (GPS jitter, a user walking down a block) collapse onto one cache key.
The grid is a trade-off between hit rate and result precision:

    decimal places  cell size at the equator
    2               ~1.1 km
    3 (default)     ~110 m
    4               ~11 m

No range validation happens here; the HTTP boundary rejects bad coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
import math

from geolookup.schemas.geo import DistanceUnit

DEFAULT_GRID_DECIMAL_PLACES = 3

EARTH_RADIUS_METERS = 6371008.8

METERS_PER_UNIT: dict[DistanceUnit, float] = {
    DistanceUnit.METERS: 1.0,
    DistanceUnit.KILOMETERS: 1000.0,
    DistanceUnit.MILES: 1609.344,
}


@dataclass(frozen=True)
class NormalizedCoordinate:
    """A coordinate floored to a grid cell.

    `lat_text`/`lng_text` are the fixed-width strings used in cache keys.
    """

    latitude: float
    longitude: float
    lat_text: str
    lng_text: str


def _floor_to_grid(value: float, decimal_places: int) -> Decimal:
    # str() first: Decimal(33.749) would carry the binary error and floor to 33.748.
    quantum = Decimal(1).scaleb(-decimal_places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_FLOOR)


def normalize_coordinate(
    latitude: float,
    longitude: float,
    decimal_places: int = DEFAULT_GRID_DECIMAL_PLACES,
) -> NormalizedCoordinate:
    """Floor a raw coordinate onto the grid.

    Args:
        latitude: Raw latitude in signed degrees.
        longitude: Raw longitude in signed degrees.
        decimal_places: Grid resolution.

    Returns:
        NormalizedCoordinate; every point inside one cell maps to the same value.
    """
    lat = _floor_to_grid(latitude, decimal_places)
    lng = _floor_to_grid(longitude, decimal_places)
    return NormalizedCoordinate(
        latitude=float(lat),
        longitude=float(lng),
        lat_text=f"{lat:.{decimal_places}f}",
        lng_text=f"{lng:.{decimal_places}f}",
    )


def great_circle_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance using the spherical law of cosines.

    Always finite and non-negative; identical points give 0.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lng2 - lng1)
    cos_angle = math.sin(phi1) * math.sin(phi2) + math.cos(phi1) * math.cos(phi2) * math.cos(
        delta_lambda
    )
    # Rounding can push the cosine just outside [-1, 1].
    cos_angle = min(1.0, max(-1.0, cos_angle))
    return EARTH_RADIUS_METERS * math.acos(cos_angle)


def convert_meters(meters: float, unit: DistanceUnit) -> float:
    """Convert a distance in meters to `unit`."""
    return meters / METERS_PER_UNIT[unit]
