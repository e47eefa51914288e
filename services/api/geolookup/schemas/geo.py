"""Schemas for place and direction lookups (/v1/places, /v1/directions)."""

from enum import Enum

from pydantic import BaseModel, Field


class QueryMode(str, Enum):
    """Result-filtering policy for a place query."""

    # Food categories OR allow-listed retailers; raw set allowed as last resort.
    FOOD_AND_RETAIL = "food_and_retail"
    # Allow-listed retailers only; never widened to the raw set.
    RETAILER_ONLY = "retailer_only"


class DistanceUnit(str, Enum):
    MILES = "miles"
    KILOMETERS = "kilometers"
    METERS = "meters"


class DirectionSource(str, Enum):
    """Provenance of a distance. Diagnostic only."""

    CACHE = "cache"
    PROVIDER = "provider"
    ESTIMATED = "estimated"


class GeoQuery(BaseModel):
    """A nearby-place query as accepted at the boundary."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    radius: int = Field(ge=1, le=50000)
    category: str | None = None
    mode: QueryMode = QueryMode.FOOD_AND_RETAIL

    model_config = {"frozen": True}


class DirectionQuery(BaseModel):
    """A route-distance query between two points."""

    origin_latitude: float = Field(ge=-90, le=90)
    origin_longitude: float = Field(ge=-180, le=180)
    dest_latitude: float = Field(ge=-90, le=90)
    dest_longitude: float = Field(ge=-180, le=180)
    unit: DistanceUnit = DistanceUnit.MILES

    model_config = {"frozen": True}


class PlaceResult(BaseModel):
    """A single place returned to the caller.

    `rating` is None for unrated places (never 0). `address` may be empty when
    the provider has no vicinity string.
    """

    id: str
    name: str
    address: str = ""
    latitude: float = Field(alias="lat")
    longitude: float = Field(alias="lng")
    rating: float | None = None

    model_config = {"populate_by_name": True}


class DirectionResult(BaseModel):
    """Route distance between two points, in the requested unit."""

    distance: float = Field(ge=0)
    unit: DistanceUnit
    source: DirectionSource
