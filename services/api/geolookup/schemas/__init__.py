"""Pydantic schemas for API request/response validation."""

from geolookup.schemas.common import ErrorCode, ErrorDetail, ErrorResponse
from geolookup.schemas.geo import (
    DirectionQuery,
    DirectionResult,
    DirectionSource,
    DistanceUnit,
    GeoQuery,
    PlaceResult,
    QueryMode,
)

__all__ = [
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "DirectionQuery",
    "DirectionResult",
    "DirectionSource",
    "DistanceUnit",
    "GeoQuery",
    "PlaceResult",
    "QueryMode",
]
