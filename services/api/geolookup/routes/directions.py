"""Route distance.

GET /v1/directions (also served at /directions) - cached route distance;
always numeric thanks to the great-circle fallback.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from geolookup.routes.deps import get_app_settings, get_lookup_service
from geolookup.schemas import DirectionQuery, DirectionResult, DistanceUnit
from geolookup.services.errors import QueryValidationError
from geolookup.services.lookup import LookupService
from geolookup.settings import Settings

router = APIRouter()


@router.get("", response_model=DirectionResult)
async def get_directions(
    origin_lat: float = Query(alias="originLat", ge=-90, le=90),
    origin_lng: float = Query(alias="originLng", ge=-180, le=180),
    dest_lat: float = Query(alias="destLat", ge=-90, le=90),
    dest_lng: float = Query(alias="destLng", ge=-180, le=180),
    unit: DistanceUnit | None = Query(default=None, description="miles, kilometers or meters"),
    service: LookupService = Depends(get_lookup_service),
    settings: Settings = Depends(get_app_settings),
) -> DirectionResult:
    """Get the route distance between origin and destination."""
    try:
        query = DirectionQuery(
            origin_latitude=origin_lat,
            origin_longitude=origin_lng,
            dest_latitude=dest_lat,
            dest_longitude=dest_lng,
            unit=unit or settings.default_distance_unit,
        )
    except ValidationError as e:
        raise QueryValidationError(str(e)) from e

    return await service.get_directions_distance(query)
