"""Nearby place search.

GET /v1/places - cached nearby search with staged relaxation and fallback.
GET /places is the same endpoint without the version prefix; `type` is
accepted as an alias of `category`.

Routers are thin: validate input, build the query, call the lookup service.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError

from geolookup.routes.deps import get_app_settings, get_lookup_service
from geolookup.schemas import GeoQuery, PlaceResult, QueryMode
from geolookup.services.errors import QueryValidationError
from geolookup.services.lookup import LookupService
from geolookup.settings import Settings

router = APIRouter()


def _resolve_category(category: str | None, place_type: str | None, settings: Settings) -> str | None:
    if category is not None:
        return category
    if place_type is not None:
        return place_type
    return settings.default_category


@router.get("", response_model=list[PlaceResult])
async def get_places(
    lat: float = Query(ge=-90, le=90, description="Latitude in degrees", examples=[33.749]),
    lng: float = Query(ge=-180, le=180, description="Longitude in degrees", examples=[-84.388]),
    radius: int | None = Query(
        default=None,
        ge=1,
        le=50000,
        description="Search radius in meters (default from settings)",
    ),
    category: str | None = Query(
        default=None,
        max_length=64,
        description="Provider place type, e.g. restaurant (default from settings)",
    ),
    place_type: str | None = Query(
        default=None,
        alias="type",
        max_length=64,
        description="Alias of category; ignored when category is given",
    ),
    mode: QueryMode = Query(default=QueryMode.FOOD_AND_RETAIL, description="Filtering policy"),
    service: LookupService = Depends(get_lookup_service),
    settings: Settings = Depends(get_app_settings),
) -> list[PlaceResult]:
    """Get nearby places, nearest first (at most max_results, default 10).

    Returns:
        List of places; empty when nothing at all could be found.
    """
    try:
        query = GeoQuery(
            latitude=lat,
            longitude=lng,
            radius=radius if radius is not None else settings.default_radius,
            category=_resolve_category(category, place_type, settings),
            mode=mode,
        )
    except ValidationError as e:
        raise QueryValidationError(str(e)) from e

    return await service.get_nearby_places(query)
