"""API routes."""

from fastapi import APIRouter

from geolookup.routes import directions, places

api_router = APIRouter()

# Nearby place search
api_router.include_router(places.router, prefix="/v1/places", tags=["places"])

# Route distance
api_router.include_router(directions.router, prefix="/v1/directions", tags=["directions"])

# Unversioned paths kept for existing clients
api_router.include_router(places.router, prefix="/places", include_in_schema=False)
api_router.include_router(directions.router, prefix="/directions", include_in_schema=False)
