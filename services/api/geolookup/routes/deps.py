"""FastAPI dependencies shared by routers."""

from fastapi import Request

from geolookup.services.lookup import LookupService
from geolookup.settings import Settings


def get_lookup_service(request: Request) -> LookupService:
    """Lookup service built by the app lifespan."""
    return request.app.state.lookup_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
