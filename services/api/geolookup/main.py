"""FastAPI application entry point.

Geo Lookup Accelerator - cache-aside front for a mapping provider.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from geolookup.routes import api_router
from geolookup.schemas import ErrorCode, ErrorResponse
from geolookup.services.errors import LockWaitExhausted, QueryValidationError, StoreUnavailable
from geolookup.services.lookup import LookupService
from geolookup.services.maps_client import GoogleMapsClient
from geolookup.settings import Settings, get_settings
from geolookup.stores.redis import RedisStore

logger = logging.getLogger("uvicorn.error")


def _error(code: ErrorCode, message: str, detail: dict | None = None) -> JSONResponse:
    body = ErrorResponse.build(code, message, detail)
    return JSONResponse(status_code=code.status_code, content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the store, provider client and lookup service on startup and
    closes them on shutdown.
    """
    settings: Settings = app.state.settings

    store = RedisStore(settings.redis_url)
    try:
        await store.connect()
    except StoreUnavailable:
        # Not fatal: requests surface StoreUnavailable until Redis is reachable.
        logger.exception("Redis init failed")

    maps = GoogleMapsClient(
        settings.google_maps_api_key,
        base_url=settings.google_maps_base_url,
        timeout=settings.upstream_timeout_seconds,
    )
    if not settings.google_maps_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not set - every lookup will use fallbacks")

    app.state.lookup_service = LookupService(settings, store, maps)

    yield

    # Shutdown
    await maps.close()
    await store.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Cached nearby-place search and route distance",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Missing or malformed query parameters."""
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        return _error(ErrorCode.INVALID_QUERY, "Missing or invalid query parameters", {"fields": fields})

    @app.exception_handler(QueryValidationError)
    async def query_validation_handler(request: Request, exc: QueryValidationError) -> JSONResponse:
        return _error(ErrorCode.INVALID_QUERY, "Missing or invalid query parameters")

    @app.exception_handler(LockWaitExhausted)
    async def lock_wait_handler(request: Request, exc: LockWaitExhausted) -> JSONResponse:
        return _error(ErrorCode.LOCK_WAIT_EXHAUSTED, "Lookup in progress elsewhere, retry shortly")

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        logger.error(f"Store unavailable: {exc}")
        return _error(ErrorCode.STORE_UNAVAILABLE, "Cache store unavailable")

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.url.path}")
        return _error(ErrorCode.INTERNAL_ERROR, str(exc) if settings.debug else "Internal server error")

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    # Include API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "geolookup.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
