"""Application settings via Pydantic Settings."""

from enum import Enum
from functools import lru_cache
import json
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from geolookup.schemas.geo import DistanceUnit


class LockWaitPolicy(str, Enum):
    """What a waiter does when the lock-wait bound elapses with no cache fill."""

    PROCEED = "proceed"
    FAIL = "fail"


def _parse_str_list(v: object) -> list[str]:
    """
    Accept either:
    - JSON array string: '["walmart","kroger"]'
    - Comma-separated string: "walmart,kroger"
    - Already-parsed list[str]
    """
    if v is None:
        return []
    if isinstance(v, list):
        return [str(x).strip() for x in v if str(x).strip()]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError:
                # Fall back to comma split if env var isn't valid JSON.
                parsed = s.split(",")
            if isinstance(parsed, list):
                return [str(x).strip() for x in parsed if str(x).strip()]
            return [str(parsed).strip()]
        return [part.strip() for part in s.split(",") if part.strip()]
    return [str(v).strip()] if str(v).strip() else []


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Built once at startup and handed to every component; nothing below the
    app factory reads the environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "Geo Lookup Accelerator"
    app_version: str = "0.1.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # CORS
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        validation_alias=AliasChoices("CORS_ORIGINS", "ALLOWED_ORIGINS"),
    )

    # Google Maps web services
    google_maps_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_MAPS_API_KEY", "GOOGLE_API_KEY"),
    )
    google_maps_base_url: str = "https://maps.googleapis.com/maps/api"
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # Cache keys
    cache_key_version: str = "v2"
    grid_decimal_places: int = Field(
        default=3,
        ge=0,
        le=6,
        description="Coordinates are floored to this many decimals (3 ~ 110 m cells).",
    )

    # TTL policy per query class (seconds)
    places_ttl_seconds: int = Field(default=21600, ge=1)  # 6 hours
    directions_ttl_seconds: int = Field(default=86400, ge=1)  # 24 hours
    empty_places_ttl_seconds: int = Field(default=300, ge=1)  # 5 minutes

    # Stampede lock
    lock_ttl_seconds: float = Field(default=8.0, gt=0)
    lock_poll_interval_seconds: float = Field(default=0.2, gt=0)
    lock_max_wait_seconds: float = Field(default=5.0, gt=0)
    lock_wait_policy: LockWaitPolicy = LockWaitPolicy.PROCEED

    # Staged relaxation (meters)
    relaxed_radius_floor: int = Field(default=500, ge=1, le=50000)
    expanded_radius: int = Field(default=1500, ge=1, le=50000)

    # Filtering / ranking
    max_results: int = Field(default=10, ge=1, le=20)
    food_categories: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "restaurant",
            "food",
            "cafe",
            "bakery",
            "bar",
            "meal_takeaway",
            "meal_delivery",
            "supermarket",
            "grocery_or_supermarket",
            "convenience_store",
        ]
    )
    known_retailers: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "walmart",
            "kroger",
            "publix",
            "target",
            "aldi",
            "costco",
            "whole foods market",
            "trader joe's",
            "sprouts farmers market",
            "food lion",
        ]
    )
    name_deny_list: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "pharmacy",
            "optical",
            "vision center",
            "auto care",
            "tire",
            "photo center",
            "fuel",
        ]
    )
    retailers_first: bool = False

    # Geocoding fallback
    geocode_sample_offset: float = Field(default=0.0001, gt=0)
    geocode_fallback_cap: int = Field(default=10, ge=1)

    # Request defaults
    default_radius: int = Field(default=100, ge=1, le=50000)
    default_category: str = "restaurant"
    default_distance_unit: DistanceUnit = DistanceUnit.MILES

    @field_validator(
        "cors_origins", "food_categories", "known_retailers", "name_deny_list", mode="before"
    )
    @classmethod
    def _parse_lists(cls, v: object) -> list[str]:
        return _parse_str_list(v)

    @field_validator("food_categories", "known_retailers", "name_deny_list")
    @classmethod
    def _lowercase(cls, v: list[str]) -> list[str]:
        return [item.lower() for item in v]

    @model_validator(mode="after")
    def _check_lock_timing(self) -> "Settings":
        # The lock must expire before a single upstream call can time out.
        if self.lock_ttl_seconds >= self.upstream_timeout_seconds:
            raise ValueError("lock_ttl_seconds must be shorter than upstream_timeout_seconds")
        if self.lock_poll_interval_seconds > self.lock_max_wait_seconds:
            raise ValueError("lock_poll_interval_seconds must not exceed lock_max_wait_seconds")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
