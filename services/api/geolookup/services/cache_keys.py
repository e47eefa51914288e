"""Versioned cache-key construction.

Every cache key in the service is built here:

    {domain}:{version}:{normalized-lat}:{normalized-lng}:{radius}:{discriminator}

Bump the version (Settings.cache_key_version) whenever a cached payload shape
changes, so old entries are never read as the new shape.
"""

from geolookup.schemas.geo import GeoQuery
from geolookup.services.geo import NormalizedCoordinate

DOMAIN_PLACES = "places"
DOMAIN_DIRECTIONS = "directions"

# Segment used where a key class has no radius.
NO_RADIUS = "-"
ANY_CATEGORY = "*"


def build_cache_key(
    domain: str,
    version: str,
    origin: NormalizedCoordinate,
    radius: int | str,
    discriminator: str,
) -> str:
    """Build a cache key.

    Args:
        domain: Query class (places, directions).
        version: Payload schema version.
        origin: Normalized query coordinate.
        radius: Search radius in meters, or NO_RADIUS.
        discriminator: Encodes the query intent so distinct intents never collide.

    Returns:
        Deterministic key string.
    """
    return f"{domain}:{version}:{origin.lat_text}:{origin.lng_text}:{radius}:{discriminator}"


def places_key(query: GeoQuery, origin: NormalizedCoordinate, version: str) -> str:
    """Cache key for a nearby-place query."""
    category = (query.category or "").strip().lower() or ANY_CATEGORY
    discriminator = f"{category}|{query.mode.value}"
    return build_cache_key(DOMAIN_PLACES, version, origin, query.radius, discriminator)


def directions_key(
    origin: NormalizedCoordinate,
    destination: NormalizedCoordinate,
    version: str,
) -> str:
    """Cache key for a route distance (unit-independent; meters are cached)."""
    discriminator = f"to={destination.lat_text},{destination.lng_text}"
    return build_cache_key(DOMAIN_DIRECTIONS, version, origin, NO_RADIUS, discriminator)


def lock_key(cache_key: str) -> str:
    """Lock key guarding the upstream fetch for `cache_key`."""
    return f"lock:{cache_key}"
