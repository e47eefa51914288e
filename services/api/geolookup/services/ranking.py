"""Filtering and ranking of nearby-search candidates.

Classification:
1. Denied: lowercased name contains a deny-list substring -> dropped outright
2. Retailer: name equals or starts with an allow-listed retailer (case-insensitive)
3. Relevant: provider types intersect the food categories

Mode policy:
- food_and_retail: keep relevant OR retailer; if nothing survives, fall back
  to the raw candidate set
- retailer_only: keep retailers only; an empty result stays empty so the
  fallback chain runs instead of widening to irrelevant places

Ranking:
1. Retailers before generic matches (only when retailers_first is enabled)
2. Great-circle distance from the query origin ASC
3. Provider order (stable sort)
Then truncate to max_results. Distance is never part of the output.
"""

from __future__ import annotations

import hashlib

from geolookup.schemas.geo import PlaceResult, QueryMode
from geolookup.services.geo import great_circle_meters
from geolookup.services.maps_client import NearbyCandidate
from geolookup.settings import Settings


def _fallback_place_id(candidate: NearbyCandidate) -> str:
    key_parts = f"{candidate.name}:{candidate.latitude}:{candidate.longitude}"
    return hashlib.sha256(key_parts.encode()).hexdigest()[:16]


def to_place_result(candidate: NearbyCandidate) -> PlaceResult:
    return PlaceResult(
        id=candidate.place_id or _fallback_place_id(candidate),
        name=candidate.name,
        address=candidate.vicinity,
        latitude=candidate.latitude,
        longitude=candidate.longitude,
        rating=candidate.rating,
    )


class ResultFilterRanker:
    """Classifies, ranks and truncates candidates for one query mode."""

    def __init__(
        self,
        *,
        food_categories: list[str],
        known_retailers: list[str],
        name_deny_list: list[str],
        max_results: int = 10,
        retailers_first: bool = False,
    ):
        self.food_categories = {c.lower() for c in food_categories}
        self.known_retailers = [r.lower() for r in known_retailers]
        self.name_deny_list = [d.lower() for d in name_deny_list]
        self.max_results = max_results
        self.retailers_first = retailers_first

    @classmethod
    def from_settings(cls, settings: Settings) -> ResultFilterRanker:
        return cls(
            food_categories=settings.food_categories,
            known_retailers=settings.known_retailers,
            name_deny_list=settings.name_deny_list,
            max_results=settings.max_results,
            retailers_first=settings.retailers_first,
        )

    def is_denied(self, name: str) -> bool:
        lowered = name.lower()
        return any(term in lowered for term in self.name_deny_list)

    def is_retailer(self, name: str) -> bool:
        lowered = name.strip().lower()
        return any(lowered == r or lowered.startswith(r) for r in self.known_retailers)

    def is_relevant(self, candidate: NearbyCandidate) -> bool:
        return any(t in self.food_categories for t in candidate.types)

    def classify(self, candidates: list[NearbyCandidate], mode: QueryMode) -> list[NearbyCandidate]:
        """Apply deny list and mode policy. No raw-set fallback here."""
        kept: list[NearbyCandidate] = []
        for candidate in candidates:
            if self.is_denied(candidate.name):
                continue
            if self.is_retailer(candidate.name):
                kept.append(candidate)
            elif mode is QueryMode.FOOD_AND_RETAIL and self.is_relevant(candidate):
                kept.append(candidate)
        return kept

    def select(
        self,
        candidates: list[NearbyCandidate],
        mode: QueryMode,
        origin: tuple[float, float],
    ) -> list[PlaceResult]:
        """Filter, rank and truncate raw candidates.

        Args:
            candidates: Raw candidates in provider order.
            mode: Filtering policy.
            origin: (lat, lng) the distances are measured from.

        Returns:
            At most max_results places, nearest first. Empty in retailer_only
            mode when no retailer matched.
        """
        kept = self.classify(candidates, mode)
        if not kept and mode is QueryMode.FOOD_AND_RETAIL:
            kept = list(candidates)
        return [to_place_result(c) for c in self.rank(kept, origin)]

    def rank(
        self,
        candidates: list[NearbyCandidate],
        origin: tuple[float, float],
    ) -> list[NearbyCandidate]:
        origin_lat, origin_lng = origin

        def sort_key(candidate: NearbyCandidate) -> tuple[int, float]:
            distance = great_circle_meters(origin_lat, origin_lng, candidate.latitude, candidate.longitude)
            tier = 0 if (not self.retailers_first or self.is_retailer(candidate.name)) else 1
            return (tier, distance)

        # sorted() is stable: equal keys keep provider order.
        return sorted(candidates, key=sort_key)[: self.max_results]
