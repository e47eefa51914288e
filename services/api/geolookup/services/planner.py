"""Staged nearby search with progressive relaxation.

Stages (each a full, independent upstream call; results never merged):
1. Caller's radius and category
2. Category dropped, radius raised to at least the relaxed floor - skipped
   when it would repeat stage 1 (uncategorized query already at the floor)
3. Category dropped, expanded radius - only if the radius used so far is
   below the expanded radius

Each stage's raw results go through the filter/ranker immediately; the next
stage runs only when the *filtered* set is empty. Stages never overlap.

An UpstreamError in any stage aborts the whole plan; the caller hands over to
the fallback chain.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from geolookup.schemas.geo import GeoQuery, PlaceResult
from geolookup.services.maps_client import GoogleMapsClient
from geolookup.services.ranking import ResultFilterRanker

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class SearchStage:
    number: int
    radius: int
    category: str | None


@dataclass
class PlanOutcome:
    """Result of a plan: the stage that produced places (0 if none did)."""

    stage: int
    places: list[PlaceResult]


class UpstreamQueryPlanner:
    def __init__(
        self,
        maps: GoogleMapsClient,
        ranker: ResultFilterRanker,
        *,
        relaxed_radius_floor: int = 500,
        expanded_radius: int = 1500,
    ):
        self.maps = maps
        self.ranker = ranker
        self.relaxed_radius_floor = relaxed_radius_floor
        self.expanded_radius = expanded_radius

    def stages(self, query: GeoQuery) -> list[SearchStage]:
        """Search stages for a query, in execution order."""
        relaxed_radius = max(query.radius, self.relaxed_radius_floor)
        first = SearchStage(number=1, radius=query.radius, category=query.category or None)
        stages = [first]
        # Stage 2 would repeat stage 1 exactly for an uncategorized query at or above the floor.
        if (relaxed_radius, None) != (first.radius, first.category):
            stages.append(SearchStage(number=2, radius=relaxed_radius, category=None))
        if relaxed_radius < self.expanded_radius:
            stages.append(SearchStage(number=3, radius=self.expanded_radius, category=None))
        return stages

    async def plan(self, query: GeoQuery, origin: tuple[float, float]) -> PlanOutcome:
        """Run stages until one yields a non-empty filtered set.

        Args:
            query: The caller's query (radius, category, mode).
            origin: (lat, lng) to search around and rank from.

        Returns:
            PlanOutcome with the first non-empty filtered result.

        Raises:
            UpstreamError: If any stage's upstream call fails.
        """
        for stage in self.stages(query):
            logger.info(
                f"Planner stage {stage.number}: radius={stage.radius} category={stage.category or '*'}"
            )
            candidates = await self.maps.nearby_search(
                origin[0],
                origin[1],
                stage.radius,
                stage.category,
            )
            places = self.ranker.select(candidates, query.mode, origin)
            if places:
                logger.info(
                    f"Planner stage {stage.number} produced {len(places)} places "
                    f"(from {len(candidates)} raw)"
                )
                return PlanOutcome(stage=stage.number, places=places)

        logger.info("Planner exhausted all stages with no usable places")
        return PlanOutcome(stage=0, places=[])
