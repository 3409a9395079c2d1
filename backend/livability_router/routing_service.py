from __future__ import annotations

from functools import lru_cache
from typing import Any

from .geo import Coordinate
from .models import DrivingTime, EmergencyResponse, RoutePath, WalkingTime
from .road_graph import RoadGraph
from .road_segments import FallbackSegmentProvider, JsonSegmentProvider, SegmentProvider
from .settings import settings
from .shortest_path import SearchConfig, find_shortest_path
from . import travel_time


class RoutingService:
    """Lazily builds one road graph and answers path and travel-time queries over it.

    The first query triggers the build; if every segment provider fails the
    :class:`RoutingDataError` propagates and the next query tries again.
    """

    def __init__(
        self,
        graph: RoadGraph | None = None,
        *,
        primary: SegmentProvider | None = None,
        fallback: SegmentProvider | None = None,
        config: SearchConfig | None = None,
    ) -> None:
        self.graph = graph if graph is not None else RoadGraph()
        self.primary = primary
        self.fallback = fallback
        self.config = config

    @classmethod
    def from_settings(cls) -> RoutingService:
        primary: SegmentProvider | None = None
        if settings.road_segments_path.strip():
            primary = JsonSegmentProvider(settings.road_segments_path.strip())
        return cls(primary=primary, fallback=FallbackSegmentProvider())

    def ensure_built(self) -> RoadGraph:
        if self.graph.initialized:
            return self.graph
        primary = self.primary if self.primary is not None else self.fallback
        fallback = self.fallback if self.primary is not None else None
        return self.graph.ensure_built(primary, fallback)

    def _search_config(self) -> SearchConfig:
        return self.config or SearchConfig.from_settings()

    def path(self, start: Coordinate, end: Coordinate) -> RoutePath:
        graph = self.ensure_built()
        return RoutePath.from_result(find_shortest_path(graph, start, end, config=self._search_config()))

    def walking_time(self, start: Coordinate, end: Coordinate) -> WalkingTime:
        return travel_time.walking_time(self.ensure_built(), start, end, config=self._search_config())

    def driving_time(self, start: Coordinate, end: Coordinate, traffic_level: str = "medium") -> DrivingTime:
        return travel_time.driving_time(
            self.ensure_built(),
            start,
            end,
            traffic_level,
            config=self._search_config(),
        )

    def emergency_response_time(
        self,
        service_location: Coordinate,
        target_location: Coordinate,
        service_type: str,
    ) -> EmergencyResponse:
        return travel_time.emergency_response_time(
            self.ensure_built(),
            service_location,
            target_location,
            service_type,
            config=self._search_config(),
        )

    def status(self) -> dict[str, Any]:
        return self.graph.status()


@lru_cache(maxsize=1)
def default_routing_service() -> RoutingService:
    return RoutingService.from_settings()
