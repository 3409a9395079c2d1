from __future__ import annotations

import math

from .geo import Coordinate, distance
from .models import DrivingTime, EmergencyResponse, TrafficLevel, WalkingTime
from .road_graph import RoadGraph
from .settings import settings
from .shortest_path import PathResult, SearchConfig, find_shortest_path


DRIVING_SPEEDS_MPS: dict[str, float] = {
    "motorway": 27.8,
    "trunk": 22.2,
    "primary": 16.7,
    "secondary": 13.9,
    "tertiary": 11.1,
    "residential": 8.3,
    "service": 5.6,
}
DEFAULT_DRIVING_SPEED_MPS = 13.9

TRAFFIC_FACTORS: dict[str, float] = {
    "low": 1.0,
    "medium": 1.3,
    "high": 1.8,
}
DEFAULT_TRAFFIC_LEVEL: TrafficLevel = "medium"

# Lower is faster; police cruisers outrun fire trucks and ambulances.
RESPONSE_SPEED_FACTORS: dict[str, float] = {
    "hospital": 0.9,
    "fire": 0.85,
    "police": 0.8,
}
DEFAULT_RESPONSE_SPEED_FACTOR = 0.9

PREPARATION_TIMES_S: dict[str, float] = {
    "hospital": 60.0,
    "fire": 90.0,
    "police": 30.0,
}
DEFAULT_PREPARATION_TIME_S = 60.0

EMERGENCY_BASE_ROAD_TYPE = "primary"
TOO_SHORT_FOR_DRIVING = "too-short-for-driving"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def road_type_for_distance(direct_m: float) -> str:
    if direct_m > 10_000:
        return "motorway"
    if direct_m > 5_000:
        return "trunk"
    if direct_m > 2_000:
        return "primary"
    if direct_m > 1_000:
        return "secondary"
    if direct_m > 500:
        return "tertiary"
    return "residential"


def normalize_traffic_level(level: str | None) -> TrafficLevel:
    key = str(level or "").strip().lower()
    if key == "low" or key == "medium" or key == "high":
        return key
    return DEFAULT_TRAFFIC_LEVEL


def _intersection_count(meters: float) -> int:
    return int(math.floor(max(0.0, meters) / settings.driving_intersection_spacing_m))


def walking_time_from_path(result: PathResult) -> WalkingTime:
    return WalkingTime(
        minutes=_round_half_up(result.walking_time_s / 60.0),
        meters=_round_half_up(result.walking_distance_m),
        is_estimate=result.is_estimate,
        method=result.method,
    )


def walking_time(
    graph: RoadGraph,
    start: Coordinate,
    end: Coordinate,
    *,
    config: SearchConfig | None = None,
) -> WalkingTime:
    return walking_time_from_path(find_shortest_path(graph, start, end, config=config))


def driving_time(
    graph: RoadGraph,
    start: Coordinate,
    end: Coordinate,
    traffic_level: str = DEFAULT_TRAFFIC_LEVEL,
    *,
    config: SearchConfig | None = None,
) -> DrivingTime:
    """Driving estimate over the routed distance.

    Road class is guessed from the straight-line distance: longer trips are
    assumed to reach faster roads.
    """
    level = normalize_traffic_level(traffic_level)
    direct_m = distance(start, end)
    if direct_m < settings.driving_min_distance_m:
        return DrivingTime(
            minutes=1,
            meters=_round_half_up(direct_m),
            is_estimate=True,
            method=TOO_SHORT_FOR_DRIVING,
            traffic_level=level,
        )

    route = find_shortest_path(graph, start, end, config=config)
    meters = route.walking_distance_m
    road_type = road_type_for_distance(direct_m)
    speed_mps = DRIVING_SPEEDS_MPS.get(road_type, DEFAULT_DRIVING_SPEED_MPS)
    moving_s = (meters / speed_mps) * TRAFFIC_FACTORS[level]
    delay_s = _intersection_count(meters) * settings.driving_intersection_delay_s
    return DrivingTime(
        minutes=max(1, _round_half_up((moving_s + delay_s) / 60.0)),
        meters=_round_half_up(meters),
        is_estimate=route.is_estimate,
        method=route.method,
        traffic_level=level,
        road_type=road_type,
    )


def response_speed_factor(service_type: str) -> float:
    return RESPONSE_SPEED_FACTORS.get(str(service_type or "").strip().lower(), DEFAULT_RESPONSE_SPEED_FACTOR)


def preparation_time_s(service_type: str) -> float:
    return PREPARATION_TIMES_S.get(str(service_type or "").strip().lower(), DEFAULT_PREPARATION_TIME_S)


def emergency_response_time(
    graph: RoadGraph,
    service_location: Coordinate,
    target_location: Coordinate,
    service_type: str,
    *,
    config: SearchConfig | None = None,
) -> EmergencyResponse:
    """Response estimate where ``meters`` is the routed graph distance, not the straight line."""
    route = find_shortest_path(graph, service_location, target_location, config=config)
    meters = route.walking_distance_m
    speed_mps = DRIVING_SPEEDS_MPS[EMERGENCY_BASE_ROAD_TYPE] * settings.emergency_speed_boost
    moving_s = (meters / speed_mps) * response_speed_factor(service_type)
    delay_s = _intersection_count(meters) * settings.emergency_intersection_delay_s
    total_s = moving_s + delay_s + preparation_time_s(service_type)
    return EmergencyResponse(
        minutes=_round_half_up(total_s / 60.0),
        meters=_round_half_up(meters),
        service_type=str(service_type),
        is_estimate=route.is_estimate,
        method=route.method,
    )
