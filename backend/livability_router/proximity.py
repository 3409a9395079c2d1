from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .geo import Coordinate, distance
from .road_segments import parse_coordinate


@dataclass(frozen=True)
class PointDistance:
    point: Mapping[str, Any]
    coordinate: Coordinate
    distance_m: float


def _point_coordinate(point: Mapping[str, Any]) -> Coordinate | None:
    lon_raw = point.get("lon", point.get("lng"))
    return parse_coordinate(point.get("lat"), lon_raw)


def nearest_points(
    origin: Coordinate,
    points: Iterable[Mapping[str, Any]],
    *,
    limit: int | None = None,
    max_distance_m: float | None = None,
) -> list[PointDistance]:
    """Points of interest ordered by great-circle distance from ``origin``.

    Records without usable coordinates are ignored.
    """
    ranked: list[PointDistance] = []
    for point in points:
        coordinate = _point_coordinate(point)
        if coordinate is None:
            continue
        dist_m = distance(origin, coordinate)
        if max_distance_m is not None and dist_m > max_distance_m:
            continue
        ranked.append(PointDistance(point=point, coordinate=coordinate, distance_m=dist_m))
    ranked.sort(key=lambda item: item.distance_m)
    if limit is not None:
        return ranked[: max(0, int(limit))]
    return ranked


def nearest_by_type(
    origin: Coordinate,
    points: Iterable[Mapping[str, Any]],
    *,
    per_type: int = 3,
    type_key: str = "type",
    max_distance_m: float | None = None,
) -> dict[str, list[PointDistance]]:
    grouped: dict[str, list[PointDistance]] = {}
    for item in nearest_points(origin, points, max_distance_m=max_distance_m):
        point_type = str(item.point.get(type_key) or "unknown").strip().lower() or "unknown"
        bucket = grouped.setdefault(point_type, [])
        if len(bucket) < per_type:
            bucket.append(item)
    return grouped
