from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass


EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE_LAT = 111_111.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, point: Coordinate) -> bool:
        return self.min_lat <= point.lat <= self.max_lat and self.min_lon <= point.lon <= self.max_lon


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters."""
    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def point_to_segment_distance(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> float:
    """Distance in meters from ``point`` to the closest point of a road segment.

    The projection is done in plain degree space, which is accurate enough for
    segments of a few kilometres; the final distance is a true haversine one.
    """
    d_lat = seg_end.lat - seg_start.lat
    d_lon = seg_end.lon - seg_start.lon
    length_sq = (d_lat * d_lat) + (d_lon * d_lon)
    if length_sq == 0.0:
        return distance(point, seg_start)
    t = (((point.lat - seg_start.lat) * d_lat) + ((point.lon - seg_start.lon) * d_lon)) / length_sq
    t = max(0.0, min(1.0, t))
    projection = Coordinate(lat=seg_start.lat + (t * d_lat), lon=seg_start.lon + (t * d_lon))
    return distance(point, projection)


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from ``a`` to ``b`` in degrees, normalised to [0, 360)."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dlambda = math.radians(b.lon - a.lon)
    y = math.sin(dlambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2)) - (math.sin(phi1) * math.cos(phi2) * math.cos(dlambda))
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination_point(start: Coordinate, distance_m: float, bearing_deg: float) -> Coordinate:
    phi1 = math.radians(start.lat)
    lambda1 = math.radians(start.lon)
    theta = math.radians(bearing_deg)
    delta = float(distance_m) / EARTH_RADIUS_M
    phi2 = math.asin(
        (math.sin(phi1) * math.cos(delta))
        + (math.cos(phi1) * math.sin(delta) * math.cos(theta))
    )
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - (math.sin(phi1) * math.sin(phi2)),
    )
    lon = ((math.degrees(lambda2) + 540.0) % 360.0) - 180.0
    return Coordinate(lat=math.degrees(phi2), lon=lon)


def bounding_circle(center: Coordinate, radius_m: float) -> BoundingBox:
    radius = max(0.0, float(radius_m))
    lat_delta = radius / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(center.lat))
    # Near the poles a degree of longitude collapses; fall back to the full range.
    if cos_lat <= 1e-12:
        lon_delta = 180.0
    else:
        lon_delta = min(180.0, lat_delta / cos_lat)
    return BoundingBox(
        min_lat=max(-90.0, center.lat - lat_delta),
        max_lat=min(90.0, center.lat + lat_delta),
        min_lon=center.lon - lon_delta,
        max_lon=center.lon + lon_delta,
    )


class LocationGrid:
    """Grid points about ``step_m`` apart inside a circle around ``center``.

    Iterating the object always starts from the first point again, so one grid
    can be consumed by several passes without materialising it.
    """

    def __init__(self, center: Coordinate, radius_m: float, step_m: float = 500.0) -> None:
        if step_m <= 0.0:
            raise ValueError("step_m must be positive")
        self.center = center
        self.radius_m = max(0.0, float(radius_m))
        self.step_m = float(step_m)
        self.bounds = bounding_circle(center, self.radius_m)

    def __iter__(self) -> Iterator[Coordinate]:
        lat_step = self.step_m / METERS_PER_DEGREE_LAT
        lat_rows = int(math.floor((self.bounds.max_lat - self.bounds.min_lat) / lat_step))
        for row in range(lat_rows + 1):
            lat = self.bounds.min_lat + (row * lat_step)
            cos_lat = math.cos(math.radians(lat))
            if cos_lat <= 1e-12:
                continue
            lon_step = lat_step / cos_lat
            lon_cols = int(math.floor((self.bounds.max_lon - self.bounds.min_lon) / lon_step))
            for col in range(lon_cols + 1):
                point = Coordinate(lat=lat, lon=self.bounds.min_lon + (col * lon_step))
                if distance(self.center, point) <= self.radius_m:
                    yield point


def grid(center: Coordinate, radius_m: float, step_m: float = 500.0) -> LocationGrid:
    return LocationGrid(center, radius_m, step_m)
