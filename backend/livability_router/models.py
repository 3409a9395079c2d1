from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .geo import Coordinate
from .shortest_path import PathResult


TrafficLevel = Literal["low", "medium", "high"]


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


class WalkingTime(BaseModel):
    minutes: int = Field(..., ge=0)
    meters: int = Field(..., ge=0)
    is_estimate: bool
    method: str


class DrivingTime(BaseModel):
    minutes: int = Field(..., ge=1)
    meters: int = Field(..., ge=0)
    is_estimate: bool
    method: str
    traffic_level: TrafficLevel
    road_type: str | None = None


class EmergencyResponse(BaseModel):
    """Response estimate for one emergency service; consumers show it as approximate when flagged."""

    minutes: int = Field(..., ge=0)
    meters: int = Field(..., ge=0)
    service_type: str
    is_estimate: bool
    method: str


class RoutePath(BaseModel):
    success: bool
    direct_distance_m: float = Field(..., ge=0.0)
    walking_distance_m: float = Field(..., ge=0.0)
    walking_time_s: float = Field(..., ge=0.0)
    method: str
    is_estimate: bool
    iterations: int = Field(default=0, ge=0)
    path: list[LatLng]

    @classmethod
    def from_result(cls, result: PathResult) -> RoutePath:
        return cls(
            success=result.success,
            direct_distance_m=result.direct_distance_m,
            walking_distance_m=result.walking_distance_m,
            walking_time_s=result.walking_time_s,
            method=result.method,
            is_estimate=result.is_estimate,
            iterations=result.iterations,
            path=[LatLng(lat=point.lat, lon=point.lon) for point in result.path],
        )
