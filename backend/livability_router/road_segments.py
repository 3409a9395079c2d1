from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol

import ijson

from .geo import Coordinate
from .logging_utils import log_event
from .routing_errors import RoutingDataError


DEFAULT_ROAD_CLASS = "unknown"
DEFAULT_SPEED_KPH = 50.0

ROAD_CLASS_SPEED_KPH: dict[str, float] = {
    "motorway": 100.0,
    "motorway_link": 100.0,
    "trunk": 80.0,
    "trunk_link": 80.0,
    "primary": 60.0,
    "primary_link": 60.0,
    "secondary": 50.0,
    "secondary_link": 50.0,
    "tertiary": 40.0,
    "tertiary_link": 40.0,
    "residential": 30.0,
    "living_street": 30.0,
    "service": 20.0,
    "footway": 5.0,
    "path": 5.0,
    "pedestrian": 5.0,
    "steps": 5.0,
}


@dataclass(frozen=True)
class RoadSegment:
    start: Coordinate
    end: Coordinate
    name: str = "Unnamed Road"
    road_class: str = DEFAULT_ROAD_CLASS
    oneway: bool = False
    speed_kph: float = DEFAULT_SPEED_KPH


class SegmentProvider(Protocol):
    name: str

    def load(self) -> Sequence[RoadSegment | Mapping[str, Any]]: ...


def normalize_road_class(raw: object) -> str:
    """Lower-case OSM class with `-` folded to `_` (``Motorway-Link`` -> ``motorway_link``)."""
    return str(raw or "").strip().lower().replace("-", "_") or DEFAULT_ROAD_CLASS


def infer_speed_kph(road_class: str) -> float:
    return ROAD_CLASS_SPEED_KPH.get(normalize_road_class(road_class), DEFAULT_SPEED_KPH)


def parse_maxspeed(tag: object) -> float | None:
    if tag is None or isinstance(tag, bool):
        return None
    if isinstance(tag, (int, float, Decimal)):
        value = float(tag)
        return value if math.isfinite(value) and value > 0.0 else None
    raw = str(tag).strip().lower()
    if not raw:
        return None
    parts = raw.split()
    try:
        value = float(parts[0].replace("mph", "").replace("km/h", ""))
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0.0:
        return None
    if "mph" in raw:
        return value * 1.60934
    return value


def _coerce_float(raw: object) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if not isinstance(raw, (int, float, str, Decimal)):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def _coerce_bool(raw: object) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float, Decimal)):
        return bool(raw)
    return str(raw or "").strip().lower() in {"yes", "true", "1", "forward"}


def _first_present(raw: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def parse_coordinate(lat_raw: object, lon_raw: object) -> Coordinate | None:
    lat = _coerce_float(lat_raw)
    lon = _coerce_float(lon_raw)
    if lat is None or lon is None:
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    return Coordinate(lat=lat, lon=lon)


def parse_road_segment(raw: object) -> RoadSegment | None:
    """Normalise one provider record; ``None`` when the endpoints are unusable."""
    if isinstance(raw, RoadSegment):
        return raw
    if not isinstance(raw, Mapping):
        return None
    start = parse_coordinate(
        raw.get("start_lat"),
        _first_present(raw, "start_lon", "start_lng"),
    )
    end = parse_coordinate(
        raw.get("end_lat"),
        _first_present(raw, "end_lon", "end_lng"),
    )
    if start is None or end is None:
        return None
    road_class = normalize_road_class(_first_present(raw, "road_class", "type", "highway"))
    speed = parse_maxspeed(_first_present(raw, "speed_kph", "speed", "maxspeed"))
    return RoadSegment(
        start=start,
        end=end,
        name=str(raw.get("name") or "Unnamed Road"),
        road_class=road_class,
        oneway=_coerce_bool(raw.get("oneway", False)),
        speed_kph=speed if speed is not None else infer_speed_kph(road_class),
    )


def segments_from_way(
    *,
    name: str,
    points: Sequence[Coordinate],
    highway: str,
    oneway: bool = False,
    maxspeed: object = None,
) -> list[RoadSegment]:
    """Split an ordered polyline into consecutive road segments.

    Only the forward direction is emitted; the graph builder adds reverse
    edges itself.
    """
    road_class = normalize_road_class(highway)
    speed = parse_maxspeed(maxspeed)
    speed_kph = speed if speed is not None else infer_speed_kph(road_class)
    out: list[RoadSegment] = []
    for idx in range(1, len(points)):
        out.append(
            RoadSegment(
                start=points[idx - 1],
                end=points[idx],
                name=name or "Unnamed Road",
                road_class=road_class,
                oneway=bool(oneway),
                speed_kph=speed_kph,
            )
        )
    return out


class StaticSegmentProvider:
    def __init__(self, records: Iterable[RoadSegment | Mapping[str, Any]], *, name: str = "static") -> None:
        self.name = name
        self._records = list(records)

    def load(self) -> list[RoadSegment | Mapping[str, Any]]:
        return list(self._records)


class JsonSegmentProvider:
    """Reads ``{"segments": [...]}`` road assets, parsing them incrementally with ijson.

    Records are streamed out of the JSON document one at a time but collected
    into a list, so the segments themselves are held in memory.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.name = f"json:{self.path.name}"

    def load(self) -> list[Mapping[str, Any]]:
        if not self.path.exists():
            raise RoutingDataError(
                reason_code="road_segment_asset_missing",
                message=f"Road segment asset not found: {self.path}",
                details={"path": str(self.path)},
            )
        records: list[Mapping[str, Any]] = []
        try:
            with self.path.open("rb") as fh:
                for raw in ijson.items(fh, "segments.item"):
                    records.append(raw)
        except ijson.JSONError as exc:
            raise RoutingDataError(
                reason_code="road_segment_asset_invalid",
                message=f"Road segment asset is not valid JSON: {self.path}",
                details={"path": str(self.path), "error": str(exc)},
            ) from exc
        except OSError as exc:
            raise RoutingDataError(
                reason_code="road_segments_unavailable",
                message=f"Road segment asset could not be read: {self.path}",
                details={"path": str(self.path), "error": str(exc)},
            ) from exc
        log_event("road_segments_loaded", provider=self.name, record_count=len(records))
        return records


# Manually curated arterials covering central Ottawa; used when the bulk
# network asset is missing or empty.
_FALLBACK_WAYS: tuple[tuple[str, str, tuple[tuple[float, float], ...]], ...] = (
    (
        "Bank Street",
        "primary",
        ((45.4230, -75.7003), (45.4145, -75.6950), (45.4040, -75.6905), (45.3930, -75.6850), (45.3840, -75.6810)),
    ),
    ("Elgin Street", "secondary", ((45.4225, -75.6925), (45.4160, -75.6880), (45.4090, -75.6845))),
    ("Rideau Street", "primary", ((45.4268, -75.6930), (45.4300, -75.6860), (45.4320, -75.6800))),
    (
        "Wellington Street",
        "primary",
        ((45.4175, -75.7160), (45.4205, -75.7050), (45.4232, -75.6990), (45.4250, -75.6955)),
    ),
    ("Laurier Avenue West", "secondary", ((45.4140, -75.7080), (45.4180, -75.6990), (45.4210, -75.6920))),
    ("Somerset Street West", "secondary", ((45.4100, -75.7150), (45.4140, -75.7020), (45.4170, -75.6950))),
    (
        "Highway 417",
        "motorway",
        ((45.4030, -75.7400), (45.4060, -75.7150), (45.4080, -75.6950), (45.4140, -75.6700), (45.4200, -75.6450)),
    ),
    ("Carling Avenue", "primary", ((45.3960, -75.7500), (45.3990, -75.7250), (45.4010, -75.7050))),
    ("Bronson Avenue", "secondary", ((45.4170, -75.7070), (45.4060, -75.7030), (45.3950, -75.6990))),
    ("King Edward Avenue", "primary", ((45.4300, -75.6900), (45.4250, -75.6880), (45.4200, -75.6870))),
    (
        "Colonel By Drive",
        "secondary",
        ((45.4240, -75.6950), (45.4120, -75.6870), (45.4000, -75.6850), (45.3880, -75.6920)),
    ),
)


class FallbackSegmentProvider:
    name = "fallback:ottawa_main_roads"

    def load(self) -> list[RoadSegment]:
        out: list[RoadSegment] = []
        for road_name, highway, raw_points in _FALLBACK_WAYS:
            points = [Coordinate(lat=lat, lon=lon) for lat, lon in raw_points]
            out.extend(segments_from_way(name=road_name, points=points, highway=highway))
        return out
