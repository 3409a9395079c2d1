from __future__ import annotations

# ruff: noqa: E402
import argparse
import json
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from livability_router.geo import Coordinate
from livability_router.road_segments import FallbackSegmentProvider, JsonSegmentProvider
from livability_router.routing_errors import RoutingDataError
from livability_router.routing_service import RoutingService
from livability_router.shortest_path import SearchConfig


def _coordinate_arg(raw: str) -> Coordinate:
    parts = [part.strip() for part in str(raw).split(",")]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"expected LAT,LON but got {raw!r}")
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"non-numeric coordinate {raw!r}") from exc
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise argparse.ArgumentTypeError(f"coordinate out of range {raw!r}")
    return Coordinate(lat=lat, lon=lon)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Route between two points and print travel-time estimates as JSON.")
    parser.add_argument("--origin", type=_coordinate_arg, required=True, help="Origin as LAT,LON.")
    parser.add_argument("--destination", type=_coordinate_arg, required=True, help="Destination as LAT,LON.")
    parser.add_argument(
        "--segments",
        type=Path,
        default=None,
        help="Road segment JSON asset. The curated fallback network is used when omitted or unreadable.",
    )
    parser.add_argument("--traffic", default="medium", choices=["low", "medium", "high"])
    parser.add_argument(
        "--service-type",
        default="hospital",
        help="Emergency service type used for the response estimate (hospital, fire, police).",
    )
    parser.add_argument(
        "--exact-frontier",
        action="store_true",
        help="Use exact heap-ordered Dijkstra instead of the sampled frontier.",
    )
    parser.add_argument("--include-path", action="store_true", help="Include the routed coordinates in the output.")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to also write the JSON report.")
    return parser


def run_probe(args: argparse.Namespace) -> dict[str, Any]:
    primary = JsonSegmentProvider(args.segments) if args.segments is not None else None
    config = SearchConfig.from_settings()
    if args.exact_frontier:
        config = replace(config, frontier_sampling_enabled=False)
    service = RoutingService(primary=primary, fallback=FallbackSegmentProvider(), config=config)

    route = service.path(args.origin, args.destination)
    walking = service.walking_time(args.origin, args.destination)
    driving = service.driving_time(args.origin, args.destination, args.traffic)
    emergency = service.emergency_response_time(args.origin, args.destination, args.service_type)

    route_payload = route.model_dump(exclude={"path"})
    if args.include_path:
        route_payload["path"] = [point.model_dump() for point in route.path]
    return {
        "generated_at_utc": datetime.now(UTC).isoformat(),
        "origin": {"lat": args.origin.lat, "lon": args.origin.lon},
        "destination": {"lat": args.destination.lat, "lon": args.destination.lon},
        "route": route_payload,
        "walking": walking.model_dump(),
        "driving": driving.model_dump(),
        "emergency": emergency.model_dump(),
        "graph": service.status(),
    }


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        report = run_probe(args)
    except RoutingDataError as exc:
        print(json.dumps({"error": exc.to_payload()}, indent=2))
        raise SystemExit(2) from exc
    text = json.dumps(report, indent=2)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
    print(text)


if __name__ == "__main__":
    main()
