from __future__ import annotations

import json
from pathlib import Path

import pytest

import scripts.route_probe as route_probe

ORIGIN = "45.4145,-75.6950"
DESTINATION = "45.4040,-75.6905"


def test_run_probe_reports_every_estimate() -> None:
    args = route_probe.build_parser().parse_args(
        ["--origin", ORIGIN, "--destination", DESTINATION, "--traffic", "high", "--service-type", "fire"]
    )

    report = route_probe.run_probe(args)

    assert report["origin"] == {"lat": 45.4145, "lon": -75.6950}
    assert "path" not in report["route"]
    assert report["route"]["is_estimate"] is False
    assert report["driving"]["traffic_level"] == "high"
    assert report["emergency"]["service_type"] == "fire"
    assert report["walking"]["meters"] == report["emergency"]["meters"]
    assert report["graph"]["source"] == "fallback:ottawa_main_roads"


def test_main_writes_output_and_survives_missing_asset(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    output = tmp_path / "reports" / "probe.json"

    route_probe.main(
        [
            "--origin",
            ORIGIN,
            "--destination",
            DESTINATION,
            "--segments",
            str(tmp_path / "missing.json"),
            "--exact-frontier",
            "--include-path",
            "--output",
            str(output),
        ]
    )

    written = json.loads(output.read_text(encoding="utf-8"))
    printed = json.loads(capsys.readouterr().out)
    assert written["route"] == printed["route"]
    assert written["route"]["path"][0] == {"lat": 45.4145, "lon": -75.6950}
    assert written["graph"]["source"] == "fallback:ottawa_main_roads"


def test_parser_rejects_bad_coordinates() -> None:
    parser = route_probe.build_parser()
    for bad in ("45.4", "north,east", "95.0,10.0"):
        with pytest.raises(SystemExit):
            parser.parse_args(["--origin", bad, "--destination", DESTINATION])


def test_main_exits_with_error_payload_when_no_roads_load(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    class _BrokenFallback:
        name = "fallback:broken"

        def load(self) -> list[object]:
            raise OSError("fallback unreadable")

    monkeypatch.setattr(route_probe, "FallbackSegmentProvider", _BrokenFallback)

    with pytest.raises(SystemExit) as exc:
        route_probe.main(
            ["--origin", ORIGIN, "--destination", DESTINATION, "--segments", str(tmp_path / "missing.json")]
        )

    assert exc.value.code == 2
    payload = json.loads(capsys.readouterr().out)
    assert payload["error"]["reason_code"] == "road_segments_unavailable"
    assert len(payload["error"]["details"]["failures"]) == 2
