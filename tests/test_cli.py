import sys
import os
import json

import numpy as np
import pytest
from typer.testing import CliRunner

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from splatanchor.cli import app
from splatanchor.domain.schemas import EnuParams


runner = CliRunner()


@pytest.fixture
def session(tmp_path):
    ground = tmp_path / "ground.csv"
    ground.write_text(
        "X,Y,Z\n" + "\n".join(f"{x},{y},0.0" for x in range(3) for y in range(3)) + "\n",
        encoding="utf-8",
    )
    script = {
        "anchor": {"lat": 34.19, "lon": -118.285, "height": 327.0},
        "initial_params": {"scale": 1.0},
        "events": [
            {"op": "calibrate_scale_from_road_width", "args": {"true_width_m": 12.0, "measured_width_units": 4.0}},
            {"op": "adjust_yaw", "args": {"delta_rad": 0.25}},
            {"op": "lock_tilt", "args": {"points_csv": "ground.csv"}},
            {"op": "adjust_pitch", "args": {"delta_rad": 0.1}},
            {"op": "calibrate_scale_from_road_width", "args": {"true_width_m": 12.0, "measured_width_units": 0.0}},
            {"op": "nudge", "args": {"command": "move_north"}},
        ],
    }
    path = tmp_path / "session.json"
    path.write_text(json.dumps(script), encoding="utf-8")
    return path


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "splatanchor 0.1.0" in result.stdout


def test_road_scale_from_true_width():
    result = runner.invoke(app, ["road-scale", "--measured", "4", "--true-width", "12"])
    assert result.exit_code == 0
    assert "3.000000" in result.stdout


def test_road_scale_from_class():
    result = runner.invoke(app, ["road-scale", "--measured", "6", "--class", "secondary"])
    assert result.exit_code == 0
    assert "2.000000" in result.stdout


def test_road_scale_rejects_zero_measurement():
    result = runner.invoke(app, ["road-scale", "--measured", "0", "--true-width", "12"])
    assert result.exit_code == 1


def test_road_width_from_lanes():
    result = runner.invoke(app, ["road-width", "--class", "motorway", "--lanes", "3"])
    assert result.exit_code == 0
    assert "10.80" in result.stdout


def test_gsd():
    result = runner.invoke(app, ["gsd", "--altitude", "100", "--focal-length", "8", "--pixel-pitch", "2.4"])
    assert result.exit_code == 0
    assert "0.030000" in result.stdout


def test_compose_writes_matrix(tmp_path):
    out = tmp_path / "matrix.json"
    result = runner.invoke(
        app,
        ["compose", "--lat", "N34°11'24\"", "--lon", "-118.285", "--height", "327", "--output-json", str(out)],
    )
    assert result.exit_code == 0
    matrix = np.array(json.loads(out.read_text(encoding="utf-8"))["matrix"])
    assert matrix.shape == (4, 4)
    np.testing.assert_allclose(matrix[3], [0.0, 0.0, 0.0, 1.0])


def test_compose_rejects_bad_latitude():
    result = runner.invoke(app, ["compose", "--lat", "95", "--lon", "0"])
    assert result.exit_code == 1


def test_replay_session(session, tmp_path):
    params_out = tmp_path / "final.json"
    report = tmp_path / "report.md"
    log_json = tmp_path / "log.json"
    result = runner.invoke(
        app,
        [
            "replay",
            "--session", str(session),
            "--output-params", str(params_out),
            "--report", str(report),
            "--log-json", str(log_json),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Replayed 6 events (1 failed, 1 blocked)" in result.output
    assert "bit-identical" in result.output

    final = EnuParams.from_snapshot(params_out.read_text(encoding="utf-8"))
    assert final.scale == 3.0
    assert final.yaw_rad == 0.25
    assert final.tilt_locked and final.pitch_rad == 0.0
    assert final.t_north == 1.0

    assert "# Splat Alignment Report" in report.read_text(encoding="utf-8")
    sources = [e["source"] for e in json.loads(log_json.read_text(encoding="utf-8"))["logs"]]
    assert sources == ["calibration", "manual", "manual"]
