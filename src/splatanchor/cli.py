import json
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from splatanchor.angles import format_deg, parse_degrees
from splatanchor.commands import replay as replay_command
from splatanchor.core.composer import EnuComposer, RotationStrategyFactory
from splatanchor.core.plane_fit import estimate_ground_alignment
from splatanchor.core.scale_calibration import (
    LANE_WIDTH_M,
    estimate_road_width_meters,
    scale_from_imaging_geometry,
    scale_from_road_width,
)
from splatanchor.csv_handler import read_ground_points, read_params
from splatanchor.domain.schemas import AnchorPoint, EnuParams
from splatanchor.errors import AlignmentError
from splatanchor.models import ControllerConfig, RansacConfig, StepConfig
from splatanchor.utils.logging_setup import setup_logging

app = typer.Typer(no_args_is_help=True)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file."),
) -> None:
    """splatanchor: place and calibrate splat reconstructions on the globe."""
    try:
        setup_logging(log_level, str(log_file) if log_file else None)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level")


@app.command()
def version() -> None:
    """Print version."""
    typer.echo("splatanchor 0.1.0")


@app.command()
def compose(
    lat: str = typer.Option(..., "--lat", help="Anchor latitude (decimal degrees or DMS)"),
    lon: str = typer.Option(..., "--lon", help="Anchor longitude (decimal degrees or DMS)"),
    height: float = typer.Option(0.0, "--height", help="Anchor height above the ellipsoid (m)"),
    params_json: Optional[Path] = typer.Option(None, "--params", exists=True, readable=True, help="EnuParams snapshot JSON"),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Force rotation strategy: [legacy|tilt_locked]"),
    output_json: Optional[Path] = typer.Option(None, "--output-json", help="Write the matrix as JSON."),
) -> None:
    """Compose the local -> ECEF placement matrix for an anchor and pose."""
    try:
        anchor = AnchorPoint(lat=parse_degrees(lat), lon=parse_degrees(lon), height=height)
        params = read_params(params_json) if params_json else EnuParams()
        forced = RotationStrategyFactory.create(strategy) if strategy else None
        matrix = EnuComposer().compose(anchor, params, forced)
    except (AlignmentError, ValueError) as e:
        _fail(str(e))

    with np.printoptions(precision=6, suppress=True, linewidth=120):
        typer.echo(str(matrix))
    if output_json:
        output_json.write_text(json.dumps({"matrix": matrix.tolist()}, indent=2), encoding="utf-8")
        typer.echo(f"Matrix written to {output_json}")


@app.command("lock-tilt")
def lock_tilt(
    points_csv: Path = typer.Option(..., "--points", exists=True, readable=True, help="CSV with x,y,z ground samples"),
    method: str = typer.Option("covariance", "--method", help="Plane fit: [covariance|ransac]"),
    threshold: float = typer.Option(0.05, help="RANSAC inlier distance (local units)"),
    seed: int = typer.Option(0, help="RANSAC random seed"),
) -> None:
    """Fit the ground plane and print the leveling rotation."""
    try:
        points = read_ground_points(points_csv)
        alignment = estimate_ground_alignment(points, method=method, ransac=RansacConfig(threshold=threshold, seed=seed))
    except (AlignmentError, ValueError) as e:
        _fail(str(e))

    typer.echo(f"Normal: {np.round(alignment.normal, 6).tolist()}")
    typer.echo(f"Pitch: {format_deg(alignment.pitch_rad, 3)}  Roll: {format_deg(alignment.roll_rad, 3)}")
    typer.echo(f"Inliers: {alignment.inlier_count}/{len(points)}  RMS: {alignment.rms_residual:.4f}")
    typer.echo(f"Align matrix: {json.dumps(list(alignment.align_matrix))}")


@app.command("road-width")
def road_width(
    road_class: str = typer.Option(..., "--class", help="OSM highway class, e.g. residential"),
    lanes: Optional[int] = typer.Option(None, "--lanes"),
    width_tag: Optional[float] = typer.Option(None, "--width-tag", help="Explicit width tag (m)"),
    lane_width: float = typer.Option(LANE_WIDTH_M, "--lane-width"),
) -> None:
    """Print the canonical width for a road."""
    width = estimate_road_width_meters(road_class, lanes, explicit_width=width_tag, lane_width=lane_width)
    typer.echo(f"{width:.2f}")


@app.command("road-scale")
def road_scale(
    measured_width: float = typer.Option(..., "--measured", help="Road width measured in splat units"),
    true_width: Optional[float] = typer.Option(None, "--true-width", help="Known road width (m)"),
    road_class: Optional[str] = typer.Option(None, "--class", help="OSM highway class when the width is unknown"),
    lanes: Optional[int] = typer.Option(None, "--lanes"),
) -> None:
    """Scale (m per splat unit) from a road of known width."""
    if true_width is None:
        if road_class is None and lanes is None:
            _fail("Provide --true-width, or --class/--lanes to estimate it.")
        true_width = estimate_road_width_meters(road_class, lanes)
    try:
        scale = scale_from_road_width(true_width, measured_width)
    except AlignmentError as e:
        _fail(str(e))
    typer.echo(f"{scale:.6f}")


@app.command()
def gsd(
    altitude: float = typer.Option(..., "--altitude", help="Altitude above ground (m)"),
    focal_length: float = typer.Option(..., "--focal-length", help="Focal length (mm)"),
    pixel_pitch: float = typer.Option(..., "--pixel-pitch", help="Sensor pixel pitch (um)"),
) -> None:
    """Ground-sample distance (m per pixel) from imaging geometry."""
    try:
        value = scale_from_imaging_geometry(altitude, focal_length, pixel_pitch)
    except AlignmentError as e:
        _fail(str(e))
    typer.echo(f"{value:.6f}")


@app.command()
def replay(
    session_json: Path = typer.Option(..., "--session", exists=True, readable=True, help="Session script JSON"),
    output_params: Path = typer.Option("final_params.json", "--output-params", help="Final EnuParams snapshot."),
    report: Optional[Path] = typer.Option(None, "--report", help="Markdown report output."),
    log_json: Optional[Path] = typer.Option(None, "--log-json", help="Adjustment log JSON output."),
    scale_min: float = typer.Option(0.1, help="Lower bound for scale nudges"),
    scale_max: float = typer.Option(50.0, help="Upper bound for scale nudges"),
    angle_step: float = typer.Option(5.0, help="Nudge angle step (deg)"),
    horizontal_step: float = typer.Option(1.0, help="Nudge horizontal step (m)"),
    vertical_step: float = typer.Option(10.0, help="Nudge vertical step (m)"),
    plane_fit: str = typer.Option("covariance", "--plane-fit", help="[covariance|ransac]"),
) -> None:
    """Replay a recorded alignment session and export the result."""
    config = ControllerConfig(
        scale_min=scale_min,
        scale_max=scale_max,
        steps=StepConfig(angle_deg=angle_step, horizontal_m=horizontal_step, vertical_m=vertical_step),
        plane_fit_method=plane_fit,
    )
    try:
        replay_command.run(session_json, output_params, report=report, log_json=log_json, config=config)
    except (AlignmentError, ValueError, RuntimeError) as e:
        _fail(str(e))


if __name__ == "__main__":
    app()
