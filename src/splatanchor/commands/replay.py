from __future__ import annotations

import warnings
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from splatanchor.core.alignment_controller import AlignmentController
from splatanchor.csv_handler import read_ground_points, save_params
from splatanchor.domain.schemas import EnuParams, SessionEvent, SessionScript
from splatanchor.errors import AlignmentError, BlockedByLock
from splatanchor.infrastructure.reports import generate_markdown_report
from splatanchor.models import ControllerConfig


def _read_script(path: Path) -> SessionScript:
    return SessionScript.model_validate_json(path.read_text(encoding="utf-8"))


def _apply(controller: AlignmentController, event: SessionEvent, base_dir: Path) -> None:
    args = dict(event.args)
    if event.op == "lock_tilt":
        if "points_csv" in args:
            points = read_ground_points(base_dir / args.pop("points_csv"))
        else:
            points = args.pop("points", [])
        controller.lock_tilt(points)
    elif event.op == "unlock_tilt":
        controller.unlock_tilt()
    elif event.op == "set_params":
        controller.set_params(**args)
    else:
        getattr(controller, event.op)(**args)


def run(
    session_json: Path,
    output_params: Path,
    report: Optional[Path] = None,
    log_json: Optional[Path] = None,
    config: ControllerConfig = ControllerConfig(),
    paranoia: bool = True,
) -> AlignmentController:
    """
    Replays a recorded session through a fresh controller and writes the final pose.

    Calibration and plane-fit failures are reported and skipped; like the
    interactive session, the previous pose stays in effect.
    """
    script = _read_script(session_json)
    controller = AlignmentController(script.anchor, script.initial_params, config=config)

    failed = 0
    blocked = 0
    for i, event in enumerate(script.events, start=1):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", BlockedByLock)
            try:
                _apply(controller, event, session_json.parent)
            except AlignmentError as e:
                failed += 1
                typer.echo(f"Event {i} ({event.op}) failed: {e}", err=True)
        hits = [w for w in caught if issubclass(w.category, BlockedByLock)]
        if hits:
            blocked += 1
            typer.echo(f"Event {i} ({event.op}): {hits[0].message}", err=True)

    final = controller.get_params()
    save_params(output_params, final)
    typer.echo(f"Replayed {len(script.events)} events ({failed} failed, {blocked} blocked)")
    typer.echo(f"Final parameters written to {output_params}")

    if report:
        generate_markdown_report(controller, report)
        typer.echo(f"Report written to {report}")
    if log_json:
        log_json.write_text(controller.tracker.export_json(), encoding="utf-8")
        typer.echo(f"Adjustment log written to {log_json}")

    if paranoia:
        # The saved snapshot must recompose to the very same matrix
        reloaded = EnuParams.from_snapshot(output_params.read_text(encoding="utf-8"))
        recomposed = controller.composer.compose(controller.anchor, reloaded)
        if reloaded != final or not np.array_equal(recomposed, controller.model_matrix):
            raise RuntimeError("Snapshot round-trip check FAILED: recomposed matrix differs.")
        typer.echo("Snapshot round-trip check passed: recomposed matrix is bit-identical.")

    return controller
