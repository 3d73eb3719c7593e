from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List

import numpy as np

from splatanchor.angles import format_deg
from splatanchor.core.alignment_controller import AlignmentController


def _fmt(value) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{k}:{v:.3f}" for k, v in value.items())
    return f"{value:.6f}"


def render_markdown_report(controller: AlignmentController) -> str:
    anchor = controller.anchor
    params = controller.get_params()
    tracker = controller.tracker

    lines: List[str] = [
        "# Splat Alignment Report",
        "",
        f"Generated: {datetime.now().isoformat(timespec='seconds')}",
        "",
        "## Anchor",
        "",
        f"- Latitude: {anchor.lat:.8f}",
        f"- Longitude: {anchor.lon:.8f}",
        f"- Height: {anchor.height:.2f} m",
        "",
        "## Final Parameters",
        "",
        "| Parameter | Value |",
        "|---|---|",
        f"| Scale (m/unit) | {params.scale:.6f} |",
        f"| Yaw | {format_deg(params.yaw_rad, 3)} |",
        f"| Pitch | {format_deg(params.pitch_rad, 3)} |",
        f"| Roll | {format_deg(params.roll_rad, 3)} |",
        f"| East offset (m) | {params.t_east:.3f} |",
        f"| North offset (m) | {params.t_north:.3f} |",
        f"| Up offset (m) | {params.t_up:.3f} |",
        f"| Tilt state | {controller.state.value} |",
    ]

    residual = controller.residual_tilt_deg()
    if residual is not None:
        lines.append(f"| Residual tilt | {residual:.3f}° |")

    lines += ["", "## Placement Matrix (local -> ECEF)", "", "```"]
    with np.printoptions(precision=6, suppress=True, linewidth=120):
        lines.append(str(controller.model_matrix))
    lines += ["```", "", "## Adjustment Log", ""]

    if tracker.logs:
        lines += ["| # | Kind | Source | Before | After | Delta |", "|---|---|---|---|---|---|"]
        for i, entry in enumerate(tracker.logs, start=1):
            lines.append(
                f"| {i} | {entry.kind} | {entry.source} | {_fmt(entry.before)} | {_fmt(entry.after)} | {_fmt(entry.delta)} |"
            )
    else:
        lines.append("No adjustments recorded.")

    lines += ["", "## Summary", "", "```", tracker.get_summary(), "```", ""]
    return "\n".join(lines)


def generate_markdown_report(controller: AlignmentController, output_path: Path) -> None:
    Path(output_path).write_text(render_markdown_report(controller), encoding="utf-8")
