"""
Audit log of a session's pose adjustments.

Every mutation is appended as an immutable entry. Alongside the log the
tracker mirrors the current parameters and keeps, per field, the net change
from the session's initial pose: a ratio for scale, a difference for
everything else. Totals are never relative to the previous entry.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from splatanchor.angles import format_deg
from splatanchor.domain.schemas import AdjustmentLogEntry, EnuParams, SessionAdjustments

logger = logging.getLogger(__name__)

ENU_KEYS = ("E", "N", "U")


def _initial_totals() -> Dict[str, float]:
    return {
        "scale": 1.0,
        "yaw_rad": 0.0,
        "pitch_rad": 0.0,
        "roll_rad": 0.0,
        "t_east": 0.0,
        "t_north": 0.0,
        "t_up": 0.0,
    }


class AdjustmentTracker:
    def __init__(self, initial_params: EnuParams):
        self.enabled = True
        self._initial = initial_params
        self._current = initial_params
        self._logs: List[AdjustmentLogEntry] = []
        self._totals = _initial_totals()
        logger.info("Adjustment tracker initialized: %s", initial_params.model_dump(exclude={"cached_align_rotation"}))

    @property
    def initial_params(self) -> EnuParams:
        return self._initial

    @property
    def current_params(self) -> EnuParams:
        return self._current

    @property
    def logs(self) -> Tuple[AdjustmentLogEntry, ...]:
        return tuple(self._logs)

    @property
    def total_deltas(self) -> Dict[str, float]:
        return dict(self._totals)

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        logger.info("Adjustment tracker %s", "enabled" if enabled else "disabled")

    def _append(self, kind, before, after, delta, source) -> None:
        self._logs.append(
            AdjustmentLogEntry(
                timestamp=datetime.now(timezone.utc),
                kind=kind,
                before=before,
                after=after,
                delta=delta,
                source=source,
            )
        )

    def _mirror(self, **fields: Any) -> None:
        # Mirror only; lock invariants are enforced by the controller's own params
        self._current = self._current.model_copy(update=fields)

    def log_scale_adjustment(self, before: float, after: float, source: str = "manual") -> None:
        if not self.enabled:
            return
        factor = after / before
        self._totals["scale"] = after / self._initial.scale
        self._append("scale", before, after, factor, source)
        self._mirror(scale=after)
        logger.info(
            "Scale: %.3f -> %.3f (factor %.3f, total from initial %.3fx)",
            before, after, factor, self._totals["scale"],
        )

    def _log_angle(self, kind: str, field: str, before: float, after: float, source: str) -> None:
        if not self.enabled:
            return
        delta = after - before
        self._totals[field] = after - getattr(self._initial, field)
        self._append(kind, before, after, delta, source)
        self._mirror(**{field: after})
        logger.info(
            "%s: %s -> %s (delta %s, total %s)",
            kind.capitalize(), format_deg(before, 1), format_deg(after, 1),
            format_deg(delta, 1), format_deg(self._totals[field], 1),
        )

    def log_yaw_adjustment(self, before: float, after: float, source: str = "manual") -> None:
        self._log_angle("yaw", "yaw_rad", before, after, source)

    def log_pitch_adjustment(self, before: float, after: float, source: str = "manual") -> None:
        self._log_angle("pitch", "pitch_rad", before, after, source)

    def log_roll_adjustment(self, before: float, after: float, source: str = "manual") -> None:
        self._log_angle("roll", "roll_rad", before, after, source)

    def log_position_adjustment(
        self,
        before: Tuple[float, float, float],
        after: Tuple[float, float, float],
        source: str = "manual",
    ) -> None:
        """Logs an East/North/Up move as one compound entry."""
        if not self.enabled:
            return
        before_d = dict(zip(ENU_KEYS, map(float, before)))
        after_d = dict(zip(ENU_KEYS, map(float, after)))
        delta_d = {k: after_d[k] - before_d[k] for k in ENU_KEYS}

        self._totals["t_east"] = after_d["E"] - self._initial.t_east
        self._totals["t_north"] = after_d["N"] - self._initial.t_north
        self._totals["t_up"] = after_d["U"] - self._initial.t_up

        self._append("position", before_d, after_d, delta_d, source)
        self._mirror(t_east=after_d["E"], t_north=after_d["N"], t_up=after_d["U"])
        logger.info(
            "Position: [E:%.3f, N:%.3f, U:%.3f] -> [E:%.3f, N:%.3f, U:%.3f]",
            *before_d.values(), *after_d.values(),
        )

    def log_height_adjustment(self, before: float, after: float, source: str = "manual") -> None:
        if not self.enabled:
            return
        delta = after - before
        self._totals["t_up"] = after - self._initial.t_up
        self._append("height", before, after, delta, source)
        self._mirror(t_up=after)
        logger.info("Height: %.2fm -> %.2fm (delta %.2fm, total %.2fm)", before, after, delta, self._totals["t_up"])

    def mirror_tilt_lock(self, params: EnuParams) -> None:
        """Copies lock state into the mirror. Not an adjustment; nothing is appended."""
        if not self.enabled:
            return
        self._mirror(tilt_locked=params.tilt_locked, cached_align_rotation=params.cached_align_rotation)
        logger.info("Tilt lock mirrored: %s", "locked" if params.tilt_locked else "unlocked")

    def reset(self, new_initial_params: EnuParams) -> None:
        """Discards the log and re-baselines initial and current snapshots."""
        self._initial = new_initial_params
        self._current = new_initial_params
        self._logs = []
        self._totals = _initial_totals()
        logger.info("Adjustment tracker reset with new initial params")

    def get_summary(self) -> str:
        ini, cur, tot = self._initial, self._current, self._totals

        def block(p: EnuParams) -> List[str]:
            return [
                f"  Scale:    {p.scale:.3f}",
                f"  Yaw:      {format_deg(p.yaw_rad)}",
                f"  Pitch:    {format_deg(p.pitch_rad)}",
                f"  Roll:     {format_deg(p.roll_rad)}",
                f"  Position: E:{p.t_east:.3f}, N:{p.t_north:.3f}, U:{p.t_up:.3f}",
            ]

        rule = "=" * 51
        lines = [rule, "ADJUSTMENT SUMMARY", rule, "", "INITIAL PARAMETERS:"]
        lines += block(ini)
        lines += ["", "CURRENT PARAMETERS:"]
        lines += block(cur)
        lines += [
            "",
            "TOTAL CHANGES FROM INITIAL:",
            f"  Scale:    {tot['scale']:.3f}x",
            f"  Yaw:      {format_deg(tot['yaw_rad'])}",
            f"  Pitch:    {format_deg(tot['pitch_rad'])}",
            f"  Roll:     {format_deg(tot['roll_rad'])}",
            f"  Position: E:{tot['t_east']:.3f}, N:{tot['t_north']:.3f}, U:{tot['t_up']:.3f}",
            "",
            f"Total adjustments made: {len(self._logs)}",
            rule,
        ]
        return "\n".join(lines)

    def get_code_snippet(self) -> str:
        """Current pose as a call that can be pasted into session glue."""
        p = self._current
        return (
            "controller.set_params(\n"
            f"    scale={p.scale:.6f},\n"
            f"    yaw_rad={p.yaw_rad:.6f},\n"
            f"    pitch_rad={p.pitch_rad:.6f},\n"
            f"    roll_rad={p.roll_rad:.6f},\n"
            f"    t_east={p.t_east:.3f},\n"
            f"    t_north={p.t_north:.3f},\n"
            f"    t_up={p.t_up:.3f},\n"
            ")"
        )

    def to_model(self) -> SessionAdjustments:
        return SessionAdjustments(
            initial_params=self._initial,
            current_params=self._current,
            logs=list(self._logs),
            total_deltas=dict(self._totals),
        )

    def export_json(self) -> str:
        return self.to_model().model_dump_json(by_alias=True, indent=2)
