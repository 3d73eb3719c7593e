"""
Alignment controller: the only writer of a session's EnuParams.

Every operation builds a complete, validated parameter set before swapping it
in, so no partial update is ever observable. After each change the tracker
logs the mutation, the composer rebuilds the placement matrix and listeners
(renderers) receive the new matrix. Interactive tools feed deltas through
these methods; nothing else writes pose state.
"""
import logging
import warnings
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from splatanchor.angles import format_deg
from splatanchor.core.adjustment_tracker import AdjustmentTracker
from splatanchor.core.composer import EnuComposer, RotationStrategy, select_strategy
from splatanchor.core.plane_fit import estimate_ground_alignment, residual_tilt_deg
from splatanchor.core.scale_calibration import estimate_road_width_meters, scale_from_road_width
from splatanchor.domain.schemas import TILT_PROTECTED_FIELDS, AnchorPoint, EnuParams, PlaneAlignment
from splatanchor.errors import BlockedByLock, InvalidMeasurement
from splatanchor.models import ControllerConfig

logger = logging.getLogger(__name__)

Listener = Callable[[np.ndarray, EnuParams], None]


class TiltState(str, Enum):
    UNLOCKED = "unlocked"
    TILT_LOCKED = "tilt_locked"


class AlignmentController:
    def __init__(
        self,
        anchor: AnchorPoint,
        initial_params: Optional[EnuParams] = None,
        *,
        config: ControllerConfig = ControllerConfig(),
        composer: Optional[EnuComposer] = None,
        tracker: Optional[AdjustmentTracker] = None,
    ):
        self._anchor = anchor
        self._params = initial_params if initial_params is not None else EnuParams()
        self.config = config
        self.composer = composer if composer is not None else EnuComposer()
        self.tracker = tracker if tracker is not None else AdjustmentTracker(self._params)
        self._listeners: List[Listener] = []
        self._ground_normal: Optional[Tuple[float, float, float]] = None
        self._matrix = self.composer.compose(self._anchor, self._params)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def anchor(self) -> AnchorPoint:
        return self._anchor

    @property
    def state(self) -> TiltState:
        return TiltState.TILT_LOCKED if self._params.tilt_locked else TiltState.UNLOCKED

    @property
    def strategy(self) -> RotationStrategy:
        return select_strategy(self._params)

    @property
    def model_matrix(self) -> np.ndarray:
        return self._matrix.copy()

    def get_params(self) -> EnuParams:
        return self._params.model_copy()

    def subscribe(self, listener: Listener) -> None:
        """Registers a callback receiving (matrix, params) after every change."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, params: EnuParams, record: Optional[Callable[[], None]] = None) -> None:
        # Compose before swapping so a failure leaves the previous pose in effect.
        # Audit entry first, listeners last.
        matrix = self.composer.compose(self._anchor, params)
        self._params = params
        self._matrix = matrix
        if record is not None:
            record()
        for listener in self._listeners:
            listener(matrix.copy(), params)

    def _blocked(self, what: str) -> None:
        message = f"{what} blocked: tilt is locked (plane-fitted)"
        logger.warning(message)
        warnings.warn(message, BlockedByLock, stacklevel=3)

    # ------------------------------------------------------------------
    # Manual deltas
    # ------------------------------------------------------------------

    def adjust_scale(self, factor: float) -> float:
        if not np.isfinite(factor) or factor <= 0:
            raise InvalidMeasurement(f"Scale factor must be positive, got {factor}")
        before = self._params.scale
        after = min(self.config.scale_max, max(self.config.scale_min, before * factor))
        self._commit(
            self._params.with_changes(scale=after),
            lambda: self.tracker.log_scale_adjustment(before, after),
        )
        return after

    def adjust_yaw(self, delta_rad: float) -> bool:
        before = self._params.yaw_rad
        after = before + delta_rad
        self._commit(
            self._params.with_changes(yaw_rad=after),
            lambda: self.tracker.log_yaw_adjustment(before, after),
        )
        return True

    def adjust_pitch(self, delta_rad: float) -> bool:
        if self._params.tilt_locked:
            self._blocked("Pitch adjustment")
            return False
        before = self._params.pitch_rad
        after = before + delta_rad
        self._commit(
            self._params.with_changes(pitch_rad=after),
            lambda: self.tracker.log_pitch_adjustment(before, after),
        )
        return True

    def adjust_roll(self, delta_rad: float) -> bool:
        if self._params.tilt_locked:
            self._blocked("Roll adjustment")
            return False
        before = self._params.roll_rad
        after = before + delta_rad
        self._commit(
            self._params.with_changes(roll_rad=after),
            lambda: self.tracker.log_roll_adjustment(before, after),
        )
        return True

    def adjust_position(self, delta_east: float, delta_north: float, delta_up: float = 0.0) -> None:
        p = self._params
        before = (p.t_east, p.t_north, p.t_up)
        after = (p.t_east + delta_east, p.t_north + delta_north, p.t_up + delta_up)
        self._commit(
            p.with_changes(t_east=after[0], t_north=after[1], t_up=after[2]),
            lambda: self.tracker.log_position_adjustment(before, after),
        )

    def adjust_height(self, delta_up: float) -> None:
        before = self._params.t_up
        after = before + delta_up
        self._commit(
            self._params.with_changes(t_up=after),
            lambda: self.tracker.log_height_adjustment(before, after),
        )

    # ------------------------------------------------------------------
    # Tilt lock
    # ------------------------------------------------------------------

    def lock_tilt(self, ground_points: Sequence[Sequence[float]]) -> PlaneAlignment:
        """
        Levels the splat from ground samples and write-protects pitch/roll.

        Raises:
            InsufficientData: fewer than 3 usable points. State is unchanged.
        """
        alignment = estimate_ground_alignment(
            ground_points,
            method=self.config.plane_fit_method,
            ransac=self.config.ransac,
        )

        before = self._params
        locked = before.with_changes(
            cached_align_rotation=alignment.align_matrix,
            tilt_locked=True,
            pitch_rad=0.0,
            roll_rad=0.0,
        )

        def record() -> None:
            if before.pitch_rad != 0.0:
                self.tracker.log_pitch_adjustment(before.pitch_rad, 0.0, source="lock")
            if before.roll_rad != 0.0:
                self.tracker.log_roll_adjustment(before.roll_rad, 0.0, source="lock")
            self.tracker.mirror_tilt_lock(locked)

        self._ground_normal = alignment.normal
        self._commit(locked, record)

        logger.info(
            "Tilt locked: alignment cached, pitch/roll zeroed, yaw preserved at %s (residual tilt %.3f deg)",
            format_deg(self._params.yaw_rad, 1), self.residual_tilt_deg(),
        )
        return alignment

    def unlock_tilt(self) -> None:
        """Discards the plane fit; pitch and roll become free again, starting at 0."""
        if not self._params.tilt_locked:
            return
        unlocked = self._params.with_changes(tilt_locked=False, cached_align_rotation=None)
        self._ground_normal = None
        self._commit(unlocked, lambda: self.tracker.mirror_tilt_lock(unlocked))
        logger.info("Tilt unlocked")

    def residual_tilt_deg(self) -> Optional[float]:
        """Angle between the fitted ground normal's composed image and Up; None when unlocked."""
        if self._ground_normal is None or not self._params.tilt_locked:
            return None
        local = self.composer.local_matrix(self._params)
        return residual_tilt_deg(local[:3, :3] / self._params.scale, self._ground_normal)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate_scale_from_road_width(self, true_width_m: float, measured_width_units: float) -> float:
        """Assigns scale from a road of known width. Not clamped; logged as a calibration entry."""
        new_scale = scale_from_road_width(true_width_m, measured_width_units)
        before = self._params.scale
        self._commit(
            self._params.with_changes(scale=new_scale),
            lambda: self.tracker.log_scale_adjustment(before, new_scale, source="calibration"),
        )
        logger.info("Scale calibrated from road width: %.3f m/unit", new_scale)
        return new_scale

    def calibrate_scale_from_road(
        self,
        road_class: str,
        measured_width_units: float,
        lane_count: Optional[int] = None,
        explicit_width: Optional[float] = None,
    ) -> float:
        true_width = estimate_road_width_meters(road_class, lane_count, explicit_width=explicit_width)
        return self.calibrate_scale_from_road_width(true_width, measured_width_units)

    # ------------------------------------------------------------------
    # Bulk access
    # ------------------------------------------------------------------

    def set_params(self, **partial: Any) -> Tuple[str, ...]:
        """
        Bulk assignment. While tilt is locked, pitch_rad, roll_rad,
        cached_align_rotation and tilt_locked are dropped from the batch;
        the remaining fields still apply.

        Returns:
            Names of the dropped fields.
        """
        dropped: Tuple[str, ...] = ()
        if self._params.tilt_locked:
            dropped = tuple(k for k in partial if k in TILT_PROTECTED_FIELDS)
            partial = {k: v for k, v in partial.items() if k not in TILT_PROTECTED_FIELDS}
            if dropped:
                self._blocked(f"Changes to {', '.join(dropped)}")

        if "scale" in partial and (not np.isfinite(partial["scale"]) or partial["scale"] <= 0):
            raise InvalidMeasurement(f"Scale must be positive, got {partial['scale']}")

        before = self._params
        after = before.with_changes(**partial)

        def record() -> None:
            if after.scale != before.scale:
                self.tracker.log_scale_adjustment(before.scale, after.scale, source="bulk")
            if after.yaw_rad != before.yaw_rad:
                self.tracker.log_yaw_adjustment(before.yaw_rad, after.yaw_rad, source="bulk")
            if after.pitch_rad != before.pitch_rad:
                self.tracker.log_pitch_adjustment(before.pitch_rad, after.pitch_rad, source="bulk")
            if after.roll_rad != before.roll_rad:
                self.tracker.log_roll_adjustment(before.roll_rad, after.roll_rad, source="bulk")
            before_enu = (before.t_east, before.t_north, before.t_up)
            after_enu = (after.t_east, after.t_north, after.t_up)
            if after_enu != before_enu:
                self.tracker.log_position_adjustment(before_enu, after_enu, source="bulk")
            if (after.tilt_locked, after.cached_align_rotation) != (before.tilt_locked, before.cached_align_rotation):
                self.tracker.mirror_tilt_lock(after)

        if not after.tilt_locked:
            self._ground_normal = None
        self._commit(after, record)
        return dropped


    def reset_tracking(self) -> None:
        self.tracker.reset(self._params)

    # ------------------------------------------------------------------
    # Keyboard glue
    # ------------------------------------------------------------------

    def nudge(self, command: str) -> bool:
        """
        Applies one fixed-increment step, as bound to a key.

        Returns False when the step was blocked by the tilt lock.
        """
        steps = self.config.steps
        a, h, v = steps.angle_rad, steps.horizontal_m, steps.vertical_m
        actions = {
            "scale_up": lambda: self.adjust_scale(steps.scale_up),
            "scale_down": lambda: self.adjust_scale(steps.scale_down),
            "yaw_left": lambda: self.adjust_yaw(a),
            "yaw_right": lambda: self.adjust_yaw(-a),
            "pitch_up": lambda: self.adjust_pitch(a),
            "pitch_down": lambda: self.adjust_pitch(-a),
            "roll_left": lambda: self.adjust_roll(-a),
            "roll_right": lambda: self.adjust_roll(a),
            "move_east": lambda: self.adjust_position(h, 0.0),
            "move_west": lambda: self.adjust_position(-h, 0.0),
            "move_north": lambda: self.adjust_position(0.0, h),
            "move_south": lambda: self.adjust_position(0.0, -h),
            "move_up": lambda: self.adjust_height(v),
            "move_down": lambda: self.adjust_height(-v),
        }
        if command not in actions:
            raise ValueError(f"Unknown nudge command: {command}")
        result = actions[command]()
        return result is not False
