from __future__ import annotations

import math
from dataclasses import dataclass, field


@dataclass(frozen=True)
class StepConfig:
    """
    Fixed increments used by keyboard glue (``AlignmentController.nudge``).

    Angles are in degrees here and converted when applied.
    """
    scale_up: float = 1.1
    scale_down: float = 0.9
    angle_deg: float = 5.0
    horizontal_m: float = 1.0
    vertical_m: float = 10.0

    @property
    def angle_rad(self) -> float:
        return math.radians(self.angle_deg)


@dataclass(frozen=True)
class RansacConfig:
    threshold: float = 0.05
    iterations: int = 100
    min_inliers_ratio: float = 0.5
    seed: int = 0


@dataclass(frozen=True)
class ControllerConfig:
    # Bounds applied to multiplicative scale nudges only; calibration assigns exactly.
    scale_min: float = 0.1
    scale_max: float = 50.0
    steps: StepConfig = field(default_factory=StepConfig)
    plane_fit_method: str = "covariance"  # "covariance" | "ransac"
    ransac: RansacConfig = field(default_factory=RansacConfig)

    def __post_init__(self) -> None:
        if not (0 < self.scale_min <= self.scale_max):
            raise ValueError(f"Invalid scale bounds: [{self.scale_min}, {self.scale_max}]")
