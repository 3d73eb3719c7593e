from datetime import datetime
from typing import Any, Dict, List, Literal, NamedTuple, Optional, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Row-major 3x3 rotation
Matrix3Flat = Tuple[float, float, float, float, float, float, float, float, float]
Vec3 = Tuple[float, float, float]

AdjustmentKind = Literal["scale", "yaw", "pitch", "roll", "position", "height"]
AdjustmentSource = Literal["manual", "calibration", "lock", "bulk"]

TILT_PROTECTED_FIELDS = ("pitch_rad", "roll_rad", "cached_align_rotation", "tilt_locked")

_ROTATION_ATOL = 1e-9


class AnchorKey(NamedTuple):
    """Cache fingerprint of an anchor: lat/lon to 1e-8 deg, height to cm."""
    lat: float
    lon: float
    height: float


class AnchorPoint(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)
    height: float = 0.0

    model_config = ConfigDict(frozen=True)

    def key(self) -> AnchorKey:
        return AnchorKey(round(self.lat, 8), round(self.lon, 8), round(self.height, 2))


class EnuParams(BaseModel):
    """
    Pose of a splat in the anchor's East-North-Up frame.

    scale is meters per local unit. Yaw is about Up, pitch about East and
    roll about North. Once tilt is locked the leveling rotation lives in
    cached_align_rotation and pitch/roll stay at exactly zero.
    """
    scale: float = 1.0
    yaw_rad: float = 0.0
    pitch_rad: float = 0.0
    roll_rad: float = 0.0
    t_east: float = 0.0
    t_north: float = 0.0
    t_up: float = 0.0
    tilt_locked: bool = False
    cached_align_rotation: Optional[Matrix3Flat] = None

    # Snapshots use camelCase keys (yawRad, tEast, ...); snake_case also accepted
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    @model_validator(mode="after")
    def check_tilt_lock(self) -> "EnuParams":
        if self.cached_align_rotation is not None:
            r = self.align_rotation()
            orthonormal = np.allclose(r.T @ r, np.eye(3), rtol=0.0, atol=_ROTATION_ATOL)
            if not orthonormal or abs(np.linalg.det(r) - 1.0) > _ROTATION_ATOL:
                raise ValueError("cached_align_rotation must be a proper rotation (R^T R = I, det R = +1)")
        if self.tilt_locked:
            if self.cached_align_rotation is None:
                raise ValueError("tilt_locked requires cached_align_rotation")
            if self.pitch_rad != 0.0 or self.roll_rad != 0.0:
                raise ValueError("pitch_rad and roll_rad must be 0 while tilt is locked")
        return self

    def with_changes(self, **changes: Any) -> "EnuParams":
        """Returns a validated copy with the given fields replaced."""
        data = self.model_dump()
        unknown = set(changes) - set(data)
        if unknown:
            raise ValueError(f"Unknown EnuParams fields: {sorted(unknown)}")
        data.update(changes)
        return EnuParams.model_validate(data)

    def align_rotation(self) -> Optional[np.ndarray]:
        if self.cached_align_rotation is None:
            return None
        return np.array(self.cached_align_rotation, dtype=float).reshape(3, 3)

    def to_snapshot(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_snapshot(cls, json_str: str) -> "EnuParams":
        return cls.model_validate_json(json_str)


class PlaneAlignment(BaseModel):
    normal: Vec3
    quat: Tuple[float, float, float, float]  # (x, y, z, w)
    pitch_rad: float
    roll_rad: float
    align_matrix: Matrix3Flat
    centroid: Vec3
    rms_residual: float
    inlier_count: int

    model_config = ConfigDict(frozen=True)

    def matrix(self) -> np.ndarray:
        return np.array(self.align_matrix, dtype=float).reshape(3, 3)


class AdjustmentLogEntry(BaseModel):
    timestamp: datetime
    kind: AdjustmentKind
    before: Union[float, Dict[str, float]]
    after: Union[float, Dict[str, float]]
    delta: Union[float, Dict[str, float]]
    source: AdjustmentSource = "manual"

    model_config = ConfigDict(frozen=True)


class SessionAdjustments(BaseModel):
    initial_params: EnuParams
    current_params: EnuParams
    logs: List[AdjustmentLogEntry]
    total_deltas: Dict[str, float]


class SessionEvent(BaseModel):
    op: Literal[
        "adjust_scale", "adjust_yaw", "adjust_pitch", "adjust_roll",
        "adjust_position", "adjust_height", "lock_tilt", "unlock_tilt",
        "calibrate_scale_from_road_width", "calibrate_scale_from_road",
        "set_params", "nudge",
    ]
    args: Dict[str, Any] = Field(default_factory=dict)


class SessionScript(BaseModel):
    """A recorded alignment session that can be replayed headless."""
    anchor: AnchorPoint
    initial_params: EnuParams = Field(default_factory=EnuParams)
    events: List[SessionEvent] = Field(default_factory=list)
