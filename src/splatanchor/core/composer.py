"""
ENU transform composition.

Scale, rotation and translation are composed in the anchor's local
East-North-Up tangent frame, where Up is simply +Z, and then carried into the
Earth-fixed frame through a per-anchor basis change that is computed once and
cached.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, NamedTuple, Optional

import numpy as np

from splatanchor.core.geocentric import enu_basis, geodetic_to_geocentric
from splatanchor.core.geometry import (
    homogeneous,
    rotation_x,
    rotation_y,
    rotation_z,
    translation,
    uniform_scale,
)
from splatanchor.domain.schemas import AnchorKey, AnchorPoint, EnuParams
from splatanchor.errors import InvalidMeasurement

logger = logging.getLogger(__name__)


class LocalFrame(NamedTuple):
    local_to_world: np.ndarray
    world_to_local: np.ndarray


def build_local_frame(anchor: AnchorPoint) -> LocalFrame:
    """ENU -> ECEF matrix for the anchor, plus its inverse. Both read-only."""
    basis = enu_basis(anchor)
    origin = geodetic_to_geocentric(anchor)

    local_to_world = np.eye(4)
    local_to_world[:3, :3] = basis
    local_to_world[:3, 3] = origin

    # Orthonormal basis: the inverse is the transpose plus a rotated offset
    world_to_local = np.eye(4)
    world_to_local[:3, :3] = basis.T
    world_to_local[:3, 3] = -basis.T @ origin

    local_to_world.setflags(write=False)
    world_to_local.setflags(write=False)
    return LocalFrame(local_to_world, world_to_local)


class LocalFrameCache:
    """
    Insert-only memo of local frames keyed by anchor fingerprint.

    Entries are never recomputed or evicted; ``clear()`` is the only way to
    drop them.
    """

    def __init__(self):
        self._frames: Dict[AnchorKey, LocalFrame] = {}
        self._lock = threading.Lock()

    def get(self, anchor: AnchorPoint) -> LocalFrame:
        key = anchor.key()
        frame = self._frames.get(key)
        if frame is not None:
            return frame
        with self._lock:
            frame = self._frames.get(key)
            if frame is None:
                # Built from the fingerprint so every anchor sharing it gets the same frame
                frame = build_local_frame(AnchorPoint(lat=key.lat, lon=key.lon, height=key.height))
                self._frames[key] = frame
                logger.debug("Cached ENU frame for anchor %s", key)
        return frame

    def clear(self) -> None:
        with self._lock:
            self._frames.clear()

    def __contains__(self, anchor: AnchorPoint) -> bool:
        return anchor.key() in self._frames

    def __len__(self) -> int:
        return len(self._frames)


class RotationStrategy(ABC):
    name: str

    @abstractmethod
    def rotation(self, params: EnuParams) -> np.ndarray:
        """Returns the 3x3 local-frame rotation for the given parameters."""
        pass


class LegacyThreeAxis(RotationStrategy):
    """Free yaw, pitch and roll composed as Rz(yaw) . Rx(pitch) . Ry(roll)."""
    name = "legacy"

    def rotation(self, params: EnuParams) -> np.ndarray:
        return rotation_z(params.yaw_rad) @ rotation_x(params.pitch_rad) @ rotation_y(params.roll_rad)


class TiltLockedYawOnly(RotationStrategy):
    """Baked-in leveling rotation followed by the only free angle, yaw."""
    name = "tilt_locked"

    def rotation(self, params: EnuParams) -> np.ndarray:
        align = params.align_rotation()
        if align is None:
            raise ValueError("Tilt-locked composition needs cached_align_rotation")
        return align @ rotation_z(params.yaw_rad)


class RotationStrategyFactory:
    @staticmethod
    def create(name: str) -> RotationStrategy:
        if name == "legacy":
            return LegacyThreeAxis()
        elif name == "tilt_locked":
            return TiltLockedYawOnly()
        else:
            raise ValueError(f"Unknown rotation strategy: {name}")


def select_strategy(params: EnuParams) -> RotationStrategy:
    if params.tilt_locked and params.cached_align_rotation is not None:
        return TiltLockedYawOnly()
    return LegacyThreeAxis()


class EnuComposer:
    def __init__(self, frame_cache: Optional[LocalFrameCache] = None):
        self.frame_cache = frame_cache if frame_cache is not None else LocalFrameCache()

    def local_matrix(self, params: EnuParams, strategy: Optional[RotationStrategy] = None) -> np.ndarray:
        """T . R . S in the anchor's ENU frame."""
        if not np.isfinite(params.scale) or params.scale <= 0:
            raise InvalidMeasurement(f"Scale must be positive, got {params.scale}")
        strategy = strategy or select_strategy(params)

        S = uniform_scale(params.scale)
        R = homogeneous(strategy.rotation(params))
        T = translation(params.t_east, params.t_north, params.t_up)
        return T @ R @ S

    def compose(
        self,
        anchor: AnchorPoint,
        params: EnuParams,
        strategy: Optional[RotationStrategy] = None,
    ) -> np.ndarray:
        """
        Placement matrix taking splat-local points to ECEF.

        With a zero offset the local origin lands exactly on the anchor's
        Earth-fixed position.
        """
        frame = self.frame_cache.get(anchor)
        return frame.local_to_world @ self.local_matrix(params, strategy)

    def compose_world_delta(
        self,
        anchor: AnchorPoint,
        params: EnuParams,
        strategy: Optional[RotationStrategy] = None,
    ) -> np.ndarray:
        """
        The ENU transform conjugated into ECEF: localToWorld . M_local . worldToLocal.

        Acts on points already expressed in ECEF, re-posing them about the anchor.
        """
        frame = self.frame_cache.get(anchor)
        return frame.local_to_world @ self.local_matrix(params, strategy) @ frame.world_to_local
