import logging
from typing import Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

logger = logging.getLogger(__name__)

UP = np.array([0.0, 0.0, 1.0])

Quaternion = Tuple[float, float, float, float]

_PARALLEL_DOT = 0.999999


def rotation_x(angle: float) -> np.ndarray:
    """Rotation about East (X)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rotation_y(angle: float) -> np.ndarray:
    """Rotation about North (Y)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotation_z(angle: float) -> np.ndarray:
    """Rotation about Up (Z)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def homogeneous(rotation: np.ndarray) -> np.ndarray:
    """Embeds a 3x3 linear part into a 4x4 matrix."""
    m = np.eye(4)
    m[:3, :3] = rotation
    return m


def translation(x: float, y: float, z: float) -> np.ndarray:
    m = np.eye(4)
    m[:3, 3] = (x, y, z)
    return m


def uniform_scale(k: float) -> np.ndarray:
    return np.diag([k, k, k, 1.0])


def normalize(v: Sequence[float]) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    length = np.linalg.norm(v)
    if length < 1e-12:
        raise ValueError("Cannot normalize a zero-length vector")
    return v / length


def transform_point(matrix: np.ndarray, point: Sequence[float]) -> np.ndarray:
    """Applies a 4x4 affine matrix to a 3D point."""
    p = np.append(np.asarray(point, dtype=float), 1.0)
    return (matrix @ p)[:3]


def quaternion_between(a: Sequence[float], b: Sequence[float]) -> Quaternion:
    """
    Shortest-arc quaternion (x, y, z, w) rotating direction ``a`` onto ``b``.

    Antiparallel inputs have no unique shortest arc; a half turn about an
    axis orthogonal to ``a`` is returned instead.
    """
    a_n = normalize(a)
    b_n = normalize(b)
    dot = float(np.dot(a_n, b_n))

    if dot > _PARALLEL_DOT:
        return (0.0, 0.0, 0.0, 1.0)

    if dot < -_PARALLEL_DOT:
        fallback = np.array([0.0, 1.0, 0.0])
        if abs(np.dot(a_n, fallback)) > 0.9:
            fallback = np.array([1.0, 0.0, 0.0])
        axis = normalize(np.cross(a_n, fallback))
        logger.debug("Antiparallel vectors, rotating 180 deg about %s", axis)
        return (float(axis[0]), float(axis[1]), float(axis[2]), 0.0)

    cross = np.cross(a_n, b_n)
    s = np.sqrt((1.0 + dot) * 2.0)
    return (
        float(cross[0] / s),
        float(cross[1] / s),
        float(cross[2] / s),
        float(s * 0.5),
    )


def quaternion_to_matrix(quat: Quaternion) -> np.ndarray:
    # scipy uses the same scalar-last (x, y, z, w) ordering
    return Rotation.from_quat(quat).as_matrix()


def quaternion_to_pitch_roll(quat: Quaternion) -> Tuple[float, float]:
    """
    Pitch (about East) and roll (about North) of a quaternion.

    Display only: these angles are never fed back into composition.
    """
    x, y, z, w = quat
    pitch = np.arctan2(2.0 * (w * x + y * z), 1.0 - 2.0 * (x * x + y * y))
    roll = np.arcsin(np.clip(2.0 * (w * y - z * x), -1.0, 1.0))
    return float(pitch), float(roll)


def yaw_about_up(rotation: np.ndarray) -> float:
    """Heading angle of a rotation about the local Up axis."""
    return float(np.arctan2(rotation[1, 0], rotation[0, 0]))
