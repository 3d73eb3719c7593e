"""
Plane fitting for tilt locking.

Points sampled from a physically flat ground patch (in splat-local
coordinates) give a plane normal; the rotation taking that normal onto Up
levels the splat. The normal is the direction of minimum variance of the
centred points, i.e. the eigenvector of the covariance matrix with the
smallest eigenvalue. A RANSAC pass can be used first when the sample contains
objects standing on the ground.
"""
import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from splatanchor.core.geometry import UP, quaternion_between, quaternion_to_matrix, quaternion_to_pitch_roll
from splatanchor.domain.schemas import PlaneAlignment
from splatanchor.errors import InsufficientData
from splatanchor.models import RansacConfig

logger = logging.getLogger(__name__)

MIN_POINTS = 3
# Relative size of the second eigenvalue below which points are treated as collinear
_RANK_TOL = 1e-10
# Spread below which the sample is treated as a single point
_SPREAD_EPS = 1e-30


def _as_points(points: Sequence[Sequence[float]]) -> np.ndarray:
    pts = np.asarray(points, dtype=float)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise InsufficientData(f"Expected an Nx3 point array, got shape {pts.shape}")
    if len(pts) < MIN_POINTS:
        raise InsufficientData(f"Need at least {MIN_POINTS} points to fit a plane, got {len(pts)}")
    if not np.all(np.isfinite(pts)):
        raise InsufficientData("Ground points contain non-finite values")
    return pts


def fit_plane_covariance(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fit a plane to 3D points via eigen-decomposition of their covariance.

    Args:
        points: Nx3 array, N >= 3.

    Returns:
        Tuple of (centroid, normal). The normal has a non-negative Z component.

    Raises:
        InsufficientData: if the points are collinear or coincident.
    """
    centroid = points.mean(axis=0)
    centered = points - centroid
    cov = centered.T @ centered / len(points)

    # eigh returns eigenvalues in ascending order
    eigvals, eigvecs = np.linalg.eigh(cov)
    if eigvals[2] <= _SPREAD_EPS or eigvals[1] <= _RANK_TOL * eigvals[2]:
        raise InsufficientData("Ground points are collinear or coincident; they do not define a plane")

    normal = eigvecs[:, 0]
    if normal[2] < 0:
        normal = -normal
    return centroid, normal / np.linalg.norm(normal)


def fit_plane_ransac(
    points: np.ndarray,
    config: RansacConfig = RansacConfig(),
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Robust plane fit: best 3-point consensus, then covariance refit on inliers.

    Falls back to all points when no plane gathers enough inliers.

    Returns:
        Tuple of (centroid, normal, inlier_mask).
    """
    rng = np.random.default_rng(config.seed)
    n_points = len(points)
    best_inliers: Optional[np.ndarray] = None
    best_count = 0

    for _ in range(config.iterations):
        sample = points[rng.choice(n_points, 3, replace=False)]
        normal = np.cross(sample[1] - sample[0], sample[2] - sample[0])
        norm_len = np.linalg.norm(normal)
        if norm_len < 1e-9:
            continue
        normal = normal / norm_len
        distances = np.abs((points - sample[0]) @ normal)
        inliers = distances < config.threshold
        count = int(np.sum(inliers))
        if count > best_count:
            best_count = count
            best_inliers = inliers

    if best_inliers is None or best_count < max(MIN_POINTS, config.min_inliers_ratio * n_points):
        logger.info("RANSAC found no consensus plane (%d/%d inliers), using all points", best_count, n_points)
        centroid, normal = fit_plane_covariance(points)
        return centroid, normal, np.ones(n_points, dtype=bool)

    centroid, normal = fit_plane_covariance(points[best_inliers])
    return centroid, normal, best_inliers


def estimate_ground_alignment(
    points: Sequence[Sequence[float]],
    method: str = "covariance",
    ransac: RansacConfig = RansacConfig(),
) -> PlaneAlignment:
    """Levels a sampled ground patch: plane normal, rotation onto Up, display angles."""
    pts = _as_points(points)

    if method == "covariance":
        centroid, normal = fit_plane_covariance(pts)
        inliers = np.ones(len(pts), dtype=bool)
    elif method == "ransac":
        centroid, normal, inliers = fit_plane_ransac(pts, ransac)
    else:
        raise ValueError(f"Unknown plane fit method: {method}")

    quat = quaternion_between(normal, UP)
    pitch, roll = quaternion_to_pitch_roll(quat)
    matrix = quaternion_to_matrix(quat)

    rms = float(np.sqrt(np.mean(((pts[inliers] - centroid) @ normal) ** 2)))
    logger.info(
        "Ground plane normal %s (rms %.4f, %d/%d points), pitch %.2f deg, roll %.2f deg",
        np.round(normal, 4), rms, int(inliers.sum()), len(pts), np.degrees(pitch), np.degrees(roll),
    )

    return PlaneAlignment(
        normal=tuple(float(v) for v in normal),
        quat=quat,
        pitch_rad=pitch,
        roll_rad=roll,
        align_matrix=tuple(float(v) for v in matrix.ravel()),
        centroid=tuple(float(v) for v in centroid),
        rms_residual=rms,
        inlier_count=int(inliers.sum()),
    )


def residual_tilt_deg(rotation: np.ndarray, normal: Sequence[float] = UP) -> float:
    """Angle in degrees between ``rotation @ normal`` and true Up."""
    image = np.asarray(rotation, dtype=float)[:3, :3] @ np.asarray(normal, dtype=float)
    image = image / np.linalg.norm(image)
    return float(np.degrees(np.arccos(np.clip(image @ UP, -1.0, 1.0))))
