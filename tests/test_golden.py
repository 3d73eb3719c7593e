"""
tests/test_golden.py
====================
Golden-State regression tests for the ENU placement pipeline.

PURPOSE
-------
Pin the observable numerical contract of the composer and controller on a
realistic anchor so that refactors of the frame cache, the rotation
strategies or the controller cannot silently move a splat on the globe.

REFERENCE SCENARIO
------------------
Anchor (Burbank, CA):
    lat    =   34.19      deg
    lon    = -118.285     deg
    height =  327.0       m above the WGS84 ellipsoid

Pose:
    scale = 2.0, yaw = pi/12, everything else at identity.

Expected ECEF of the anchor is computed below directly from the WGS84
ellipsoid (a = 6378137, f = 1/298.257223563), independently of pyproj:

    N = a / sqrt(1 - e^2 sin^2(lat))
    X = (N + h) cos(lat) cos(lon)
    Y = (N + h) cos(lat) sin(lon)
    Z = (N (1 - e^2) + h) sin(lat)

With a zero ENU offset the placement matrix's translation column must be
that point, and the rotation part, brought back into the local frame and
divided by the scale, must be a pure rotation of pi/12 about Up.
"""

import sys
import os

import numpy as np
import pytest

# ---------------------------------------------------------------------------
# Make the source tree importable when pytest is run from the project root
# ---------------------------------------------------------------------------
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from splatanchor.core.alignment_controller import AlignmentController
from splatanchor.core.composer import EnuComposer, LocalFrameCache
from splatanchor.core.geocentric import enu_basis
from splatanchor.core.geometry import rotation_z, transform_point, yaw_about_up
from splatanchor.domain.schemas import AnchorPoint, EnuParams


# ===========================================================================
# Reference values
# ===========================================================================

LAT, LON, HEIGHT = 34.19, -118.285, 327.0
SCALE = 2.0
YAW = np.pi / 12

WGS84_A = 6378137.0
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)


def wgs84_ecef(lat_deg, lon_deg, h):
    lat = np.radians(lat_deg)
    lon = np.radians(lon_deg)
    n = WGS84_A / np.sqrt(1.0 - WGS84_E2 * np.sin(lat) ** 2)
    return np.array([
        (n + h) * np.cos(lat) * np.cos(lon),
        (n + h) * np.cos(lat) * np.sin(lon),
        (n * (1.0 - WGS84_E2) + h) * np.sin(lat),
    ])


ANCHOR_ECEF = wgs84_ecef(LAT, LON, HEIGHT)


@pytest.fixture(scope="module")
def anchor():
    return AnchorPoint(lat=LAT, lon=LON, height=HEIGHT)


@pytest.fixture(scope="module")
def composed(anchor):
    composer = EnuComposer(LocalFrameCache())
    params = EnuParams(scale=SCALE, yaw_rad=YAW)
    return composer.compose(anchor, params)


# ===========================================================================
# 1. END-TO-END PLACEMENT
# ===========================================================================

class TestEndToEndPlacement:
    """Scale 2, yaw pi/12 at the Burbank anchor."""

    def test_translation_is_anchor_ecef(self, composed):
        np.testing.assert_allclose(
            composed[:3, 3],
            ANCHOR_ECEF,
            atol=1e-6,
            err_msg="Translation column is not the anchor's Earth-fixed position",
        )

    def test_rotation_recovers_yaw_about_local_up(self, anchor, composed):
        basis = enu_basis(anchor)
        local_rotation = basis.T @ composed[:3, :3] / SCALE
        np.testing.assert_allclose(
            yaw_about_up(local_rotation),
            YAW,
            atol=1e-12,
            err_msg="Yaw about the anchor's Up axis has changed",
        )
        np.testing.assert_allclose(
            local_rotation,
            rotation_z(YAW),
            atol=1e-12,
            err_msg="Local rotation is not a pure rotation about Up",
        )

    def test_linear_part_is_uniformly_scaled(self, composed):
        column_norms = np.linalg.norm(composed[:3, :3], axis=0)
        np.testing.assert_allclose(column_norms, [SCALE] * 3, rtol=1e-12)

    def test_bottom_row_is_affine(self, composed):
        np.testing.assert_array_equal(composed[3], [0.0, 0.0, 0.0, 1.0])

    def test_local_origin_lands_on_anchor(self, composed):
        np.testing.assert_allclose(
            transform_point(composed, [0.0, 0.0, 0.0]),
            ANCHOR_ECEF,
            atol=1e-6,
        )


# ===========================================================================
# 2. CONTROLLER PRODUCES THE SAME MATRIX
# ===========================================================================

class TestControllerAgreesWithComposer:

    def test_adjustments_reach_the_golden_matrix(self, anchor, composed):
        controller = AlignmentController(anchor, EnuParams())
        controller.adjust_yaw(YAW)
        controller.calibrate_scale_from_road_width(12.0, 6.0)  # 2 m per unit

        np.testing.assert_array_equal(
            controller.model_matrix,
            composed,
            err_msg="Controller and composer disagree for identical parameters",
        )

    def test_snapshot_recomposes_bit_identically(self, anchor, composed):
        params = EnuParams(scale=SCALE, yaw_rad=YAW)
        reloaded = EnuParams.from_snapshot(params.to_snapshot())
        assert reloaded == params
        np.testing.assert_array_equal(EnuComposer().compose(anchor, reloaded), composed)
