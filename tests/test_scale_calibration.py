import sys
import os

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from splatanchor.core.scale_calibration import (
    DEFAULT_ROAD_WIDTH_M,
    LANE_WIDTH_M,
    RoadClass,
    estimate_road_width_meters,
    scale_from_imaging_geometry,
    scale_from_road_width,
)
from splatanchor.errors import InvalidMeasurement


class TestRoadWidthScale:

    def test_exact_ratio(self):
        assert scale_from_road_width(12.0, 4.0) == 3.0

    def test_no_clamping(self):
        assert scale_from_road_width(24.0, 0.01) == pytest.approx(2400.0)

    @pytest.mark.parametrize("measured", [0.0, -1.0, float("nan"), float("inf")])
    def test_invalid_measured_width(self, measured):
        with pytest.raises(InvalidMeasurement):
            scale_from_road_width(12.0, measured)

    def test_invalid_true_width(self):
        with pytest.raises(InvalidMeasurement):
            scale_from_road_width(0.0, 4.0)

    def test_invalid_measurement_is_a_value_error(self):
        with pytest.raises(ValueError):
            scale_from_road_width(12.0, 0.0)


class TestImagingGeometry:

    def test_ground_sample_distance(self):
        # 100 m altitude, 8.8 mm lens, 2.4 um pixels -> ~2.73 cm per pixel
        np.testing.assert_allclose(
            scale_from_imaging_geometry(100.0, 8.8, 2.4),
            100.0 * 2.4e-6 / 8.8e-3,
            rtol=1e-12,
        )

    def test_linear_in_altitude(self):
        assert scale_from_imaging_geometry(200.0, 8.8, 2.4) == pytest.approx(
            2 * scale_from_imaging_geometry(100.0, 8.8, 2.4)
        )

    @pytest.mark.parametrize("args", [(0.0, 8.8, 2.4), (100.0, 0.0, 2.4), (100.0, 8.8, -2.4)])
    def test_rejects_non_positive_inputs(self, args):
        with pytest.raises(InvalidMeasurement):
            scale_from_imaging_geometry(*args)


class TestRoadWidthTable:

    @pytest.mark.parametrize(
        "road_class, width",
        [
            ("motorway", 24.0),
            ("trunk", 20.0),
            ("primary", 16.0),
            ("secondary", 12.0),
            ("tertiary", 10.0),
            ("unclassified", 8.0),
            ("residential", 6.0),
            ("living_street", 5.0),
            ("service", 4.0),
            ("pedestrian", 3.0),
        ],
    )
    def test_class_widths(self, road_class, width):
        assert estimate_road_width_meters(road_class) == width

    def test_unknown_class_defaults(self):
        assert estimate_road_width_meters("footway") == DEFAULT_ROAD_WIDTH_M == 8.0
        assert estimate_road_width_meters(None) == DEFAULT_ROAD_WIDTH_M

    def test_enum_and_case_insensitive(self):
        assert estimate_road_width_meters(RoadClass.SECONDARY) == 12.0
        assert estimate_road_width_meters(" Primary ") == 16.0

    def test_lane_count_overrides_class(self):
        assert LANE_WIDTH_M == 3.6
        assert estimate_road_width_meters("motorway", 2) == pytest.approx(7.2)

    def test_zero_lanes_fall_back_to_class(self):
        assert estimate_road_width_meters("tertiary", 0) == 10.0

    def test_lane_width_is_overridable(self):
        assert estimate_road_width_meters("primary", 4, lane_width=3.5) == pytest.approx(14.0)

    def test_explicit_width_wins(self):
        assert estimate_road_width_meters("primary", 4, explicit_width=9.5) == 9.5
        assert estimate_road_width_meters("primary", None, explicit_width=-1.0) == 16.0
