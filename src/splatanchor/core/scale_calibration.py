from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Union

from splatanchor.errors import InvalidMeasurement

# One canonical lane width for every call site
LANE_WIDTH_M = 3.6
DEFAULT_ROAD_WIDTH_M = 8.0


class RoadClass(str, Enum):
    MOTORWAY = "motorway"
    TRUNK = "trunk"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"
    UNCLASSIFIED = "unclassified"
    RESIDENTIAL = "residential"
    LIVING_STREET = "living_street"
    SERVICE = "service"
    PEDESTRIAN = "pedestrian"


ROAD_WIDTHS_M = {
    RoadClass.MOTORWAY: 24.0,
    RoadClass.TRUNK: 20.0,
    RoadClass.PRIMARY: 16.0,
    RoadClass.SECONDARY: 12.0,
    RoadClass.TERTIARY: 10.0,
    RoadClass.UNCLASSIFIED: 8.0,
    RoadClass.RESIDENTIAL: 6.0,
    RoadClass.LIVING_STREET: 5.0,
    RoadClass.SERVICE: 4.0,
    RoadClass.PEDESTRIAN: 3.0,
}


def _positive(value: float, name: str) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise InvalidMeasurement(f"{name} must be a positive number, got {value!r}")
    return float(value)


def scale_from_road_width(true_width_m: float, measured_width_units: float) -> float:
    """
    Meters per local unit from a road of known width measured in the splat.

    Returns the exact ratio; clamping, if any, is the caller's policy.
    """
    measured = _positive(measured_width_units, "Measured width")
    true_width = _positive(true_width_m, "True width")
    return true_width / measured


def scale_from_imaging_geometry(altitude_m: float, focal_length_mm: float, pixel_pitch_um: float) -> float:
    """
    Ground-sample distance in meters per pixel.

    GSD ~ (altitude * pixel pitch) / focal length, with mm and um converted to
    meters first. Used when no identifiable road is in view.
    """
    altitude = _positive(altitude_m, "Altitude")
    focal_length_m = _positive(focal_length_mm, "Focal length") * 1e-3
    pixel_pitch_m = _positive(pixel_pitch_um, "Pixel pitch") * 1e-6
    return (altitude * pixel_pitch_m) / focal_length_m


def estimate_road_width_meters(
    road_class: Union[RoadClass, str, None],
    lane_count: Optional[int] = None,
    *,
    explicit_width: Optional[float] = None,
    lane_width: float = LANE_WIDTH_M,
) -> float:
    """
    Canonical carriageway width for a road.

    Precedence: a positive explicit width tag, then lane_count * lane_width,
    then the per-class table. Unknown classes get DEFAULT_ROAD_WIDTH_M.
    """
    if explicit_width is not None and math.isfinite(explicit_width) and explicit_width > 0:
        return float(explicit_width)

    if lane_count is not None and lane_count > 0:
        return lane_count * lane_width

    if road_class is None:
        return DEFAULT_ROAD_WIDTH_M
    try:
        cls = RoadClass(str(getattr(road_class, "value", road_class)).strip().lower())
    except ValueError:
        return DEFAULT_ROAD_WIDTH_M
    return ROAD_WIDTHS_M[cls]
