from functools import lru_cache

import numpy as np
from pyproj import CRS, Transformer

from splatanchor.domain.schemas import AnchorPoint


@lru_cache(maxsize=1)
def _geodetic_to_ecef() -> Transformer:
    # WGS 84 geodetic 3D is EPSG:4979, the geocentric (ECEF) version is EPSG:4978
    src_crs = CRS("EPSG:4979")
    dst_crs = CRS("EPSG:4978")
    return Transformer.from_crs(src_crs, dst_crs, always_xy=True)


def geodetic_to_geocentric(anchor: AnchorPoint) -> np.ndarray:
    """
    Converts a geodetic anchor (lat, lon, h) to Earth-fixed Cartesian X, Y, Z.

    Args:
        anchor: WGS84 latitude/longitude in degrees, height above the ellipsoid in meters.

    Returns:
        A length-3 array with the ECEF position in meters.
    """
    # Note: pyproj transformers expect (lon, lat, h)
    x, y, z = _geodetic_to_ecef().transform(anchor.lon, anchor.lat, anchor.height)
    return np.array([x, y, z], dtype=float)


def enu_basis(anchor: AnchorPoint) -> np.ndarray:
    """
    East, North and Up unit vectors of the tangent plane at the anchor,
    expressed in ECEF, as the columns of a 3x3 matrix.

    Up is the ellipsoid normal (geodetic latitude), not the geocentric direction.
    """
    lat = np.radians(anchor.lat)
    lon = np.radians(anchor.lon)
    sin_lat, cos_lat = np.sin(lat), np.cos(lat)
    sin_lon, cos_lon = np.sin(lon), np.cos(lon)

    east = np.array([-sin_lon, cos_lon, 0.0])
    north = np.array([-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat])
    up = np.array([cos_lat * cos_lon, cos_lat * sin_lon, sin_lat])
    return np.column_stack((east, north, up))
