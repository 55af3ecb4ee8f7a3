from __future__ import annotations
from dataclasses import dataclass
from math import atan2, copysign, cos, degrees, isfinite, radians, sin, sqrt

"""
Geospatial helpers.

Great-circle distance and bearing between two coordinates, plus the flat local
frame used to place notes around the user (x east, z south, meters).

The local frame is an equirectangular approximation scaled by cos(origin latitude):
accurate for tens to low hundreds of meters, not for large spans. Polar origins are
not supported.
"""

EARTH_RADIUS_M = 6_371_000.0

# Below this, cos(origin latitude) is treated as zero (origin at a pole).
_POLAR_COS_EPSILON = 1e-12

# Longitudes this far past +-180 are rounding noise, not a real wrap.
_LNG_SPILL_EPSILON = 1e-9


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocalPoint:
    """Offset from a local-frame origin in meters (x east-positive, z south-positive)."""

    x: float
    z: float


def to_radians(deg: float) -> float:
    return radians(deg)


def to_degrees(rad: float) -> float:
    return degrees(rad)


def is_finite_coordinate(c: Coordinate) -> bool:
    return isfinite(c.latitude) and isfinite(c.longitude)


def is_valid_coordinate(c: Coordinate) -> bool:
    """True when both components are finite and within the lat/lng ranges."""
    return is_finite_coordinate(c) and -90.0 <= c.latitude <= 90.0 and -180.0 <= c.longitude <= 180.0


def _wrap_lng_delta(delta_deg: float) -> float:
    """Wrap a longitude difference into [-180, 180)."""
    return (delta_deg + 180.0) % 360.0 - 180.0


def _normalize_lng(lng: float) -> float:
    """Bring an absolute longitude back into [-180, 180], keeping +180 as +180."""
    if -180.0 <= lng <= 180.0:
        return lng
    # Float spill just past the antimeridian, e.g. 179.9995 + 0.0005.
    if abs(lng) - 180.0 <= _LNG_SPILL_EPSILON:
        return copysign(180.0, lng)
    return _wrap_lng_delta(lng)


def distance_m(a: Coordinate, b: Coordinate) -> float:
    """Compute great-circle (haversine) distance in meters between two points.

    Symmetric and safe across the antimeridian and the poles. Non-finite inputs
    yield NaN rather than raising.
    """
    if not (is_finite_coordinate(a) and is_finite_coordinate(b)):
        return float("nan")

    lat1 = to_radians(a.latitude)
    lat2 = to_radians(b.latitude)
    dlat = lat2 - lat1
    dlon = to_radians(b.longitude - a.longitude)

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair outside [0, 1] for near-antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * atan2(sqrt(h), sqrt(1 - h))


def bearing_deg(origin: Coordinate, target: Coordinate) -> float:
    """Initial compass bearing from `origin` to `target` in [0, 360).

    0 is north, angles grow clockwise. Identical points (and non-finite inputs)
    return 0.0 so callers never see NaN.
    """
    if not (is_finite_coordinate(origin) and is_finite_coordinate(target)):
        return 0.0
    if origin == target:
        return 0.0

    lat1 = to_radians(origin.latitude)
    lat2 = to_radians(target.latitude)
    dlon = to_radians(target.longitude - origin.longitude)

    y = sin(dlon) * cos(lat2)
    x = cos(lat1) * sin(lat2) - sin(lat1) * cos(lat2) * cos(dlon)
    if x == 0.0 and y == 0.0:
        return 0.0
    brng = to_degrees(atan2(y, x)) % 360.0
    # -1e-15 % 360 rounds up to 360.0
    return 0.0 if brng >= 360.0 else brng


def angular_difference_deg(a: float, b: float) -> float:
    """Shortest-arc difference between two compass angles, in [0, 180]."""
    return abs(((a - b + 180.0) % 360.0) - 180.0)


def to_local(origin: Coordinate, target: Coordinate) -> LocalPoint:
    """Project `target` into the flat frame centred on `origin`."""
    dlat = to_radians(target.latitude - origin.latitude)
    dlon = to_radians(_wrap_lng_delta(target.longitude - origin.longitude))
    x = dlon * EARTH_RADIUS_M * cos(to_radians(origin.latitude))
    z = -dlat * EARTH_RADIUS_M
    return LocalPoint(x=x, z=z)


def to_geo(origin: Coordinate, point: LocalPoint) -> Coordinate:
    """Inverse of `to_local` for the same origin.

    Raises:
        ValueError: If the origin sits on a pole (the east axis is undefined there).
    """
    cos_lat = cos(to_radians(origin.latitude))
    if abs(cos_lat) < _POLAR_COS_EPSILON:
        raise ValueError(f"polar origin (lat={origin.latitude}) is not supported by the local frame")

    dlat = -point.z / EARTH_RADIUS_M
    dlon = point.x / (EARTH_RADIUS_M * cos_lat)
    lng = _normalize_lng(origin.longitude + to_degrees(dlon))
    return Coordinate(latitude=origin.latitude + to_degrees(dlat), longitude=lng)
