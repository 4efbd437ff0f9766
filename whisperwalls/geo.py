"""Proximity engine: great-circle distance and unlock policy.

Everything here is pure; state transitions live in the discovery ledger.
"""

from __future__ import annotations

import math

from whisperwalls.models import Coordinates, UnlockPolicy

EARTH_RADIUS_METERS = 6_371_000.0

# Slack added to bounding boxes so float rounding never drops a boundary point
# before the exact distance check runs.
_BOX_EPSILON_DEGREES = 1e-9


def distance(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in meters between two points."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Antipodal points can overshoot 1.0 by an ulp and make asin return NaN.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(h))


def is_unlockable(meters: float, policy: UnlockPolicy) -> bool:
    return meters <= policy.proximity_required


def bounding_boxes(center: Coordinates, radius_meters: float) -> list[tuple[float, float, float, float]]:
    """Latitude/longitude boxes covering the circle around ``center``.

    Returns ``(min_lat, max_lat, min_lng, max_lng)`` tuples: one box normally,
    two when the circle crosses the antimeridian. Boxes are a pre-filter for
    the indexed query; callers must still check exact distance.
    """
    angular = radius_meters / EARTH_RADIUS_METERS
    lat = math.radians(center.latitude)
    lng = math.radians(center.longitude)

    min_lat = lat - angular
    max_lat = lat + angular

    if min_lat <= -math.pi / 2 or max_lat >= math.pi / 2 or angular >= math.pi / 2:
        # A pole is inside the circle: every longitude qualifies.
        return [(
            max(-90.0, math.degrees(min_lat) - _BOX_EPSILON_DEGREES),
            min(90.0, math.degrees(max_lat) + _BOX_EPSILON_DEGREES),
            -180.0,
            180.0,
        )]

    ratio = math.sin(angular) / math.cos(lat)
    if ratio >= 1.0:
        return [(math.degrees(min_lat), math.degrees(max_lat), -180.0, 180.0)]

    dlng = math.asin(ratio)
    lat_lo = math.degrees(min_lat) - _BOX_EPSILON_DEGREES
    lat_hi = math.degrees(max_lat) + _BOX_EPSILON_DEGREES
    lng_lo = math.degrees(lng - dlng) - _BOX_EPSILON_DEGREES
    lng_hi = math.degrees(lng + dlng) + _BOX_EPSILON_DEGREES

    if lng_lo < -180.0:
        return [(lat_lo, lat_hi, lng_lo + 360.0, 180.0), (lat_lo, lat_hi, -180.0, lng_hi)]
    if lng_hi > 180.0:
        return [(lat_lo, lat_hi, lng_lo, 180.0), (lat_lo, lat_hi, -180.0, lng_hi - 360.0)]
    return [(lat_lo, lat_hi, lng_lo, lng_hi)]
