"""Geofence verification.

Distances use the Haversine great-circle formula on a spherical Earth, which is
accurate to well under a metre at geofence scale.
"""

from __future__ import annotations

import math

from ..businesses.model import BusinessAnchor
from ..core.constants import EARTH_RADIUS_M
from ..core.exceptions import ValidationError
from .model import GeoPoint, LocationCheck, PointLike, to_point


def haversine_distance(a: GeoPoint, b: GeoPoint, *, earth_radius_m: float = EARTH_RADIUS_M) -> float:
    if a.lat == b.lat and a.lon == b.lon:
        return 0.0

    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return earth_radius_m * c


class LocationVerifier:
    def __init__(self, *, earth_radius_m: float = EARTH_RADIUS_M):
        self._earth_radius_m = float(earth_radius_m)

    def distance(self, reported: PointLike, anchor: BusinessAnchor) -> float:
        return haversine_distance(to_point(reported), anchor.location, earth_radius_m=self._earth_radius_m)

    def verify(self, reported: PointLike, anchor: BusinessAnchor) -> LocationCheck:
        if anchor.radius_meters < 0:
            raise ValidationError("geofence radius must be non-negative")
        distance = self.distance(reported, anchor)
        return LocationCheck(within_radius=distance <= anchor.radius_meters, distance_meters=distance)
