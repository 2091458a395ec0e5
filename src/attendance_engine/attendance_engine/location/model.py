from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from ..common.validators import require_number
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class GeoPoint:
    """A validated WGS84 coordinate."""

    lat: float
    lon: float

    def __post_init__(self):
        lat = require_number(self.lat, "latitude")
        lon = require_number(self.lon, "longitude")
        if not -90 <= lat <= 90:
            raise ValidationError("latitude must be between -90 and 90")
        if not -180 <= lon <= 180:
            raise ValidationError("longitude must be between -180 and 180")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GeoPoint":
        """Build from client payloads using lat/lng, lat/lon or latitude/longitude."""
        if not isinstance(data, Mapping):
            raise ValidationError("location must be an object with latitude and longitude")
        lat = data.get("latitude", data.get("lat"))
        lon = data.get("longitude", data.get("lng", data.get("lon")))
        if lat is None or lon is None:
            raise ValidationError("location requires latitude and longitude")
        return cls(lat=lat, lon=lon)

    def as_dict(self) -> dict:
        return {"latitude": self.lat, "longitude": self.lon}


PointLike = Union[GeoPoint, Mapping[str, Any]]


def to_point(value: PointLike) -> GeoPoint:
    if isinstance(value, GeoPoint):
        return value
    return GeoPoint.from_mapping(value)


def format_point(point: GeoPoint) -> str:
    return f"{point.lat:.6f}, {point.lon:.6f}"


@dataclass(frozen=True)
class LocationCheck:
    within_radius: bool
    distance_meters: float

    @property
    def rounded_distance(self) -> int:
        return int(round(self.distance_meters))
