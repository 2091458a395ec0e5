from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.constants import DEFAULT_GEOFENCE_RADIUS_M
from ..core.enums import Role
from ..location.model import GeoPoint


@dataclass(frozen=True)
class BusinessAnchor:
    """Fixed location of a business and its geofence radius."""

    business_id: int
    location: GeoPoint
    radius_meters: float = DEFAULT_GEOFENCE_RADIUS_M
    name: Optional[str] = None


@dataclass(frozen=True)
class Membership:
    """Active role of a user in a business (owned by the identity subsystem)."""

    user_id: int
    business_id: int
    role: Role
    name: Optional[str] = None
    email: Optional[str] = None
