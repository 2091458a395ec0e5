from __future__ import annotations

from typing import Optional, Sequence

from ..core.constants import DEFAULT_GEOFENCE_RADIUS_M
from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from ..location.model import GeoPoint
from .model import BusinessAnchor, Membership
from .repository import BusinessRepository


def _membership(r: dict) -> Membership:
    return Membership(
        user_id=int(r["user_id"]),
        business_id=int(r["business_id"]),
        role=Role(r["role_type"]),
        name=r.get("name"),
        email=r.get("email"),
    )


class MySQLBusinessRepository(BusinessRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, default_radius_m: float = DEFAULT_GEOFENCE_RADIUS_M):
        self._conn_factory = conn_factory
        self._default_radius_m = float(default_radius_m)

    def get_anchor(self, business_id: int) -> Optional[BusinessAnchor]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT business_id, name, latitude, longitude, gps_radius_meters
                FROM businesses
                WHERE business_id=%s
                """,
                (int(business_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return BusinessAnchor(
                business_id=int(r["business_id"]),
                location=GeoPoint(lat=float(r["latitude"]), lon=float(r["longitude"])),
                radius_meters=float(r.get("gps_radius_meters") or self._default_radius_m),
                name=r.get("name"),
            )

    def get_membership(self, user_id: int, business_id: int) -> Optional[Membership]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT ur.user_id, ur.business_id, ur.role_type, u.name, u.email
                FROM user_roles ur
                JOIN users u ON u.user_id = ur.user_id
                WHERE ur.user_id=%s AND ur.business_id=%s AND ur.is_active=1
                """,
                (int(user_id), int(business_id)),
            )
            r = fetchone(cur)
            return _membership(r) if r else None

    def list_memberships_for_user(self, user_id: int) -> Sequence[Membership]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT ur.user_id, ur.business_id, ur.role_type, u.name, u.email
                FROM user_roles ur
                JOIN users u ON u.user_id = ur.user_id
                WHERE ur.user_id=%s AND ur.is_active=1
                """,
                (int(user_id),),
            )
            return [_membership(r) for r in fetchall(cur)]

    def list_members(self, business_id: int) -> Sequence[Membership]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT ur.user_id, ur.business_id, ur.role_type, u.name, u.email
                FROM user_roles ur
                JOIN users u ON u.user_id = ur.user_id
                WHERE ur.business_id=%s AND ur.is_active=1
                ORDER BY u.name ASC, u.user_id ASC
                """,
                (int(business_id),),
            )
            return [_membership(r) for r in fetchall(cur)]
