from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import BusinessAnchor, Membership


class BusinessRepository(Protocol):
    """Read-only view over businesses and their active members."""

    def get_anchor(self, business_id: int) -> Optional[BusinessAnchor]:
        raise NotImplementedError

    def get_membership(self, user_id: int, business_id: int) -> Optional[Membership]:
        raise NotImplementedError

    def list_memberships_for_user(self, user_id: int) -> Sequence[Membership]:
        raise NotImplementedError

    def list_members(self, business_id: int) -> Sequence[Membership]:
        raise NotImplementedError
