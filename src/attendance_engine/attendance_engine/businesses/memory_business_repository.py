from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Tuple

from .model import BusinessAnchor, Membership
from .repository import BusinessRepository


class InMemoryBusinessRepository(BusinessRepository):
    """Business directory kept in process memory (STORE_BACKEND=memory)."""

    def __init__(self, anchors: Iterable[BusinessAnchor] = (), memberships: Iterable[Membership] = ()):
        self._anchors: Dict[int, BusinessAnchor] = {}
        self._members: Dict[Tuple[int, int], Membership] = {}
        for anchor in anchors:
            self.add_anchor(anchor)
        for membership in memberships:
            self.add_membership(membership)

    def add_anchor(self, anchor: BusinessAnchor) -> None:
        self._anchors[anchor.business_id] = anchor

    def add_membership(self, membership: Membership) -> None:
        self._members[(membership.user_id, membership.business_id)] = membership

    def get_anchor(self, business_id: int) -> Optional[BusinessAnchor]:
        return self._anchors.get(int(business_id))

    def get_membership(self, user_id: int, business_id: int) -> Optional[Membership]:
        return self._members.get((int(user_id), int(business_id)))

    def list_memberships_for_user(self, user_id: int) -> Sequence[Membership]:
        return [m for (uid, _), m in self._members.items() if uid == int(user_id)]

    def list_members(self, business_id: int) -> Sequence[Membership]:
        members = [m for (_, bid), m in self._members.items() if bid == int(business_id)]
        members.sort(key=lambda m: ((m.name or ""), m.user_id))
        return members
