from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..core.enums import Role


@dataclass(frozen=True)
class Caller:
    """Authenticated caller as supplied by the identity subsystem.

    memberships maps business_id -> role held in that business.
    """

    user_id: int
    memberships: Mapping[int, Role] = field(default_factory=dict)

    def role_in(self, business_id: int) -> Optional[Role]:
        return self.memberships.get(int(business_id))
