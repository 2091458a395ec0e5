from __future__ import annotations

import logging
from typing import Optional

from ..core.enums import DELEGATED_ROLES, Capability, Role
from ..core.exceptions import InsufficientRole, NotFound
from .model import Caller

logger = logging.getLogger(__name__)


class AccessGate:
    """Single place deciding who may act on whose attendance.

    SELF             requester is the target user (all mutations).
    READ_DELEGATED   self, or manager/owner of the business (status reads).
    MANAGE_BUSINESS  manager/owner of the business (summaries, QR issuing).
    """

    def is_allowed(
        self,
        requester_id: int,
        requester_role: Optional[Role],
        target_user_id: Optional[int],
        business_id: int,
        capability: Capability = Capability.SELF,
    ) -> bool:
        is_self = target_user_id is not None and int(requester_id) == int(target_user_id)
        is_delegate = requester_role in DELEGATED_ROLES

        if capability == Capability.SELF:
            return is_self
        if capability == Capability.READ_DELEGATED:
            return is_self or is_delegate
        return is_delegate

    def authorize(
        self,
        requester_id: int,
        requester_role: Optional[Role],
        target_user_id: Optional[int],
        business_id: int,
        capability: Capability = Capability.SELF,
    ) -> bool:
        if self.is_allowed(requester_id, requester_role, target_user_id, business_id, capability):
            return True

        logger.info(
            "access denied requester=%s role=%s target=%s business=%s capability=%s",
            requester_id,
            requester_role.value if requester_role else None,
            target_user_id,
            business_id,
            capability.value,
        )
        if capability == Capability.SELF:
            # Someone else's record is reported as missing, not forbidden.
            raise NotFound("Attendance record not found")
        raise InsufficientRole("Manager or owner role required for this business")

    def require(
        self,
        caller: Caller,
        target_user_id: Optional[int],
        business_id: int,
        capability: Capability = Capability.SELF,
    ) -> bool:
        return self.authorize(caller.user_id, caller.role_in(business_id), target_user_id, business_id, capability)
