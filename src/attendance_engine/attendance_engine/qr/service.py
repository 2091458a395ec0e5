from __future__ import annotations

import logging
from datetime import datetime

from ..access.gate import AccessGate
from ..access.model import Caller
from ..businesses.repository import BusinessRepository
from ..common.validators import require_id
from ..core.enums import Capability
from ..core.exceptions import NotFound
from .codec import IssuedToken, TokenCodec
from .image import render_qr_data_url, render_qr_png

logger = logging.getLogger(__name__)


class QRService:
    """Issues check-in tokens for the QR display of a business."""

    def __init__(self, codec: TokenCodec, businesses: BusinessRepository, *, gate: AccessGate | None = None):
        self._codec = codec
        self._businesses = businesses
        self._gate = gate or AccessGate()

    def issue_qr_token(self, caller: Caller, business_id: int, *, now: datetime | None = None) -> IssuedToken:
        business_id = require_id(business_id, "businessId")
        self._gate.require(caller, None, business_id, Capability.MANAGE_BUSINESS)
        if self._businesses.get_anchor(business_id) is None:
            raise NotFound("Business not found")

        issued = self._codec.issue(business_id, now=now)
        logger.info("qr token issued business=%s by=%s expires=%s", business_id, caller.user_id, issued.expires_at)
        return issued

    def issue_qr_png(self, caller: Caller, business_id: int, *, now: datetime | None = None) -> bytes:
        return render_qr_png(self.issue_qr_token(caller, business_id, now=now).token)

    def issue_qr_data_url(self, caller: Caller, business_id: int, *, now: datetime | None = None) -> tuple[IssuedToken, str]:
        issued = self.issue_qr_token(caller, business_id, now=now)
        return issued, render_qr_data_url(issued.token)
