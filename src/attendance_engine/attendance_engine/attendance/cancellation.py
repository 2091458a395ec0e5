from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..access.gate import AccessGate
from ..common.datetime_utils import now_local
from ..common.validators import clean_optional_text, require_id
from ..core.constants import CANCELLATION_WINDOW_MINUTES
from ..core.enums import AttendanceStatus, Capability, ConflictCode, LogAction
from ..core.exceptions import NotFound, StateConflict
from .model import AttendanceLog, AttendanceRecord
from .store import AttendanceStore

logger = logging.getLogger(__name__)


class CancellationWindow:
    """Lets the owner void a check-in shortly after making it.

    A cancelled check-in is deleted together with its breaks, so it never
    shows up in history; only the audit log remembers it.
    """

    def __init__(
        self,
        store: AttendanceStore,
        *,
        gate: AccessGate | None = None,
        window_minutes: int = CANCELLATION_WINDOW_MINUTES,
        clock=now_local,
    ):
        self._store = store
        self._gate = gate or AccessGate()
        self._window = timedelta(minutes=int(window_minutes))
        self._clock = clock

    @property
    def window(self) -> timedelta:
        return self._window

    def ensure_cancellable(self, record: AttendanceRecord, now: datetime) -> None:
        if now - record.check_in_time > self._window:
            raise StateConflict(ConflictCode.CANCELLATION_TIME_EXPIRED)
        if record.status == AttendanceStatus.CHECKED_OUT:
            raise StateConflict(ConflictCode.ALREADY_CHECKED_OUT)

    def cancel_check_in(
        self,
        attendance_id: int,
        requester_id: int,
        reason: Optional[str] = None,
        *,
        business_id: Optional[int] = None,
        now: datetime | None = None,
    ) -> None:
        attendance_id = require_id(attendance_id, "attendanceId")
        if business_id is not None:
            business_id = require_id(business_id, "businessId")
        now = now or self._clock()
        reason = clean_optional_text(reason)

        with self._store.transaction() as tx:
            record = tx.get(attendance_id, for_update=True)
            if record is None or (business_id is not None and record.business_id != int(business_id)):
                raise NotFound("Check-in record not found")
            self._gate.authorize(requester_id, None, record.user_id, record.business_id, Capability.SELF)
            self.ensure_cancellable(record, now)

            tx.delete(attendance_id)
            tx.append_log(
                AttendanceLog(
                    action=LogAction.CHECK_IN_CANCELLED,
                    user_id=int(requester_id),
                    created_at=now,
                    details={
                        "attendance_id": attendance_id,
                        "business_id": record.business_id,
                        "reason": reason,
                    },
                )
            )

        logger.info("check-in cancelled attendance=%s user=%s", attendance_id, requester_id)
