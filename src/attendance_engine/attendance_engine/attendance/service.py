from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..access.gate import AccessGate
from ..businesses.repository import BusinessRepository
from ..common.datetime_utils import now_local
from ..common.validators import parse_break_type, parse_method, require_id
from ..core.enums import Capability, LogAction
from ..core.exceptions import NotFound
from ..location.model import PointLike, to_point
from .cancellation import CancellationWindow
from .model import (
    AttendanceLog,
    AttendanceRecord,
    BreakEnded,
    BreakStarted,
    CheckInResult,
    CheckOutResult,
)
from .state_machine import AttendanceStateMachine
from .store import AttendanceStore, AttendanceTransaction

logger = logging.getLogger(__name__)


class AttendanceService:
    """Check-in, breaks, check-out and cancellation for the calling user.

    Each operation is one store transaction: lock the day's record, run the
    transition, save it and write the audit log. Nothing is retried here.
    """

    def __init__(
        self,
        store: AttendanceStore,
        businesses: BusinessRepository,
        machine: AttendanceStateMachine,
        *,
        gate: AccessGate | None = None,
        cancellation: CancellationWindow | None = None,
        clock=now_local,
    ):
        self._store = store
        self._businesses = businesses
        self._machine = machine
        self._gate = gate or AccessGate()
        self._cancellation = cancellation or CancellationWindow(store, gate=self._gate, clock=clock)
        self._clock = clock

    def _owned_record(self, tx: AttendanceTransaction, user_id: int, attendance_id: int) -> AttendanceRecord:
        record = tx.get(attendance_id, for_update=True)
        if record is None:
            raise NotFound("Attendance record not found")
        self._gate.authorize(user_id, None, record.user_id, record.business_id, Capability.SELF)
        return record

    def check_in(
        self,
        user_id: int,
        business_id: int,
        method: str,
        *,
        location: Optional[PointLike] = None,
        qr_token: Optional[str] = None,
        now: datetime | None = None,
    ) -> CheckInResult:
        business_id = require_id(business_id, "businessId")
        check_in_method = parse_method(method)
        point = to_point(location) if location is not None else None
        now = now or self._clock()

        anchor = self._businesses.get_anchor(business_id)
        if anchor is None:
            raise NotFound("Business not found")

        with self._store.transaction() as tx:
            existing = tx.get_for_day(user_id, business_id, now.date(), for_update=True) or tx.get_open(
                user_id, business_id, for_update=True
            )
            record = self._machine.check_in(
                existing,
                user_id=user_id,
                business_id=business_id,
                method=check_in_method,
                now=now,
                anchor=anchor,
                location=point,
                qr_token=qr_token,
            )
            record = tx.insert(record)
            tx.append_log(
                AttendanceLog(
                    action=LogAction.CHECK_IN,
                    user_id=int(user_id),
                    attendance_id=record.attendance_id,
                    created_at=now,
                    details={
                        "business_id": business_id,
                        "method": check_in_method.value,
                        "location": point.as_dict() if point else None,
                    },
                )
            )

        logger.info(
            "check-in user=%s business=%s method=%s attendance=%s",
            user_id,
            business_id,
            check_in_method.value,
            record.attendance_id,
        )
        return CheckInResult(
            attendance_id=record.attendance_id,
            status=record.status,
            check_in_time=record.check_in_time,
            method=record.check_in_method,
        )

    def check_out(
        self,
        user_id: int,
        business_id: int,
        *,
        location: Optional[PointLike] = None,
        now: datetime | None = None,
    ) -> CheckOutResult:
        business_id = require_id(business_id, "businessId")
        point = to_point(location) if location is not None else None
        now = now or self._clock()
        anchor = self._businesses.get_anchor(business_id) if point is not None else None

        with self._store.transaction() as tx:
            record = tx.get_open(user_id, business_id, for_update=True)
            updated, duration = self._machine.check_out(record, now, location=point, anchor=anchor)
            updated = tx.save(updated)
            tx.append_log(
                AttendanceLog(
                    action=LogAction.CHECK_OUT,
                    user_id=int(user_id),
                    attendance_id=updated.attendance_id,
                    created_at=now,
                    details={
                        "business_id": business_id,
                        "location": point.as_dict() if point else None,
                        "work_duration": duration.as_dict(),
                    },
                )
            )

        logger.info(
            "check-out user=%s business=%s attendance=%s worked=%dm",
            user_id,
            business_id,
            updated.attendance_id,
            duration.actual_work_minutes,
        )
        return CheckOutResult(
            attendance_id=updated.attendance_id,
            check_in_time=updated.check_in_time,
            check_out_time=updated.check_out_time,
            work_duration=duration,
        )

    def start_break(
        self,
        user_id: int,
        attendance_id: int,
        break_type: Optional[str] = None,
        *,
        now: datetime | None = None,
    ) -> BreakStarted:
        attendance_id = require_id(attendance_id, "attendanceId")
        kind = parse_break_type(break_type)
        now = now or self._clock()

        with self._store.transaction() as tx:
            record = self._owned_record(tx, user_id, attendance_id)
            updated = tx.save(self._machine.start_break(record, kind, now))
            opened = self._machine.ledger.open_break(updated)
            tx.append_log(
                AttendanceLog(
                    action=LogAction.BREAK_START,
                    user_id=int(user_id),
                    attendance_id=attendance_id,
                    created_at=now,
                    details={"break_id": opened.break_id, "break_type": kind.value},
                )
            )

        logger.info("break started user=%s attendance=%s break=%s", user_id, attendance_id, opened.break_id)
        return BreakStarted(
            break_id=opened.break_id,
            attendance_id=attendance_id,
            start_time=opened.start_time,
            break_type=opened.break_type,
        )

    def end_break(
        self,
        user_id: int,
        attendance_id: int,
        break_id: int,
        *,
        now: datetime | None = None,
    ) -> BreakEnded:
        attendance_id = require_id(attendance_id, "attendanceId")
        break_id = require_id(break_id, "breakId")
        now = now or self._clock()

        with self._store.transaction() as tx:
            record = self._owned_record(tx, user_id, attendance_id)
            updated, closed = self._machine.end_break(record, break_id, now)
            tx.save(updated)
            minutes = self._machine.ledger.break_minutes(closed)
            tx.append_log(
                AttendanceLog(
                    action=LogAction.BREAK_END,
                    user_id=int(user_id),
                    attendance_id=attendance_id,
                    created_at=now,
                    details={"break_id": break_id, "duration_minutes": minutes},
                )
            )

        logger.info("break ended user=%s attendance=%s break=%s minutes=%d", user_id, attendance_id, break_id, minutes)
        return BreakEnded(
            break_id=break_id,
            attendance_id=attendance_id,
            start_time=closed.start_time,
            end_time=closed.end_time,
            duration_minutes=minutes,
        )

    def cancel_check_in(
        self,
        user_id: int,
        attendance_id: int,
        reason: Optional[str] = None,
        *,
        business_id: Optional[int] = None,
        now: datetime | None = None,
    ) -> None:
        self._cancellation.cancel_check_in(attendance_id, user_id, reason, business_id=business_id, now=now)
