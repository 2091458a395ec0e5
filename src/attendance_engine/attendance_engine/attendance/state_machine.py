"""Legal transitions of a per-day attendance record.

    not_checked_in --check_in--> checked_in --start_break--> on_break
                                 checked_in <--end_break---- on_break
    checked_in | on_break --check_out--> checked_out (terminal for the day)

Every transition is a pure function from the current record to the next one.
Loading, locking and saving the record is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional, Tuple

from ..businesses.model import BusinessAnchor
from ..core.constants import CHECKOUT_RADIUS_MULTIPLIER, MAX_DAILY_WORK_HOURS
from ..core.enums import (
    OPEN_STATUSES,
    AttendanceStatus,
    BreakType,
    CheckInMethod,
    CheckOutMethod,
    ConflictCode,
)
from ..core.exceptions import GeofenceViolation, NotFound, StateConflict, TokenInvalid, ValidationError
from ..location.model import GeoPoint, LocationCheck, format_point
from ..location.verifier import LocationVerifier
from ..qr.codec import TokenCodec
from .breaks import BreakLedger
from .duration import DurationCalculator
from .model import AttendanceRecord, BreakInterval, WorkDuration

logger = logging.getLogger(__name__)


class AttendanceStateMachine:
    def __init__(
        self,
        verifier: LocationVerifier,
        codec: TokenCodec,
        *,
        ledger: BreakLedger | None = None,
        calculator: DurationCalculator | None = None,
        checkout_radius_multiplier: float = CHECKOUT_RADIUS_MULTIPLIER,
        max_daily_work_hours: float = MAX_DAILY_WORK_HOURS,
    ):
        self._verifier = verifier
        self._codec = codec
        self._ledger = ledger or BreakLedger()
        self._calculator = calculator or DurationCalculator()
        self._checkout_radius_multiplier = float(checkout_radius_multiplier)
        self._max_daily_minutes = int(float(max_daily_work_hours) * 60)

    @property
    def ledger(self) -> BreakLedger:
        return self._ledger

    @property
    def calculator(self) -> DurationCalculator:
        return self._calculator

    @staticmethod
    def state_of(record: Optional[AttendanceRecord]) -> AttendanceStatus:
        return record.status if record is not None else AttendanceStatus.NOT_CHECKED_IN

    # --- check-in -------------------------------------------------------

    def ensure_can_check_in(self, existing: Optional[AttendanceRecord]) -> None:
        state = self.state_of(existing)
        if state in OPEN_STATUSES:
            raise StateConflict(ConflictCode.ALREADY_CHECKED_IN)
        if state == AttendanceStatus.CHECKED_OUT:
            raise StateConflict(ConflictCode.ALREADY_CHECKED_OUT)

    def verify_proof(
        self,
        *,
        method: CheckInMethod,
        business_id: int,
        anchor: Optional[BusinessAnchor],
        location: Optional[GeoPoint],
        qr_token: Optional[str],
        now: datetime,
    ) -> Optional[LocationCheck]:
        """Check the GPS point or QR token. Returns the geofence check for GPS."""
        if method == CheckInMethod.GPS:
            if location is None:
                raise ValidationError("GPS check-in requires a location")
            if anchor is None:
                raise NotFound("Business not found")
            check = self._verifier.verify(location, anchor)
            if not check.within_radius:
                logger.warning(
                    "geofence violation business=%s point=(%s) distance=%dm radius=%sm",
                    business_id,
                    format_point(location),
                    check.rounded_distance,
                    anchor.radius_meters,
                )
                raise GeofenceViolation(check.distance_meters, anchor.radius_meters)
            return check

        if method == CheckInMethod.QR:
            if not qr_token or not str(qr_token).strip():
                raise ValidationError("QR check-in requires a token")
            result = self._codec.validate(str(qr_token).strip(), business_id, now=now)
            if not result.ok:
                logger.warning("qr token rejected business=%s reason=%s", business_id, result.reason.value)
                raise TokenInvalid(result.reason)
            return None

        raise ValidationError("method must be 'gps' or 'qr'")

    def check_in(
        self,
        existing: Optional[AttendanceRecord],
        *,
        user_id: int,
        business_id: int,
        method: CheckInMethod,
        now: datetime,
        anchor: Optional[BusinessAnchor] = None,
        location: Optional[GeoPoint] = None,
        qr_token: Optional[str] = None,
    ) -> AttendanceRecord:
        self.ensure_can_check_in(existing)
        self.verify_proof(
            method=method,
            business_id=business_id,
            anchor=anchor,
            location=location,
            qr_token=qr_token,
            now=now,
        )
        return AttendanceRecord(
            attendance_id=None,
            user_id=int(user_id),
            business_id=int(business_id),
            work_date=now.date(),
            check_in_time=now,
            check_in_method=method,
            check_in_location=location,
            status=AttendanceStatus.CHECKED_IN,
        )

    # --- breaks ---------------------------------------------------------

    def start_break(self, record: AttendanceRecord, break_type: BreakType, at: datetime) -> AttendanceRecord:
        if record.status == AttendanceStatus.ON_BREAK or self._ledger.open_break(record) is not None:
            raise StateConflict(ConflictCode.ALREADY_ON_BREAK)
        if record.status != AttendanceStatus.CHECKED_IN:
            raise StateConflict(ConflictCode.NO_ACTIVE_CHECK_IN)
        if at < record.check_in_time:
            raise ValidationError("break cannot start before check-in")
        last_end = max((b.end_time for b in record.breaks if b.end_time), default=None)
        if last_end is not None and at < last_end:
            raise ValidationError("break cannot start before the previous break ended")

        new_break = BreakInterval(
            break_id=None,
            attendance_id=record.attendance_id,
            start_time=at,
            break_type=break_type,
        )
        return replace(record, status=AttendanceStatus.ON_BREAK, breaks=record.breaks + (new_break,))

    def end_break(
        self, record: AttendanceRecord, break_id: int, at: datetime
    ) -> Tuple[AttendanceRecord, BreakInterval]:
        target = self._ledger.find(record, break_id)
        if target is None:
            raise NotFound("Break not found")
        if record.status != AttendanceStatus.ON_BREAK or not target.is_open:
            raise StateConflict(ConflictCode.NO_ACTIVE_BREAK)

        updated = replace(self._ledger.close_open_break(record, at), status=AttendanceStatus.CHECKED_IN)
        return updated, self._ledger.find(updated, break_id)

    # --- check-out ------------------------------------------------------

    def check_out(
        self,
        record: Optional[AttendanceRecord],
        at: datetime,
        *,
        location: Optional[GeoPoint] = None,
        anchor: Optional[BusinessAnchor] = None,
    ) -> Tuple[AttendanceRecord, WorkDuration]:
        if record is None or record.status not in OPEN_STATUSES:
            raise StateConflict(ConflictCode.NO_ACTIVE_CHECK_IN)
        if at <= record.check_in_time:
            raise ValidationError("check-out time must be after check-in time")

        note = record.note
        if location is not None and anchor is not None:
            check = self._verifier.verify(location, anchor)
            allowed = anchor.radius_meters * self._checkout_radius_multiplier
            if check.distance_meters > allowed:
                logger.warning(
                    "check-out far from business attendance=%s distance=%dm allowed=%dm",
                    record.attendance_id,
                    check.rounded_distance,
                    round(allowed),
                )
                flag = f"Check-out location was {check.rounded_distance}m from the business."
                note = f"{note} {flag}" if note else flag

        closed = self._ledger.close_open_break(record, at)
        duration = self._calculator.calculate(
            closed.check_in_time, at, self._ledger.total_break_minutes(closed, at)
        )
        if duration.total_minutes > self._max_daily_minutes:
            logger.warning(
                "excessive work day attendance=%s total=%dm limit=%dm",
                record.attendance_id,
                duration.total_minutes,
                self._max_daily_minutes,
            )
            hours, minutes = divmod(duration.total_minutes, 60)
            flag = f"Work day of {hours}h{minutes:02d}m exceeds the daily limit."
            note = f"{note} {flag}" if note else flag
        updated = replace(
            closed,
            status=AttendanceStatus.CHECKED_OUT,
            check_out_time=at,
            check_out_location=location,
            check_out_method=CheckOutMethod.GPS if location is not None else CheckOutMethod.MANUAL,
            note=note,
        )
        return updated, duration

    def work_duration(self, record: AttendanceRecord) -> Optional[WorkDuration]:
        """Duration of a checked-out record, None while the day is still open."""
        if record.check_out_time is None:
            return None
        return self._calculator.calculate(
            record.check_in_time,
            record.check_out_time,
            self._ledger.total_break_minutes(record, record.check_out_time),
        )
