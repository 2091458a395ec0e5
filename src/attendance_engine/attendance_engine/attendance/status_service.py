from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence, Tuple

from ..access.gate import AccessGate
from ..access.model import Caller
from ..businesses.repository import BusinessRepository
from ..common.datetime_utils import now_local
from ..common.validators import require_id
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus, Capability, CheckInMethod, Role
from ..core.exceptions import GeofenceViolation, NotFound, StateConflict, ValidationError
from ..location.model import PointLike, to_point
from ..ratelimit.limiter import RateLimiter, enforce
from .model import AttendanceLog, AttendanceRecord, BreakInterval, WorkDuration
from .state_machine import AttendanceStateMachine
from .store import AttendanceStore

STATUS_ENDPOINT = "status"
SUMMARY_ENDPOINT = "business_summary"
MAX_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class StatusView:
    user_id: int
    business_id: int
    work_date: date
    status: AttendanceStatus
    record: Optional[AttendanceRecord] = None
    work_duration: Optional[WorkDuration] = None


@dataclass(frozen=True)
class Eligibility:
    can_check_in: bool
    current_status: AttendanceStatus
    reason: Optional[str] = None
    code: Optional[str] = None
    distance_meters: Optional[int] = None


@dataclass(frozen=True)
class MemberStatus:
    user_id: int
    name: Optional[str]
    role: Role
    status: AttendanceStatus
    attendance_id: Optional[int] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None


@dataclass(frozen=True)
class BusinessSummary:
    business_id: int
    work_date: date
    total: int
    checked_in: int
    on_break: int
    checked_out: int
    not_checked_in: int
    employees: Tuple[MemberStatus, ...] = ()

    def stats(self) -> dict:
        return {
            "total": self.total,
            "checkedIn": self.checked_in,
            "onBreak": self.on_break,
            "checkedOut": self.checked_out,
            "notCheckedIn": self.not_checked_in,
        }


@dataclass(frozen=True)
class TodaySummary:
    has_check_in: bool
    status: AttendanceStatus
    record: Optional[AttendanceRecord] = None
    breaks: Tuple[BreakInterval, ...] = ()
    break_minutes: int = 0
    work_duration: Optional[WorkDuration] = None


class StatusService:
    """Read side: status, eligibility, business summary and history.

    Status reads are rate limited per caller; nothing here writes to the store.
    """

    def __init__(
        self,
        store: AttendanceStore,
        businesses: BusinessRepository,
        machine: AttendanceStateMachine,
        limiter: RateLimiter,
        *,
        gate: AccessGate | None = None,
        clock=now_local,
    ):
        self._store = store
        self._businesses = businesses
        self._machine = machine
        self._limiter = limiter
        self._gate = gate or AccessGate()
        self._clock = clock

    def _view(self, user_id: int, business_id: int, work_date: date, record: Optional[AttendanceRecord]) -> StatusView:
        return StatusView(
            user_id=int(user_id),
            business_id=int(business_id),
            work_date=work_date,
            status=self._machine.state_of(record),
            record=record,
            work_duration=self._machine.work_duration(record) if record is not None else None,
        )

    def get_status(
        self,
        caller: Caller,
        business_id: int,
        *,
        target_user_id: Optional[int] = None,
        work_date: Optional[date] = None,
        now: datetime | None = None,
    ) -> StatusView:
        business_id = require_id(business_id, "businessId")
        now = now or self._clock()
        enforce(self._limiter, caller.user_id, STATUS_ENDPOINT, now=now)

        target = caller.user_id if target_user_id is None else require_id(target_user_id, "userId")
        self._gate.require(caller, target, business_id, Capability.READ_DELEGATED)
        if target != caller.user_id and self._businesses.get_membership(target, business_id) is None:
            raise NotFound("User is not a member of this business")

        work_date = work_date or now.date()
        record = self._store.get_for_day(target, business_id, work_date)
        return self._view(target, business_id, work_date, record)

    def validate_check_in_eligibility(
        self,
        user_id: int,
        business_id: int,
        location: Optional[PointLike] = None,
        *,
        now: datetime | None = None,
    ) -> Eligibility:
        """Dry run of a check-in: reports why it would fail instead of raising."""
        business_id = require_id(business_id, "businessId")
        now = now or self._clock()

        existing = self._store.get_for_day(user_id, business_id, now.date())
        state = self._machine.state_of(existing)
        try:
            self._machine.ensure_can_check_in(existing)
        except StateConflict as e:
            return Eligibility(False, state, reason=str(e), code=e.code)

        if location is None:
            return Eligibility(True, state)

        anchor = self._businesses.get_anchor(business_id)
        if anchor is None:
            raise NotFound("Business not found")
        try:
            self._machine.verify_proof(
                method=CheckInMethod.GPS,
                business_id=business_id,
                anchor=anchor,
                location=to_point(location),
                qr_token=None,
                now=now,
            )
        except GeofenceViolation as e:
            return Eligibility(
                False,
                state,
                reason=str(e),
                code=e.code,
                distance_meters=round(e.distance_meters),
            )
        return Eligibility(True, state)

    def get_business_summary(
        self,
        caller: Caller,
        business_id: int,
        *,
        work_date: Optional[date] = None,
        now: datetime | None = None,
    ) -> BusinessSummary:
        business_id = require_id(business_id, "businessId")
        now = now or self._clock()
        enforce(self._limiter, caller.user_id, SUMMARY_ENDPOINT, now=now)
        self._gate.require(caller, None, business_id, Capability.MANAGE_BUSINESS)
        if self._businesses.get_anchor(business_id) is None:
            raise NotFound("Business not found")

        work_date = work_date or now.date()
        by_user = {r.user_id: r for r in self._store.list_for_business_day(business_id, work_date)}

        employees = []
        counts = {s: 0 for s in AttendanceStatus}
        for member in self._businesses.list_members(business_id):
            record = by_user.get(member.user_id)
            status = self._machine.state_of(record)
            counts[status] += 1
            employees.append(
                MemberStatus(
                    user_id=member.user_id,
                    name=member.name,
                    role=member.role,
                    status=status,
                    attendance_id=record.attendance_id if record else None,
                    check_in_time=record.check_in_time if record else None,
                    check_out_time=record.check_out_time if record else None,
                )
            )

        return BusinessSummary(
            business_id=business_id,
            work_date=work_date,
            total=len(employees),
            checked_in=counts[AttendanceStatus.CHECKED_IN],
            on_break=counts[AttendanceStatus.ON_BREAK],
            checked_out=counts[AttendanceStatus.CHECKED_OUT],
            not_checked_in=counts[AttendanceStatus.NOT_CHECKED_IN],
            employees=tuple(employees),
        )

    def get_today_summary(self, user_id: int, business_id: int, *, now: datetime | None = None) -> TodaySummary:
        business_id = require_id(business_id, "businessId")
        now = now or self._clock()
        record = self._store.get_for_day(user_id, business_id, now.date())
        if record is None:
            return TodaySummary(has_check_in=False, status=AttendanceStatus.NOT_CHECKED_IN)

        # Open breaks count up to now while the day is still running.
        upto = record.check_out_time or max(now, record.check_in_time)
        return TodaySummary(
            has_check_in=True,
            status=record.status,
            record=record,
            breaks=record.breaks,
            break_minutes=self._machine.ledger.total_break_minutes(record, upto),
            work_duration=self._machine.work_duration(record),
        )

    def recent_history(
        self,
        user_id: int,
        *,
        business_id: Optional[int] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> Sequence[StatusView]:
        limit = _check_limit(limit)
        if business_id is not None:
            business_id = require_id(business_id, "businessId")
        records = self._store.recent_for_user(user_id, limit, business_id=business_id)
        return [self._view(r.user_id, r.business_id, r.work_date, r) for r in records]

    def activity_log(self, user_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[AttendanceLog]:
        return self._store.logs_for_user(user_id, _check_limit(limit))


def _check_limit(limit) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if not 1 <= value <= MAX_HISTORY_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}")
    return value
