from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from ..core.enums import AttendanceStatus, BreakType, CheckInMethod, CheckOutMethod, LogAction
from ..location.model import GeoPoint


@dataclass(frozen=True)
class BreakInterval:
    """A break inside one attendance record. end_time None means still open."""

    break_id: Optional[int]
    attendance_id: Optional[int]
    start_time: datetime
    end_time: Optional[datetime] = None
    break_type: BreakType = BreakType.NORMAL

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one user's attendance in one business for one day."""

    attendance_id: Optional[int]
    user_id: int
    business_id: int
    work_date: date
    check_in_time: datetime
    check_in_method: CheckInMethod
    status: AttendanceStatus
    check_in_location: Optional[GeoPoint] = None
    check_out_time: Optional[datetime] = None
    check_out_location: Optional[GeoPoint] = None
    check_out_method: Optional[CheckOutMethod] = None
    breaks: Tuple[BreakInterval, ...] = ()
    note: Optional[str] = None

    @property
    def day_key(self) -> Tuple[int, int, date]:
        return (self.user_id, self.business_id, self.work_date)

    @property
    def is_open(self) -> bool:
        return self.status != AttendanceStatus.CHECKED_OUT


@dataclass(frozen=True)
class WorkDuration:
    total_minutes: int
    break_minutes: int
    actual_work_minutes: int
    overtime_minutes: int = 0

    @property
    def hours(self) -> int:
        return self.actual_work_minutes // 60

    @property
    def minutes(self) -> int:
        return self.actual_work_minutes % 60

    def as_dict(self) -> dict:
        return {
            "totalMinutes": self.total_minutes,
            "breakMinutes": self.break_minutes,
            "actualWorkMinutes": self.actual_work_minutes,
            "overtimeMinutes": self.overtime_minutes,
            "hours": self.hours,
            "minutes": self.minutes,
        }


@dataclass(frozen=True)
class AttendanceLog:
    """Audit trail row, written in the same transaction as the change it describes."""

    action: LogAction
    user_id: int
    created_at: datetime
    attendance_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckInResult:
    attendance_id: int
    status: AttendanceStatus
    check_in_time: datetime
    method: CheckInMethod


@dataclass(frozen=True)
class CheckOutResult:
    attendance_id: int
    check_in_time: datetime
    check_out_time: datetime
    work_duration: WorkDuration
    status: AttendanceStatus = AttendanceStatus.CHECKED_OUT


@dataclass(frozen=True)
class BreakStarted:
    break_id: int
    attendance_id: int
    start_time: datetime
    break_type: BreakType


@dataclass(frozen=True)
class BreakEnded:
    break_id: int
    attendance_id: int
    start_time: datetime
    end_time: datetime
    duration_minutes: int
