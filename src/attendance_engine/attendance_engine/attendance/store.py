from __future__ import annotations

from datetime import date
from typing import ContextManager, Optional, Protocol, Sequence

from .model import AttendanceLog, AttendanceRecord


class AttendanceTransaction(Protocol):
    """Unit of work over attendance records.

    Reads with for_update=True lock the record's (user, business, day) key
    until the surrounding transaction ends, which is what serializes
    check-in/break/check-out/cancel on the same day.
    """

    def get_for_day(
        self, user_id: int, business_id: int, work_date: date, *, for_update: bool = False
    ) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_open(self, user_id: int, business_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        """The user's checked_in/on_break record at the business, whatever its work date."""
        raise NotImplementedError

    def get(self, attendance_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        """Create the day's record; a second record for the same day is ALREADY_CHECKED_IN."""
        raise NotImplementedError

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        """Persist status/check-out fields and breaks; new breaks come back with ids."""
        raise NotImplementedError

    def delete(self, attendance_id: int) -> bool:
        raise NotImplementedError

    def append_log(self, entry: AttendanceLog) -> None:
        raise NotImplementedError


class AttendanceStore(Protocol):
    def transaction(self) -> ContextManager[AttendanceTransaction]:
        """Commit on clean exit, roll back everything on any exception."""
        raise NotImplementedError

    def get_for_day(self, user_id: int, business_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get(self, attendance_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_for_business_day(self, business_id: int, work_date: date) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def recent_for_user(
        self, user_id: int, limit: int, *, business_id: Optional[int] = None
    ) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def logs_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceLog]:
        raise NotImplementedError
