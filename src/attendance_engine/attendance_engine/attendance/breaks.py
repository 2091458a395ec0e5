from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from ..common.datetime_utils import whole_minutes
from ..core.exceptions import DataIntegrityError
from .model import AttendanceRecord, BreakInterval


class BreakLedger:
    """Reads and closes the break intervals of an attendance record."""

    def open_breaks(self, record: AttendanceRecord) -> Sequence[BreakInterval]:
        return [b for b in record.breaks if b.is_open]

    def open_break(self, record: AttendanceRecord) -> Optional[BreakInterval]:
        open_ = self.open_breaks(record)
        if len(open_) > 1:
            raise DataIntegrityError(f"attendance {record.attendance_id} has {len(open_)} open breaks")
        return open_[0] if open_ else None

    def find(self, record: AttendanceRecord, break_id: int) -> Optional[BreakInterval]:
        for b in record.breaks:
            if b.break_id == int(break_id):
                return b
        return None

    def close_open_break(self, record: AttendanceRecord, at: datetime) -> AttendanceRecord:
        """Return the record with its open break (if any) ended at `at`."""
        current = self.open_break(record)
        if current is None:
            return record
        # A break never ends before it started, even with a skewed clock.
        end = max(at, current.start_time)
        breaks = tuple(replace(b, end_time=end) if b is current else b for b in record.breaks)
        return replace(record, breaks=breaks)

    def total_break_minutes(self, record: AttendanceRecord, upto: datetime) -> int:
        total = timedelta(0)
        for b in record.breaks:
            end = min(b.end_time or upto, upto)
            if end > b.start_time:
                total += end - b.start_time
        return whole_minutes(total)

    def break_minutes(self, interval: BreakInterval) -> int:
        if interval.end_time is None:
            raise ValueError("break is still open")
        return max(0, whole_minutes(interval.end_time - interval.start_time))
