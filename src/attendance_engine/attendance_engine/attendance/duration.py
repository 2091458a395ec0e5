from __future__ import annotations

from datetime import datetime

from ..common.datetime_utils import whole_minutes
from ..core.constants import STANDARD_WORK_HOURS
from ..core.exceptions import DataIntegrityError
from .model import WorkDuration


class DurationCalculator:
    """total = out - in, actual = total - breaks. Never clamps: bad data must surface.

    Overtime is actual work beyond the standard day.
    """

    def __init__(self, *, standard_work_minutes: int = STANDARD_WORK_HOURS * 60):
        if standard_work_minutes <= 0:
            raise ValueError("standard work day must be positive")
        self._standard = int(standard_work_minutes)

    def calculate(self, check_in_time: datetime, check_out_time: datetime, break_minutes: int) -> WorkDuration:
        if check_out_time <= check_in_time:
            raise DataIntegrityError("check-out time must be after check-in time")
        if break_minutes < 0:
            raise DataIntegrityError(f"break minutes cannot be negative ({break_minutes})")

        total = whole_minutes(check_out_time - check_in_time)
        actual = total - int(break_minutes)
        if actual < 0:
            raise DataIntegrityError(f"breaks ({break_minutes}m) exceed time at work ({total}m)")
        return WorkDuration(
            total_minutes=total,
            break_minutes=int(break_minutes),
            actual_work_minutes=actual,
            overtime_minutes=max(0, actual - self._standard),
        )
