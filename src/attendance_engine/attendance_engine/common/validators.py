from __future__ import annotations

import math
from typing import Any, Optional

from ..core.enums import BreakType, CheckInMethod
from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required")
    return str(value).strip()


def require_id(value: Any, field_name: str) -> int:
    """Accept positive ints (or their string form) as identifiers."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} is required")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field_name} must be an integer id")
    if parsed <= 0:
        raise ValidationError(f"{field_name} must be a positive id")
    return parsed


def require_number(value: Any, field_name: str) -> float:
    # bool is an int subclass; a coordinate of True is a client bug.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field_name} must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{field_name} must be a finite number")
    return float(value)


def parse_method(value: Any) -> CheckInMethod:
    try:
        return CheckInMethod(str(value or "").strip().lower())
    except ValueError:
        raise ValidationError("method must be 'gps' or 'qr'")


def parse_break_type(value: Optional[str]) -> BreakType:
    if value is None or not str(value).strip():
        return BreakType.NORMAL
    try:
        return BreakType(str(value).strip().lower())
    except ValueError:
        raise ValidationError("break type must be 'normal' or 'meal'")


def clean_optional_text(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None
