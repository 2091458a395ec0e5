from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Role of a user inside one business (from the identity subsystem)."""

    OWNER = "owner"
    MANAGER = "manager"
    WORKER = "worker"
    SEEKER = "seeker"


DELEGATED_ROLES = frozenset({Role.OWNER, Role.MANAGER})


class AttendanceStatus(str, Enum):
    """Per-day attendance state. NOT_CHECKED_IN is never persisted."""

    NOT_CHECKED_IN = "not_checked_in"
    CHECKED_IN = "checked_in"
    ON_BREAK = "on_break"
    CHECKED_OUT = "checked_out"


OPEN_STATUSES = frozenset({AttendanceStatus.CHECKED_IN, AttendanceStatus.ON_BREAK})


class CheckInMethod(str, Enum):
    GPS = "gps"
    QR = "qr"


class CheckOutMethod(str, Enum):
    GPS = "gps"
    MANUAL = "manual"


class BreakType(str, Enum):
    NORMAL = "normal"
    MEAL = "meal"


class TokenFailure(str, Enum):
    """Why a QR token was rejected."""

    INVALID_FORMAT = "invalid_format"
    EXPIRED = "expired"
    WRONG_BUSINESS = "wrong_business"


class ConflictCode(str, Enum):
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"
    ALREADY_ON_BREAK = "ALREADY_ON_BREAK"
    NO_ACTIVE_CHECK_IN = "NO_ACTIVE_CHECK_IN"
    NO_ACTIVE_BREAK = "NO_ACTIVE_BREAK"
    CANCELLATION_TIME_EXPIRED = "CANCELLATION_TIME_EXPIRED"


class Capability(str, Enum):
    """What an operation needs from the caller relative to the target user."""

    SELF = "self"
    READ_DELEGATED = "read_delegated"
    MANAGE_BUSINESS = "manage_business"


class LogAction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    CHECK_IN_CANCELLED = "check_in_cancelled"
