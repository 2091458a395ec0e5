from __future__ import annotations

from datetime import datetime
from typing import Optional

from .enums import ConflictCode, TokenFailure


class DomainError(Exception):
    """Base exception for business rule violations."""

    http_status = 400
    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"


class GeofenceViolation(DomainError):
    """Raised when a GPS check-in lies outside the business geofence."""

    code = "GEOFENCE_VIOLATION"

    def __init__(self, distance_meters: float, radius_meters: float):
        self.distance_meters = distance_meters
        self.radius_meters = radius_meters
        super().__init__(
            f"Check-in location is {round(distance_meters)}m from the business, "
            f"allowed radius is {round(radius_meters)}m"
        )


class TokenInvalid(DomainError):
    """Raised when a QR token is malformed, expired or for another business."""

    def __init__(self, reason: TokenFailure):
        self.reason = reason
        super().__init__(f"QR token rejected: {reason.value}")

    @property
    def code(self) -> str:  # type: ignore[override]
        return f"TOKEN_{self.reason.name}"


class StateConflict(DomainError):
    """Raised when a transition is not legal from the current state."""

    http_status = 409

    _MESSAGES = {
        ConflictCode.ALREADY_CHECKED_IN: "Already checked in for today",
        ConflictCode.ALREADY_CHECKED_OUT: "Already checked out for today",
        ConflictCode.ALREADY_ON_BREAK: "A break is already in progress",
        ConflictCode.NO_ACTIVE_CHECK_IN: "No active check-in for today",
        ConflictCode.NO_ACTIVE_BREAK: "No active break to end",
        ConflictCode.CANCELLATION_TIME_EXPIRED: "The check-in can no longer be cancelled",
    }

    def __init__(self, conflict: ConflictCode, message: Optional[str] = None):
        self.conflict = conflict
        super().__init__(message or self._MESSAGES[conflict])

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.conflict.value


class NotFound(DomainError):
    """Record absent or owned by someone else (never reported as a permission error)."""

    http_status = 404
    code = "NOT_FOUND"


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    http_status = 403
    code = "FORBIDDEN"


class InsufficientRole(AuthorizationError):
    code = "INSUFFICIENT_ROLE"


class RateLimited(DomainError):
    http_status = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after_seconds: int, *, limit: Optional[int] = None, reset_at: Optional[datetime] = None):
        self.retry_after_seconds = int(retry_after_seconds)
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(f"Too many requests, retry in {self.retry_after_seconds}s")


class PersistenceFailure(DomainError):
    """Transaction aborted and rolled back; the whole operation may be retried."""

    http_status = 500
    code = "PERSISTENCE_FAILURE"


class DataIntegrityError(DomainError):
    """Stored timestamps contradict each other (e.g. negative work time)."""

    http_status = 500
    code = "DATA_INTEGRITY_ERROR"
