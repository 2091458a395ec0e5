from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .access.gate import AccessGate
from .attendance.cancellation import CancellationWindow
from .attendance.duration import DurationCalculator
from .attendance.memory_store import InMemoryAttendanceStore
from .attendance.mysql_attendance_store import MySQLAttendanceStore
from .attendance.service import AttendanceService
from .attendance.state_machine import AttendanceStateMachine
from .attendance.status_service import StatusService
from .attendance.store import AttendanceStore
from .businesses.memory_business_repository import InMemoryBusinessRepository
from .businesses.mysql_business_repository import MySQLBusinessRepository
from .businesses.repository import BusinessRepository
from .common.datetime_utils import now_local
from .core import constants
from .database.connection import DBConfig, DatabaseConnection
from .location.verifier import LocationVerifier
from .qr.codec import TokenCodec
from .qr.service import QRService
from .ratelimit.limiter import RateLimiter, SlidingWindowRateLimiter
from .ratelimit.mysql_rate_limiter import MySQLRateLimiter

BACKENDS = {"mysql", "memory"}


@dataclass(frozen=True)
class EngineSettings:
    qr_signing_key: str
    store_backend: str = "mysql"
    db_config: dict = field(default_factory=dict)
    qr_token_ttl_seconds: int = constants.QR_TOKEN_TTL_SECONDS
    cancellation_window_minutes: int = constants.CANCELLATION_WINDOW_MINUTES
    status_rate_limit: int = constants.STATUS_RATE_LIMIT
    rate_limit_window_seconds: int = constants.RATE_LIMIT_WINDOW_SECONDS
    default_geofence_radius_m: float = constants.DEFAULT_GEOFENCE_RADIUS_M
    history_limit: int = constants.DEFAULT_HISTORY_LIMIT
    standard_work_hours: float = constants.STANDARD_WORK_HOURS
    max_daily_work_hours: float = constants.MAX_DAILY_WORK_HOURS

    @classmethod
    def from_module(cls, settings) -> "EngineSettings":
        """Collect engine values from a config.<env> settings module."""
        return cls(
            qr_signing_key=str(getattr(settings, "QR_SIGNING_KEY", "")),
            store_backend=str(getattr(settings, "STORE_BACKEND", "mysql")).lower(),
            db_config=dict(getattr(settings, "DB_CONFIG", {})),
            qr_token_ttl_seconds=int(getattr(settings, "QR_TOKEN_TTL_SECONDS", constants.QR_TOKEN_TTL_SECONDS)),
            cancellation_window_minutes=int(
                getattr(settings, "CANCELLATION_WINDOW_MINUTES", constants.CANCELLATION_WINDOW_MINUTES)
            ),
            status_rate_limit=int(getattr(settings, "STATUS_RATE_LIMIT", constants.STATUS_RATE_LIMIT)),
            rate_limit_window_seconds=int(
                getattr(settings, "RATE_LIMIT_WINDOW_SECONDS", constants.RATE_LIMIT_WINDOW_SECONDS)
            ),
            default_geofence_radius_m=float(
                getattr(settings, "DEFAULT_GEOFENCE_RADIUS_M", constants.DEFAULT_GEOFENCE_RADIUS_M)
            ),
            history_limit=int(getattr(settings, "HISTORY_LIMIT", constants.DEFAULT_HISTORY_LIMIT)),
            standard_work_hours=float(getattr(settings, "STANDARD_WORK_HOURS", constants.STANDARD_WORK_HOURS)),
            max_daily_work_hours=float(getattr(settings, "MAX_DAILY_WORK_HOURS", constants.MAX_DAILY_WORK_HOURS)),
        )


@dataclass(frozen=True)
class Container:
    settings: EngineSettings
    conn: Optional[DatabaseConnection]

    business_repo: BusinessRepository
    attendance_store: AttendanceStore
    rate_limiter: RateLimiter
    gate: AccessGate
    codec: TokenCodec
    state_machine: AttendanceStateMachine

    attendance_service: AttendanceService
    status_service: StatusService
    qr_service: QRService


def build_container(
    settings: EngineSettings,
    *,
    business_repo: Optional[BusinessRepository] = None,
    attendance_store: Optional[AttendanceStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
    clock=now_local,
) -> Container:
    """Wire every service explicitly. Passed-in parts win over the configured backend."""
    if settings.store_backend not in BACKENDS:
        raise ValueError(f"STORE_BACKEND must be one of {sorted(BACKENDS)}, got {settings.store_backend!r}")

    conn = None
    if settings.store_backend == "mysql":
        conn = DatabaseConnection(DBConfig.from_dict(settings.db_config))
        business_repo = business_repo or MySQLBusinessRepository(
            conn, default_radius_m=settings.default_geofence_radius_m
        )
        attendance_store = attendance_store or MySQLAttendanceStore(conn)
        rate_limiter = rate_limiter or MySQLRateLimiter(
            conn,
            max_requests=settings.status_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
            clock=clock,
        )
    else:
        business_repo = business_repo or InMemoryBusinessRepository()
        attendance_store = attendance_store or InMemoryAttendanceStore()
        rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=settings.status_rate_limit,
            window_seconds=settings.rate_limit_window_seconds,
            clock=clock,
        )

    gate = AccessGate()
    codec = TokenCodec(settings.qr_signing_key, ttl_seconds=settings.qr_token_ttl_seconds, clock=clock)
    state_machine = AttendanceStateMachine(
        LocationVerifier(),
        codec,
        calculator=DurationCalculator(standard_work_minutes=int(settings.standard_work_hours * 60)),
        max_daily_work_hours=settings.max_daily_work_hours,
    )
    cancellation = CancellationWindow(
        attendance_store, gate=gate, window_minutes=settings.cancellation_window_minutes, clock=clock
    )

    attendance_service = AttendanceService(
        attendance_store, business_repo, state_machine, gate=gate, cancellation=cancellation, clock=clock
    )
    status_service = StatusService(attendance_store, business_repo, state_machine, rate_limiter, gate=gate, clock=clock)
    qr_service = QRService(codec, business_repo, gate=gate)

    return Container(
        settings=settings,
        conn=conn,
        business_repo=business_repo,
        attendance_store=attendance_store,
        rate_limiter=rate_limiter,
        gate=gate,
        codec=codec,
        state_machine=state_machine,
        attendance_service=attendance_service,
        status_service=status_service,
        qr_service=qr_service,
    )
