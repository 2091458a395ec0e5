from types import SimpleNamespace

import pytest

from src.attendance_engine.attendance_engine.attendance.memory_store import InMemoryAttendanceStore
from src.attendance_engine.attendance_engine.attendance.mysql_attendance_store import MySQLAttendanceStore
from src.attendance_engine.attendance_engine.businesses.mysql_business_repository import MySQLBusinessRepository
from src.attendance_engine.attendance_engine.container import EngineSettings, build_container
from src.attendance_engine.attendance_engine.ratelimit.limiter import SlidingWindowRateLimiter
from src.attendance_engine.attendance_engine.ratelimit.mysql_rate_limiter import MySQLRateLimiter


def test_settings_from_module_uses_defaults():
    settings = EngineSettings.from_module(SimpleNamespace(QR_SIGNING_KEY="k", STORE_BACKEND="Memory"))

    assert settings.store_backend == "memory"
    assert settings.qr_token_ttl_seconds == 30
    assert settings.cancellation_window_minutes == 5
    assert settings.status_rate_limit == 60
    assert settings.rate_limit_window_seconds == 60
    assert settings.default_geofence_radius_m == 50
    assert settings.history_limit == 30
    assert settings.standard_work_hours == 8
    assert settings.max_daily_work_hours == 12


def test_settings_from_testing_module():
    import config.testing as testing

    settings = EngineSettings.from_module(testing)

    assert settings.qr_signing_key == "test-qr-signing-key"
    assert settings.cancellation_window_minutes == 5


def test_settings_read_history_and_work_day():
    settings = EngineSettings.from_module(
        SimpleNamespace(QR_SIGNING_KEY="k", HISTORY_LIMIT="50", STANDARD_WORK_HOURS="7.5", MAX_DAILY_WORK_HOURS=10)
    )

    assert settings.history_limit == 50
    assert settings.standard_work_hours == 7.5
    assert settings.max_daily_work_hours == 10


def test_memory_backend():
    container = build_container(EngineSettings(qr_signing_key="k", store_backend="memory"))

    assert isinstance(container.attendance_store, InMemoryAttendanceStore)
    assert isinstance(container.rate_limiter, SlidingWindowRateLimiter)
    assert container.conn is None


def test_mysql_backend_is_wired_without_connecting():
    container = build_container(
        EngineSettings(
            qr_signing_key="k",
            store_backend="mysql",
            db_config={"host": "db", "user": "app", "password": "x", "database": "attendance_db"},
        )
    )

    assert isinstance(container.attendance_store, MySQLAttendanceStore)
    assert isinstance(container.business_repo, MySQLBusinessRepository)
    assert isinstance(container.rate_limiter, MySQLRateLimiter)
    assert container.conn is not None


def test_unknown_backend():
    with pytest.raises(ValueError):
        build_container(EngineSettings(qr_signing_key="k", store_backend="redis"))


def test_missing_signing_key():
    with pytest.raises(ValueError):
        build_container(EngineSettings(qr_signing_key="", store_backend="memory"))
