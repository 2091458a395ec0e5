from datetime import date, datetime
from decimal import Decimal

import mysql.connector
import pytest

from src.attendance_engine.attendance_engine.attendance.model import AttendanceRecord
from src.attendance_engine.attendance_engine.attendance.mysql_attendance_store import MySQLAttendanceStore
from src.attendance_engine.attendance_engine.core.enums import (
    AttendanceStatus,
    BreakType,
    CheckInMethod,
    ConflictCode,
)
from src.attendance_engine.attendance_engine.core.exceptions import PersistenceFailure, StateConflict
from src.attendance_engine.attendance_engine.ratelimit.mysql_rate_limiter import MySQLRateLimiter

T0 = datetime(2026, 3, 2, 9, 0, 0)


class FakeCursor:
    """Answers each statement from the first rule whose marker occurs in the SQL."""

    def __init__(self, rules):
        self._rules = rules
        self._rows = []
        self.executed = []
        self.lastrowid = 1
        self.rowcount = 1

    def execute(self, sql, params=None):
        self.executed.append(sql)
        self._rows = []
        for marker, outcome in self._rules:
            if marker in sql:
                if isinstance(outcome, Exception):
                    raise outcome
                self._rows = list(outcome)
                return

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor: FakeCursor):
        self._cursor = cursor
        self.isolation_level = None
        self.committed = False
        self.rolled_back = False

    def start_transaction(self, isolation_level=None):
        self.isolation_level = isolation_level

    def cursor(self, dictionary=False):
        return self._cursor

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class FakeFactory:
    def __init__(self, *rules):
        self.cursor = FakeCursor(list(rules))
        self.conn = FakeConnection(self.cursor)

    def connect(self):
        return self.conn


def _new_record() -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=None,
        user_id=5,
        business_id=1,
        work_date=T0.date(),
        check_in_time=T0,
        check_in_method=CheckInMethod.GPS,
        status=AttendanceStatus.CHECKED_IN,
    )


def test_duplicate_day_key_is_already_checked_in():
    duplicate = mysql.connector.IntegrityError(msg="Duplicate entry", errno=1062)
    factory = FakeFactory(("INSERT INTO attendance_records", duplicate))

    with pytest.raises(StateConflict) as exc:
        with MySQLAttendanceStore(factory).transaction() as tx:
            tx.insert(_new_record())

    assert exc.value.conflict == ConflictCode.ALREADY_CHECKED_IN
    assert factory.conn.rolled_back is True
    assert factory.conn.committed is False
    assert factory.conn.isolation_level == "READ COMMITTED"


def test_driver_error_rolls_back_as_persistence_failure():
    lost = mysql.connector.OperationalError(msg="Lost connection", errno=2013)
    factory = FakeFactory(("FROM attendance_records", lost))

    with pytest.raises(PersistenceFailure):
        with MySQLAttendanceStore(factory).transaction() as tx:
            tx.get_for_day(5, 1, T0.date(), for_update=True)

    assert factory.conn.rolled_back is True


def test_locked_read_uses_for_update():
    factory = FakeFactory()

    with MySQLAttendanceStore(factory).transaction() as tx:
        assert tx.get_for_day(5, 1, T0.date(), for_update=True) is None

    assert any("FOR UPDATE" in sql for sql in factory.cursor.executed)
    assert factory.conn.committed is True


def test_rows_are_mapped_to_records_with_breaks():
    row = {
        "attendance_id": 7,
        "user_id": 5,
        "business_id": 1,
        "work_date": date(2026, 3, 2),
        "check_in_time": T0,
        "check_in_method": "gps",
        "check_in_lat": Decimal("37.4979000"),
        "check_in_lon": Decimal("127.0276000"),
        "check_out_time": None,
        "check_out_method": None,
        "check_out_lat": None,
        "check_out_lon": None,
        "status": "on_break",
        "note": None,
    }
    brk = {"break_id": 3, "attendance_id": 7, "start_time": T0, "end_time": None, "break_type": "meal"}
    factory = FakeFactory(("FROM attendance_breaks", [brk]), ("FROM attendance_records", [row]))

    record = MySQLAttendanceStore(factory).get_for_day(5, 1, date(2026, 3, 2))

    assert record.attendance_id == 7
    assert record.status == AttendanceStatus.ON_BREAK
    assert record.check_in_location.lat == pytest.approx(37.4979)
    assert record.breaks[0].break_type == BreakType.MEAL
    assert record.breaks[0].is_open


def test_mysql_rate_limiter_counts_in_fixed_window():
    factory = FakeFactory(("SELECT hits", [{"hits": 3}]))
    limiter = MySQLRateLimiter(factory, max_requests=2, window_seconds=60)

    assert limiter.allow(5, "status", now=T0) is False
    assert limiter.retry_after(5, "status", now=T0) == 60


def test_mysql_rate_limiter_failure():
    factory = FakeFactory(("INSERT INTO rate_limit_counters", mysql.connector.OperationalError(msg="gone", errno=2006)))

    with pytest.raises(PersistenceFailure):
        MySQLRateLimiter(factory).allow(5, "status", now=T0)


def test_open_record_lookup_ignores_work_date_and_locks():
    factory = FakeFactory()

    with MySQLAttendanceStore(factory).transaction() as tx:
        assert tx.get_open(5, 1, for_update=True) is None

    lookup = next(sql for sql in factory.cursor.executed if "FROM attendance_records" in sql)
    assert "status IN ('checked_in', 'on_break')" in lookup
    assert "work_date" not in lookup.split("WHERE", 1)[1]
    assert lookup.rstrip().endswith("FOR UPDATE")
