from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Dict, Iterator, List, Optional, Sequence

import mysql.connector
from mysql.connector import errorcode

from ..core.enums import AttendanceStatus, BreakType, CheckInMethod, CheckOutMethod, ConflictCode, LogAction
from ..core.exceptions import DomainError, PersistenceFailure, StateConflict
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, db_transaction, fetchall, fetchone
from ..location.model import GeoPoint
from .model import AttendanceLog, AttendanceRecord, BreakInterval
from .store import AttendanceStore, AttendanceTransaction

logger = logging.getLogger(__name__)

_RECORD_COLUMNS = """
    attendance_id, user_id, business_id, work_date,
    check_in_time, check_in_method, check_in_lat, check_in_lon,
    check_out_time, check_out_method, check_out_lat, check_out_lon,
    status, note
"""


def _point(lat, lon) -> Optional[GeoPoint]:
    if lat is None or lon is None:
        return None
    return GeoPoint(lat=float(lat), lon=float(lon))


def _break_from_row(r: dict) -> BreakInterval:
    return BreakInterval(
        break_id=int(r["break_id"]),
        attendance_id=int(r["attendance_id"]),
        start_time=r["start_time"],
        end_time=r.get("end_time"),
        break_type=BreakType(r["break_type"]),
    )


def _record_from_row(r: dict, breaks: Sequence[BreakInterval]) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        user_id=int(r["user_id"]),
        business_id=int(r["business_id"]),
        work_date=r["work_date"],
        check_in_time=r["check_in_time"],
        check_in_method=CheckInMethod(r["check_in_method"]),
        check_in_location=_point(r.get("check_in_lat"), r.get("check_in_lon")),
        check_out_time=r.get("check_out_time"),
        check_out_method=CheckOutMethod(r["check_out_method"]) if r.get("check_out_method") else None,
        check_out_location=_point(r.get("check_out_lat"), r.get("check_out_lon")),
        status=AttendanceStatus(r["status"]),
        breaks=tuple(breaks),
        note=r.get("note"),
    )


def _load_breaks(cur, attendance_ids: Sequence[int]) -> Dict[int, List[BreakInterval]]:
    out: Dict[int, List[BreakInterval]] = {int(a): [] for a in attendance_ids}
    if not attendance_ids:
        return out
    placeholders = ",".join(["%s"] * len(attendance_ids))
    cur.execute(
        f"""
        SELECT break_id, attendance_id, start_time, end_time, break_type
        FROM attendance_breaks
        WHERE attendance_id IN ({placeholders})
        ORDER BY start_time ASC, break_id ASC
        """,
        tuple(int(a) for a in attendance_ids),
    )
    for r in fetchall(cur):
        out[int(r["attendance_id"])].append(_break_from_row(r))
    return out


def _records_with_breaks(cur, rows: List[dict]) -> List[AttendanceRecord]:
    breaks = _load_breaks(cur, [int(r["attendance_id"]) for r in rows])
    return [_record_from_row(r, breaks[int(r["attendance_id"])]) for r in rows]


class _MySQLTransaction(AttendanceTransaction):
    def __init__(self, cur):
        self._cur = cur

    def _fetch_record(self, where: str, params: tuple, *, for_update: bool) -> Optional[AttendanceRecord]:
        lock = " FOR UPDATE" if for_update else ""
        self._cur.execute(f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE {where}{lock}", params)
        r = fetchone(self._cur)
        if not r:
            return None
        return _records_with_breaks(self._cur, [r])[0]

    def get_for_day(
        self, user_id: int, business_id: int, work_date: date, *, for_update: bool = False
    ) -> Optional[AttendanceRecord]:
        return self._fetch_record(
            "user_id=%s AND business_id=%s AND work_date=%s",
            (int(user_id), int(business_id), work_date),
            for_update=for_update,
        )

    def get_open(self, user_id: int, business_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        return self._fetch_record(
            "user_id=%s AND business_id=%s AND status IN ('checked_in', 'on_break') "
            "ORDER BY check_in_time DESC LIMIT 1",
            (int(user_id), int(business_id)),
            for_update=for_update,
        )

    def get(self, attendance_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        return self._fetch_record("attendance_id=%s", (int(attendance_id),), for_update=for_update)

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        loc = record.check_in_location
        try:
            self._cur.execute(
                """
                INSERT INTO attendance_records(
                    user_id, business_id, work_date, check_in_time, check_in_method,
                    check_in_lat, check_in_lon, status, note
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    record.user_id,
                    record.business_id,
                    record.work_date,
                    record.check_in_time,
                    record.check_in_method.value,
                    loc.lat if loc else None,
                    loc.lon if loc else None,
                    record.status.value,
                    record.note,
                ),
            )
        except mysql.connector.IntegrityError as e:
            if e.errno == errorcode.ER_DUP_ENTRY:
                # Lost the race on uq_attendance_day: the other request checked in first.
                raise StateConflict(ConflictCode.ALREADY_CHECKED_IN) from e
            raise
        stored = replace(record, attendance_id=int(self._cur.lastrowid))
        return self._save_breaks(stored)

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        if record.attendance_id is None:
            raise ValueError("save() needs a persisted record; use insert()")
        loc = record.check_out_location
        self._cur.execute(
            """
            UPDATE attendance_records
            SET status=%s, check_out_time=%s, check_out_method=%s,
                check_out_lat=%s, check_out_lon=%s, note=%s
            WHERE attendance_id=%s
            """,
            (
                record.status.value,
                record.check_out_time,
                record.check_out_method.value if record.check_out_method else None,
                loc.lat if loc else None,
                loc.lon if loc else None,
                record.note,
                record.attendance_id,
            ),
        )
        return self._save_breaks(record)

    def _save_breaks(self, record: AttendanceRecord) -> AttendanceRecord:
        saved = []
        for b in record.breaks:
            if b.break_id is None:
                self._cur.execute(
                    """
                    INSERT INTO attendance_breaks(attendance_id, user_id, start_time, end_time, break_type)
                    VALUES(%s,%s,%s,%s,%s)
                    """,
                    (record.attendance_id, record.user_id, b.start_time, b.end_time, b.break_type.value),
                )
                b = replace(b, break_id=int(self._cur.lastrowid), attendance_id=record.attendance_id)
            else:
                self._cur.execute(
                    "UPDATE attendance_breaks SET end_time=%s WHERE break_id=%s AND attendance_id=%s",
                    (b.end_time, b.break_id, record.attendance_id),
                )
            saved.append(b)
        return replace(record, breaks=tuple(saved))

    def delete(self, attendance_id: int) -> bool:
        self._cur.execute("DELETE FROM attendance_breaks WHERE attendance_id=%s", (int(attendance_id),))
        self._cur.execute("DELETE FROM attendance_records WHERE attendance_id=%s", (int(attendance_id),))
        return self._cur.rowcount > 0

    def append_log(self, entry: AttendanceLog) -> None:
        self._cur.execute(
            """
            INSERT INTO attendance_logs(attendance_id, user_id, action, details, created_at)
            VALUES(%s,%s,%s,%s,%s)
            """,
            (
                entry.attendance_id,
                entry.user_id,
                entry.action.value,
                json.dumps(entry.details, default=str, ensure_ascii=False),
                entry.created_at,
            ),
        )


class MySQLAttendanceStore(AttendanceStore):
    def __init__(self, conn_factory: DatabaseConnection, *, lock_wait_timeout: int = 10):
        self._conn_factory = conn_factory
        self._lock_wait_timeout = int(lock_wait_timeout)

    @contextmanager
    def transaction(self) -> Iterator[AttendanceTransaction]:
        try:
            with db_transaction(self._conn_factory) as (_, cur):
                cur.execute("SET SESSION innodb_lock_wait_timeout = %s", (self._lock_wait_timeout,))
                yield _MySQLTransaction(cur)
        except DomainError:
            raise
        except mysql.connector.Error as e:
            logger.exception("attendance transaction rolled back")
            raise PersistenceFailure("Attendance could not be saved, nothing was changed") from e

    @contextmanager
    def _reading(self):
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                yield cur
        except mysql.connector.Error as e:
            logger.exception("attendance read failed")
            raise PersistenceFailure("Attendance store unavailable") from e

    def get_for_day(self, user_id: int, business_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with self._reading() as cur:
            return _MySQLTransaction(cur).get_for_day(user_id, business_id, work_date)

    def get(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with self._reading() as cur:
            return _MySQLTransaction(cur).get(attendance_id)

    def list_for_business_day(self, business_id: int, work_date: date) -> Sequence[AttendanceRecord]:
        with self._reading() as cur:
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM attendance_records
                WHERE business_id=%s AND work_date=%s
                ORDER BY check_in_time ASC
                """,
                (int(business_id), work_date),
            )
            return _records_with_breaks(cur, fetchall(cur))

    def recent_for_user(
        self, user_id: int, limit: int, *, business_id: Optional[int] = None
    ) -> Sequence[AttendanceRecord]:
        clauses = ["user_id=%s"]
        params: list[object] = [int(user_id)]
        if business_id is not None:
            clauses.append("business_id=%s")
            params.append(int(business_id))
        params.append(int(limit))

        with self._reading() as cur:
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM attendance_records
                WHERE {" AND ".join(clauses)}
                ORDER BY work_date DESC, check_in_time DESC
                LIMIT %s
                """,
                tuple(params),
            )
            return _records_with_breaks(cur, fetchall(cur))

    def logs_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceLog]:
        with self._reading() as cur:
            cur.execute(
                """
                SELECT attendance_id, user_id, action, details, created_at
                FROM attendance_logs
                WHERE user_id=%s
                ORDER BY created_at DESC, log_id DESC
                LIMIT %s
                """,
                (int(user_id), int(limit)),
            )
            return [
                AttendanceLog(
                    action=LogAction(r["action"]),
                    user_id=int(r["user_id"]),
                    created_at=r["created_at"],
                    attendance_id=int(r["attendance_id"]) if r.get("attendance_id") is not None else None,
                    details=json.loads(r["details"]) if r.get("details") else {},
                )
                for r in fetchall(cur)
            ]
