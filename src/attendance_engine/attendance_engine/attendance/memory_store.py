from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..core.enums import ConflictCode
from ..core.exceptions import PersistenceFailure, StateConflict
from .model import AttendanceLog, AttendanceRecord
from .store import AttendanceStore, AttendanceTransaction

DayKey = Tuple[int, int, date]

_DELETED = None


class _MemoryTransaction(AttendanceTransaction):
    """Writes are staged here and only become visible on commit."""

    def __init__(self, store: "InMemoryAttendanceStore"):
        self._store = store
        self._held: Dict[DayKey, threading.Lock] = {}
        self._staged: Dict[int, Optional[AttendanceRecord]] = {}
        self._logs: List[AttendanceLog] = []

    def _lock(self, key: DayKey) -> None:
        if key in self._held:
            return
        lock = self._store._lock_for(key)
        if not lock.acquire(timeout=self._store.lock_timeout):
            self._store._unref_lock(key)
            raise PersistenceFailure(f"Lock wait timeout for attendance key {key}")
        self._held[key] = lock

    def _visible(self, attendance_id: Optional[int]) -> Optional[AttendanceRecord]:
        if attendance_id is None:
            return None
        if attendance_id in self._staged:
            return self._staged[attendance_id]
        return self._store._committed(attendance_id)

    def get_for_day(
        self, user_id: int, business_id: int, work_date: date, *, for_update: bool = False
    ) -> Optional[AttendanceRecord]:
        key = (int(user_id), int(business_id), work_date)
        if for_update:
            self._lock(key)
        for rec in self._staged.values():
            if rec is not None and rec.day_key == key:
                return rec
        return self._visible(self._store._id_for_day(key))

    def _find_open(self, user_id: int, business_id: int) -> Optional[AttendanceRecord]:
        candidates = [self._visible(i) for i in self._store._open_ids(user_id, business_id)]
        candidates += [r for r in self._staged.values() if r is not None]
        found = [
            r
            for r in candidates
            if r is not None and r.user_id == user_id and r.business_id == business_id and r.is_open
        ]
        return max(found, key=lambda r: r.check_in_time, default=None)

    def get_open(self, user_id: int, business_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        user_id, business_id = int(user_id), int(business_id)
        rec = self._find_open(user_id, business_id)
        if rec is None or not for_update:
            return rec
        self._lock(rec.day_key)
        # It may have been checked out or cancelled while we waited.
        return self._find_open(user_id, business_id)

    def get(self, attendance_id: int, *, for_update: bool = False) -> Optional[AttendanceRecord]:
        rec = self._visible(int(attendance_id))
        if rec is None or not for_update:
            return rec
        self._lock(rec.day_key)
        # Another transaction may have changed or removed it while we waited.
        return self._visible(int(attendance_id))

    def insert(self, record: AttendanceRecord) -> AttendanceRecord:
        self._lock(record.day_key)
        if self.get_for_day(*record.day_key) is not None:
            raise StateConflict(ConflictCode.ALREADY_CHECKED_IN)
        attendance_id = self._store._next_id("attendance")
        stored = self._assign_break_ids(replace(record, attendance_id=attendance_id))
        self._staged[attendance_id] = stored
        return stored

    def save(self, record: AttendanceRecord) -> AttendanceRecord:
        if record.attendance_id is None:
            raise ValueError("save() needs a persisted record; use insert()")
        self._lock(record.day_key)
        stored = self._assign_break_ids(record)
        self._staged[record.attendance_id] = stored
        return stored

    def _assign_break_ids(self, record: AttendanceRecord) -> AttendanceRecord:
        breaks = tuple(
            replace(
                b,
                break_id=b.break_id if b.break_id is not None else self._store._next_id("break"),
                attendance_id=record.attendance_id,
            )
            for b in record.breaks
        )
        return replace(record, breaks=breaks)

    def delete(self, attendance_id: int) -> bool:
        if self.get(int(attendance_id), for_update=True) is None:
            return False
        self._staged[int(attendance_id)] = _DELETED
        return True

    def append_log(self, entry: AttendanceLog) -> None:
        self._logs.append(entry)

    def _commit(self) -> None:
        self._store._apply(self._staged, self._logs)

    def _release(self) -> None:
        for key, lock in self._held.items():
            lock.release()
            self._store._unref_lock(key)
        self._held.clear()


class _KeyLock:
    """A day-key lock plus the number of transactions holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class InMemoryAttendanceStore(AttendanceStore):
    """Process-local store with per-day-key locking (STORE_BACKEND=memory).

    A transaction holds the lock of every day key it touched until it
    commits or rolls back, mirroring InnoDB row locks. A key's lock is
    dropped once no transaction holds or waits on it.
    """

    def __init__(self, *, lock_timeout: float = 10.0):
        self.lock_timeout = float(lock_timeout)
        self._guard = threading.Lock()
        self._key_locks: Dict[DayKey, _KeyLock] = {}
        self._records: Dict[int, AttendanceRecord] = {}
        self._by_day: Dict[DayKey, int] = {}
        self._logs: List[AttendanceLog] = []
        self._counters = {"attendance": 0, "break": 0}

    # --- internals used by _MemoryTransaction ----------------------------

    def _lock_for(self, key: DayKey) -> threading.Lock:
        with self._guard:
            entry = self._key_locks.setdefault(key, _KeyLock())
            entry.users += 1
            return entry.lock

    def _unref_lock(self, key: DayKey) -> None:
        with self._guard:
            entry = self._key_locks.get(key)
            if entry is None:
                return
            entry.users -= 1
            if entry.users <= 0:
                del self._key_locks[key]

    @property
    def active_lock_count(self) -> int:
        with self._guard:
            return len(self._key_locks)

    def _open_ids(self, user_id: int, business_id: int) -> List[int]:
        with self._guard:
            return [
                attendance_id
                for attendance_id, r in self._records.items()
                if r.user_id == user_id and r.business_id == business_id and r.is_open
            ]

    def _next_id(self, kind: str) -> int:
        with self._guard:
            self._counters[kind] += 1
            return self._counters[kind]

    def _committed(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with self._guard:
            return self._records.get(attendance_id)

    def _id_for_day(self, key: DayKey) -> Optional[int]:
        with self._guard:
            return self._by_day.get(key)

    def _apply(self, staged: Dict[int, Optional[AttendanceRecord]], logs: Sequence[AttendanceLog]) -> None:
        with self._guard:
            for attendance_id, rec in staged.items():
                if rec is _DELETED:
                    old = self._records.pop(attendance_id, None)
                    if old is not None:
                        self._by_day.pop(old.day_key, None)
                else:
                    self._records[attendance_id] = rec
                    self._by_day[rec.day_key] = attendance_id
            self._logs.extend(logs)

    # --- AttendanceStore -------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[AttendanceTransaction]:
        tx = _MemoryTransaction(self)
        try:
            yield tx
            tx._commit()
        finally:
            tx._release()

    def get_for_day(self, user_id: int, business_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with self._guard:
            attendance_id = self._by_day.get((int(user_id), int(business_id), work_date))
            return self._records.get(attendance_id) if attendance_id is not None else None

    def get(self, attendance_id: int) -> Optional[AttendanceRecord]:
        return self._committed(int(attendance_id))

    def list_for_business_day(self, business_id: int, work_date: date) -> Sequence[AttendanceRecord]:
        with self._guard:
            return [
                r for r in self._records.values() if r.business_id == int(business_id) and r.work_date == work_date
            ]

    def recent_for_user(
        self, user_id: int, limit: int, *, business_id: Optional[int] = None
    ) -> Sequence[AttendanceRecord]:
        with self._guard:
            items = [
                r
                for r in self._records.values()
                if r.user_id == int(user_id) and (business_id is None or r.business_id == int(business_id))
            ]
        items.sort(key=lambda r: r.check_in_time, reverse=True)
        return items[: int(limit)]

    def logs_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceLog]:
        with self._guard:
            items = [log for log in self._logs if log.user_id == int(user_id)]
        return list(reversed(items))[: int(limit)]
