from __future__ import annotations

import logging
from datetime import datetime, timedelta

import mysql.connector

from ..common.datetime_utils import now_local
from ..core.constants import RATE_LIMIT_WINDOW_SECONDS, STATUS_RATE_LIMIT
from ..core.exceptions import PersistenceFailure
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone

logger = logging.getLogger(__name__)


class MySQLRateLimiter:
    """Fixed window counters shared by every process using the database.

    The upsert takes the row lock, so concurrent increments for the same key
    serialize and each sees its own count.
    """

    def __init__(
        self,
        conn_factory: DatabaseConnection,
        *,
        max_requests: int = STATUS_RATE_LIMIT,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        clock=now_local,
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("rate limit and window must be positive")
        self._conn_factory = conn_factory
        self._max = int(max_requests)
        self._window_seconds = int(window_seconds)
        self._clock = clock

    @property
    def max_requests(self) -> int:
        return self._max

    def _window_start(self, now: datetime) -> datetime:
        epoch = int(now.timestamp())
        return datetime.fromtimestamp(epoch - epoch % self._window_seconds)

    def allow(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> bool:
        now = now or self._clock()
        window_start = self._window_start(now)
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO rate_limit_counters(user_id, endpoint_key, window_start, hits)
                    VALUES(%s,%s,%s,1)
                    ON DUPLICATE KEY UPDATE hits = hits + 1
                    """,
                    (int(user_id), endpoint_key, window_start),
                )
                cur.execute(
                    """
                    SELECT hits FROM rate_limit_counters
                    WHERE user_id=%s AND endpoint_key=%s AND window_start=%s
                    """,
                    (int(user_id), endpoint_key, window_start),
                )
                row = fetchone(cur)
                # Old windows are dead weight once the current one exists.
                cur.execute(
                    "DELETE FROM rate_limit_counters WHERE user_id=%s AND endpoint_key=%s AND window_start<%s",
                    (int(user_id), endpoint_key, window_start),
                )
        except mysql.connector.Error as e:
            logger.exception("rate limiter update failed")
            raise PersistenceFailure("Rate limiter storage unavailable") from e

        hits = int(row["hits"]) if row else 1
        if hits > self._max:
            logger.warning("rate limit exceeded user=%s endpoint=%s count=%d", user_id, endpoint_key, hits)
            return False
        return True

    def retry_after(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> int:
        now = now or self._clock()
        window_end = self._window_start(now) + timedelta(seconds=self._window_seconds)
        return max(1, int((window_end - now).total_seconds()))
