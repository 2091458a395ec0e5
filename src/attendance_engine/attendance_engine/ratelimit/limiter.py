from __future__ import annotations

import logging
import math
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Protocol, Tuple

from ..common.datetime_utils import now_local
from ..core.constants import RATE_LIMIT_WINDOW_SECONDS, STATUS_RATE_LIMIT
from ..core.exceptions import RateLimited

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    @property
    def max_requests(self) -> int:
        raise NotImplementedError

    def allow(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> bool:
        raise NotImplementedError

    def retry_after(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> int:
        raise NotImplementedError


def enforce(limiter: RateLimiter, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> None:
    """Raise RateLimited when the request does not fit in the window."""
    if not limiter.allow(user_id, endpoint_key, now=now):
        retry = limiter.retry_after(user_id, endpoint_key, now=now)
        reset_at = now + timedelta(seconds=retry) if now is not None else None
        raise RateLimited(retry, limit=limiter.max_requests, reset_at=reset_at)


class SlidingWindowRateLimiter:
    """Per-(user, endpoint) sliding log kept in process memory.

    Only admitted requests are recorded, so a client hammering the endpoint is
    let through again as soon as its oldest admitted request leaves the window.
    Keys whose log has emptied are swept at most once per window.
    """

    def __init__(
        self,
        *,
        max_requests: int = STATUS_RATE_LIMIT,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        clock=now_local,
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError("rate limit and window must be positive")
        self._max = int(max_requests)
        self._window = timedelta(seconds=int(window_seconds))
        self._clock = clock
        self._hits: Dict[Tuple[int, str], Deque[datetime]] = {}
        self._lock = threading.Lock()
        self._last_sweep: datetime | None = None

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def _prune(self, hits: Deque[datetime], now: datetime) -> None:
        cutoff = now - self._window
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: datetime) -> None:
        if self._last_sweep is not None and now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        for key in list(self._hits):
            self._prune(self._hits[key], now)
            if not self._hits[key]:
                del self._hits[key]

    def allow(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> bool:
        now = now or self._clock()
        key = (int(user_id), endpoint_key)
        with self._lock:
            self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            self._prune(hits, now)
            if len(hits) >= self._max:
                logger.warning("rate limit exceeded user=%s endpoint=%s count=%d", user_id, endpoint_key, len(hits))
                return False
            hits.append(now)
            return True

    def retry_after(self, user_id: int, endpoint_key: str, *, now: datetime | None = None) -> int:
        now = now or self._clock()
        key = (int(user_id), endpoint_key)
        with self._lock:
            hits = self._hits.get(key)
            if hits is None:
                return 0
            self._prune(hits, now)
            if not hits:
                del self._hits[key]
                return 0
            if len(hits) < self._max:
                return 0
            wait = (hits[0] + self._window) - now
            return max(1, math.ceil(wait.total_seconds()))
