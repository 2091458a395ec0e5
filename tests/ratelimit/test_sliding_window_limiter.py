from datetime import datetime, timedelta

import pytest

from src.attendance_engine.attendance_engine.core.exceptions import RateLimited
from src.attendance_engine.attendance_engine.ratelimit.limiter import SlidingWindowRateLimiter, enforce

T0 = datetime(2026, 3, 2, 10, 0, 0)


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def test_allows_up_to_threshold_then_rejects():
    limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)

    assert [limiter.allow(1, "status", now=_at(s)) for s in (0, 1, 2, 3)] == [True, True, True, False]


def test_window_slides():
    limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
    for s in (0, 1, 2):
        limiter.allow(1, "status", now=_at(s))

    assert limiter.allow(1, "status", now=_at(59)) is False
    # The hit at t=0 leaves the window at t=60.
    assert limiter.allow(1, "status", now=_at(60)) is True
    assert limiter.allow(1, "status", now=_at(60.5)) is False


def test_rejected_requests_are_not_counted():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=10)
    limiter.allow(1, "status", now=_at(0))
    for s in range(1, 10):
        assert limiter.allow(1, "status", now=_at(s)) is False

    assert limiter.allow(1, "status", now=_at(10)) is True


def test_keys_are_per_user_and_endpoint():
    limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)

    assert limiter.allow(1, "status", now=T0) is True
    assert limiter.allow(2, "status", now=T0) is True
    assert limiter.allow(1, "business_summary", now=T0) is True
    assert limiter.allow(1, "status", now=T0) is False


def test_enforce_raises_with_retry_after():
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
    enforce(limiter, 1, "status", now=_at(0))
    enforce(limiter, 1, "status", now=_at(10))

    with pytest.raises(RateLimited) as exc:
        enforce(limiter, 1, "status", now=_at(15))

    assert exc.value.retry_after_seconds == 45
    assert exc.value.http_status == 429
    assert exc.value.limit == 2
    assert exc.value.reset_at == _at(60)


def test_retry_after_is_zero_when_allowed():
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)

    assert limiter.retry_after(1, "status", now=T0) == 0


def test_invalid_configuration():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_requests=0)


def test_idle_keys_are_swept():
    limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=60)
    for user_id in range(1, 11):
        limiter.allow(user_id, "status", now=_at(0))
    assert limiter.tracked_keys == 10

    limiter.allow(99, "status", now=_at(61))

    assert limiter.tracked_keys == 1
