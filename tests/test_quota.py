import pytest

from jlpt_quiz.errors import RateLimitExceeded
from jlpt_quiz.quota import RateLimiter


def test_window_slides(clock):
    limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.acquire()
    clock.advance(3)
    limiter.acquire()
    assert limiter.remaining() == 0

    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.acquire()
    assert excinfo.value.wait_seconds == 7
    assert excinfo.value.category == "rate_limit"

    clock.advance(7)
    assert limiter.remaining() == 1
    limiter.acquire()


def test_rejected_requests_are_not_recorded(clock):
    limiter = RateLimiter(max_requests=1, window_seconds=5, clock=clock)
    limiter.acquire()
    for _ in range(3):
        with pytest.raises(RateLimitExceeded):
            limiter.acquire()
    clock.advance(5)
    limiter.acquire()


def test_wait_is_at_least_one_second(clock):
    limiter = RateLimiter(max_requests=1, window_seconds=1, clock=clock)
    limiter.acquire()
    clock.advance(0.9)
    with pytest.raises(RateLimitExceeded) as excinfo:
        limiter.acquire()
    assert excinfo.value.wait_seconds == 1


def test_get_status(clock):
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)
    assert limiter.get_status()["next_reset_in"] is None
    limiter.acquire()
    clock.advance(20)
    status = limiter.get_status()
    assert status["remaining"] == 2
    assert status["next_reset_in"] == pytest.approx(40)


@pytest.mark.parametrize("kwargs", [{"max_requests": 0}, {"window_seconds": 0}])
def test_invalid_limits(kwargs):
    with pytest.raises(ValueError):
        RateLimiter(**kwargs)
