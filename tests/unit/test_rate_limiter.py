import pytest

from viewcounter.app_shell.rate_limit import RateLimiter
from viewcounter.config.models import RateLimitConfig


@pytest.fixture
def make_limiter(clock):
    def _make(max_requests: int = 3, window_seconds: int = 60) -> RateLimiter:
        config = RateLimitConfig(window_seconds=window_seconds, max_requests=max_requests)
        return RateLimiter(config, time_port=clock)

    return _make


def test_allows_up_to_limit(make_limiter):
    limiter = make_limiter(max_requests=3)
    assert [limiter.check_client("a") for _ in range(4)] == [True, True, True, False]


def test_keys_are_independent(make_limiter):
    limiter = make_limiter(max_requests=1)
    assert limiter.check_client("a")
    assert limiter.check_client("b")
    assert not limiter.check_client("a")


def test_window_slides(make_limiter, clock):
    limiter = make_limiter(max_requests=1, window_seconds=60)
    assert limiter.check_client("a")
    clock.advance(seconds=30)
    assert not limiter.check_client("a")
    clock.advance(seconds=31)
    assert limiter.check_client("a")


def test_zero_limit_denies(make_limiter):
    assert not make_limiter().allow_request("x", 60, 0)


def test_retry_after_is_window(make_limiter):
    assert make_limiter(window_seconds=45).retry_after() == 45


def test_idle_clients_are_swept(make_limiter, clock):
    limiter = make_limiter(max_requests=5, window_seconds=60)
    for key in ("a", "b"):
        assert limiter.check_client(key)
    assert limiter.tracked_keys() == 2

    clock.advance(seconds=61)
    assert limiter.check_client("c")

    assert "client:a" not in limiter._history
    assert "client:b" not in limiter._history
    assert limiter.tracked_keys() == 1


def test_sweep_keeps_active_clients(make_limiter, clock):
    limiter = make_limiter(max_requests=5, window_seconds=60)
    assert limiter.check_client("a")
    clock.advance(seconds=40)
    assert limiter.check_client("b")
    clock.advance(seconds=30)
    assert limiter.check_client("c")

    assert "client:a" not in limiter._history
    assert "client:b" in limiter._history


def test_history_bounded_under_many_clients(make_limiter, clock):
    limiter = make_limiter(max_requests=1, window_seconds=60)
    for i in range(50):
        limiter.check_client(f"visitor-{i}")
        clock.advance(seconds=10)
    # Only clients seen in roughly the last window (plus one sweep interval) remain
    assert limiter.tracked_keys() <= 13
