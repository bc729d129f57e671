"""Tests for app/core/rate_limit.py."""

import pytest

from app.core.rate_limit import SCOPE_DEFAULT, SCOPE_GENERATE, RateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter({SCOPE_GENERATE: 2, SCOPE_DEFAULT: 5}, window_seconds=60, clock=clock)


def test_requests_within_the_limit_are_allowed(limiter):
    first = limiter.check(SCOPE_GENERATE, "user-1")
    second = limiter.check(SCOPE_GENERATE, "user-1")
    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)


def test_request_over_the_limit_is_refused_with_retry_after(limiter, clock):
    limiter.check(SCOPE_GENERATE, "user-1")
    clock.now += 20
    limiter.check(SCOPE_GENERATE, "user-1")
    refused = limiter.check(SCOPE_GENERATE, "user-1")
    assert refused.allowed is False
    assert refused.remaining == 0
    assert refused.retry_after == 40


def test_window_slides(limiter, clock):
    limiter.check(SCOPE_GENERATE, "user-1")
    clock.now += 30
    limiter.check(SCOPE_GENERATE, "user-1")
    clock.now += 30
    # the first request has left the window, the second has not
    assert limiter.check(SCOPE_GENERATE, "user-1").allowed is True
    assert limiter.check(SCOPE_GENERATE, "user-1").allowed is False


def test_refused_requests_do_not_extend_the_window(limiter, clock):
    limiter.check(SCOPE_GENERATE, "user-1")
    limiter.check(SCOPE_GENERATE, "user-1")
    for _ in range(5):
        assert limiter.check(SCOPE_GENERATE, "user-1").allowed is False
    clock.now += 60
    assert limiter.check(SCOPE_GENERATE, "user-1").allowed is True


def test_users_and_scopes_are_counted_separately(limiter):
    limiter.check(SCOPE_GENERATE, "user-1")
    limiter.check(SCOPE_GENERATE, "user-1")
    assert limiter.check(SCOPE_GENERATE, "user-2").allowed is True
    assert limiter.check(SCOPE_DEFAULT, "user-1").allowed is True


def test_unknown_scope_uses_the_default_limit(limiter):
    assert limiter.limit_for("export") == 5


def test_reset_one_user(limiter):
    limiter.check(SCOPE_GENERATE, "user-1")
    limiter.check(SCOPE_GENERATE, "user-1")
    limiter.check(SCOPE_GENERATE, "user-2")
    limiter.check(SCOPE_GENERATE, "user-2")
    limiter.reset("user-1")
    assert limiter.check(SCOPE_GENERATE, "user-1").allowed is True
    assert limiter.check(SCOPE_GENERATE, "user-2").allowed is False
