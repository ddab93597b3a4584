"""Tests for the rolling-window rate limiter."""

from __future__ import annotations

import pytest

from autodoc.cancellation import CancellationToken, OperationCancelled
from autodoc.llm.rate_limiter import RateLimiter
from tests._fixtures.backends import FakeClock


def test_grants_up_to_ceiling_without_waiting(clock: FakeClock) -> None:
    limiter = RateLimiter(3, clock=clock, sleep=clock.sleep)

    waits = [limiter.acquire() for _ in range(3)]

    assert waits == [0.0, 0.0, 0.0]
    assert clock.sleeps == []
    assert len(limiter.grants) == 3


def test_next_grant_waits_for_oldest_to_leave_window(clock: FakeClock) -> None:
    limiter = RateLimiter(2, clock=clock, sleep=clock.sleep)
    limiter.acquire()
    clock.advance(10.0)
    limiter.acquire()
    clock.advance(5.0)

    assert limiter.pending_delay() == pytest.approx(45.0)
    waited = limiter.acquire()

    assert waited == pytest.approx(45.0)
    assert clock.now == pytest.approx(1060.0)


@pytest.mark.parametrize("ceiling, spacing", [(1, 0.0), (3, 0.5), (15, 2.0), (5, 30.0)])
def test_no_window_ever_holds_more_than_ceiling(clock: FakeClock, ceiling: int, spacing: float) -> None:
    limiter = RateLimiter(ceiling, clock=clock, sleep=clock.sleep)
    granted_at = []
    for _ in range(ceiling * 4 + 3):
        limiter.acquire()
        granted_at.append(clock.now)
        clock.advance(spacing)

    for index in range(len(granted_at) - ceiling):
        assert granted_at[index + ceiling] - granted_at[index] >= 60.0 - 1e-9


def test_rejects_invalid_ceiling() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0)


def test_cancelled_token_prevents_grant(clock: FakeClock) -> None:
    token = CancellationToken()
    limiter = RateLimiter(1, clock=clock, sleep=clock.sleep)
    limiter.acquire(token)
    token.cancel()

    with pytest.raises(OperationCancelled):
        limiter.acquire(token)
    assert len(limiter.grants) == 1


def test_interruptible_sleep_aborts_wait(clock: FakeClock) -> None:
    token = CancellationToken()

    def cancelling_sleep(seconds: float) -> None:
        token.cancel()
        token.sleep(seconds)

    limiter = RateLimiter(1, clock=clock, sleep=cancelling_sleep)
    limiter.acquire(token)

    with pytest.raises(OperationCancelled):
        limiter.acquire(token)
    assert len(limiter.grants) == 1
