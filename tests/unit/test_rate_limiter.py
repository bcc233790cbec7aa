"""Tests for the per-sender message throttle."""

from __future__ import annotations

from unittest.mock import patch

from vfbridge.webhook.rate_limiter import SenderRateLimiter

CLOCK = "vfbridge.webhook.rate_limiter.time.monotonic"


def test_allows_up_to_limit_then_blocks() -> None:
    limiter = SenderRateLimiter(max_messages=3, window_seconds=60)
    assert [limiter.allow("15551234567") for _ in range(4)] == [True, True, True, False]


def test_budgets_are_per_sender() -> None:
    limiter = SenderRateLimiter(max_messages=1, window_seconds=60)
    assert limiter.allow("111") is True
    assert limiter.allow("222") is True
    assert limiter.allow("111") is False


def test_window_slides() -> None:
    limiter = SenderRateLimiter(max_messages=1, window_seconds=60)
    with patch(CLOCK, return_value=100.0):
        assert limiter.allow("111") is True
        assert limiter.allow("111") is False
    with patch(CLOCK, return_value=161.0):
        assert limiter.allow("111") is True


def test_zero_disables_throttling() -> None:
    limiter = SenderRateLimiter(max_messages=0)
    assert limiter.enabled is False
    assert all(limiter.allow("111") for _ in range(1000))


def test_idle_senders_are_evicted() -> None:
    limiter = SenderRateLimiter(max_messages=5, window_seconds=60)
    with patch(CLOCK, return_value=0.0):
        for i in range(1100):
            limiter.allow(str(i))
    with patch(CLOCK, return_value=120.0):
        for i in range(1100, 2200):
            limiter.allow(str(i))
    assert len(limiter._windows) <= 1100
