"""Unit tests for in-memory rate limiter adapter."""

from unittest.mock import Mock

import pytest

from companion.adapters.rate_limit import in_memory
from companion.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter


def test_allows_up_to_limit_in_same_window() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=3, window_seconds=60, clock=clock)

    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is True
    result = limiter.consume("k")
    assert result.allowed is True
    assert result.remaining == 0


def test_blocks_when_over_limit() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)

    limiter.consume("k")
    limiter.consume("k")

    blocked = limiter.consume("k")
    assert blocked.allowed is False
    assert blocked.remaining == 0
    # Window [960, 1020) ends 20 s after t=1000
    assert blocked.reset_at == 1020
    assert blocked.retry_after_seconds == 20


def test_windows_are_aligned_to_epoch() -> None:
    clock = Mock(return_value=1019.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

    assert limiter.consume("k").allowed is True
    assert limiter.consume("k").allowed is False

    # 1020 starts a new window even though only one second has passed
    clock.return_value = 1020.0
    assert limiter.consume("k").allowed is True


def test_retry_after_is_at_least_one_second() -> None:
    clock = Mock(return_value=1019.9)
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

    limiter.consume("k")
    assert limiter.consume("k").retry_after_seconds == 1


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

    assert limiter.consume("k1").allowed is True
    assert limiter.consume("k1").allowed is False

    assert limiter.consume("k2").allowed is True


def test_reset_clears_a_single_key() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)

    limiter.consume("k1")
    limiter.consume("k2")
    limiter.reset("k1")

    assert limiter.consume("k1").allowed is True
    assert limiter.consume("k2").allowed is False


def test_stats_lists_tracked_keys() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

    limiter.consume("k1")
    limiter.consume("k1")
    limiter.consume("k2")

    stats = limiter.stats()
    assert stats["total_entries"] == 2
    by_key = {entry["key"]: entry for entry in stats["entries"]}
    assert by_key["k1"]["count"] == 2
    assert by_key["k2"]["count"] == 1
    assert by_key["k1"]["reset_at"] == "1970-01-01T00:17:00+00:00"


def test_purge_expired_drops_finished_windows() -> None:
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

    limiter.consume("old")
    clock.return_value = 1100.0
    limiter.consume("new")

    assert limiter.purge_expired() == 1
    assert [e["key"] for e in limiter.stats()["entries"]] == ["new"]


def test_periodic_purge_runs_during_consume(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(in_memory, "PURGE_EVERY", 3)
    clock = Mock(return_value=1000.0)
    limiter = InMemoryFixedWindowRateLimiter(limit=5, window_seconds=60, clock=clock)

    limiter.consume("old")
    clock.return_value = 1100.0
    limiter.consume("new")
    limiter.consume("new")  # third consume triggers the sweep

    assert limiter.stats()["total_entries"] == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": 0, "window_seconds": 60},
        {"limit": 1, "window_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryFixedWindowRateLimiter(**kwargs)


def test_invalid_consume_args() -> None:
    limiter = InMemoryFixedWindowRateLimiter(limit=1, window_seconds=60)

    with pytest.raises(ValueError):
        limiter.consume("")

    with pytest.raises(ValueError):
        limiter.consume("k", cost=0)
