"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from companion.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

# Stale windows are swept once every this many consume() calls
PURGE_EVERY = 1000


@dataclass
class _WindowState:
    window_start: int
    count: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Limit units per key within fixed, epoch-aligned windows.

    A window of 60 s starting at 12:00:00 admits ``limit`` units until
    12:01:00, then the counter starts over.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of allowed units per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._consumes = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _get_window_bounds(self, now: float) -> tuple[int, int]:
        window_start = int(now // self._window_seconds) * self._window_seconds
        return window_start, window_start + self._window_seconds

    def _get_or_reset_state(self, key: str, window_start: int) -> _WindowState:
        state = self._state_by_key.get(key)
        if state is None or state.window_start != window_start:
            state = _WindowState(window_start=window_start, count=0)
            self._state_by_key[key] = state
        return state

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Check the window for ``key`` and record the units when allowed.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        window_start, reset_at = self._get_window_bounds(now)

        with self._lock:
            self._consumes += 1
            if self._consumes % PURGE_EVERY == 0:
                self._purge_locked(window_start)

            state = self._get_or_reset_state(key, window_start)

            if state.count + cost <= self._limit:
                state.count += cost
                return RateLimitResult(
                    allowed=True,
                    limit=self._limit,
                    remaining=max(0, self._limit - state.count),
                    reset_at=reset_at,
                    retry_after_seconds=None,
                )

            return RateLimitResult(
                allowed=False,
                limit=self._limit,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
            )

    def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    def purge_expired(self) -> int:
        """Drop keys whose window has ended; returns how many were removed."""
        window_start, _ = self._get_window_bounds(self._clock())
        with self._lock:
            return self._purge_locked(window_start)

    def _purge_locked(self, current_window_start: int) -> int:
        stale = [
            key
            for key, state in self._state_by_key.items()
            if state.window_start < current_window_start
        ]
        for key in stale:
            del self._state_by_key[key]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            entries = [
                {
                    "key": key,
                    "count": state.count,
                    "reset_at": datetime.fromtimestamp(
                        state.window_start + self._window_seconds, tz=timezone.utc
                    ).isoformat(),
                }
                for key, state in self._state_by_key.items()
            ]
        return {"total_entries": len(entries), "entries": entries}
