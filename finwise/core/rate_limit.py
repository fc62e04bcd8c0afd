"""In-process attempt limiting for the credential endpoints."""

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class _Window:
    started_at: float
    count: int


class AttemptLimiter:
    """
    Fixed-window attempt counter keyed by client.

    Counts live in process memory, so each worker enforces its own limit.
    """

    def __init__(
        self,
        attempts: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.attempts = attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, key: str) -> bool:
        """Record an attempt and return whether it is within the limit."""
        now = self._clock()
        self._evict(now)

        window = self._windows.get(key)
        if window is None:
            window = self._windows[key] = _Window(started_at=now, count=0)

        window.count += 1
        return window.count <= self.attempts

    def retry_after(self, key: str) -> int:
        """Seconds until the current window for ``key`` closes."""
        window = self._windows.get(key)
        if window is None:
            return 0
        remaining = window.started_at + self.window_seconds - self._clock()
        return max(int(remaining) + 1, 0)

    def reset(self) -> None:
        self._windows.clear()

    def _evict(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
