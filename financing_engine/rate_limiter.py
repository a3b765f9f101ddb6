"""
Fixed-window rate limiter.

One instance is created by each entry point and passed to whatever needs it.
Storage is bounded: when full, expired windows are evicted first, then the
oldest key.
"""

import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic, max_keys: int = 10000):
        if max_keys <= 0:
            raise ValueError(f"max_keys must be positive, got: {max_keys}")
        self._clock = clock
        self._max_keys = max_keys
        self._windows: "OrderedDict[str, _Window]" = OrderedDict()
        self._lock = threading.Lock()

    def check(self, key: str, max_attempts: int, window_seconds: float) -> bool:
        """Count one attempt for `key`. False once `max_attempts` is reached in the window."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                if window is None:
                    self._make_room(now)
                else:
                    del self._windows[key]
                self._windows[key] = _Window(count=1, reset_at=now + window_seconds)
                return True

            if window.count >= max_attempts:
                return False
            window.count += 1
            return True

    def remaining(self, key: str, max_attempts: int) -> int:
        with self._lock:
            window = self._windows.get(key)
            if window is None or self._clock() >= window.reset_at:
                return max_attempts
            return max(0, max_attempts - window.count)

    def seconds_until_reset(self, key: str) -> int:
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return 0
            return max(0, math.ceil(window.reset_at - self._clock()))

    def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        with self._lock:
            return self._evict_expired(self._clock())

    def __len__(self) -> int:
        return len(self._windows)

    def _evict_expired(self, now: float) -> int:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def _make_room(self, now: float) -> None:
        if len(self._windows) < self._max_keys:
            return
        self._evict_expired(now)
        while len(self._windows) >= self._max_keys:
            self._windows.popitem(last=False)
