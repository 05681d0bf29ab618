"""
In-process fixed-window rate limiting.

Each key gets ``limit`` hits per window. The window starts with the key's
first hit and resets once ``window_seconds`` have passed. The clock is
injectable so callers and tests control time explicitly.

State lives in this process only. Behind several workers each one counts
separately.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10000,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max_keys
        self._windows: Dict[Hashable, _Window] = {}
        self._lock = threading.Lock()

    def _current(self, key: Hashable, now: float) -> _Window:
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            if window is None and len(self._windows) >= self.max_keys:
                self._evict_expired(now)
            window = _Window(started_at=now)
            self._windows[key] = window
        return window

    def _evict_expired(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def hit(self, key: Hashable) -> bool:
        """Record one call for ``key``. Returns False once the window is full."""
        with self._lock:
            window = self._current(key, self.clock())
            if window.count >= self.limit:
                logger.warning("Rate limit exceeded for %s", key)
                return False
            window.count += 1
            return True

    def remaining(self, key: Hashable) -> int:
        with self._lock:
            window = self._current(key, self.clock())
            return max(0, self.limit - window.count)

    def retry_after(self, key: Hashable) -> float:
        """Seconds until ``key`` may call again (0 when it already may)."""
        with self._lock:
            now = self.clock()
            window = self._current(key, now)
            if window.count < self.limit:
                return 0.0
            return max(0.0, self.window_seconds - (now - window.started_at))

    def reset(self, key: Hashable) -> None:
        with self._lock:
            self._windows.pop(key, None)
