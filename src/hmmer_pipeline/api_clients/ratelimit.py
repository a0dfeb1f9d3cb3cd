"""Thread-safe call-rate limiter for remote lookups."""

import threading
import time


class RateLimiter:
    """Enforce a minimum interval between calls across threads.

    NCBI E-utilities allow 3 requests/second without an API key and
    10 requests/second with one.
    """

    def __init__(self, calls_per_sec: float = 3.0):
        if calls_per_sec <= 0:
            raise ValueError("calls_per_sec must be positive")
        self.min_interval = 1.0 / calls_per_sec
        self._last_called = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        """Block until the next call is allowed."""
        with self._lock:
            elapsed = time.monotonic() - self._last_called
            if elapsed < self.min_interval:
                time.sleep(self.min_interval - elapsed)
            self._last_called = time.monotonic()
