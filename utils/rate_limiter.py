"""Token bucket rate limiter."""
import time
import threading


class RateLimiter:
    """Token bucket rate limiter, thread-safe.

    Concurrent per-coin lookups share one limiter per provider, so the bucket
    is refilled and drained under a lock while the sleep happens outside it.
    """

    def __init__(self, calls_per_minute):
        if calls_per_minute <= 0:
            raise ValueError("calls_per_minute must be positive")
        self.rate = calls_per_minute / 60.0  # tokens per second
        self.capacity = float(calls_per_minute)
        self.tokens = self.capacity
        self.last_time = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self, now):
        elapsed = now - self.last_time
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_time = now

    def try_acquire(self):
        """Take a token if one is available. Never blocks."""
        with self._lock:
            self._refill(time.monotonic())
            if self.tokens >= 1:
                self.tokens -= 1
                return True
            return False

    def wait(self):
        """Block until a token is available."""
        while True:
            with self._lock:
                self._refill(time.monotonic())
                if self.tokens >= 1:
                    self.tokens -= 1
                    return
                sleep_time = (1 - self.tokens) / self.rate
            time.sleep(sleep_time)
