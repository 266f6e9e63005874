"""
Per-key rate limiting for the interpreter path.

A fixed window per key: the first call opens a window of ``window``
seconds, and calls beyond ``max_calls`` inside it are refused until the
window resets.  Applied as a decorator around the interpreter call so the
executor never sees it.
"""

import math
import threading
import time
from functools import wraps

from config import QUERY_RATE_LIMIT, QUERY_RATE_WINDOW


class RateLimitExceeded(Exception):
    """Raised when a key has used up its window. ``retry_after`` is in whole seconds."""

    def __init__(self, key: str, retry_after: int):
        super().__init__(f"Rate limit exceeded for {key}; retry after {retry_after}s")
        self.key = key
        self.retry_after = retry_after


class RateLimiter:
    def __init__(self, max_calls: int, window: float, clock=time.monotonic):
        self.max_calls = max_calls
        self.window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, dict] = {}

    def check(self, key: str) -> tuple[bool, int | None]:
        """Count one call for ``key``. Returns (allowed, retry_after_seconds)."""
        with self._lock:
            now = self._clock()
            self._purge(now)

            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = {"count": 1, "reset_at": now + self.window}
                return True, None

            entry["count"] += 1
            if entry["count"] > self.max_calls:
                return False, max(1, math.ceil(entry["reset_at"] - now))
            return True, None

    def _purge(self, now: float):
        stale = [k for k, e in self._entries.items() if e["reset_at"] <= now]
        for k in stale:
            del self._entries[k]

    def reset(self):
        with self._lock:
            self._entries.clear()


query_limiter = RateLimiter(QUERY_RATE_LIMIT, QUERY_RATE_WINDOW)


def rate_limited(limiter: RateLimiter, key_func):
    """Decorator: refuse calls once ``key_func(*args, **kwargs)`` exceeds its window."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            key = key_func(*args, **kwargs)
            allowed, retry_after = limiter.check(key)
            if not allowed:
                raise RateLimitExceeded(key, retry_after)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
