"""
auth/ratelimit.py -- Per-client login attempt limiter.

Fixed window with lazy reset:
  - The first attempt from a client key opens a window at `now`.
  - Up to `max_attempts` attempts are allowed inside the window; the next one
    raises TooManyAttempts before any credential is looked at, whether or not
    the credentials would have been right.
  - Nothing runs on a timer. The next attempt after `now - window_start >
    window` resets the count to zero and opens a new window at `now`.
  - Rejected attempts are not counted, so hammering a blocked key does not
    push its window further out.

Known weakness: limiting is per client key (remote address) only. Many
accounts tried from one address are throttled together; one account tried
from many addresses is not throttled at all.

Concurrency: the read-increment of a counter happens under one
threading.Lock.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable

from auth.errors import TooManyAttempts
from auth.models import RateLimitCounter

logger = logging.getLogger("sessionguard.auth")


class LoginRateLimiter:
    """Counts login attempts per client key.

    Usage:
        limiter = LoginRateLimiter(max_attempts=5, window_seconds=900)
        limiter.check_and_record("203.0.113.7")   # raises TooManyAttempts on the 6th
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: dict[str, RateLimitCounter] = {}
        self._lock = threading.Lock()

    def check_and_record(self, client_key: str) -> None:
        """Record one attempt for client_key, or raise TooManyAttempts."""
        now = self._clock()
        with self._lock:
            counter = self._counters.get(client_key)
            if counter is None:
                counter = RateLimitCounter(client_key=client_key, window_start=now)
                self._counters[client_key] = counter
            elif now - counter.window_start > self.window_seconds:
                counter.window_start = now
                counter.attempt_count = 0

            if counter.attempt_count >= self.max_attempts:
                retry_after = math.ceil(counter.window_start + self.window_seconds - now)
                logger.warning(
                    "Login rate limit hit for %s (%d attempts, retry in %ds)",
                    client_key,
                    counter.attempt_count,
                    retry_after,
                )
                raise TooManyAttempts(retry_after=retry_after)
            counter.attempt_count += 1

    def attempts(self, client_key: str) -> int:
        """Attempts counted in the client's current window (0 if it has elapsed)."""
        now = self._clock()
        with self._lock:
            counter = self._counters.get(client_key)
            if counter is None or now - counter.window_start > self.window_seconds:
                return 0
            return counter.attempt_count

    def purge_stale(self) -> int:
        """Drop counters whose window has elapsed. Returns the number removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, c in self._counters.items() if now - c.window_start > self.window_seconds]
            for key in stale:
                del self._counters[key]
        return len(stale)
