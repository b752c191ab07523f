"""
Request pacing for remote routing providers: a sliding-window rate limiter
and the exponential backoff schedule used between retries.
"""
from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Hashable


def backoff_delay(attempt: int, base_delay_s: float, multiplier: float = 2.0) -> float:
    """
    Delay before retry number ``attempt`` (1-indexed):
    ``base_delay_s * multiplier ** (attempt - 1)``.
    """
    if attempt < 1:
        raise ValueError("Attempt number must be 1 or greater")
    return base_delay_s * (multiplier ** (attempt - 1))


class RateLimiter:
    """
    At most ``max_requests`` per ``window_s`` seconds for each key.
    In-memory and per process.
    """

    def __init__(
        self,
        max_requests: float,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_requests = max_requests
        self.window_s = window_s
        self.clock = clock
        self.sleep = sleep
        self._requests: Dict[Hashable, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, key: Hashable, now: float) -> Deque[float]:
        recent = self._requests[key]
        while recent and now - recent[0] >= self.window_s:
            recent.popleft()
        return recent

    def is_allowed(self, key: Hashable) -> bool:
        """Record a request for ``key`` and return True, or return False when the window is full."""
        now = self.clock()
        with self._lock:
            recent = self._prune(key, now)
            if len(recent) >= self.max_requests:
                return False
            recent.append(now)
            return True

    def wait_until_allowed(self, key: Hashable) -> float:
        """Block until a request for ``key`` is allowed. Returns the total time slept."""
        waited = 0.0
        while not self.is_allowed(key):
            pause = max(self.time_until_reset(key), self.window_s / self.max_requests)
            self.sleep(pause)
            waited += pause
        return waited

    def time_until_reset(self, key: Hashable) -> float:
        now = self.clock()
        with self._lock:
            recent = self._prune(key, now)
            if not recent:
                return 0.0
            return max(0.0, recent[0] + self.window_s - now)

    def usage(self, key: Hashable) -> Dict[str, float]:
        now = self.clock()
        with self._lock:
            current = len(self._prune(key, now))
        return {
            "current": current,
            "limit": self.max_requests,
            "reset_in": self.time_until_reset(key),
        }

    def reset(self, key: Hashable = None) -> None:
        with self._lock:
            if key is None:
                self._requests.clear()
            else:
                self._requests.pop(key, None)

