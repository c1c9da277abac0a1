#!/usr/bin/env python3
"""
Rate limiting utilities for CVE Mirror
Paces NVD API requests to stay inside the published rolling-window limits
"""
import time
import threading
from typing import Callable, List, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting"""
    max_calls: int
    window_size: float = 30.0  # seconds


class SlidingWindowRateLimiter:
    """Sliding window rate limiter implementation"""

    def __init__(self, max_calls: int, window_size: float = 30.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window_size = window_size
        self.calls: List[float] = []
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "SlidingWindowRateLimiter":
        return cls(config.max_calls, config.window_size)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_size
        self.calls = [call_time for call_time in self.calls if call_time > cutoff]

    def acquire(self) -> bool:
        """Try to make a call within rate limit"""
        with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self.calls) < self.max_calls:
                self.calls.append(now)
                return True
            return False

    def wait_time(self) -> float:
        """Calculate wait time until next call is allowed"""
        with self._lock:
            now = self._clock()
            self._prune(now)

            if len(self.calls) < self.max_calls:
                return 0.0

            oldest_call = min(self.calls)
            return max(0.0, (oldest_call + self.window_size) - now)

    def wait(self, name: Optional[str] = None) -> float:
        """Block until a call is allowed, then record it. Returns seconds waited."""
        waited = 0.0
        while not self.acquire():
            delay = self.wait_time()
            if delay > 0:
                logger.info(f"Rate limit reached for {name or 'upstream'}, waiting {delay:.2f}s")
                self._sleep(delay)
                waited += delay
        return waited
