"""
============================================================================
CINESYNC - Shared Rate Limiter
============================================================================
Token-bucket gate shared by every outbound TMDB request.

One instance is created per run and handed to the TMDB client, so the
request rate stays bounded no matter how many discovery and detail
workers are running at the same time.

🔧 USAGE:
    limiter = RateLimiter(rate=40)      # 40 requests per second, burst 1
    limiter.acquire()                   # blocks until the next slot
============================================================================
"""

import logging
import threading
import time
from typing import Callable, Optional

from cinesync.errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Thread-safe token bucket, tracked as a theoretical arrival time.

    Each admitted call pushes the next free slot one interval forward.
    Up to ``burst`` calls may run back-to-back before callers have to wait.
    """

    def __init__(
        self,
        rate: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")

        self.rate = rate
        self.burst = burst
        self.interval = 1.0 / rate
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_arrival = 0.0

    def reserve(self, timeout: Optional[float] = None) -> float:
        """
        Claim the next slot and return how long the caller must wait for it.

        Raises:
            RateLimitError: If the wait would exceed ``timeout``; no slot is claimed
        """
        with self._lock:
            now = self._clock()
            arrival = max(self._next_arrival, now)
            delay = max(0.0, arrival - now - (self.burst - 1) * self.interval)

            if timeout is not None and delay > timeout:
                raise RateLimitError(
                    f"rate limiter wait of {delay:.3f}s exceeds allowed {timeout:.3f}s"
                )

            self._next_arrival = arrival + self.interval
            return delay

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the caller is admitted. Raises RateLimitError on timeout."""
        delay = self.reserve(timeout)
        if delay > 0:
            self._sleep(delay)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Non-fatal form of wait().

        The limiter only governs throughput, so a failed wait is logged and
        the caller proceeds immediately.

        Returns:
            True if the caller waited for a slot, False if the wait failed
        """
        try:
            self.wait(timeout)
            return True
        except RateLimitError as e:
            logger.warning("Rate limiter wait failed, proceeding anyway: %s", e)
            return False
