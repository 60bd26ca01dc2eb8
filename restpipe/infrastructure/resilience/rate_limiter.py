"""Implementation of a rate limiter.

Controls the frequency of outgoing requests to stay within the API quota.
Uses a token bucket: up to `capacity` requests may burst, after which
requests are paced at `per_second` permits per second.
"""

import time
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from restpipe.domain.models.resilience import DEFAULT_RATE_CAPACITY, DEFAULT_RATE_PER_SECOND, RateBudget

logger = logging.getLogger(__name__)

# Float slack so a bucket refilled to 0.9999999 still counts as one permit
_EPSILON = 1e-9


class RateLimiter:
    """Token bucket rate limiter shared by all requests of one client."""

    def __init__(
        self,
        capacity: int = DEFAULT_RATE_CAPACITY,
        per_second: float = DEFAULT_RATE_PER_SECOND,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initializes the rate limiter with a full bucket.

        Args:
            capacity: Burst size (maximum permits held at once).
            per_second: Refill rate in permits per second.
            clock: Monotonic clock returning seconds.
            sleep: Coroutine function used to wait for permits.
        """
        self._clock = clock
        self._sleep = sleep
        self.budget = RateBudget(
            capacity=capacity,
            refill_rate=per_second,
            level=float(capacity),
            last_refill=clock(),
        )
        # Check-and-decrement happens under this lock. Waiters queue on it,
        # which hands out permits in roughly arrival order.
        self._lock = asyncio.Lock()
        self._total_acquired = 0
        self._total_waited = 0.0
        logger.info(f"RateLimiter initialized: burst of {capacity}, {per_second} permits / second")

    @property
    def capacity(self) -> int:
        return self.budget.capacity

    @property
    def per_second(self) -> float:
        return self.budget.refill_rate

    async def acquire(self) -> float:
        """Waits until a permit is available and consumes it.

        Never fails, only delays. Cancelling the caller while it waits
        consumes no permit.

        Returns:
            The number of seconds spent waiting.
        """
        waited = 0.0
        async with self._lock:
            self.budget.refill(self._clock())
            while self.budget.level + _EPSILON < 1.0:
                wait_time = self.budget.seconds_until(1.0)
                logger.debug(f"Rate limit reached. Waiting for {wait_time:.2f} seconds.")
                await self._sleep(wait_time)
                waited += wait_time
                self.budget.refill(self._clock())
            self.budget.level = max(0.0, self.budget.level - 1.0)
            self._total_acquired += 1
            self._total_waited += waited
        return waited

    def get_wait_time(self) -> float:
        """Estimates the time needed before the next permit, ignoring queued waiters."""
        return self.budget.seconds_until(1.0, level=self.available_permits())

    def available_permits(self) -> float:
        return self.budget.projected_level(self._clock())

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        return {
            "type": "token_bucket",
            "capacity": self.capacity,
            "available_permits": round(self.available_permits(), 2),
            "per_second": self.per_second,
            "total_acquired": self._total_acquired,
            "total_wait_seconds": round(self._total_waited, 2),
        }
