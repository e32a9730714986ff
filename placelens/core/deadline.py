"""
Shared request deadline.

A single Deadline is created per logical request and handed to every step, so
the budget is spent once in total instead of per step. Racing an awaitable
against the deadline converts a loss into EnrichmentTimeoutError-style
"no data" outcomes at the call site.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class DeadlineExceeded(asyncio.TimeoutError):
    """Raised by Deadline.race when the shared budget ran out first."""


class Deadline:
    """Absolute point in monotonic time after which no new work starts."""

    def __init__(
        self,
        budget_seconds: float,
        safety_margin: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self.budget_seconds = budget_seconds
        self.expires_at = clock() + max(0.0, budget_seconds - safety_margin)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def cap(self, timeout: float) -> float:
        """Shrink a per-call timeout so it never outlives the deadline."""
        return max(0.0, min(timeout, self.remaining()))

    async def race(self, awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
        """
        Await `awaitable` for at most the remaining budget (or `timeout`, if smaller).

        Raises:
            DeadlineExceeded: If the budget elapses first; the awaitable is cancelled.
        """
        limit = self.remaining() if timeout is None else self.cap(timeout)
        if limit <= 0.0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise DeadlineExceeded("deadline already expired")
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded(f"lost race after {limit:.2f}s") from e


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
