"""
Failure gate for the unofficial endpoints PlaceLens calls.

The map all-search endpoint and the generation service fail in bursts (429s,
bot checks, outages). Once a gate has seen enough consecutive failures it
opens, and callers go straight to their fallback for the recovery period
instead of spending the request deadline on a service that is down. After
that period a few trial calls decide whether it closes again.

Usage:
    gate = get_circuit_breaker("map_all_search", failure_threshold=5)

    if gate.can_execute():
        try:
            payload = await fetch()
        except SearchEndpointError:
            await gate.record_failure()
            raise
        await gate.record_success()
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from placelens.core.exceptions import CircuitBreakerOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Args:
        name: Endpoint label used in log events and errors
        failure_threshold: Consecutive failures that open the gate
        recovery_timeout: Seconds the gate stays open before trial calls
        success_threshold: Trial successes that close it again
        clock: Monotonic time source, injectable for tests
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: int = field(default=0, init=False)
    _trial_successes: int = field(default=0, init=False)
    _retry_at: float = field(default=0.0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def _transition(self, target: CircuitState, **context: Any) -> None:
        previous, self._state = self._state, target
        self._trial_successes = 0
        if target is CircuitState.OPEN:
            self._retry_at = self.clock() + self.recovery_timeout
        elif target is CircuitState.CLOSED:
            self._failures = 0
        log = logger.warning if target is CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            name=self.name,
            previous=previous.value,
            state=target.value,
            **context,
        )

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self.clock() >= self._retry_at:
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def can_execute(self) -> bool:
        return self.state is not CircuitState.OPEN

    def time_until_recovery(self) -> float:
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self._retry_at - self.clock())

    async def record_success(self) -> None:
        async with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._trial_successes += 1
                if self._trial_successes >= self.success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self._failures = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            if self._state is CircuitState.HALF_OPEN:
                # A failed trial call reopens immediately
                self._transition(CircuitState.OPEN, failures=self._failures)
            elif self._state is CircuitState.CLOSED and self._failures >= self.failure_threshold:
                self._transition(
                    CircuitState.OPEN,
                    failures=self._failures,
                    recovery_timeout=self.recovery_timeout,
                )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._trial_successes = 0
        self._retry_at = 0.0

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Gate an async callable; an open gate raises CircuitBreakerOpenError without calling it."""

        @wraps(func)
        async def gated(*args: Any, **kwargs: Any) -> T:
            if not self.can_execute():
                raise CircuitBreakerOpenError(self.name, self.time_until_recovery())
            try:
                result = await func(*args, **kwargs)
            except Exception:
                await self.record_failure()
                raise
            await self.record_success()
            return result

        return gated


_registry: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """Shared gate for an endpoint; thresholds apply only when it is first created."""
    if name not in _registry:
        _registry[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _registry[name]


def reset_all_circuit_breakers() -> None:
    for breaker in _registry.values():
        breaker.reset()
