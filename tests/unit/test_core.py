"""Unit tests for the deadline, worker pool, circuit breaker and trace log."""

import asyncio

import pytest

from placelens.core.circuit_breaker import CircuitBreaker, CircuitState, get_circuit_breaker
from placelens.core.deadline import Deadline, DeadlineExceeded, clamp
from placelens.core.exceptions import CircuitBreakerOpenError
from placelens.core.trace import TraceLog
from placelens.core.worker_pool import run_bounded


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestDeadline:
    """Test the shared request deadline."""

    def test_safety_margin_shortens_budget(self):
        clock = FakeClock()
        deadline = Deadline(18.0, safety_margin=0.35, clock=clock)

        assert deadline.remaining() == pytest.approx(17.65)
        clock.advance(17.65)
        assert deadline.expired

    def test_cap_never_outlives_deadline(self):
        """Per-call timeouts shrink to the remaining budget."""
        clock = FakeClock()
        deadline = Deadline(5.0, clock=clock)
        clock.advance(4.0)

        assert deadline.cap(8.0) == pytest.approx(1.0)
        assert deadline.cap(0.5) == pytest.approx(0.5)

    async def test_race_returns_value_in_time(self):
        deadline = Deadline(5.0)

        assert await deadline.race(asyncio.sleep(0, result="done")) == "done"

    async def test_race_lost(self):
        """A slow awaitable loses to the budget."""
        deadline = Deadline(0.05)

        with pytest.raises(DeadlineExceeded):
            await deadline.race(asyncio.sleep(1))

    async def test_race_on_expired_deadline_never_starts(self):
        """An expired deadline raises immediately and closes the coroutine."""
        clock = FakeClock()
        deadline = Deadline(1.0, clock=clock)
        clock.advance(2.0)
        coro = asyncio.sleep(0)

        with pytest.raises(DeadlineExceeded):
            await deadline.race(coro)

        assert coro.cr_frame is None

    def test_clamp(self):
        assert clamp(100, 9, 45) == 45
        assert clamp(1, 9, 45) == 9


class TestWorkerPool:
    """Test bounded, order-preserving fan-out."""

    async def test_results_follow_input_order(self):
        """Completion order does not affect output order."""
        delays = [0.03, 0.0, 0.02, 0.01]

        async def worker(delay):
            await asyncio.sleep(delay)
            return delay

        outcomes = await run_bounded(delays, worker, concurrency=4)

        assert [o.value for o in outcomes] == delays
        assert all(o.ok for o in outcomes)

    async def test_concurrency_is_bounded(self):
        """Never more than `concurrency` workers in flight."""
        in_flight = 0
        peak = 0

        async def worker(item):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return item

        await run_bounded(list(range(8)), worker, concurrency=2)

        assert peak == 2

    async def test_worker_errors_are_isolated(self):
        """One failure is captured in its slot; the others complete."""

        async def worker(item):
            if item == 1:
                raise ValueError("boom")
            return item * 10

        outcomes = await run_bounded([0, 1, 2], worker, concurrency=1)

        assert outcomes[0].value == 0
        assert isinstance(outcomes[1].error, ValueError)
        assert not outcomes[1].ok
        assert outcomes[2].value == 20

    async def test_expired_deadline_skips_remaining(self):
        """Items not started before the deadline come back skipped."""
        clock = FakeClock()
        deadline = Deadline(10.0, clock=clock)

        async def worker(item):
            clock.advance(11.0)
            return item

        outcomes = await run_bounded([1, 2, 3], worker, concurrency=1, deadline=deadline)

        assert outcomes[0].value == 1
        assert outcomes[1].skipped and outcomes[2].skipped

    async def test_empty_input(self):
        async def worker(item):
            return item

        assert await run_bounded([], worker, concurrency=2) == []


class TestCircuitBreaker:
    """Test breaker state transitions."""

    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(name="search", failure_threshold=2, recovery_timeout=10, clock=FakeClock())

        await breaker.record_failure()
        assert breaker.can_execute()
        await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert not breaker.can_execute()

    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(name="search", failure_threshold=2, clock=FakeClock())

        await breaker.record_failure()
        await breaker.record_success()
        await breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_recovery(self):
        """After the recovery timeout trial calls are allowed; two successes close it."""
        clock = FakeClock()
        breaker = CircuitBreaker(name="search", failure_threshold=1, recovery_timeout=10, clock=clock)
        await breaker.record_failure()

        clock.advance(10)
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.record_success()
        await breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(name="search", failure_threshold=1, recovery_timeout=10, clock=clock)
        await breaker.record_failure()
        clock.advance(10)
        assert breaker.can_execute()

        await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        assert breaker.time_until_recovery() == pytest.approx(10)

    async def test_decorator_rejects_when_open(self):
        breaker = CircuitBreaker(name="generation", failure_threshold=1, clock=FakeClock())

        @breaker
        async def call():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            await call()
        with pytest.raises(CircuitBreakerOpenError):
            await call()

    def test_registry_reuses_instances(self):
        assert get_circuit_breaker("test_registry") is get_circuit_breaker("test_registry")


class TestTraceLog:
    """Test the per-request trace."""

    def test_entries_render_with_elapsed_time(self):
        clock = FakeClock()
        trace = TraceLog(name="1234567", clock=clock)
        clock.advance(0.25)

        trace.ok("goto", "200")
        trace.miss("frame.entry_selector")

        assert trace.lines() == ["[goto] ok: 200 (250ms)", "[frame.entry_selector] miss (250ms)"]
        assert len(trace) == 2

    def test_extend_with_prefix(self):
        outer = TraceLog()
        inner = TraceLog()
        inner.fail("goto", "timeout")

        outer.extend(inner, prefix="competitor.7654321")

        assert outer.entries[0].stage == "competitor.7654321.goto"
        assert outer.entries[0].outcome == "fail"
