"""
Bounded worker pool for concurrent, order-preserving fan-out.

Used by competitor enrichment: a small number of workers pull items from a
shared queue, every result is written back at its input index, and the
returned list therefore follows input order regardless of completion order.
Once the deadline has expired workers stop taking new items; items never
started come back as PoolOutcome(skipped=True).
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import structlog

from placelens.core.deadline import Deadline

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PoolOutcome(Generic[R]):
    """Result slot for one input item."""

    index: int
    value: Optional[R] = None
    error: Optional[BaseException] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.skipped and self.error is None


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
    deadline: Optional[Deadline] = None,
) -> list[PoolOutcome[R]]:
    """
    Run `worker` over `items` with at most `concurrency` calls in flight.

    Exceptions raised by a worker are captured in its outcome slot and never
    cancel the other items.
    """
    outcomes: list[PoolOutcome[R]] = [PoolOutcome(index=i, skipped=True) for i in range(len(items))]
    if not items:
        return outcomes

    queue: asyncio.Queue[int] = asyncio.Queue()
    for i in range(len(items)):
        queue.put_nowait(i)

    async def _drain(worker_id: int) -> None:
        while True:
            if deadline is not None and deadline.expired:
                return
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            slot: PoolOutcome[R] = PoolOutcome(index=index)
            try:
                slot.value = await worker(items[index])
            except Exception as e:
                slot.error = e
                logger.debug(
                    "pool_item_failed",
                    worker_id=worker_id,
                    index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            outcomes[index] = slot

    size = max(1, min(concurrency, len(items)))
    await asyncio.gather(*(_drain(n) for n in range(size)))
    return outcomes
