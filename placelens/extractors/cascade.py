"""
Strategy cascade.

A field extractor is an ordered tuple of Strategy objects. run_cascade tries
them in order and returns the first non-empty value together with the name of
the strategy that produced it. Values from different strategies are never
merged. Adding a fallback means appending a Strategy, not subclassing.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

import structlog
from playwright.async_api import Error as PlaywrightError

from placelens.core.exceptions import ContentHandleClosedError
from placelens.extractors.context import ExtractionContext

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NO_STRATEGY = "none"


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """One way of obtaining a field. `run` returns None or an empty value on a miss."""

    name: str
    run: Callable[[ExtractionContext], Awaitable[Optional[T]]]


@dataclass
class ExtractionResult(Generic[T]):
    """A field value with the strategy that produced it and what was tried."""

    field: str
    value: Optional[T] = None
    strategy: str = NO_STRATEGY
    log: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.strategy != NO_STRATEGY


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0
    return False


async def run_cascade(
    field_name: str,
    strategies: Sequence[Strategy[T]],
    ctx: ExtractionContext,
) -> ExtractionResult[T]:
    """
    Evaluate strategies in order until one yields a value.

    A missing field is a valid outcome (strategy 'none'). Browser errors inside a
    strategy count as a miss unless the content handle itself is gone.

    Raises:
        ContentHandleClosedError: If the page closed mid-extraction
    """
    result: ExtractionResult[T] = ExtractionResult(field=field_name)

    for strategy in strategies:
        ctx.ensure_usable()
        try:
            value = await strategy.run(ctx)
        except ContentHandleClosedError:
            raise
        except PlaywrightError as e:
            ctx.ensure_usable()
            message = f"{strategy.name}: error {str(e).splitlines()[0][:160]}"
            result.log.append(message)
            ctx.trace.fail(f"{field_name}.{strategy.name}", message)
            continue

        if is_empty(value):
            result.log.append(f"{strategy.name}: miss")
            ctx.trace.miss(f"{field_name}.{strategy.name}")
            continue

        result.value = value
        result.strategy = strategy.name
        result.log.append(f"{strategy.name}: ok")
        ctx.trace.ok(f"{field_name}.{strategy.name}", _preview(value))
        return result

    ctx.trace.miss(field_name, "no strategy produced a value")
    logger.debug("field_absent", field=field_name, place_id=ctx.place_id, tried=len(strategies))
    return result


def _preview(value: Any) -> str:
    if isinstance(value, str):
        return f"{len(value)} chars"
    if isinstance(value, (list, tuple)):
        return f"{len(value)} items"
    return str(value)[:60]
