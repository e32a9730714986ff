"""
Per-request trace log.

The trace is the caller-facing debugging surface: every navigation stage and
every field extraction appends an entry describing what was tried and what
happened. Entries are mirrored to structlog at debug level so process logs and
returned traces stay in step.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TraceEntry:
    """One step of a request: stage name, outcome tag and a short message."""

    stage: str
    outcome: str
    message: str = ""
    elapsed_ms: int = 0

    def render(self) -> str:
        text = f"[{self.stage}] {self.outcome}"
        if self.message:
            text += f": {self.message}"
        return f"{text} ({self.elapsed_ms}ms)"


@dataclass
class TraceLog:
    """
    Ordered list of trace entries with elapsed time measured from creation.

    Args:
        name: Label used in mirrored log events (e.g. the place id)
        clock: Monotonic time source, injectable for tests
    """

    name: str = ""
    clock: Callable[[], float] = time.monotonic
    entries: list[TraceEntry] = field(default_factory=list)
    _started: float = field(default=0.0, init=False)

    def __post_init__(self) -> None:
        self._started = self.clock()

    def elapsed_ms(self) -> int:
        return int((self.clock() - self._started) * 1000)

    def add(self, stage: str, outcome: str, message: str = "") -> TraceEntry:
        entry = TraceEntry(
            stage=stage,
            outcome=outcome,
            message=message,
            elapsed_ms=self.elapsed_ms(),
        )
        self.entries.append(entry)
        logger.debug(
            "trace_entry",
            trace=self.name,
            stage=stage,
            outcome=outcome,
            message=message,
            elapsed_ms=entry.elapsed_ms,
        )
        return entry

    def ok(self, stage: str, message: str = "") -> TraceEntry:
        return self.add(stage, "ok", message)

    def miss(self, stage: str, message: str = "") -> TraceEntry:
        return self.add(stage, "miss", message)

    def fail(self, stage: str, message: str = "") -> TraceEntry:
        return self.add(stage, "fail", message)

    def extend(self, other: "TraceLog", prefix: Optional[str] = None) -> None:
        """Append another trace's entries, optionally prefixing stage names."""
        for entry in other.entries:
            stage = f"{prefix}.{entry.stage}" if prefix else entry.stage
            self.entries.append(
                TraceEntry(stage, entry.outcome, entry.message, entry.elapsed_ms)
            )

    def lines(self) -> list[str]:
        return [entry.render() for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)
