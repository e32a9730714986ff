"""Core infrastructure: exceptions, tracing, deadlines, concurrency and resilience."""

from placelens.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)
from placelens.core.deadline import Deadline, DeadlineExceeded
from placelens.core.exceptions import (
    CircuitBreakerOpenError,
    ConfigurationError,
    ContentHandleClosedError,
    EnrichmentTimeoutError,
    GenerationError,
    GenerationParseError,
    InvalidIdentifierError,
    NavigationError,
    NavigationTimeoutError,
    NoContentHandleError,
    PermanentError,
    PlaceLensError,
    RetryableError,
    SearchEndpointError,
    SearchRateLimitError,
    SearchUnavailableError,
)
from placelens.core.trace import TraceEntry, TraceLog
from placelens.core.worker_pool import PoolOutcome, run_bounded

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "reset_all_circuit_breakers",
    # Deadline / pool
    "Deadline",
    "DeadlineExceeded",
    "PoolOutcome",
    "run_bounded",
    # Tracing
    "TraceEntry",
    "TraceLog",
    # Exceptions
    "PlaceLensError",
    "RetryableError",
    "PermanentError",
    "InvalidIdentifierError",
    "NavigationError",
    "NavigationTimeoutError",
    "NoContentHandleError",
    "ContentHandleClosedError",
    "EnrichmentTimeoutError",
    "SearchEndpointError",
    "SearchRateLimitError",
    "SearchUnavailableError",
    "GenerationError",
    "GenerationParseError",
    "ConfigurationError",
    "CircuitBreakerOpenError",
]
