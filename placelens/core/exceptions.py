"""
Core exception hierarchy for PlaceLens.

Errors split into retryable and permanent branches so callers can tell a
flaky target site from unusable input.
Only InvalidIdentifierError and NavigationError are allowed to surface as
request-level failures; every other error is caught at its seam and turned
into a trace entry.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class PlaceLensError(Exception):
    """Base exception for all PlaceLens errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(PlaceLensError):
    """
    Transient errors that the caller may retry.

    Examples: navigation timeouts, search 429s, an unreachable target site.
    """

    pass


class PermanentError(PlaceLensError):
    """
    Errors a retry cannot fix.

    Examples: an input without a place id, an invalid industry override.
    """

    pass


# =============================================================================
# Navigation Errors
# =============================================================================


class InvalidIdentifierError(PermanentError):
    """Raised when no place identifier can be extracted from the caller input."""

    def __init__(self, raw_input: str):
        self.raw_input = raw_input
        super().__init__(
            "Could not extract a place identifier from input",
            {"input": raw_input[:200]},
        )


class NavigationError(RetryableError):
    """Raised when the target site cannot be loaded for a place."""

    def __init__(
        self,
        message: str,
        trace: Optional[list[Any]] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.trace = trace or []
        super().__init__(message, details)


class NavigationTimeoutError(NavigationError):
    """Raised when a page navigation exceeds its timeout."""

    pass


class NoContentHandleError(PlaceLensError):
    """Raised when the frame-resolution cascade yields no usable handle."""

    def __init__(self, place_id: str, trace: Optional[list[Any]] = None):
        self.place_id = place_id
        self.trace = trace or []
        super().__init__(
            f"No content handle found for place {place_id}",
            {"place_id": place_id},
        )


class ContentHandleClosedError(PlaceLensError):
    """Raised by an extractor when its page or frame became unusable mid-extraction."""

    pass


# =============================================================================
# Discovery Errors
# =============================================================================


class EnrichmentTimeoutError(RetryableError):
    """Raised when a competitor enrichment loses the race against the deadline."""

    def __init__(self, place_id: str, remaining: float):
        self.place_id = place_id
        super().__init__(
            f"Enrichment for place {place_id} timed out",
            {"place_id": place_id, "remaining_seconds": round(remaining, 3)},
        )


class SearchEndpointError(PlaceLensError):
    """Base exception for map search endpoint errors."""

    def __init__(
        self,
        endpoint: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.endpoint = endpoint
        super().__init__(f"[{endpoint}] {message}", details)


class SearchRateLimitError(SearchEndpointError, RetryableError):
    """Raised when the search endpoint rate limits us."""

    pass


class SearchUnavailableError(SearchEndpointError, RetryableError):
    """Raised when the search endpoint is down or its circuit is open."""

    pass


# =============================================================================
# Generation Errors
# =============================================================================


class GenerationError(PlaceLensError):
    """Raised when the generative text service call fails."""

    pass


class GenerationParseError(GenerationError):
    """Raised when the generative service returns content without a usable JSON object."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message, {"raw_preview": raw_text[:300]} if raw_text else None)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PermanentError):
    """Settings, industry overrides or API credentials are unusable."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """An endpoint gate is open; the call was not attempted."""

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"{service} gate open, trial calls in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )
