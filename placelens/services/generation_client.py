"""
Generative text client for the paid content loop.

The loop depends only on the TextGenerator protocol; AnthropicTextGenerator is
the production implementation. Service failures surface as GenerationError so
the loop can fall back to a templated draft.
"""

from typing import Optional, Protocol

import anthropic
import structlog

from placelens.config.settings import get_settings
from placelens.core.circuit_breaker import get_circuit_breaker
from placelens.core.exceptions import ConfigurationError, GenerationError

logger = structlog.get_logger(__name__)

# Circuit breaker for the generation service
_generation_breaker = get_circuit_breaker("generation", failure_threshold=3, recovery_timeout=120)


class TextGenerator(Protocol):
    async def complete(self, system: str, prompt: str) -> str:
        """Return the raw completion text for one request."""
        ...


class AnthropicTextGenerator:
    """TextGenerator backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        settings = get_settings()
        key = api_key or (
            settings.anthropic_api_key.get_secret_value()
            if settings.anthropic_api_key
            else None
        )
        if client is None and not key:
            raise ConfigurationError("Anthropic API key not configured", "anthropic_api_key")

        self.client = client or anthropic.AsyncAnthropic(
            api_key=key,
            timeout=settings.generation_timeout_seconds,
        )
        self.model = model or settings.anthropic_model
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.temperature = settings.generation_temperature if temperature is None else temperature

    async def complete(self, system: str, prompt: str) -> str:
        """
        Raises:
            GenerationError: If the circuit is open or the API call fails
        """
        if not _generation_breaker.can_execute():
            recovery_time = _generation_breaker.time_until_recovery()
            logger.warning("generation_circuit_open", recovery_time=recovery_time)
            raise GenerationError(
                f"Generation circuit open. Recovery in {recovery_time:.1f}s",
                {"recovery_time": recovery_time},
            )

        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            await _generation_breaker.record_failure()
            logger.error("generation_request_failed", model=self.model, error=str(e)[:300])
            raise GenerationError(f"Generation request failed: {e}", {"model": self.model}) from e

        await _generation_breaker.record_success()
        text = "".join(
            getattr(block, "text", "") for block in message.content if getattr(block, "type", "") == "text"
        )
        logger.debug("generation_complete", model=self.model, chars=len(text))
        return text


# =============================================================================
# Singleton
# =============================================================================

_generator_instance: Optional[AnthropicTextGenerator] = None


def get_text_generator() -> Optional[TextGenerator]:
    """Shared generator, or None when no API key is configured (templated drafts only)."""
    global _generator_instance
    if _generator_instance is None:
        settings = get_settings()
        if settings.anthropic_api_key is None:
            return None
        _generator_instance = AnthropicTextGenerator()
    return _generator_instance


def reset_text_generator() -> None:
    """Reset the singleton (for testing)."""
    global _generator_instance
    _generator_instance = None
