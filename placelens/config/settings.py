"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable
loading. Every value has a working default so the pipeline can run from a bare
checkout; only the paid tier needs ANTHROPIC_API_KEY.

Timing values that bound the competitor discovery batch are clamped to the
ranges the target site tolerates rather than rejected.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SEARCH_COORD = "126.9780;37.5665"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON lines instead of console output",
    )

    # -------------------------------------------------------------------------
    # Anthropic (content generation)
    # -------------------------------------------------------------------------
    anthropic_api_key: SecretStr | None = Field(
        default=None, description="Anthropic API key for the paid content loop"
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for improvement drafts",
    )
    generation_max_tokens: int = Field(default=2400, ge=256)
    generation_temperature: float = Field(default=0.4, ge=0.0, le=1.0)
    generation_timeout_seconds: float = Field(default=60.0, gt=0)
    generation_target_score: int = Field(
        default=85,
        ge=0,
        le=100,
        description="Simulated total score a generated draft must reach",
    )
    generation_max_attempts: int = Field(default=3, ge=1, le=5)

    # -------------------------------------------------------------------------
    # Browser
    # -------------------------------------------------------------------------
    browser_headless: bool = Field(default=True)
    navigation_timeout_ms: int = Field(
        default=45000,
        description="Timeout for a single page.goto call",
    )
    frame_wait_timeout_ms: int = Field(
        default=8000,
        description="How long to wait for the nested entry frame element",
    )
    settle_delay_ms: int = Field(
        default=1200,
        description="Pause after navigation before extraction starts",
    )
    expand_rounds: int = Field(default=6, ge=0, le=20)
    expand_interval_ms: int = Field(default=700, ge=0)

    # -------------------------------------------------------------------------
    # Competitor discovery
    # -------------------------------------------------------------------------
    competitor_total_budget_seconds: float = Field(
        default=18.0,
        description="Shared deadline for a whole discovery batch (clamped to 9-45s)",
    )
    competitor_concurrency: int = Field(
        default=2,
        description="Enrichment worker pool size (clamped to 1-4)",
    )
    competitor_limit: int = Field(default=5, ge=1, le=20)
    competitor_candidate_margin: int = Field(
        default=3,
        ge=0,
        description="Extra candidates kept beyond the limit to absorb enrichment failures",
    )
    search_coord: str = Field(
        default=DEFAULT_SEARCH_COORD,
        description="Map search coordinate as 'lng;lat'",
    )
    search_boundary: str | None = Field(
        default=None, description="Optional map search boundary parameter"
    )
    search_request_timeout_seconds: float = Field(default=8.0, gt=0)

    # -------------------------------------------------------------------------
    # Industry configuration
    # -------------------------------------------------------------------------
    industry_config_path: Path | None = Field(
        default=None,
        description="JSON file overriding the built-in industry configs",
    )

    @field_validator("competitor_total_budget_seconds")
    @classmethod
    def clamp_budget(cls, v: float) -> float:
        return max(9.0, min(45.0, v))

    @field_validator("competitor_concurrency")
    @classmethod
    def clamp_concurrency(cls, v: int) -> int:
        return max(1, min(4, v))


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
