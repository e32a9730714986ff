"""Configuration: process settings and per-industry scoring rules."""

from placelens.config.config_loader import (
    build_registry,
    get_extraction_heuristics,
    get_industry_registry,
    load_industry_config,
    normalize_industry,
)
from placelens.config.industry_schema import (
    ExtractionHeuristics,
    Industry,
    IndustryConfig,
    ScoreCategory,
)
from placelens.config.settings import Settings, get_settings

__all__ = [
    "ExtractionHeuristics",
    "Industry",
    "IndustryConfig",
    "ScoreCategory",
    "Settings",
    "build_registry",
    "get_extraction_heuristics",
    "get_industry_registry",
    "get_settings",
    "load_industry_config",
    "normalize_industry",
]
