"""
Configuration Loader.

Builds the industry config registry once per process: the built-in templates
for each supported industry, optionally overridden by a JSON file named in
settings. The registry is read-only afterwards; request code only ever calls
load_industry_config().
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from placelens.config.industry_schema import (
    CategoryWeights,
    ExtractionHeuristics,
    Industry,
    IndustryConfig,
    KeywordRule,
    PhotoRule,
    PriceRule,
    ReviewRule,
    TextRule,
)
from placelens.config.settings import get_settings
from placelens.core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_INDUSTRY = Industry.HAIRSHOP

_INDUSTRY_ALIASES = {
    "hair": Industry.HAIRSHOP,
    "salon": Industry.HAIRSHOP,
    "미용실": Industry.HAIRSHOP,
    "헤어샵": Industry.HAIRSHOP,
    "coffee": Industry.CAFE,
    "카페": Industry.CAFE,
    "food": Industry.RESTAURANT,
    "식당": Industry.RESTAURANT,
    "음식점": Industry.RESTAURANT,
}

_CAFE_WAYFINDING = ("역", "출구", "도보", "분", "주차", "골목", "코너", "건물", "층")
_FOOD_STOP_WORDS = ("맛집", "핫플", "인생", "가성비", "근처", "동네")


# =============================================================================
# Built-in Templates
# =============================================================================

def create_hairshop_template() -> IndustryConfig:
    """Hair salon: heavy on description and reviews, tolerant of inquiry pricing."""
    return IndustryConfig(
        industry=Industry.HAIRSHOP,
        label="미용실",
        weights=CategoryWeights(
            description=22, directions=18, keywords=15, reviews=25, photos=12, price=8
        ),
        description=TextRule(
            min_length=80, good_length=250, max_length=800, keyword_boost_max=12
        ),
        directions=TextRule(
            min_length=60,
            good_length=180,
            max_length=600,
            keyword_boost_max=3,
            signal_words=("역", "출구", "도보", "분", "주차", "건물", "층", "엘리베이터", "정문", "후문"),
        ),
        keywords=KeywordRule(
            stop_words=("추천", "잘하는", "유명", "가성비", "근처", "동네"),
            vocabulary=("미용실", "헤어", "커트", "펌", "염색", "클리닉", "매직", "드라이", "두피"),
        ),
        reviews=ReviewRule(target_count=800, recent_weight=0.45),
        photos=PhotoRule(target_count=120),
        price=PriceRule(inquiry_tolerance=0.6, strict=False),
    )


def create_cafe_template() -> IndustryConfig:
    """Cafe: review-driven, strict about printed prices."""
    return IndustryConfig(
        industry=Industry.CAFE,
        label="카페",
        weights=CategoryWeights(
            description=20, directions=18, keywords=15, reviews=27, photos=12, price=8
        ),
        description=TextRule(
            min_length=70, good_length=220, max_length=800, keyword_boost_max=10
        ),
        directions=TextRule(
            min_length=60,
            good_length=170,
            max_length=600,
            keyword_boost_max=3,
            signal_words=_CAFE_WAYFINDING,
        ),
        keywords=KeywordRule(
            stop_words=_FOOD_STOP_WORDS,
            vocabulary=("카페", "커피", "디저트", "베이커리", "브런치", "라떼", "케이크", "원두", "테라스"),
        ),
        reviews=ReviewRule(target_count=600, recent_weight=0.5),
        photos=PhotoRule(target_count=150),
        price=PriceRule(inquiry_tolerance=0.35, strict=True),
    )


def create_restaurant_template() -> IndustryConfig:
    """Restaurant: reviews weigh most, inquiry pricing is barely tolerated."""
    return IndustryConfig(
        industry=Industry.RESTAURANT,
        label="음식점",
        weights=CategoryWeights(
            description=18, directions=17, keywords=14, reviews=30, photos=12, price=9
        ),
        description=TextRule(
            min_length=70, good_length=220, max_length=800, keyword_boost_max=10
        ),
        directions=TextRule(
            min_length=60,
            good_length=170,
            max_length=600,
            keyword_boost_max=3,
            signal_words=_CAFE_WAYFINDING,
        ),
        keywords=KeywordRule(
            stop_words=_FOOD_STOP_WORDS,
            vocabulary=("식당", "한식", "점심", "저녁", "회식", "단체", "코스", "포장", "배달", "고기"),
        ),
        reviews=ReviewRule(target_count=1200, recent_weight=0.55),
        photos=PhotoRule(target_count=200),
        price=PriceRule(inquiry_tolerance=0.15, strict=True),
    )


_TEMPLATES = {
    Industry.HAIRSHOP: create_hairshop_template,
    Industry.CAFE: create_cafe_template,
    Industry.RESTAURANT: create_restaurant_template,
}


# =============================================================================
# Registry
# =============================================================================

def normalize_industry(tag: Optional[str]) -> Industry:
    """Map a free-form industry tag to a supported Industry, defaulting to hairshop."""
    if isinstance(tag, Industry):
        return tag
    key = (tag or "").strip().lower()
    try:
        return Industry(key)
    except ValueError:
        return _INDUSTRY_ALIASES.get(key, DEFAULT_INDUSTRY)


def _apply_overrides(base: IndustryConfig, overrides: dict[str, Any]) -> IndustryConfig:
    data = base.model_dump()
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(data.get(section), dict):
            data[section].update(values)
        else:
            data[section] = values
    return IndustryConfig.model_validate(data)


def load_overrides_file(path: Path) -> dict[str, dict[str, Any]]:
    """
    Read an override file shaped as {"cafe": {"reviews": {"target_count": 500}}}.

    Raises:
        ConfigurationError: If the file is missing or not a JSON object
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Industry config file not found: {path}", "industry_config_path") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Industry config file is not valid JSON: {e}", "industry_config_path") from e

    if not isinstance(raw, dict):
        raise ConfigurationError("Industry config file must contain a JSON object", "industry_config_path")
    return raw


def build_registry(
    overrides: Optional[dict[str, dict[str, Any]]] = None,
) -> dict[Industry, IndustryConfig]:
    """Build the industry registry from templates plus optional overrides."""
    registry = {industry: factory() for industry, factory in _TEMPLATES.items()}

    for tag, section_overrides in (overrides or {}).items():
        try:
            industry = Industry(tag)
        except ValueError as e:
            raise ConfigurationError(f"Unknown industry in overrides: {tag}", tag) from e
        try:
            registry[industry] = _apply_overrides(registry[industry], section_overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid override for {tag}: {e}", tag) from e
        logger.info("industry_config_overridden", industry=tag, sections=sorted(section_overrides))

    return registry


@lru_cache
def get_industry_registry() -> dict[Industry, IndustryConfig]:
    """
    Get the process-wide industry registry.

    Call get_industry_registry.cache_clear() to rebuild (tests only).
    """
    settings = get_settings()
    overrides = None
    if settings.industry_config_path is not None:
        overrides = load_overrides_file(settings.industry_config_path)
    registry = build_registry(overrides)
    logger.info("industry_registry_loaded", industries=[i.value for i in registry])
    return registry


def load_industry_config(tag: Optional[str] = None) -> IndustryConfig:
    """Get the config for an industry tag; unknown tags fall back to hairshop."""
    return get_industry_registry()[normalize_industry(tag)]


@lru_cache
def get_extraction_heuristics() -> ExtractionHeuristics:
    return ExtractionHeuristics()
