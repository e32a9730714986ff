"""
Scoring engine.

score_place() is a pure function of (BusinessRecord, IndustryConfig): no I/O,
no clock, no randomness. The content loop calls the same function on
generated drafts, so free-tier scores and paid-tier guarantees share one
definition of quality.
"""

from typing import Optional

from placelens.config.industry_schema import IndustryConfig, ScoreCategory
from placelens.models.schemas import BusinessRecord, CategoryScore, ScoringOutput
from placelens.scoring.components import (
    grade_for,
    round_half_up,
    score_description,
    score_directions,
    score_keywords,
    score_photos,
    score_price,
    score_reviews,
)


def score_categories(record: BusinessRecord, config: IndustryConfig) -> dict[ScoreCategory, CategoryScore]:
    """Score each of the six categories on the 0-100 scale."""
    return {
        ScoreCategory.DESCRIPTION: score_description(
            record.description, record.keywords, config.description
        ),
        ScoreCategory.DIRECTIONS: score_directions(
            record.directions, record.keywords, config.directions
        ),
        ScoreCategory.KEYWORDS: score_keywords(
            record.keywords, record.raw_keywords, record.address, config.keywords, name=record.name
        ),
        ScoreCategory.REVIEWS: score_reviews(
            record.review_count,
            record.recent_review_count_30d,
            config.reviews.target_count,
            config.reviews.recent_weight,
        ),
        ScoreCategory.PHOTOS: score_photos(record.photo_count, config.photos.target_count),
        ScoreCategory.PRICE: score_price(record.menu_count, record.menus, config.price),
    }


def weighted_total(scores: dict[ScoreCategory, CategoryScore], config: IndustryConfig) -> int:
    """round(sum(score * weight) / 100) with weights summing to 100."""
    weights = config.weights.as_dict()
    total = sum(scores[category].score * weights[category.value] for category in scores)
    return round_half_up(total / 100)


def score_place(record: BusinessRecord, config: Optional[IndustryConfig] = None) -> ScoringOutput:
    """
    Score a listing against its industry rubric.

    Args:
        record: Extracted (or simulated) listing facts
        config: Industry config; defaults to the record's industry from the registry

    Returns:
        Per-category scores plus the weighted total and its grade
    """
    if config is None:
        from placelens.config.config_loader import load_industry_config

        config = load_industry_config(record.industry.value)

    scores = score_categories(record, config)
    total = weighted_total(scores, config)
    return ScoringOutput(scores=scores, total_score=total, total_grade=grade_for(total))
