"""
Industry Scoring Configuration Schema.

Pydantic models describing how a listing is judged for one industry: the
weight of each of the six scoring categories (summing to 100) and the tuning
constants each category scorer reads (length bounds, wayfinding vocabulary,
stop words, target counts, price strictness).

Configs are frozen: they are built once at process start and shared read-only
by every request.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums for Type Safety
# =============================================================================

class Industry(str, Enum):
    """Supported listing industries."""
    HAIRSHOP = "hairshop"
    CAFE = "cafe"
    RESTAURANT = "restaurant"


class ScoreCategory(str, Enum):
    """The six scored categories, in report order."""
    DESCRIPTION = "description"
    DIRECTIONS = "directions"
    KEYWORDS = "keywords"
    REVIEWS = "reviews"
    PHOTOS = "photos"
    PRICE = "price"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Per-Category Rules
# =============================================================================

class CategoryWeights(_Frozen):
    """Weight of each category in the total score. Must sum to 100."""
    description: int = Field(ge=0, le=100)
    directions: int = Field(ge=0, le=100)
    keywords: int = Field(ge=0, le=100)
    reviews: int = Field(ge=0, le=100)
    photos: int = Field(ge=0, le=100)
    price: int = Field(ge=0, le=100)

    @model_validator(mode="after")
    def validate_sum(self) -> "CategoryWeights":
        total = sum(self.as_dict().values())
        if total != 100:
            raise ValueError(f"Category weights must sum to 100, got {total}")
        return self

    def as_dict(self) -> dict[str, int]:
        return {category.value: getattr(self, category.value) for category in ScoreCategory}


class TextRule(_Frozen):
    """Length and vocabulary constraints for a free-text field."""
    min_length: int = Field(gt=0)
    good_length: int = Field(gt=0)
    max_length: int = Field(gt=0, description="Generated text is clamped to this length")
    keyword_boost_max: float = Field(
        ge=0,
        description="Points added when the listing's own keywords appear in the text",
    )
    signal_words: tuple[str, ...] = ()

    @model_validator(mode="after")
    def validate_lengths(self) -> "TextRule":
        if not self.min_length < self.good_length <= self.max_length:
            raise ValueError("Expected min_length < good_length <= max_length")
        return self


class KeywordRule(_Frozen):
    """Constraints for the self-declared keyword set."""
    target_count: int = Field(default=5, ge=1, le=10)
    stop_words: tuple[str, ...] = ()
    intent_words: tuple[str, ...] = ("추천", "후기", "리뷰", "가격", "예약")
    vocabulary: tuple[str, ...] = Field(
        default=(),
        description="Industry-specific service terms that signal topical fit",
    )
    locality_suffixes: tuple[str, ...] = ("역", "동", "구", "로", "길")


class ReviewRule(_Frozen):
    target_count: int = Field(gt=0)
    recent_weight: float = Field(ge=0.0, le=1.0)


class PhotoRule(_Frozen):
    target_count: int = Field(gt=0)


class PriceRule(_Frozen):
    """Menu/price strictness. Restaurants are strict, salons tolerate inquiry pricing."""
    inquiry_tolerance: float = Field(ge=0.0, le=1.0)
    strict: bool = False
    strict_numeric_floor: float = 0.6
    loose_numeric_floor: float = 0.35
    strict_numeric_penalty: int = 25
    loose_numeric_penalty: int = 12
    strict_inquiry_multiplier: int = 120
    loose_inquiry_multiplier: int = 80
    inquiry_penalty_cap: int = 50

    @property
    def numeric_floor(self) -> float:
        return self.strict_numeric_floor if self.strict else self.loose_numeric_floor

    @property
    def numeric_penalty(self) -> int:
        return self.strict_numeric_penalty if self.strict else self.loose_numeric_penalty

    @property
    def inquiry_multiplier(self) -> int:
        return self.strict_inquiry_multiplier if self.strict else self.loose_inquiry_multiplier


# =============================================================================
# Main Industry Config
# =============================================================================

class IndustryConfig(_Frozen):
    """
    Complete scoring configuration for one industry.

    Example:
        config = load_industry_config("cafe")
        config.weights.reviews        # 27
        config.directions.signal_words
    """
    industry: Industry
    label: str = Field(description="Korean display label, also used in search phrases")
    weights: CategoryWeights
    description: TextRule
    directions: TextRule
    keywords: KeywordRule
    reviews: ReviewRule
    photos: PhotoRule
    price: PriceRule

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("label must not be empty")
        return v


class ExtractionHeuristics(_Frozen):
    """
    Empirically tuned extraction constants.

    The photo guard bounds come from observed collisions with tab-index
    numbers on the target site and may need recalibration when its markup
    changes.
    """
    count_ceiling: int = Field(
        default=5_000_000,
        description="Count candidates at or above this are parse noise",
    )
    photo_discard_min: int = 1
    photo_discard_max: int = 4
    photo_tab_collision_value: int = 5
    photo_tab_collision_min_reviews: int = 200
    photo_ceiling: int = Field(
        default=3000,
        description="Business photo totals above this are treated as unmeasured",
    )
    photo_dom_trust_max: int = 500
    recency_min_dates: int = 3
    recency_window_days: int = 30
    keyword_cap: int = 5
    menu_cap: int = 30
    description_max_chars: int = 1200
    directions_max_chars: int = 800
    description_body_signals: tuple[str, ...] = (
        "소개", "미용실", "살롱", "정품", "디자이너", "상담", "1:1", "시술",
        "커트", "펌", "염색", "카페", "커피", "디저트", "메뉴", "요리", "재료",
    )
    directions_body_signals: tuple[str, ...] = (
        "출구", "도보", "미터", "역", "버스", "주차", "주차장", "길찾기",
        "건물", "층", "입구",
    )
