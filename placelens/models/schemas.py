"""Pydantic models for PlaceLens core entities."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from placelens.config.industry_schema import Industry, ScoreCategory


class Grade(str, Enum):
    """Letter grade bands on the 0-100 scale."""
    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class CompetitorSource(str, Enum):
    """Which discovery stage produced a competitor record."""
    MAP_RANK = "map_rank"
    MAP_RENDER = "map_render"
    SEARCH_HTML = "search_html"
    PLACE_SEARCH = "place_search"
    PLACE_HOME = "place_home"


class BaseEntity(BaseModel):
    """Base model with common config."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# =============================================================================
# Listing Data
# =============================================================================


class MenuItem(BaseEntity):
    """One menu/price line."""
    name: str
    price_text: str = ""
    description: Optional[str] = None


class BusinessRecord(BaseEntity):
    """
    Extracted facts of one listing.

    Counts are non-negative or None. None means "unmeasured" and is scored as
    neutral; 0 means "confirmed empty" and is scored as such.
    """
    place_id: str
    industry: Industry = Industry.HAIRSHOP
    url: str = ""
    name: str = ""
    address: str = ""
    description: str = ""
    directions: str = ""
    keywords: list[str] = Field(default_factory=list, max_length=10)
    raw_keywords: Optional[list[str]] = Field(
        default=None,
        description="Keyword candidates before dedupe and capping, kept for duplicate detection",
    )
    review_count: Optional[int] = Field(default=None, ge=0)
    recent_review_count_30d: Optional[int] = Field(default=None, ge=0)
    photo_count: Optional[int] = Field(default=None, ge=0)
    menus: list[MenuItem] = Field(default_factory=list)
    menu_count: Optional[int] = Field(default=None, ge=0)
    provenance: dict[str, str] = Field(
        default_factory=dict,
        description="Field name -> cascade strategy that produced it ('none' when absent)",
    )


# =============================================================================
# Scoring
# =============================================================================


class CategoryScore(BaseEntity):
    """Score of one category on the 0-100 scale."""
    score: int = Field(ge=0, le=100)
    grade: Grade
    issues: list[str] = Field(default_factory=list)
    breakdown: dict[str, float] = Field(default_factory=dict)


class ScoringOutput(BaseEntity):
    scores: dict[ScoreCategory, CategoryScore]
    total_score: int = Field(ge=0, le=100)
    total_grade: Grade

    def category(self, category: ScoreCategory | str) -> CategoryScore:
        return self.scores[ScoreCategory(category)]

    def weakest(self, n: int = 3) -> list[ScoreCategory]:
        """Categories with the lowest scores, weakest first."""
        return sorted(self.scores, key=lambda c: self.scores[c].score)[:n]


# =============================================================================
# Competitors
# =============================================================================


class CompetitorRecord(BaseEntity):
    """Public subset of a competing listing plus its discovery rank."""
    place_id: str
    name: str
    address: str = ""
    keywords: list[str] = Field(default_factory=list)
    review_count: Optional[int] = Field(default=None, ge=0)
    photo_count: Optional[int] = Field(default=None, ge=0)
    rank: int = Field(ge=1)
    source: CompetitorSource
    url: str = ""


# =============================================================================
# Content Generation
# =============================================================================


class ImprovementDraft(BaseEntity):
    """Generated improvement content for one listing."""
    description: str = ""
    directions: str = ""
    keywords: list[str] = Field(default_factory=list)
    review_request_scripts: list[str] = Field(default_factory=list)
    review_reply_templates: list[str] = Field(default_factory=list)
    photo_checklist: list[str] = Field(default_factory=list)
    competitor_insight: str = ""
    price_guidance: str = ""

    @field_validator("keywords", mode="before")
    @classmethod
    def coerce_keywords(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return [str(item).strip() for item in (v or []) if str(item).strip()]


class GenerationOutcome(BaseEntity):
    """Result of the guaranteed-quality loop. Always carries a usable draft."""
    draft: ImprovementDraft
    simulated: ScoringOutput
    attempts: int = Field(ge=1)
    target_score: int
    below_target: bool
    shortfalls: list[str] = Field(default_factory=list)
    used_fallback: bool = False


# =============================================================================
# Diagnosis Results
# =============================================================================


class DiagnosisResult(BaseEntity):
    """Free-tier diagnosis result."""
    success: bool
    record: Optional[BusinessRecord] = None
    scores: Optional[ScoringOutput] = None
    logs: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None


class PaidDiagnosisResult(DiagnosisResult):
    """Paid-tier diagnosis: adds competitors and generated content."""
    competitors: list[CompetitorRecord] = Field(default_factory=list)
    competitor_keyword_summary: list[str] = Field(default_factory=list)
    search_phrase: str = ""
    generation: Optional[GenerationOutcome] = None
