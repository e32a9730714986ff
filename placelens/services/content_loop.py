"""
Guaranteed-Quality Content Loop.

Drives the generation service until a draft scores at or above the target
when run through the same scorer the free tier uses. Each attempt:

    generate -> parse -> post-process -> simulate score -> shortfall analysis

The loop is a sequence of immutable LoopState values; the best attempt seen
so far travels inside the state. It never calls the generator more than
max_attempts times and always returns a draft: unusable generation output is
replaced by the templated default draft, and a run that never reaches the
target returns its best attempt flagged as below target.

Standalone usage:
    loop = GuaranteedContentLoop(generator=get_text_generator())
    outcome = await loop.generate(record, scores, competitor_context=lines)
    outcome.draft.keywords       # exactly the industry keyword count
    outcome.below_target
"""

import json
from dataclasses import dataclass, replace
from typing import Optional, Sequence

import structlog

from placelens.config.config_loader import load_industry_config
from placelens.config.industry_schema import IndustryConfig, ScoreCategory
from placelens.config.settings import Settings, get_settings
from placelens.core.exceptions import GenerationError
from placelens.models.schemas import (
    BusinessRecord,
    GenerationOutcome,
    ImprovementDraft,
    ScoringOutput,
)
from placelens.scoring.engine import score_place
from placelens.services.drafts import (
    DraftConstraints,
    build_constraints,
    keyword_key,
    merge_missing,
    pad_keywords,
    parse_draft,
    postprocess_draft,
    seed_keywords,
)
from placelens.services.generation_client import TextGenerator
from placelens.services.guidance import GuidanceRenderer
from placelens.services.keyword_volume import KeywordVolumeLookup, rank_by_volume

logger = structlog.get_logger(__name__)

GENERATED_CATEGORIES = (ScoreCategory.DESCRIPTION, ScoreCategory.DIRECTIONS, ScoreCategory.KEYWORDS)
WEAK_CATEGORY_SCORE = 85


# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = """You write Naver Place listing content for small Korean businesses.
Write in natural Korean for customers, never in marketing jargon.

RULES:
- The description must be between the requested lengths, split into at least three
  short paragraphs, and mention the locality hints and the listing keywords naturally.
- The directions must explain subway exit, walking time, bus, parking, building, floor
  and entrance using the wayfinding words where they apply.
- Return exactly the requested number of keywords. Each keyword is 2-25 characters.
  Combine a locality hint with a service term, and include at least one intent word.
  Never use the keywords listed under avoid_keywords.
- When FEEDBACK is present, fix every item it lists before anything else.

Return your response as JSON with this exact structure:
{
  "description": "...",
  "directions": "...",
  "keywords": ["...", "...", "...", "...", "..."],
  "review_request_scripts": ["..."],
  "review_reply_templates": ["..."],
  "photo_checklist": ["..."],
  "competitor_insight": "...",
  "price_guidance": "..."
}

Return ONLY the JSON object. No markdown, no explanation."""


def build_user_message(
    record: BusinessRecord,
    config: IndustryConfig,
    constraints: DraftConstraints,
    current_scores: Optional[ScoringOutput],
    competitor_context: Sequence[str],
    feedback: Sequence[str] = (),
) -> str:
    """Construct the user message sent to the generator."""
    parts = [
        f"Business: {record.name or record.place_id} ({config.label})",
        f"Address: {record.address or 'unknown'}",
        f"Current keywords: {', '.join(record.keywords) or 'none'}",
        f"Current description: {record.description[:600] or 'none'}",
        f"Current directions: {record.directions[:400] or 'none'}",
        "Constraints: " + json.dumps(constraints.as_prompt_dict(), ensure_ascii=False),
    ]

    if current_scores is not None:
        deficiencies = [
            f"{category.value} {current_scores.scores[category].score}/100: "
            + "; ".join(current_scores.scores[category].issues[:3])
            for category in current_scores.weakest(3)
        ]
        parts.append("Current deficiencies:\n" + "\n".join(deficiencies))

    if competitor_context:
        parts.append("Competitor keywords:\n" + "\n".join(competitor_context[:10]))

    if feedback:
        parts.append("FEEDBACK from the previous attempt:\n" + "\n".join(f"- {item}" for item in feedback))

    return "\n".join(parts)


# =============================================================================
# Loop State
# =============================================================================


@dataclass(frozen=True)
class Attempt:
    """One generated, post-processed and scored draft."""

    number: int
    draft: ImprovementDraft
    simulated: ScoringOutput
    shortfalls: tuple[str, ...]
    used_fallback: bool = False

    @property
    def total(self) -> int:
        return self.simulated.total_score


@dataclass(frozen=True)
class LoopState:
    attempt: int = 0
    feedback: tuple[str, ...] = ()
    best: Optional[Attempt] = None

    def advance(self, result: Attempt) -> "LoopState":
        """Next state: the attempt is counted and kept if it beats the best so far."""
        best = self.best
        if best is None or result.total > best.total:
            best = result
        return replace(self, attempt=self.attempt + 1, feedback=result.shortfalls, best=best)


# =============================================================================
# Simulation
# =============================================================================


def simulate(record: BusinessRecord, draft: ImprovementDraft, config: IndustryConfig) -> ScoringOutput:
    """Score the record as if the draft's text fields were already published."""
    candidate = record.model_copy(
        update={
            "description": draft.description,
            "directions": draft.directions,
            "keywords": list(draft.keywords),
            "raw_keywords": None,
        }
    )
    return score_place(candidate, config)


def find_shortfalls(
    draft: ImprovementDraft,
    simulated: ScoringOutput,
    constraints: DraftConstraints,
) -> list[str]:
    """Constraints the draft missed, most actionable first."""
    shortfalls = []

    unique = {keyword_key(k) for k in draft.keywords}
    if len(unique) < constraints.keyword_count:
        shortfalls.append(f"keywords: {len(unique)}/{constraints.keyword_count} distinct keywords")

    description = draft.description.strip()
    if len(description) < constraints.description_good:
        shortfalls.append(
            f"description: {len(description)} chars, write at least {constraints.description_good}"
        )
    if description.count("\n") < 2:
        shortfalls.append("description: split into at least three paragraphs")

    directions = draft.directions.strip()
    if len(directions) < constraints.directions_good:
        shortfalls.append(
            f"directions: {len(directions)} chars, write at least {constraints.directions_good}"
        )
    missing_signals = [word for word in constraints.signal_words if word not in directions]
    if len(missing_signals) > len(constraints.signal_words) // 2:
        shortfalls.append(f"directions: mention {', '.join(missing_signals[:4])}")

    if constraints.locality and constraints.locality not in description:
        shortfalls.append(f"description: mention {constraints.locality}")
    if constraints.locality_hints and not any(
        hint in keyword for keyword in draft.keywords for hint in constraints.locality_hints
    ):
        shortfalls.append(f"keywords: include a locality such as {constraints.locality}")
    if constraints.vocabulary and not any(
        term in keyword for keyword in draft.keywords for term in constraints.vocabulary
    ):
        shortfalls.append(f"keywords: name a service such as {', '.join(constraints.vocabulary[:3])}")
    if constraints.intent_words and not any(
        word in keyword for keyword in draft.keywords for word in constraints.intent_words
    ):
        shortfalls.append(f"keywords: add an intent word such as {constraints.intent_words[0]}")
    stop_hits = [k for k in draft.keywords if k in constraints.stop_words]
    if stop_hits:
        shortfalls.append(f"keywords: replace generic {', '.join(stop_hits)}")

    weak = sorted(
        (category for category in GENERATED_CATEGORIES if simulated.scores[category].score < WEAK_CATEGORY_SCORE),
        key=lambda category: simulated.scores[category].score,
    )
    for category in weak:
        score = simulated.scores[category]
        detail = "; ".join(score.issues[:2])
        shortfalls.append(f"{category.value}: scored {score.score}" + (f" ({detail})" if detail else ""))

    return shortfalls


# =============================================================================
# Loop
# =============================================================================


class GuaranteedContentLoop:
    """
    Args:
        generator: Text generator; None means templated drafts only
        guidance: Renderer for the templated default draft
        settings: Settings instance; defaults to get_settings()
        volume_lookup: Optional keyword volume lookup used to order padding candidates
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        guidance: Optional[GuidanceRenderer] = None,
        settings: Optional[Settings] = None,
        volume_lookup: Optional[KeywordVolumeLookup] = None,
    ):
        self.generator = generator
        self.guidance = guidance or GuidanceRenderer()
        self.settings = settings or get_settings()
        self.volume_lookup = volume_lookup

    async def generate(
        self,
        record: BusinessRecord,
        current_scores: Optional[ScoringOutput] = None,
        competitor_context: Sequence[str] = (),
        target_score: Optional[int] = None,
        max_attempts: Optional[int] = None,
        config: Optional[IndustryConfig] = None,
    ) -> GenerationOutcome:
        """
        Produce the best draft within the attempt budget.

        Args:
            record: The crawled listing
            current_scores: Its current scores, used to describe deficiencies
            competitor_context: Competitor keyword summary lines
            target_score: Simulated total to reach; defaults to settings
            max_attempts: Generation call budget; defaults to settings

        Returns:
            GenerationOutcome carrying the winning draft. Never raises for
            generation failures.
        """
        config = config or load_industry_config(record.industry.value)
        target = self.settings.generation_target_score if target_score is None else target_score
        budget = max(1, self.settings.generation_max_attempts if max_attempts is None else max_attempts)

        constraints = build_constraints(record, config)
        candidates = await rank_by_volume(self.volume_lookup, seed_keywords(record, constraints))
        default = self.guidance.default_draft(
            record,
            config,
            pad_keywords([], constraints.keyword_count, candidates, constraints.intent_words, constraints.stop_words),
            locality=constraints.locality,
            station=constraints.station,
            competitor_lines=competitor_context,
        )

        state = LoopState()
        while state.attempt < budget:
            result = await self._attempt(
                state, record, config, constraints, current_scores, competitor_context, candidates, default
            )
            state = state.advance(result)
            logger.info(
                "generation_attempt",
                place_id=record.place_id,
                attempt=result.number,
                total=result.total,
                target=target,
                fallback=result.used_fallback,
                shortfalls=len(result.shortfalls),
            )
            if result.total >= target:
                break
            if self.generator is None:
                # Templated drafts are deterministic; retrying cannot change the score
                break

        best = state.best
        outcome = GenerationOutcome(
            draft=best.draft,
            simulated=best.simulated,
            attempts=state.attempt,
            target_score=target,
            below_target=best.total < target,
            shortfalls=list(best.shortfalls),
            used_fallback=best.used_fallback,
        )
        logger.info(
            "generation_complete",
            place_id=record.place_id,
            attempts=outcome.attempts,
            best_total=best.total,
            below_target=outcome.below_target,
        )
        return outcome

    async def _attempt(
        self,
        state: LoopState,
        record: BusinessRecord,
        config: IndustryConfig,
        constraints: DraftConstraints,
        current_scores: Optional[ScoringOutput],
        competitor_context: Sequence[str],
        candidates: Sequence[str],
        default: ImprovementDraft,
    ) -> Attempt:
        number = state.attempt + 1
        used_fallback = False

        if self.generator is None:
            draft = default
            used_fallback = True
        else:
            prompt = build_user_message(
                record, config, constraints, current_scores, competitor_context, state.feedback
            )
            try:
                raw = await self.generator.complete(SYSTEM_PROMPT, prompt)
                draft = merge_missing(parse_draft(raw), default)
            except GenerationError as e:
                logger.warning(
                    "generation_attempt_fallback",
                    place_id=record.place_id,
                    attempt=number,
                    error=e.message,
                    error_type=type(e).__name__,
                )
                draft = default
                used_fallback = True

        draft = postprocess_draft(draft, constraints, candidates)
        simulated = simulate(record, draft, config)
        shortfalls = tuple(find_shortfalls(draft, simulated, constraints))
        return Attempt(
            number=number,
            draft=draft,
            simulated=simulated,
            shortfalls=shortfalls,
            used_fallback=used_fallback,
        )
