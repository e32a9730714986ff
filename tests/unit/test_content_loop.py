"""Unit tests for the guaranteed-quality content loop with a fake generator."""

import json

from placelens.config.industry_schema import ScoreCategory
from placelens.config.settings import Settings
from placelens.core.exceptions import GenerationError
from placelens.models.schemas import ImprovementDraft
from placelens.scoring.engine import score_place
from placelens.services.content_loop import (
    SYSTEM_PROMPT,
    Attempt,
    GuaranteedContentLoop,
    LoopState,
    build_user_message,
    find_shortfalls,
    simulate,
)
from placelens.services.drafts import build_constraints
from tests.conftest import STRONG_KEYWORDS, build_description, build_directions

WEAK_RESPONSE = json.dumps(
    {"description": "짧은 소개", "directions": "가까워요", "keywords": ["미용실"]},
    ensure_ascii=False,
)
STRONG_RESPONSE = json.dumps(
    {
        "description": build_description(),
        "directions": build_directions(),
        "keywords": STRONG_KEYWORDS,
        "review_request_scripts": ["방문해 주셔서 감사합니다."],
    },
    ensure_ascii=False,
)


class FakeGenerator:
    """Replays responses in order (the last one repeats) and records every prompt."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []
        self.systems: list[str] = []

    async def complete(self, system: str, prompt: str) -> str:
        self.systems.append(system)
        self.prompts.append(prompt)
        response = self.responses[min(len(self.prompts), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def _loop(generator=None) -> GuaranteedContentLoop:
    return GuaranteedContentLoop(generator=generator, settings=Settings(_env_file=None))


class TestGuaranteedContentLoop:
    """Test the attempt budget, fallbacks and best-draft selection."""

    async def test_first_passing_draft_stops_the_loop(self, strong_record):
        generator = FakeGenerator(STRONG_RESPONSE)

        outcome = await _loop(generator).generate(strong_record)

        assert len(generator.prompts) == 1
        assert outcome.attempts == 1
        assert not outcome.below_target
        assert outcome.simulated.total_score >= 85
        assert generator.systems == [SYSTEM_PROMPT]

    async def test_never_exceeds_attempt_budget(self, strong_record):
        """Below-target drafts stop after max_attempts calls and are flagged."""
        generator = FakeGenerator(WEAK_RESPONSE)

        outcome = await _loop(generator).generate(strong_record)

        assert len(generator.prompts) == 3
        assert outcome.attempts == 3
        assert outcome.below_target
        assert outcome.shortfalls

    async def test_explicit_attempt_budget(self, strong_record):
        generator = FakeGenerator(WEAK_RESPONSE)

        outcome = await _loop(generator).generate(strong_record, max_attempts=2)

        assert len(generator.prompts) == 2
        assert outcome.attempts == 2

    async def test_best_attempt_is_returned(self, strong_record):
        """A later weaker attempt never replaces a better earlier one."""
        generator = FakeGenerator(WEAK_RESPONSE, STRONG_RESPONSE, WEAK_RESPONSE)

        outcome = await _loop(generator).generate(strong_record, target_score=100)

        assert len(generator.prompts) == 3
        assert outcome.draft.description == build_description()
        assert outcome.draft.keywords == STRONG_KEYWORDS
        assert outcome.simulated.total_score == 92
        assert outcome.below_target

    async def test_feedback_reaches_next_prompt(self, strong_record):
        """Shortfalls of attempt N are listed in the prompt of attempt N+1."""
        generator = FakeGenerator(WEAK_RESPONSE, STRONG_RESPONSE)

        await _loop(generator).generate(strong_record)

        assert "FEEDBACK" not in generator.prompts[0]
        assert "FEEDBACK from the previous attempt" in generator.prompts[1]
        assert "description: split into at least three paragraphs" in generator.prompts[1].split("FEEDBACK", 1)[1]

    async def test_unparseable_output_falls_back(self, strong_record):
        """Prose instead of JSON yields the templated default draft."""
        generator = FakeGenerator("I'm sorry, I can't help with that.")

        outcome = await _loop(generator).generate(strong_record, target_score=0)

        assert outcome.used_fallback
        assert outcome.draft.description.startswith("살롱드역삼은(는) 역삼동 미용실입니다.")
        assert len(outcome.draft.keywords) == 5

    async def test_generation_error_falls_back(self, strong_record):
        """A failing service is retried up to the budget, each attempt using the default."""
        generator = FakeGenerator(GenerationError("service down"))

        outcome = await _loop(generator).generate(strong_record, target_score=100)

        assert len(generator.prompts) == 3
        assert outcome.used_fallback
        assert outcome.draft.photo_checklist

    async def test_without_generator_single_templated_attempt(self, empty_record):
        """No generator configured: one deterministic templated draft."""
        outcome = await _loop().generate(empty_record)

        assert outcome.attempts == 1
        assert outcome.used_fallback
        assert len(outcome.draft.keywords) == 5
        assert outcome.draft.description.startswith("저희 매장은(는) 미용실입니다.")
        assert len(outcome.draft.review_request_scripts) == 3

    async def test_missing_fields_filled_from_default(self, strong_record):
        """Generated text is kept; auxiliary fields the generator skipped come from templates."""
        generator = FakeGenerator(STRONG_RESPONSE)

        outcome = await _loop(generator).generate(strong_record)

        assert outcome.draft.review_request_scripts == ["방문해 주셔서 감사합니다."]
        assert len(outcome.draft.review_reply_templates) == 3
        assert outcome.draft.price_guidance

    async def test_target_zero_accepts_first_attempt(self, empty_record):
        generator = FakeGenerator(WEAK_RESPONSE)

        outcome = await _loop(generator).generate(empty_record, target_score=0)

        assert len(generator.prompts) == 1
        assert not outcome.below_target

    async def test_competitor_context_in_prompt(self, strong_record):
        generator = FakeGenerator(STRONG_RESPONSE)

        await _loop(generator).generate(strong_record, competitor_context=["볼륨 펌 (3곳)"])

        assert "Competitor keywords:\n볼륨 펌 (3곳)" in generator.prompts[0]


class TestSimulation:
    """Test draft simulation and shortfall analysis."""

    def test_simulate_keeps_non_text_categories(self, strong_record, hairshop_config):
        """Only description, directions and keywords change in a simulation."""
        simulated = simulate(strong_record, ImprovementDraft(), hairshop_config)
        original = score_place(strong_record, hairshop_config)

        assert simulated.category(ScoreCategory.DESCRIPTION).score == 0
        assert simulated.category(ScoreCategory.KEYWORDS).score == 0
        for category in (ScoreCategory.REVIEWS, ScoreCategory.PHOTOS, ScoreCategory.PRICE):
            assert simulated.category(category).score == original.category(category).score

    def test_simulate_ignores_raw_keyword_duplicates(self, strong_record, hairshop_config):
        """Duplicates in the crawled raw list do not count against a generated set."""
        record = strong_record.model_copy(update={"raw_keywords": STRONG_KEYWORDS + STRONG_KEYWORDS})
        draft = ImprovementDraft(
            description=record.description, directions=record.directions, keywords=STRONG_KEYWORDS
        )

        assert simulate(record, draft, hairshop_config) == score_place(strong_record, hairshop_config)

    def test_shortfalls_for_weak_draft(self, strong_record, hairshop_config):
        constraints = build_constraints(strong_record, hairshop_config)
        draft = ImprovementDraft(description="짧은 소개", directions="가까워요", keywords=["커트", "펌"])

        shortfalls = find_shortfalls(draft, simulate(strong_record, draft, hairshop_config), constraints)

        assert shortfalls[0] == "keywords: 2/5 distinct keywords"
        assert "description: split into at least three paragraphs" in shortfalls
        assert "description: mention 역삼동" in shortfalls
        assert any(s.startswith("directions: mention") for s in shortfalls)

    def test_strong_draft_shortfalls(self, strong_record, hairshop_config):
        """A strong draft only misses an intent keyword and the directions score."""
        constraints = build_constraints(strong_record, hairshop_config)
        draft = ImprovementDraft(
            description=strong_record.description,
            directions=strong_record.directions,
            keywords=STRONG_KEYWORDS,
        )

        shortfalls = find_shortfalls(draft, simulate(strong_record, draft, hairshop_config), constraints)

        assert "keywords: add an intent word such as 추천" in shortfalls
        assert not any(s.startswith("description:") for s in shortfalls)
        assert not any("distinct keywords" in s for s in shortfalls)


class TestLoopState:
    """Test immutable loop state transitions."""

    def _attempt(self, number, record):
        simulated = score_place(record)
        return Attempt(number=number, draft=ImprovementDraft(), simulated=simulated, shortfalls=(f"s{number}",))

    def test_tie_keeps_earlier_best(self, strong_record):
        state = LoopState().advance(self._attempt(1, strong_record)).advance(self._attempt(2, strong_record))

        assert state.attempt == 2
        assert state.best.number == 1
        assert state.feedback == ("s2",)

    def test_advance_does_not_mutate(self, strong_record):
        initial = LoopState()
        initial.advance(self._attempt(1, strong_record))

        assert initial.attempt == 0
        assert initial.best is None


class TestUserMessage:
    """Test prompt construction."""

    def test_includes_constraints_and_deficiencies(self, empty_record, hairshop_config):
        constraints = build_constraints(empty_record, hairshop_config)
        scores = score_place(empty_record, hairshop_config)

        message = build_user_message(empty_record, hairshop_config, constraints, scores, [], ["keywords: 0/5"])

        assert "Business: 1234567890 (미용실)" in message
        assert '"keyword_count": 5' in message
        assert "Current deficiencies:" in message
        assert message.endswith("FEEDBACK from the previous attempt:\n- keywords: 0/5")

    def test_without_scores(self, empty_record, hairshop_config):
        constraints = build_constraints(empty_record, hairshop_config)

        message = build_user_message(empty_record, hairshop_config, constraints, None, [])

        assert "Current deficiencies" not in message
        assert "FEEDBACK" not in message
