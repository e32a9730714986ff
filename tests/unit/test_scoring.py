"""Unit tests for the scoring engine and category scorers."""

import pytest

from placelens.config.config_loader import (
    create_cafe_template,
    create_hairshop_template,
    create_restaurant_template,
)
from placelens.config.industry_schema import ScoreCategory
from placelens.models.schemas import BusinessRecord, Grade, MenuItem
from placelens.scoring.components import (
    NEUTRAL_RECENCY,
    NEUTRAL_SCORE,
    grade_for,
    length_ratio,
    round_half_up,
    score_keywords,
    score_price,
    score_reviews,
    signal_ratio,
    structure_ratio,
)
from placelens.scoring.engine import score_place


class TestHelpers:
    """Test the curve helpers."""

    def test_length_ratio_piecewise(self):
        """0 when empty, 0.7 at min, 1.0 at good, linear in between."""
        assert length_ratio("", 80, 250) == 0.0
        assert length_ratio("가" * 40, 80, 250) == pytest.approx(0.35)
        assert length_ratio("가" * 80, 80, 250) == pytest.approx(0.7)
        assert length_ratio("가" * 165, 80, 250) == pytest.approx(0.85)
        assert length_ratio("가" * 250, 80, 250) == 1.0
        assert length_ratio("가" * 900, 80, 250) == 1.0

    def test_length_ratio_monotonic_toward_good_length(self):
        """Longer text never lowers the length ratio."""
        ratios = [length_ratio("가" * n, 80, 250) for n in range(0, 300, 5)]
        assert ratios == sorted(ratios)

    def test_structure_rewards_paragraphs(self):
        """Three long paragraphs beat one block; fragment spam is penalized."""
        block = "가" * 120
        paragraphs = "\n".join(["가" * 40] * 3)
        fragments = "\n".join(["가나"] * 10)

        assert structure_ratio(paragraphs) > structure_ratio(block)
        assert structure_ratio(fragments) < structure_ratio(paragraphs)

    def test_signal_ratio_capped_at_eight(self):
        """A list longer than eight words cannot dilute the ratio below hits/8."""
        signals = tuple(f"단어{n}" for n in range(12))
        text = " ".join(signals[:4])

        ratio, hits = signal_ratio(text, signals)

        assert ratio == pytest.approx(0.5)
        assert len(hits) == 4

    @pytest.mark.parametrize(
        "score,grade",
        [(95, Grade.S), (94, Grade.A), (85, Grade.A), (70, Grade.B), (55, Grade.C), (40, Grade.D), (39, Grade.F)],
    )
    def test_grade_bands(self, score, grade):
        """Grade thresholds on the 0-100 scale."""
        assert grade_for(score) == grade

    def test_round_half_up(self):
        """Halves round up, not to even."""
        assert round_half_up(4.5) == 5
        assert round_half_up(5.5) == 6
        assert round_half_up(4.49) == 4


class TestReviews:
    """Test the reviews category."""

    def test_absent_recency_is_neutral_not_zero(self):
        """Unmeasured recency scores neutral; confirmed zero recent reviews scores lower."""
        absent = score_reviews(500, None, 800, 0.45)
        zero = score_reviews(500, 0, 800, 0.45)

        assert absent.breakdown["recency"] == NEUTRAL_RECENCY
        assert zero.breakdown["recency"] == 30
        assert absent.score != zero.score

    def test_unmeasured_count_is_neutral(self):
        """None review count is neutral, zero reviews is 0."""
        assert score_reviews(None, None, 800, 0.45).score == NEUTRAL_SCORE
        assert score_reviews(0, None, 800, 0.45).score == 0

    def test_monotonic_in_review_count(self):
        """More reviews never lower the score when recency is absent."""
        scores = [score_reviews(n, None, 800, 0.45).score for n in range(0, 2000, 7)]
        assert scores == sorted(scores)

    def test_monotonic_at_fixed_recency_ratio(self):
        """More reviews never lower the score when half of them are recent."""
        scores = [score_reviews(n, n // 2, 800, 0.45).score for n in range(2, 2000, 10)]
        assert scores == sorted(scores)

    def test_target_count_saturates(self):
        """At the target count the volume sub-score is 100."""
        result = score_reviews(800, 400, 800, 0.45)

        assert result.breakdown["volume"] == pytest.approx(100.0)
        assert result.breakdown["recency"] == 95


class TestKeywords:
    """Test the keywords category."""

    def test_empty_short_circuits(self, hairshop_config):
        """No keywords scores 0."""
        assert score_keywords([], None, "", hairshop_config.keywords).score == 0

    def test_dedupe_penalty_uses_raw_keywords(self, hairshop_config):
        """Duplicates removed before capping still cost points."""
        keywords = ["역삼동 미용실", "커트", "펌", "염색", "클리닉"]
        clean = score_keywords(keywords, list(keywords), "", hairshop_config.keywords)
        with_dupes = score_keywords(
            keywords, keywords + ["커트", "펌"], "", hairshop_config.keywords
        )

        assert clean.breakdown["dedupe"] == 10
        assert with_dupes.breakdown["dedupe"] == 0
        assert with_dupes.score < clean.score

    def test_stop_word_penalty_capped(self, hairshop_config):
        """Exact stop words cost 5 each, at most 10."""
        result = score_keywords(["추천", "근처", "동네"], None, "", hairshop_config.keywords)

        assert result.breakdown["stopword_penalty"] == -10

    def test_locality_from_address(self, hairshop_config):
        """Keywords reusing address tokens earn the locality bonus."""
        result = score_keywords(["역삼 미용실"], None, "서울 강남구 역삼동", hairshop_config.keywords)

        assert result.breakdown["locality"] == 10

    def test_unrelated_station_earns_no_locality(self, hairshop_config):
        result = score_keywords(["홍대입구역 미용실", "합정역"], None, "서울 강남구 역삼동", hairshop_config.keywords)

        assert result.breakdown["locality"] == 0
        assert "No keyword references the neighborhood or nearest station" in result.issues

    def test_station_from_branch_name(self, hairshop_config):
        """A branch name such as '강남역점' supplies the station token."""
        result = score_keywords(
            ["강남역 미용실"], None, "서울 서초구 서초대로 123", hairshop_config.keywords, name="살롱 강남역점"
        )
        without_name = score_keywords(["강남역 미용실"], None, "서울 서초구 서초대로 123", hairshop_config.keywords)

        assert result.breakdown["locality"] == 10
        assert without_name.breakdown["locality"] == 0


class TestPrice:
    """Test the price category."""

    def test_absent_menu_is_neutral(self, hairshop_config):
        """No menu data is neutral with an explanatory issue."""
        result = score_price(None, [], hairshop_config.price)

        assert result.score == NEUTRAL_SCORE
        assert result.issues

    def test_confirmed_empty_menu_scores_zero(self, hairshop_config):
        """A declared empty menu scores 0."""
        assert score_price(0, [], hairshop_config.price).score == 0

    def test_inquiry_pricing_stricter_for_restaurants(self):
        """The same menu loses more points under the restaurant rules."""
        menus = [MenuItem(name=f"메뉴{n}", price_text="가격 문의") for n in range(12)]

        salon = score_price(12, menus, create_hairshop_template().price)
        restaurant = score_price(12, menus, create_restaurant_template().price)

        assert restaurant.score < salon.score


class TestScorePlace:
    """Test aggregation and the end-to-end scenarios."""

    def test_idempotent(self, strong_record):
        """Scoring the same record twice gives identical output."""
        assert score_place(strong_record) == score_place(strong_record)

    @pytest.mark.parametrize(
        "factory", [create_hairshop_template, create_cafe_template, create_restaurant_template]
    )
    def test_empty_listing_scenario(self, factory):
        """Empty listing: only the neutral price category contributes; grade F."""
        config = factory()
        record = BusinessRecord(
            place_id="1234567890", industry=config.industry, review_count=0, photo_count=0
        )

        output = score_place(record, config)

        assert output.category(ScoreCategory.DESCRIPTION).score == 0
        assert output.category(ScoreCategory.DIRECTIONS).score == 0
        assert output.category(ScoreCategory.KEYWORDS).score == 0
        assert output.category(ScoreCategory.REVIEWS).score == 0
        assert output.category(ScoreCategory.PHOTOS).score == 0
        assert output.category(ScoreCategory.PRICE).score == NEUTRAL_SCORE
        assert output.total_score == round_half_up(NEUTRAL_SCORE * config.weights.price / 100)
        assert output.total_grade == Grade.F

    def test_empty_hairshop_total(self, empty_record, hairshop_config):
        """Hairshop weights price at 8, so the empty listing totals 5."""
        output = score_place(empty_record, hairshop_config)

        assert output.total_score == 5
        assert output.total_grade == Grade.F

    def test_strong_listing_scenario(self, strong_record, hairshop_config):
        """Good length, half the wayfinding words, fitting keywords, targets met: A band."""
        output = score_place(strong_record, hairshop_config)

        assert output.category(ScoreCategory.DESCRIPTION).score == 95
        assert output.category(ScoreCategory.DIRECTIONS).score == 78
        assert output.category(ScoreCategory.KEYWORDS).score == 90
        assert output.category(ScoreCategory.REVIEWS).score == 98
        assert output.category(ScoreCategory.PHOTOS).score == 100
        assert output.category(ScoreCategory.PRICE).score == 90
        assert output.total_score == 92
        assert output.total_grade in (Grade.A, Grade.S)

    def test_defaults_to_record_industry(self, strong_record):
        """Without an explicit config the record's industry config is used."""
        assert score_place(strong_record) == score_place(strong_record, create_hairshop_template())

    def test_weakest_categories(self, empty_record, hairshop_config):
        """weakest() lists the lowest categories first."""
        output = score_place(empty_record, hairshop_config)

        assert ScoreCategory.PRICE not in output.weakest(3)
