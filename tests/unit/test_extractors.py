"""Unit tests for the count, recency, keyword and menu extractors."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from placelens.config.industry_schema import ExtractionHeuristics
from placelens.extractors.context import ExtractionContext
from placelens.extractors.counts import (
    apply_photo_guard,
    extract_review_count,
    max_valid_count,
    photo_candidates,
)
from placelens.extractors.keywords import extract_keywords, finalize_keywords
from placelens.extractors.menu import item_from_block, menu_from_structured, structured_menu
from placelens.extractors.recency import (
    count_recent,
    extract_recent_review_count,
    parse_dates,
    recent_review_count,
)
from placelens.scoring.components import score_photos

HEURISTICS = ExtractionHeuristics()


def _next_data(payload: str) -> str:
    return f'<html><script id="__NEXT_DATA__" type="application/json">{payload}</script></html>'


class TestCounts:
    """Test count resolution and the photo guard."""

    def test_max_of_candidates_below_ceiling(self):
        """Maximum wins; values at the ceiling are discarded."""
        assert max_valid_count([12, 340, 0, 5_000_000], 5_000_000) == 340
        assert max_valid_count([], 5_000_000) is None

    def test_parsed_zero_is_confirmed_empty(self):
        assert max_valid_count([0], 5_000_000) == 0
        assert max_valid_count([0, 5_000_000], 5_000_000) == 0

    def test_zero_photos_scores_below_a_few_photos(self):
        """A declared zero photo count scores 0, not the unmeasured neutral."""
        none_declared = apply_photo_guard(
            max_valid_count(photo_candidates('{"businessPhotoCount": 0}'), HEURISTICS.count_ceiling), 10, HEURISTICS
        )
        few_declared = apply_photo_guard(
            max_valid_count(photo_candidates('{"businessPhotoCount": 3}'), HEURISTICS.count_ceiling), 10, HEURISTICS
        )

        assert none_declared == 0
        assert score_photos(none_declared, 50).score == 0
        assert score_photos(none_declared, 50).score <= score_photos(few_declared, 50).score

    @pytest.mark.parametrize(
        "value,reviews,expected",
        [
            (None, 10, None),
            (3, 10, 0),
            (4, 1000, 0),
            (5, 250, 0),
            (5, 50, 5),
            (6, 1000, 6),
            (3000, 10, 3000),
            (3001, 10, None),
        ],
    )
    def test_photo_guard(self, value, reviews, expected):
        """Tab-index collisions resolve to 0; implausibly large totals to unmeasured."""
        assert apply_photo_guard(value, reviews, HEURISTICS) == expected

    def test_photo_candidates_only_photo_keys(self):
        """Review counts in the same body are not photo candidates."""
        body = '{"visitorReviewCount": 900, "media": {"businessPhotoCount": 42, "photoCount": "57"}}'

        assert sorted(photo_candidates(body, "application/json")) == [42, 57]

    def test_photo_candidates_from_text(self):
        assert photo_candidates('window.x = {"placePhotoCount": 18};') == [18]

    async def test_review_count_takes_maximum(self, mock_page):
        """Every key and pattern contributes; the largest candidate wins."""
        mock_page.content.return_value = '"visitorReviewCount":"1,204" 리뷰 98 "reviewCount": 1190'
        ctx = ExtractionContext(page=mock_page, place_id="1234567890")

        result = await extract_review_count(ctx)

        assert result.value == 1204
        assert result.strategy == "in_place"

    async def test_review_count_absent_is_none(self, mock_page):
        """No candidate anywhere means unmeasured, never 0."""
        mock_page.content.return_value = "<html>영업중</html>"
        ctx = ExtractionContext(page=mock_page, place_id="1234567890")

        result = await extract_review_count(ctx)

        assert result.value is None

    async def test_review_count_zero_is_kept(self, mock_page):
        mock_page.content.return_value = '"visitorReviewCount":0 방문자 리뷰 0'
        ctx = ExtractionContext(page=mock_page, place_id="1234567890")

        result = await extract_review_count(ctx)

        assert result.value == 0
        assert result.strategy == "in_place"


class TestRecency:
    """Test recent-review counting."""

    def test_parse_both_date_formats(self):
        """Dotted and ISO forms parse; impossible dates are skipped."""
        dates = parse_dates("2026. 10. 3. 방문 2026-09-30 2026.13.40")

        assert dates == [date(2026, 10, 3), date(2026, 9, 30)]

    def test_window_is_inclusive(self):
        today = date(2026, 10, 19)
        dates = [date(2026, 10, 19), date(2026, 9, 19), date(2026, 9, 18), date(2026, 10, 20)]

        assert count_recent(dates, today) == 2

    def test_too_few_dates_is_unmeasured(self):
        """Fewer than three parsed dates means reviews did not render."""
        today = date(2026, 10, 19)

        assert recent_review_count("2026.10.1 2026.10.2", today, HEURISTICS) is None
        assert recent_review_count("2025.1.1 2025.1.2 2025.1.3", today, HEURISTICS) == 0

    async def test_first_rendering_review_page_wins(self, mock_page):
        """The visitor review listing is tried first."""
        mock_page.content.return_value = "2026.10.18 2026.10.10 2026.8.1 2026-10-01"
        ctx = ExtractionContext(page=mock_page, place_id="1234567890", slug="hairshop")

        result = await extract_recent_review_count(ctx, today=lambda: date(2026, 10, 19))

        assert result.value == 3
        assert result.strategy == "review_page_1"
        assert mock_page.goto.await_args.args[0] == "https://m.place.naver.com/place/1234567890/review/visitor"


class TestKeywords:
    """Test representative keyword extraction."""

    def test_finalize_dedupes_and_caps(self):
        """Case-insensitive dedupe keeps the first spelling; at most five survive."""
        raw = ["Cafe", "cafe", "라떼", "디저트", "브런치", "케이크", "쿠키"]

        assert finalize_keywords(raw) == ["Cafe", "라떼", "디저트", "브런치", "케이크"]

    async def test_raw_list_keeps_duplicates(self, mock_page):
        """The raw list carries duplicates for scoring; the final list does not."""
        mock_page.content.return_value = _next_data(
            '{"props": {"keywordList": ["역삼 미용실", "남자커트", "역삼 미용실"]}}'
        )
        ctx = ExtractionContext(page=mock_page, place_id="1234567890")

        result, keyword_set = await extract_keywords(ctx)

        assert result.strategy == "page_structured"
        assert keyword_set.keywords == ["역삼 미용실", "남자커트"]
        assert keyword_set.raw == ["역삼 미용실", "남자커트", "역삼 미용실"]

    async def test_falls_back_to_dom_chips(self, mock_page):
        """Keyword chips in the DOM are used when no structured data holds keywords."""
        mock_page.content.return_value = "<html></html>"
        mock_page.eval_on_selector_all = AsyncMock(return_value=["#역삼미용실", "#볼륨펌", "x"])
        ctx = ExtractionContext(page=mock_page, place_id="1234567890")

        result, keyword_set = await extract_keywords(ctx)

        assert result.strategy == "dom_chips"
        assert keyword_set.keywords == ["역삼미용실", "볼륨펌"]


class TestMenu:
    """Test menu parsing."""

    def test_longest_structured_array_wins(self):
        data = {
            "a": {"menus": [{"name": "커트", "price": "20,000원"}]},
            "b": {"menuList": [{"menuName": "펌", "priceText": "80,000원"}, {"name": "염색", "amount": 70000}]},
        }

        items = menu_from_structured(data)

        assert [item.name for item in items] == ["펌", "염색"]
        assert items[1].price_text == "70000"

    def test_declared_empty_menu(self):
        """An empty menu array is a confirmed-empty menu, not a miss."""
        assert structured_menu(_next_data('{"props": {"menuList": []}}')) == []
        assert structured_menu(_next_data('{"props": {"other": 1}}')) is None

    def test_structured_items_deduplicated(self):
        html = _next_data(
            '{"menus": [{"name": "커트", "price": "2만원"}, {"name": "커트", "price": "2만원"}, {"name": "12,000", "price": "x"}]}'
        )

        items = structured_menu(html)

        assert len(items) == 1

    def test_rendered_block_split(self):
        """First line is the name, the first price-like line the price, the rest description."""
        item = item_from_block("아메리카노\n산미 있는 원두\n4,500원")

        assert item.name == "아메리카노"
        assert item.price_text == "4,500원"
        assert item.description == "산미 있는 원두"

    def test_block_without_price_is_skipped(self):
        assert item_from_block("영업 시간\n매일 10시") is None
        assert item_from_block("단일줄") is None
