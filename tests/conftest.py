"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Settings built without reading a .env file
- hairshop_config / cafe_config: Built-in industry configs
- empty_record: A listing with nothing filled in
- strong_record: A listing that scores in the A band for hairshop
- mock_page: A Playwright page stand-in with async methods mocked
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from placelens.config.config_loader import (
    create_cafe_template,
    create_hairshop_template,
    get_industry_registry,
)
from placelens.config.industry_schema import Industry
from placelens.config.settings import Settings, get_settings
from placelens.core.circuit_breaker import reset_all_circuit_breakers
from placelens.models.schemas import BusinessRecord, MenuItem
from placelens.services.generation_client import reset_text_generator

STRONG_KEYWORDS = ["역삼동 미용실", "남자 커트", "볼륨 펌", "뿌리 염색", "두피 클리닉"]


@pytest.fixture(autouse=True)
def reset_singletons():
    """Closed circuits and fresh cached config for every test."""
    reset_all_circuit_breakers()
    get_settings.cache_clear()
    get_industry_registry.cache_clear()
    reset_text_generator()
    yield
    reset_all_circuit_breakers()
    reset_text_generator()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only."""
    return Settings(_env_file=None)


@pytest.fixture
def hairshop_config():
    return create_hairshop_template()


@pytest.fixture
def cafe_config():
    return create_cafe_template()


@pytest.fixture
def empty_record() -> BusinessRecord:
    """Empty text fields, no keywords, zero reviews and photos, menu unmeasured."""
    return BusinessRecord(
        place_id="1234567890",
        industry=Industry.HAIRSHOP,
        review_count=0,
        photo_count=0,
    )


def build_description(length: int = 250) -> str:
    """Three paragraphs of exactly `length` characters naming every strong keyword."""
    first = "역삼동 미용실에서 남자 커트, 볼륨 펌, 뿌리 염색, 두피 클리닉까지 1:1로 상담합니다."
    rest = length - len(first) - 2
    return "\n".join([first, "가" * (rest // 2), "나" * (rest - rest // 2)])


def build_directions(length: int = 200) -> str:
    """Directions mentioning exactly four hairshop wayfinding words (역, 출구, 도보, 분)."""
    first = "강남역 3번 출구에서 도보 5분"
    return first + "\n" + "가" * (length - len(first) - 1)


@pytest.fixture
def strong_record() -> BusinessRecord:
    """Good length texts, five fitting keywords, target reviews and photos, priced menu."""
    return BusinessRecord(
        place_id="1234567890",
        industry=Industry.HAIRSHOP,
        name="살롱드역삼",
        address="서울 강남구 역삼동 123-4",
        description=build_description(),
        directions=build_directions(),
        keywords=list(STRONG_KEYWORDS),
        review_count=800,
        recent_review_count_30d=400,
        photo_count=120,
        menus=[MenuItem(name=f"커트 {n}", price_text="10,000원") for n in range(25)],
        menu_count=25,
    )


@pytest.fixture
def mock_page() -> MagicMock:
    """Open page on a hairshop home URL whose async methods are AsyncMocks."""
    page = MagicMock()
    page.url = "https://m.place.naver.com/hairshop/1234567890/home"
    page.is_closed.return_value = False
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.wait_for_timeout = AsyncMock()
    page.wait_for_selector = AsyncMock(return_value=None)
    page.content = AsyncMock(return_value="<html></html>")
    page.evaluate = AsyncMock(return_value=[])
    page.frames = []
    return page
