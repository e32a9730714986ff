"""Unit tests for competitor discovery with mocked acquisition and enrichment."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from placelens.collectors.competitors import (
    NO_KEYWORD_SENTINEL,
    CompetitorDiscoveryService,
    Enrichment,
    display_name,
    filter_candidates,
    keywords_or_sentinel,
    rank_dom_keywords,
    summarize_competitor_keywords,
)
from placelens.collectors.search_client import PlaceMeta
from placelens.config.settings import Settings
from placelens.core.deadline import Deadline
from placelens.core.trace import TraceLog
from placelens.models.schemas import CompetitorRecord, CompetitorSource


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _metas(*ids: str) -> list[PlaceMeta]:
    return [PlaceMeta(place_id) for place_id in ids]


def _service(settings=None, clock=None) -> CompetitorDiscoveryService:
    return CompetitorDiscoveryService(
        search_client=MagicMock(),
        browser=MagicMock(),
        settings=settings or Settings(_env_file=None),
        clock=clock or FakeClock(),
    )


class TestSanitization:
    """Test the pure helpers."""

    def test_filter_drops_self_duplicates_and_invalid(self):
        metas = _metas("11111111", "22222222", "11111111", "123", "33333333", "44444444")

        kept = filter_candidates(metas, exclude_id="22222222", cap=2)

        assert [m.place_id for m in kept] == ["11111111", "33333333"]

    def test_keywords_or_sentinel(self):
        """Promotional strings are dropped; nothing left becomes the sentinel."""
        assert keywords_or_sentinel(["네이버 예약", "이벤트 할인"]) == [NO_KEYWORD_SENTINEL]
        assert keywords_or_sentinel(["성수 카페", "성수 카페", "브런치"]) == ["성수 카페", "브런치"]

    def test_display_name_fallback(self):
        assert display_name("11111111", "", "길찾기") == "place_11111111"
        assert display_name("11111111", "", "카페 성수") == "카페 성수"

    def test_rank_dom_keywords_prefers_local_service_terms(self):
        texts = ["리뷰", "영업 중", "성수역 카페", "디저트", "전화"]

        ranked = rank_dom_keywords(texts)

        assert ranked[0] == "성수역 카페"
        assert "영업 중" not in ranked
        assert ranked.index("디저트") < ranked.index("리뷰")

    def test_summarize_keywords(self):
        """Shared keywords are counted once per competitor; the sentinel is ignored."""
        competitors = [
            CompetitorRecord(place_id="1", name="a", keywords=["펌", "펌", "커트"], rank=1, source=CompetitorSource.MAP_RANK),
            CompetitorRecord(place_id="2", name="b", keywords=["펌"], rank=2, source=CompetitorSource.MAP_RANK),
            CompetitorRecord(place_id="3", name="c", keywords=[NO_KEYWORD_SENTINEL], rank=3, source=CompetitorSource.MAP_RANK),
        ]

        assert summarize_competitor_keywords(competitors) == ["펌 (2곳)", "커트 (1곳)"]


class TestAcquisition:
    """Test the ordered acquisition fallbacks."""

    async def test_first_stage_with_results_wins(self):
        service = _service()
        service.search_client.all_search_ids = AsyncMock(return_value=["11111111", "99999999", "22222222"])
        service.render_map_search = AsyncMock()
        trace = TraceLog()

        metas = await service.acquire_ranked("성수 카페", "99999999", 8, Deadline(18.0), trace)

        assert [m.place_id for m in metas] == ["11111111", "22222222"]
        service.render_map_search.assert_not_awaited()
        assert trace.entries[-1].stage == "discovery.map_rank"

    async def test_falls_through_to_html(self):
        """Empty JSON and rendered stages fall through to the HTML search."""
        service = _service()
        service.search_client.all_search_ids = AsyncMock(return_value=[])
        service.render_map_search = AsyncMock(return_value=[])
        service.search_client.where_place_metas = AsyncMock(
            return_value=[PlaceMeta("33333333", "카페 씨", CompetitorSource.SEARCH_HTML)]
        )
        service.search_client.mobile_place_search_metas = AsyncMock()
        trace = TraceLog()

        metas = await service.acquire_ranked("성수 카페", None, 8, Deadline(18.0), trace)

        assert metas[0].source == CompetitorSource.SEARCH_HTML
        service.search_client.mobile_place_search_metas.assert_not_awaited()
        assert [e.outcome for e in trace.entries] == ["miss", "miss", "ok"]


class TestDiscover:
    """Test enrichment fan-out under the shared deadline."""

    async def test_rank_order_survives_completion_order(self):
        """Later-ranked candidates finishing first do not reorder results."""
        service = _service()
        service.acquire_ranked = AsyncMock(return_value=_metas("11111111", "22222222", "33333333"))
        delays = {"11111111": 0.03, "22222222": 0.0, "33333333": 0.01}

        async def enrich(place_id, deadline):
            await asyncio.sleep(delays[place_id])
            return Enrichment(name=f"매장 {place_id[:2]}", keywords=["성수 카페"], loaded=True)

        service.enrich = enrich

        competitors = await service.discover("성수 카페")

        assert [c.place_id for c in competitors] == ["11111111", "22222222", "33333333"]
        assert [c.rank for c in competitors] == [1, 2, 3]
        assert all(c.source == CompetitorSource.PLACE_HOME for c in competitors)
        assert competitors[0].url == "https://m.place.naver.com/place/11111111"

    async def test_failed_enrichment_becomes_placeholder(self):
        """An enrichment error keeps the candidate with a synthetic name and the sentinel."""
        service = _service()
        service.acquire_ranked = AsyncMock(return_value=_metas("11111111", "22222222"))

        async def enrich(place_id, deadline):
            if place_id == "22222222":
                raise RuntimeError("render failed")
            return Enrichment(name="살롱 하나", keywords=["역삼 미용실"], loaded=True)

        service.enrich = enrich
        trace = TraceLog()

        competitors = await service.discover("역삼 미용실", trace=trace)

        assert competitors[1].name == "place_22222222"
        assert competitors[1].keywords == [NO_KEYWORD_SENTINEL]
        assert competitors[1].source == CompetitorSource.MAP_RANK
        assert any(e.stage == "discovery.enrich.22222222" and e.outcome == "fail" for e in trace.entries)

    async def test_limit_caps_results(self):
        service = _service()
        service.acquire_ranked = AsyncMock(return_value=_metas(*(f"1111111{n}" for n in range(6))))
        service.enrich = AsyncMock(return_value=Enrichment(name="매장", loaded=True))

        competitors = await service.discover("성수 카페", limit=3)

        assert len(competitors) == 3

    async def test_timed_out_and_unstarted_candidates_dropped(self):
        """A candidate losing the deadline race is abandoned; later ones never start."""
        clock = FakeClock()
        service = _service(Settings(_env_file=None, competitor_concurrency=1), clock)
        service.acquire_ranked = AsyncMock(return_value=_metas("11111111", "22222222", "33333333"))
        release = asyncio.Event()
        finished: list[str] = []

        async def enrich(place_id, deadline):
            if place_id == "11111111":
                clock.now = 17.55
                return Enrichment(name="빠른 매장", loaded=True)
            clock.now = 18.0
            await release.wait()
            finished.append(place_id)
            return Enrichment(name="느린 매장", loaded=True)

        service.enrich = enrich
        trace = TraceLog()

        competitors = await service.discover("성수 카페", trace=trace)

        assert [c.place_id for c in competitors] == ["11111111"]
        assert {e.stage for e in trace.entries if e.outcome == "miss"} >= {
            "discovery.enrich.22222222",
            "discovery.enrich.33333333",
        }

        release.set()
        await service.drain_abandoned(timeout=1.0)
        assert finished == ["22222222"]

    async def test_no_candidates(self):
        service = _service()
        service.acquire_ranked = AsyncMock(return_value=[])
        service.enrich = AsyncMock()

        assert await service.discover("성수 카페") == []
        service.enrich.assert_not_awaited()

    @pytest.mark.parametrize("phrase", ["", "   "])
    async def test_blank_phrase(self, phrase):
        service = _service()
        service.acquire_ranked = AsyncMock()

        assert await service.discover(phrase) == []
        service.acquire_ranked.assert_not_awaited()
