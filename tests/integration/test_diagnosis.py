"""
Integration tests for the diagnosis service.

The crawler and competitor discovery are mocked at their public seams; the
scoring engine and the content loop run for real with a fake generator.
"""

import json
from unittest.mock import AsyncMock, MagicMock

from placelens.collectors.place_crawler import CrawlResult
from placelens.config.settings import Settings
from placelens.core.exceptions import InvalidIdentifierError, NavigationError, SearchUnavailableError
from placelens.core.trace import TraceLog
from placelens.models.schemas import CompetitorRecord, CompetitorSource
from placelens.services.content_loop import GuaranteedContentLoop
from placelens.services.diagnosis import DiagnosisService
from tests.conftest import STRONG_KEYWORDS, build_description, build_directions


class StaticGenerator:
    def __init__(self, response: str):
        self.response = response
        self.calls = 0

    async def complete(self, system: str, prompt: str) -> str:
        self.calls += 1
        return self.response


def _crawler(record=None, error=None) -> MagicMock:
    crawler = MagicMock()
    if error is not None:
        crawler.crawl = AsyncMock(side_effect=error)
    else:
        trace = TraceLog(clock=lambda: 0.0)
        trace.ok("goto", "200")
        crawler.crawl = AsyncMock(return_value=CrawlResult(record, trace, "entry_selector"))
    return crawler


def _competitor(rank: int, keywords: list[str]) -> CompetitorRecord:
    return CompetitorRecord(
        place_id=f"9999999{rank}",
        name=f"경쟁 매장 {rank}",
        keywords=keywords,
        rank=rank,
        source=CompetitorSource.PLACE_HOME,
    )


def _service(crawler, competitors=None, generator=None) -> DiagnosisService:
    discovery = MagicMock()
    discovery.discover = AsyncMock(return_value=competitors or [])
    loop = GuaranteedContentLoop(generator=generator, settings=Settings(_env_file=None))
    return DiagnosisService(crawler=crawler, discovery=discovery, content_loop=loop)


STRONG_RESPONSE = json.dumps(
    {"description": build_description(), "directions": build_directions(), "keywords": STRONG_KEYWORDS},
    ensure_ascii=False,
)


class TestFreeDiagnosis:
    """Test crawl and score."""

    async def test_success(self, strong_record):
        service = _service(_crawler(strong_record))

        result = await service.diagnose("https://naver.me/abc123", "hairshop")

        assert result.success
        assert result.record.place_id == "1234567890"
        assert result.scores.total_score == 92
        assert result.logs == ["[goto] ok: 200 (0ms)"]
        service.crawler.crawl.assert_awaited_once_with("https://naver.me/abc123", "hairshop")

    async def test_invalid_identifier(self):
        """An unusable input is a failed result, not an exception."""
        service = _service(_crawler(error=InvalidIdentifierError("not a place")))

        result = await service.diagnose("not a place")

        assert not result.success
        assert result.error_type == "invalid_identifier"
        assert result.record is None

    async def test_navigation_failure_keeps_trace(self):
        trace = TraceLog(clock=lambda: 0.0)
        trace.fail("goto", "HTTP 503")
        service = _service(_crawler(error=NavigationError("Target site returned HTTP 503", trace.lines())))

        result = await service.diagnose("1234567890")

        assert not result.success
        assert result.error_type == "navigation"
        assert result.logs == ["[goto] fail: HTTP 503 (0ms)"]


class TestPaidDiagnosis:
    """Test the full paid flow."""

    async def test_full_flow(self, strong_record):
        generator = StaticGenerator(STRONG_RESPONSE)
        competitors = [_competitor(1, ["볼륨 펌", "남자 커트"]), _competitor(2, ["볼륨 펌"])]
        service = _service(_crawler(strong_record), competitors, generator)

        result = await service.diagnose_paid("1234567890")

        assert result.success
        assert result.search_phrase == "역삼동 미용실"
        assert result.competitor_keyword_summary == ["볼륨 펌 (2곳)", "남자 커트 (1곳)"]
        assert result.generation.attempts == 1
        assert result.generation.simulated.total_score >= 85
        assert generator.calls == 1
        service.discovery.discover.assert_awaited_once()
        args, kwargs = service.discovery.discover.await_args
        assert args == ("역삼동 미용실",)
        assert kwargs["exclude_id"] == "1234567890"

    async def test_explicit_search_phrase(self, strong_record):
        service = _service(_crawler(strong_record))

        result = await service.diagnose_paid("1234567890", search_phrase="  강남 헤어  ")

        assert result.search_phrase == "강남 헤어"

    async def test_discovery_failure_degrades(self, strong_record):
        """A discovery error still yields generated content."""
        service = _service(_crawler(strong_record))
        service.discovery.discover = AsyncMock(
            side_effect=SearchUnavailableError("map_all_search", "search unavailable")
        )

        result = await service.diagnose_paid("1234567890")

        assert result.success
        assert result.competitors == []
        assert result.generation is not None
        assert any(line.startswith("[discovery] fail") for line in result.logs)

    async def test_without_generator(self, empty_record):
        """No generation service configured: templated draft, no locality in the phrase."""
        service = _service(_crawler(empty_record))

        result = await service.diagnose_paid("1234567890")

        assert result.search_phrase == "미용실"
        assert result.generation.used_fallback
        assert len(result.generation.draft.keywords) == 5

    async def test_paid_invalid_identifier(self):
        service = _service(_crawler(error=InvalidIdentifierError("")))

        result = await service.diagnose_paid("")

        assert not result.success
        assert result.generation is None
        service.discovery.discover.assert_not_awaited()
