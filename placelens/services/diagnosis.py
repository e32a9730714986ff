"""
Diagnosis Service.

The one entry point the route layer calls. The free tier crawls and scores a
listing. The paid tier additionally discovers competitors for a local search
phrase and runs the guaranteed-quality content loop.

Only an unusable identifier or an unreachable target site produce an
unsuccessful result; every other failure degrades inside its own stage.
"""

from typing import Optional

import structlog

from placelens.collectors.competitors import CompetitorDiscoveryService, summarize_competitor_keywords
from placelens.collectors.place_crawler import CrawlResult, PlaceCrawler
from placelens.config.config_loader import load_industry_config
from placelens.config.industry_schema import Industry, IndustryConfig
from placelens.core.exceptions import InvalidIdentifierError, NavigationError, PlaceLensError
from placelens.models.schemas import (
    BusinessRecord,
    CompetitorRecord,
    DiagnosisResult,
    PaidDiagnosisResult,
    ScoringOutput,
)
from placelens.scoring.engine import score_place
from placelens.services.content_loop import GuaranteedContentLoop
from placelens.services.drafts import primary_locality
from placelens.services.generation_client import get_text_generator

logger = structlog.get_logger(__name__)


def default_search_phrase(record: BusinessRecord, config: IndustryConfig) -> str:
    """'<locality> <industry label>', or just the label when the address has no locality."""
    locality = primary_locality(record.name, record.address, config.keywords.locality_suffixes)
    return f"{locality} {config.label}".strip()


class DiagnosisService:
    """
    Args:
        crawler: Listing crawler; defaults to a PlaceCrawler on the shared browser
        discovery: Competitor discovery; defaults to a CompetitorDiscoveryService
        content_loop: Content loop; defaults to one backed by the configured generator
    """

    def __init__(
        self,
        crawler: Optional[PlaceCrawler] = None,
        discovery: Optional[CompetitorDiscoveryService] = None,
        content_loop: Optional[GuaranteedContentLoop] = None,
    ):
        self.crawler = crawler or PlaceCrawler()
        self.discovery = discovery or CompetitorDiscoveryService()
        self.content_loop = content_loop or GuaranteedContentLoop(generator=get_text_generator())

    async def _crawl(
        self, raw_input: str, industry: Industry | str | None
    ) -> tuple[Optional[CrawlResult], Optional[DiagnosisResult]]:
        try:
            return await self.crawler.crawl(raw_input, industry), None
        except InvalidIdentifierError as e:
            logger.info("diagnosis_invalid_identifier", input=raw_input[:120])
            return None, DiagnosisResult(
                success=False,
                error=e.message,
                error_type="invalid_identifier",
            )
        except NavigationError as e:
            logger.warning("diagnosis_navigation_failed", input=raw_input[:120], error=e.message)
            return None, DiagnosisResult(
                success=False,
                logs=[str(line) for line in e.trace],
                error=e.message,
                error_type="navigation",
            )

    async def diagnose(self, raw_input: str, industry: Industry | str | None = None) -> DiagnosisResult:
        """Crawl and score one listing."""
        crawl, failure = await self._crawl(raw_input, industry)
        if failure is not None:
            return failure

        scores = score_place(crawl.record)
        logger.info(
            "diagnosis_complete",
            place_id=crawl.record.place_id,
            total=scores.total_score,
            grade=scores.total_grade.value,
        )
        return DiagnosisResult(success=True, record=crawl.record, scores=scores, logs=crawl.logs)

    async def diagnose_paid(
        self,
        raw_input: str,
        industry: Industry | str | None = None,
        search_phrase: Optional[str] = None,
        target_score: Optional[int] = None,
    ) -> PaidDiagnosisResult:
        """
        Crawl, score, discover competitors and generate improvement content.

        Args:
            raw_input: Listing URL, short link or bare place id
            industry: Industry tag; unknown tags fall back to hairshop
            search_phrase: Competitor search phrase; defaults to '<locality> <label>'
            target_score: Simulated total the generated draft must reach
        """
        crawl, failure = await self._crawl(raw_input, industry)
        if failure is not None:
            return PaidDiagnosisResult(**failure.model_dump())

        record = crawl.record
        config = load_industry_config(record.industry.value)
        scores: ScoringOutput = score_place(record, config)
        phrase = (search_phrase or "").strip() or default_search_phrase(record, config)

        competitors: list[CompetitorRecord] = []
        try:
            competitors = await self.discovery.discover(phrase, exclude_id=record.place_id, trace=crawl.trace)
        except PlaceLensError as e:
            crawl.trace.fail("discovery", e.message)
            logger.warning("diagnosis_discovery_failed", place_id=record.place_id, error=e.message)
        summary = summarize_competitor_keywords(competitors)

        generation = await self.content_loop.generate(
            record,
            current_scores=scores,
            competitor_context=summary,
            target_score=target_score,
            config=config,
        )

        logger.info(
            "paid_diagnosis_complete",
            place_id=record.place_id,
            total=scores.total_score,
            competitors=len(competitors),
            generated_total=generation.simulated.total_score,
            attempts=generation.attempts,
        )
        return PaidDiagnosisResult(
            success=True,
            record=record,
            scores=scores,
            logs=crawl.logs,
            competitors=competitors,
            competitor_keyword_summary=summary,
            search_phrase=phrase,
            generation=generation,
        )
