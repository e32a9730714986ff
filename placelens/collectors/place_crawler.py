"""Crawl one listing into a BusinessRecord.

Frame resolution happens first. In-place fields (name, address, keywords,
description, directions, in-page review count) are read from the resolved
content handle before any tab navigation. Tab-based fields (recent reviews,
photos, menu) navigate the outer page afterwards, so their order matters.

Only an unusable identifier or an unreachable site fails the crawl. A missing
content handle downgrades to best-effort extraction from the outer page, and
a page that closes mid-extraction stops extraction with whatever was found.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

import structlog

from placelens.browser.session import MOBILE_PROFILE, BrowserManager, get_browser_manager
from placelens.config.config_loader import get_extraction_heuristics, normalize_industry
from placelens.config.industry_schema import ExtractionHeuristics, Industry
from placelens.config.settings import Settings, get_settings
from placelens.core.exceptions import ContentHandleClosedError, NoContentHandleError
from placelens.core.trace import TraceLog
from placelens.extractors.basic_info import extract_address, extract_name
from placelens.extractors.cascade import ExtractionResult
from placelens.extractors.context import ExtractionContext
from placelens.extractors.counts import extract_photo_count, extract_review_count
from placelens.extractors.description import extract_description
from placelens.extractors.directions import extract_directions
from placelens.extractors.identifiers import (
    canonical_mobile_url,
    detect_slug,
    extract_place_id,
    is_short_link,
)
from placelens.extractors.keywords import extract_keywords
from placelens.extractors.menu import extract_menu
from placelens.extractors.navigator import FrameResolver, Resolution
from placelens.extractors.recency import extract_recent_review_count
from placelens.extractors.ui_expander import expand_all
from placelens.models.schemas import BusinessRecord

logger = structlog.get_logger(__name__)

BEST_EFFORT = "best_effort"


@dataclass
class CrawlResult:
    """A crawled record plus the trace explaining how each field was obtained."""

    record: BusinessRecord
    trace: TraceLog
    resolution_strategy: str
    complete: bool = True
    fields: dict[str, ExtractionResult] = field(default_factory=dict)

    @property
    def logs(self) -> list[str]:
        return self.trace.lines()


class PlaceCrawler:
    """
    Args:
        browser: Browser manager; defaults to the process-wide one
        settings: Settings instance; defaults to get_settings()
        heuristics: Extraction heuristics; defaults to the configured ones
        today: Reference date for the recency window, injectable for tests
    """

    def __init__(
        self,
        browser: Optional[BrowserManager] = None,
        settings: Optional[Settings] = None,
        heuristics: Optional[ExtractionHeuristics] = None,
        today: Callable[[], date] = date.today,
    ):
        self.browser = browser or get_browser_manager()
        self.settings = settings or get_settings()
        self.heuristics = heuristics or get_extraction_heuristics()
        self.today = today

    async def crawl(self, raw_input: str, industry: Industry | str | None = None) -> CrawlResult:
        """
        Raises:
            InvalidIdentifierError: If the input carries no place identifier
            NavigationError: If the target site could not be loaded
        """
        industry = normalize_industry(industry)
        if not is_short_link(raw_input):
            # Fail before a browser context is opened
            extract_place_id(raw_input)

        trace = TraceLog(name=raw_input.strip()[:80])
        async with self.browser.isolated_context(MOBILE_PROFILE) as context:
            page = await context.new_page()
            page.set_default_timeout(self.settings.navigation_timeout_ms)
            resolver = FrameResolver(
                page,
                navigation_timeout_ms=self.settings.navigation_timeout_ms,
                frame_wait_timeout_ms=self.settings.frame_wait_timeout_ms,
                settle_delay_ms=self.settings.settle_delay_ms,
            )
            try:
                resolution = await resolver.resolve(raw_input, trace)
            except NoContentHandleError as e:
                logger.warning("no_content_handle", place_id=e.place_id)
                resolution = Resolution(
                    place_id=e.place_id,
                    url=page.url,
                    frame=None,
                    strategy=BEST_EFFORT,
                    slug=detect_slug(page.url),
                )

            ctx = ExtractionContext(
                page=page,
                place_id=resolution.place_id,
                frame=resolution.frame,
                slug=resolution.slug,
                heuristics=self.heuristics,
                trace=trace,
                navigation_timeout_ms=self.settings.navigation_timeout_ms,
                settle_delay_ms=self.settings.settle_delay_ms,
                blob=resolution.blob,
            )
            return await self._extract(ctx, resolution, industry)

    async def _extract(self, ctx: ExtractionContext, resolution: Resolution, industry: Industry) -> CrawlResult:
        fields: dict[str, ExtractionResult] = {}
        values: dict = {
            "place_id": ctx.place_id,
            "industry": industry,
            "url": canonical_mobile_url(ctx.place_id, ctx.slug or "place"),
        }
        complete = True

        try:
            await ctx.load_blob()
            await expand_all(ctx, self.settings.expand_rounds, self.settings.expand_interval_ms)

            # In-place fields: read before any tab navigation
            fields["name"] = await extract_name(ctx)
            fields["address"] = await extract_address(ctx)
            fields["keywords"], keyword_set = await extract_keywords(ctx)
            values["keywords"] = keyword_set.keywords
            values["raw_keywords"] = keyword_set.raw if keyword_set.raw else None
            fields["description"] = await extract_description(ctx)
            fields["directions"] = await extract_directions(ctx)
            fields["review_count"] = await extract_review_count(ctx)

            # Tab fields: each navigates the outer page
            fields["recent_review_count_30d"] = await extract_recent_review_count(ctx, self.today)
            fields["photo_count"] = await extract_photo_count(ctx, fields["review_count"].value)
            fields["menu"] = await extract_menu(ctx)
        except ContentHandleClosedError as e:
            complete = False
            ctx.trace.fail("crawl", e.message)
            logger.warning("crawl_interrupted", place_id=ctx.place_id, error=e.message)

        for name in ("name", "address", "description", "directions", "review_count",
                     "recent_review_count_30d", "photo_count"):
            if name in fields and fields[name].value is not None:
                values[name] = fields[name].value

        menu = fields.get("menu")
        if menu is not None and menu.value is not None:
            values["menus"] = menu.value.items
            values["menu_count"] = menu.value.total

        provenance = {name: result.strategy for name, result in fields.items()}
        provenance["frame"] = resolution.strategy
        record = BusinessRecord(provenance=provenance, **values)

        logger.info(
            "place_crawled",
            place_id=record.place_id,
            industry=industry.value,
            frame=resolution.strategy,
            complete=complete,
            absent=[name for name, result in fields.items() if not result.found],
            trace_entries=len(ctx.trace),
        )
        return CrawlResult(
            record=record,
            trace=ctx.trace,
            resolution_strategy=resolution.strategy,
            complete=complete,
            fields=fields,
        )
