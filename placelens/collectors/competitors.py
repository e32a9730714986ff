"""Competitor discovery: rank acquisition, filtering and bounded enrichment.

One Deadline is created per discover() call and shared by every step, so the
total time is bounded no matter how many fallbacks run. Rank order from
acquisition is preserved through filtering and enrichment; the worker pool
writes results back by input index.

Per-candidate outcomes:
- enrichment finished: real name/keywords, source place_home when the page loaded
- enrichment raised: placeholder name `place_{id}` and the sentinel keyword
- enrichment lost the race against the deadline, or never started: dropped
"""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from urllib.parse import quote

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page

from placelens.browser.response_buffer import ResponseBuffer
from placelens.browser.session import BrowserManager, get_browser_manager, new_light_page, stealth_profile
from placelens.collectors.search_client import (
    MOBILE_MAP_SEARCH_URL,
    MOBILE_PLACE_REFERER,
    MapSearchClient,
    PlaceMeta,
)
from placelens.config.settings import Settings, get_settings
from placelens.core.deadline import Deadline, DeadlineExceeded
from placelens.core.exceptions import EnrichmentTimeoutError
from placelens.core.trace import TraceLog
from placelens.core.worker_pool import run_bounded
from placelens.extractors.cascade import Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.identifiers import (
    PLACE_CATEGORIES,
    canonical_mobile_url,
    extract_place_ids_in_order,
    is_valid_competitor_id,
    merge_in_order,
)
from placelens.extractors.navigator import ENTRY_FRAME_SELECTOR
from placelens.extractors.structured_data import (
    KEYWORD_ARRAY_KEYS,
    clean_text,
    find_keyword_array,
    find_keyword_array_in_text,
    find_keywords_loose,
    find_name,
    is_banned_name,
    is_keyword_candidate,
    keyword_chip_score,
    og_title,
    parse_next_data,
    safe_json_parse,
)
from placelens.models.schemas import CompetitorRecord, CompetitorSource

logger = structlog.get_logger(__name__)

NO_KEYWORD_SENTINEL = "대표키워드없음"
MAX_KEYWORDS = 5
SAFETY_MARGIN_SECONDS = 0.35
ALL_SEARCH_TIMEOUT_SECONDS = 4.5
HTML_FALLBACK_TIMEOUT = (4.0, 15.0)
HOME_RENDER_TIMEOUT = (2.5, 20.0)
HOME_SLUGS = ("place", "hairshop", "restaurant", "cafe")
MIN_LOADED_HTML = 500
RENDERED_ENOUGH_IDS = 5

_KEYWORD_HINTS = KEYWORD_ARRAY_KEYS + ("representative",)
_DOM_NOISE_EXTRA = ("영업", "휴무", "길찾기", "전화")
_GENERIC_TABS = frozenset({"리뷰", "사진", "예약", "문의", "가격", "메뉴"})

DOM_TEXTS_SCRIPT = """
() => {
  const out = [];
  for (const el of Array.from(document.querySelectorAll('a, button, span, div'))) {
    const t = String(el.innerText || el.textContent || '').replace(/\\s+/g, ' ').trim();
    if (t.length >= 2 && t.length <= 25) out.push(t.replace(/^#/, ''));
    if (out.length >= 2000) break;
  }
  return out;
}
"""


@dataclass
class Enrichment:
    name: str = ""
    keywords: list[str] = field(default_factory=list)
    loaded: bool = False

    @property
    def useful(self) -> bool:
        return self.loaded or bool(self.name) or bool(self.keywords)


# =============================================================================
# Sanitization
# =============================================================================


def sanitize_keywords(candidates: Iterable[str]) -> list[str]:
    """Clean, drop promotional noise and cap; [] when nothing survives."""
    out: list[str] = []
    for candidate in candidates:
        text = clean_text(candidate)
        if text and is_keyword_candidate(text) and text not in out:
            out.append(text)
        if len(out) >= MAX_KEYWORDS:
            break
    return out


def keywords_or_sentinel(candidates: Iterable[str]) -> list[str]:
    """Sanitized keywords, or the single sentinel so "no data" never reads as an empty result."""
    return sanitize_keywords(candidates) or [NO_KEYWORD_SENTINEL]


def display_name(place_id: str, *names: str) -> str:
    """First clean, non-banned name, else the synthetic `place_{id}` label."""
    for name in names:
        text = clean_text(name)
        if text and not is_banned_name(text):
            return text
    return f"place_{place_id}"


def rank_dom_keywords(texts: Iterable[str], limit: int = MAX_KEYWORDS) -> list[str]:
    """Pick keyword-looking chip texts out of a page's visible strings."""
    cleaned = []
    for text in texts:
        value = clean_text(text)
        if not is_keyword_candidate(value) or any(word in value for word in _DOM_NOISE_EXTRA):
            continue
        cleaned.append(value)

    def score(value: str) -> int:
        return keyword_chip_score(value) - (3 if value in _GENERIC_TABS else 0)

    seen: set[str] = set()
    ranked = []
    for value in sorted(cleaned, key=score, reverse=True):
        compact = "".join(value.split())
        if compact not in seen:
            seen.add(compact)
            ranked.append(value)
    return ranked[:limit]


def filter_candidates(metas: Iterable[PlaceMeta], exclude_id: Optional[str], cap: int) -> list[PlaceMeta]:
    """Drop the caller's own id, invalid and duplicate ids; keep rank order; cap."""
    out: list[PlaceMeta] = []
    seen: set[str] = set()
    for meta in metas:
        if meta.place_id == exclude_id or meta.place_id in seen:
            continue
        if not is_valid_competitor_id(meta.place_id):
            continue
        seen.add(meta.place_id)
        out.append(meta)
        if len(out) >= cap:
            break
    return out


def summarize_competitor_keywords(competitors: Iterable[CompetitorRecord], top: int = 10) -> list[str]:
    """Keyword frequency lines across competitors, most shared first; the sentinel is ignored."""
    counts: Counter[str] = Counter()
    for competitor in competitors:
        for keyword in dict.fromkeys(competitor.keywords):
            if keyword != NO_KEYWORD_SENTINEL:
                counts[keyword] += 1
    return [f"{keyword} ({count}곳)" for keyword, count in counts.most_common(top)]


def _bounded(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def _looks_like_place_payload(content_type: str, body: str) -> bool:
    if "json" in content_type or "javascript" in content_type:
        return True
    return "placeId" in body or any(f"/{slug}/" in body for slug in PLACE_CATEGORIES)


def _looks_like_keyword_payload(content_type: str, body: str) -> bool:
    return len(body) >= 20 and any(key in body for key in _KEYWORD_HINTS)


# =============================================================================
# Discovery Service
# =============================================================================


class CompetitorDiscoveryService:
    """
    Args:
        search_client: HTTP client for rank acquisition
        browser: Browser manager for rendered fallbacks and enrichment
        settings: Settings instance; defaults to get_settings()
        clock: Monotonic time source for the shared deadline
    """

    def __init__(
        self,
        search_client: Optional[MapSearchClient] = None,
        browser: Optional[BrowserManager] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.search_client = search_client or MapSearchClient()
        self.browser = browser or get_browser_manager()
        self.clock = clock
        self._abandoned: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Rank acquisition
    # -------------------------------------------------------------------------

    async def render_map_search(self, query: str, deadline: Deadline) -> list[PlaceMeta]:
        """Render the mobile map search and read ids from its own network traffic, in order."""
        if deadline.expired:
            return []
        timeout_ms = int(deadline.cap(25.0) * 1000)
        buffer = ResponseBuffer(capacity=60, body_filter=_looks_like_place_payload)
        try:
            async with self.browser.isolated_context(stealth_profile("https://m.map.naver.com/")) as context:
                page = await new_light_page(context, timeout_ms)
                async with buffer.attached(page):
                    await page.goto(
                        f"{MOBILE_MAP_SEARCH_URL}?query={quote(query)}",
                        wait_until="domcontentloaded",
                        timeout=max(1000, timeout_ms),
                    )
                    await page.wait_for_timeout(1000)
                ids = extract_place_ids_in_order("\n".join(buffer.bodies()))
                if len(ids) < RENDERED_ENOUGH_IDS:
                    ids = merge_in_order(ids, extract_place_ids_in_order(await page.content()))
        except PlaywrightError as e:
            logger.warning("map_render_failed", query=query, error=str(e).splitlines()[0][:160])
            return []
        return [PlaceMeta(place_id, "", CompetitorSource.MAP_RENDER) for place_id in ids]

    async def acquire_ranked(
        self,
        query: str,
        exclude_id: Optional[str],
        cap: int,
        deadline: Deadline,
        trace: TraceLog,
    ) -> list[PlaceMeta]:
        """Candidates in rank order from the first acquisition stage that yields any."""
        ids = await self.search_client.all_search_ids(
            query, cap + 5, timeout=deadline.cap(ALL_SEARCH_TIMEOUT_SECONDS)
        )
        metas = filter_candidates((PlaceMeta(i, "", CompetitorSource.MAP_RANK) for i in ids), exclude_id, cap)
        if metas:
            trace.ok("discovery.map_rank", f"{len(metas)} candidates")
            return metas
        trace.miss("discovery.map_rank")

        metas = filter_candidates(await self.render_map_search(query, deadline), exclude_id, cap)
        if metas:
            trace.ok("discovery.map_render", f"{len(metas)} candidates")
            return metas
        trace.miss("discovery.map_render")

        html_timeout = _bounded(deadline.remaining(), HTML_FALLBACK_TIMEOUT)
        metas = filter_candidates(
            await self.search_client.where_place_metas(query, timeout=html_timeout), exclude_id, cap
        )
        if metas:
            trace.ok("discovery.search_html", f"{len(metas)} candidates")
            return metas
        trace.miss("discovery.search_html")

        metas = filter_candidates(
            await self.search_client.mobile_place_search_metas(query, cap + 8, timeout=html_timeout),
            exclude_id,
            cap,
        )
        if metas:
            trace.ok("discovery.place_search", f"{len(metas)} candidates")
        else:
            trace.miss("discovery.place_search")
        return metas

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    async def _entry_frame(self, page: Page, timeout_ms: int) -> Optional[Frame]:
        try:
            element = await page.wait_for_selector(ENTRY_FRAME_SELECTOR, timeout=min(8000, timeout_ms))
            frame = await element.content_frame() if element is not None else None
            if frame is not None:
                await frame.wait_for_load_state("domcontentloaded")
            return frame
        except PlaywrightError:
            return None

    async def render_home(self, place_id: str, url: str, timeout_ms: int) -> Enrichment:
        """Load one profile home page and run the name/keyword cascades over it."""
        buffer = ResponseBuffer(capacity=60, body_filter=_looks_like_keyword_payload)
        trace = TraceLog(name=f"competitor:{place_id}")
        async with self.browser.isolated_context(stealth_profile(MOBILE_PLACE_REFERER)) as context:
            page = await new_light_page(context, timeout_ms)
            async with buffer.attached(page):
                response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                outer = await page.content()
                frame = await self._entry_frame(page, timeout_ms)

            status = response.status if response is not None else None
            loaded = status == 200 and len(outer) > MIN_LOADED_HTML
            network = [safe_json_parse(body) for body in buffer.bodies()]
            network_raw = buffer.bodies()

            ctx = ExtractionContext(page=page, place_id=place_id, frame=frame, trace=trace)

            async def network_keywords(_: ExtractionContext) -> Optional[list[str]]:
                for data, raw in zip(network, network_raw):
                    if data is not None:
                        found = find_keyword_array(data) or find_keywords_loose(data)
                    else:
                        found = find_keyword_array_in_text(raw)
                    if sanitize_keywords(found):
                        return found
                return None

            async def blob_keywords(c: ExtractionContext, label: str) -> Optional[list[str]]:
                html = await c.html(label)
                blob = parse_next_data(html)
                if blob is not None:
                    found = find_keyword_array(blob) or find_keywords_loose(blob)
                    if found:
                        return found
                return find_keyword_array_in_text(html) if label == "frame" else None

            async def dom_keywords(c: ExtractionContext) -> Optional[list[str]]:
                if c.frame is None:
                    return None
                return rank_dom_keywords(await c.frame.evaluate(DOM_TEXTS_SCRIPT))

            async def network_name(_: ExtractionContext) -> Optional[str]:
                for data in network:
                    name = find_name(data) if data is not None else ""
                    if name:
                        return name
                return None

            async def blob_name(c: ExtractionContext, label: str) -> Optional[str]:
                blob = parse_next_data(await c.html(label))
                return find_name(blob) if blob is not None else None

            async def og_name(c: ExtractionContext) -> Optional[str]:
                for label, _ in c.handles():
                    name = og_title(await c.html(label))
                    if name and not is_banned_name(name):
                        return name
                return None

            keywords = await run_cascade(
                "competitor_keywords",
                (
                    Strategy("network", network_keywords),
                    Strategy("outer_next_data", lambda c: blob_keywords(c, "page")),
                    Strategy("frame_next_data", lambda c: blob_keywords(c, "frame")),
                    Strategy("dom_chips", dom_keywords),
                ),
                ctx,
            )
            name = await run_cascade(
                "competitor_name",
                (
                    Strategy("network", network_name),
                    Strategy("outer_next_data", lambda c: blob_name(c, "page")),
                    Strategy("frame_next_data", lambda c: blob_name(c, "frame")),
                    Strategy("og_title", og_name),
                ),
                ctx,
            )

        logger.debug(
            "competitor_home_rendered",
            place_id=place_id,
            url=url,
            status=status,
            loaded=loaded,
            keywords_from=keywords.strategy,
            name_from=name.strategy,
        )
        return Enrichment(
            name=clean_text(name.value or ""),
            keywords=sanitize_keywords(keywords.value or []),
            loaded=loaded,
        )

    async def enrich(self, place_id: str, deadline: Deadline) -> Enrichment:
        """Try each category's home URL until one yields anything."""
        for slug in HOME_SLUGS:
            if deadline.expired:
                break
            timeout_ms = int(_bounded(deadline.remaining(), HOME_RENDER_TIMEOUT) * 1000)
            try:
                result = await self.render_home(place_id, f"{canonical_mobile_url(place_id, slug)}/home", timeout_ms)
            except PlaywrightError as e:
                logger.debug("competitor_home_failed", place_id=place_id, slug=slug, error=str(e)[:160])
                continue
            if result.useful:
                return result
        return Enrichment()

    async def _enrich_within(self, meta: PlaceMeta, deadline: Deadline) -> Enrichment:
        """
        Race enrichment against the shared deadline. A losing call is abandoned,
        not cancelled: it finishes in the background and its result is discarded.

        Raises:
            EnrichmentTimeoutError: If the deadline elapsed first
        """
        task = asyncio.ensure_future(self.enrich(meta.place_id, deadline))
        try:
            return await deadline.race(asyncio.shield(task))
        except DeadlineExceeded:
            self._abandon(task)
            raise EnrichmentTimeoutError(meta.place_id, deadline.remaining())

    def _abandon(self, task: asyncio.Task) -> None:
        if task.done():
            return
        self._abandoned.add(task)

        def _discard(t: asyncio.Task) -> None:
            self._abandoned.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.debug("abandoned_enrichment_failed", error=str(t.exception())[:160])

        task.add_done_callback(_discard)

    async def drain_abandoned(self, timeout: float = 10.0) -> None:
        """Wait for abandoned enrichment work to finish (used at shutdown)."""
        if self._abandoned:
            await asyncio.wait(set(self._abandoned), timeout=timeout)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def discover(
        self,
        search_phrase: str,
        exclude_id: Optional[str] = None,
        limit: Optional[int] = None,
        trace: Optional[TraceLog] = None,
    ) -> list[CompetitorRecord]:
        """
        Ranked competitors for a search phrase within one shared time budget.

        Zero candidates is a valid outcome and returns an empty list.
        """
        query = (search_phrase or "").strip()
        trace = trace if trace is not None else TraceLog(name=f"discover:{query}")
        if not query:
            trace.miss("discovery", "empty search phrase")
            return []

        limit = max(1, min(10, limit or self.settings.competitor_limit))
        deadline = Deadline(
            self.settings.competitor_total_budget_seconds,
            safety_margin=SAFETY_MARGIN_SECONDS,
            clock=self.clock,
        )
        cap = limit + self.settings.competitor_candidate_margin

        candidates = await self.acquire_ranked(query, exclude_id, cap, deadline, trace)
        if not candidates:
            logger.info("discovery_empty", query=query)
            return []

        outcomes = await run_bounded(
            candidates,
            lambda meta: self._enrich_within(meta, deadline),
            concurrency=self.settings.competitor_concurrency,
            deadline=deadline,
        )

        competitors: list[CompetitorRecord] = []
        for meta, outcome in zip(candidates, outcomes):
            if len(competitors) >= limit:
                break
            if outcome.skipped or isinstance(outcome.error, EnrichmentTimeoutError):
                trace.miss(f"discovery.enrich.{meta.place_id}", "deadline")
                continue

            enriched = outcome.value if outcome.ok else Enrichment()
            if outcome.error is not None:
                trace.fail(f"discovery.enrich.{meta.place_id}", type(outcome.error).__name__)

            competitors.append(
                CompetitorRecord(
                    place_id=meta.place_id,
                    name=display_name(meta.place_id, enriched.name, meta.name),
                    keywords=keywords_or_sentinel(enriched.keywords),
                    rank=len(competitors) + 1,
                    source=CompetitorSource.PLACE_HOME if enriched.loaded else meta.source,
                    url=canonical_mobile_url(meta.place_id),
                )
            )

        logger.info(
            "discovery_complete",
            query=query,
            candidates=len(candidates),
            returned=len(competitors),
            remaining_seconds=round(deadline.remaining(), 2),
        )
        return competitors
