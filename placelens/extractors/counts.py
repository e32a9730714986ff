"""
Review and photo count extraction.

Counts are resolved as the maximum of every candidate found across several
keys and rendered-text patterns; a missed key under-counts far more often than
a single stray match over-counts. Values at or above the sanity ceiling are
parse noise. No candidate at all means "unmeasured" (None); a parsed zero
stays 0.
"""

import re
from typing import Any, Iterable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from placelens.browser.response_buffer import ResponseBuffer
from placelens.config.industry_schema import ExtractionHeuristics
from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.identifiers import tab_url
from placelens.extractors.structured_data import collect_numbers, deep_collect_numbers, safe_json_parse

REVIEW_KEYS = ("visitorReviewCount", "reviewCount")
REVIEW_PATTERNS = (
    re.compile(r"\"visitorReviewCount\"[\s\":]+([0-9,]+)", re.IGNORECASE),
    re.compile(r"\"reviewCount\"[\s\":]+([0-9,]+)", re.IGNORECASE),
    re.compile(r"방문자\s*리뷰\s*([0-9,]+)"),
    re.compile(r"리뷰\s*([0-9,]+)"),
)

PHOTO_KEYS = (
    "businessPhotoCount",
    "placePhotoCount",
    "photoCount",
    "businessPhotoTotalCount",
    "placePhotoTotalCount",
)
PHOTO_PATTERNS = tuple(re.compile(r"\"%s\"\s*:\s*([0-9]{1,7})" % key) for key in PHOTO_KEYS)
BUSINESS_PHOTO_LABELS = ("업체사진", "매장사진", "플레이스사진", "가게사진")

THUMBNAIL_COUNT_SCRIPT = """
() => {
  const srcs = Array.from(document.querySelectorAll('img'))
    .map(img => String(img.getAttribute('src') || img.src || ''))
    .filter(s => s.length > 10 && !s.includes('data:image') && !/sprite|icon/i.test(s));
  return new Set(srcs).size;
}
"""


def max_valid_count(candidates: Iterable[int], ceiling: int) -> Optional[int]:
    """Largest candidate below the ceiling, or None when nothing was parsed.

    A parsed 0 is a confirmed empty count and is returned as 0.
    """
    valid = [n for n in candidates if 0 <= n < ceiling]
    return max(valid) if valid else None


def apply_photo_guard(
    value: Optional[int],
    review_count: Optional[int],
    heuristics: ExtractionHeuristics,
) -> Optional[int]:
    """
    Discard photo counts that collide with tab-index numbers on the target site.

    1-4 resolve to 0; exactly 5 with 200+ reviews resolves to 0; totals above
    the photo ceiling are not business photos and resolve to unmeasured.
    """
    if value is None:
        return None
    if value > heuristics.photo_ceiling:
        return None
    if heuristics.photo_discard_min <= value <= heuristics.photo_discard_max:
        return 0
    if (
        value == heuristics.photo_tab_collision_value
        and (review_count or 0) >= heuristics.photo_tab_collision_min_reviews
    ):
        return 0
    return value


def photo_candidates(body: str, content_type: str = "") -> list[int]:
    """Photo-count candidates from one response body, restricted to photo-specific keys."""
    if "json" in content_type or body.lstrip().startswith(("{", "[", ")]}'")):
        parsed = safe_json_parse(body)
        if parsed is not None:
            return deep_collect_numbers(parsed, PHOTO_KEYS)
    return collect_numbers(body, PHOTO_PATTERNS)


# =============================================================================
# Reviews
# =============================================================================


def _review_candidates(html: str, blob: Optional[Any]) -> list[int]:
    found = collect_numbers(html, REVIEW_PATTERNS)
    if blob is not None:
        found.extend(deep_collect_numbers(blob, REVIEW_KEYS))
    return found


async def _reviews_in_place(ctx: ExtractionContext) -> Optional[int]:
    candidates: list[int] = []
    for label, _ in ctx.handles():
        candidates.extend(_review_candidates(await ctx.html(label), ctx.blob))
    return max_valid_count(candidates, ctx.heuristics.count_ceiling)


async def _reviews_home_tab(ctx: ExtractionContext) -> Optional[int]:
    if not await ctx.try_goto(tab_url(ctx.place_id, "home", ctx.slug), "reviews.goto_home"):
        return None
    blob = await ctx.load_blob()
    return max_valid_count(_review_candidates(await ctx.html("page"), blob), ctx.heuristics.count_ceiling)


REVIEW_STRATEGIES = (
    Strategy("in_place", _reviews_in_place),
    Strategy("home_tab", _reviews_home_tab),
)


async def extract_review_count(ctx: ExtractionContext) -> ExtractionResult[int]:
    return await run_cascade("review_count", REVIEW_STRATEGIES, ctx)


# =============================================================================
# Photos
# =============================================================================


async def _scroll_nudge(page: Page) -> None:
    await page.evaluate("() => window.scrollTo(0, 900)")
    await page.wait_for_timeout(300)
    await page.evaluate("() => window.scrollTo(0, 0)")


async def click_business_photo_chip(page: Page) -> bool:
    """Select the "business photos" filter chip or tab, if the page has one."""
    for label in BUSINESS_PHOTO_LABELS:
        for selector in ("button, a, div[role='button'], span", "a, button, div[role='tab']"):
            locator = page.locator(selector, has_text=label).first
            try:
                if not await locator.count():
                    continue
                await locator.scroll_into_view_if_needed(timeout=1500)
                await locator.click(timeout=1500)
                return True
            except PlaywrightError:
                continue
    return False


def _photo_url_filter(place_id: str):
    def accept(url: str) -> bool:
        return place_id in url or "photo" in url or "image" in url or "media" in url

    return accept


def _textual(content_type: str, body: str) -> bool:
    return "json" in content_type or "text" in content_type or "javascript" in content_type


async def extract_photo_count(ctx: ExtractionContext, review_count: Optional[int] = None) -> ExtractionResult[int]:
    """
    Open the photo tab with response sniffing on, prefer the business-photo
    thumbnail count, then photo keys seen on the network, then in the HTML.
    The false-positive guard is applied to whichever value wins.
    """
    buffer = ResponseBuffer(
        capacity=60,
        url_filter=_photo_url_filter(ctx.place_id),
        body_filter=_textual,
        resource_types=None,
    )
    dom_count: Optional[int] = None

    async with buffer.attached(ctx.page):
        loaded = await ctx.try_goto(tab_url(ctx.place_id, "photo", ctx.slug), "photos.goto_photo")
        if loaded:
            try:
                await ctx.page.wait_for_load_state("networkidle", timeout=5000)
            except PlaywrightError:
                ctx.trace.miss("photos.networkidle")
            try:
                await _scroll_nudge(ctx.page)
                if await click_business_photo_chip(ctx.page):
                    ctx.trace.ok("photos.business_chip")
                    await ctx.page.wait_for_timeout(1200)
                    await _scroll_nudge(ctx.page)
                    dom_count = await ctx.page.evaluate(THUMBNAIL_COUNT_SCRIPT)
                else:
                    ctx.trace.miss("photos.business_chip")
            except PlaywrightError as e:
                ctx.ensure_usable()
                ctx.trace.fail("photos.dom", str(e).splitlines()[0][:160])

    ceiling = ctx.heuristics.count_ceiling
    trust_max = ctx.heuristics.photo_dom_trust_max

    async def business_dom(_: ExtractionContext) -> Optional[int]:
        return dom_count if dom_count is not None and 0 < dom_count < trust_max else None

    async def network_keys(_: ExtractionContext) -> Optional[int]:
        candidates: list[int] = []
        for entry in buffer.entries():
            candidates.extend(photo_candidates(entry.body, entry.content_type))
        return max_valid_count(candidates, ceiling)

    async def html_keys(c: ExtractionContext) -> Optional[int]:
        if not loaded:
            return None
        return max_valid_count(photo_candidates(await c.html("page")), ceiling)

    result = await run_cascade(
        "photo_count",
        (
            Strategy("business_dom", business_dom),
            Strategy("network_keys", network_keys),
            Strategy("html_keys", html_keys),
        ),
        ctx,
    )
    guarded = apply_photo_guard(result.value, review_count, ctx.heuristics)
    if guarded != result.value:
        ctx.trace.add("photo_count.guard", "adjusted", f"{result.value} -> {guarded}")
        result.log.append(f"guard: {result.value} -> {guarded}")
        result.value = guarded
    return result
