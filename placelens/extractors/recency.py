"""
Recent-review counting.

Dates on a review-listing page are parsed in two formats and counted against
a trailing window ending "today". Fewer than the minimum number of parsed
dates means the page did not render reviews, and recency stays unmeasured
(None) rather than 0.
"""

import re
from datetime import date, timedelta
from typing import Callable, Optional

from placelens.config.industry_schema import ExtractionHeuristics
from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.identifiers import review_urls

DOTTED_DATE = re.compile(r"(\d{4})\.\s*(\d{1,2})\.\s*(\d{1,2})")
ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
MAX_DATES = 300


def parse_dates(text: str) -> list[date]:
    """Every valid calendar date written as 'YYYY. M. D' or 'YYYY-MM-DD'."""
    found = []
    for pattern in (DOTTED_DATE, ISO_DATE):
        for match in pattern.finditer(text or ""):
            year, month, day = (int(group) for group in match.groups())
            try:
                found.append(date(year, month, day))
            except ValueError:
                continue
    return found[:MAX_DATES]


def count_recent(dates: list[date], today: date, window_days: int = 30) -> int:
    threshold = today - timedelta(days=window_days)
    return sum(1 for d in dates if threshold <= d <= today)


def recent_review_count(text: str, today: date, heuristics: ExtractionHeuristics) -> Optional[int]:
    """Recent count, or None when too few dates parsed to trust the page."""
    dates = parse_dates(text)
    if len(dates) < heuristics.recency_min_dates:
        return None
    return count_recent(dates, today, heuristics.recency_window_days)


def _review_page_strategy(url: str, index: int, today: Callable[[], date]) -> Strategy[int]:
    async def run(ctx: ExtractionContext) -> Optional[int]:
        if not await ctx.try_goto(url, f"recency.goto_{index}", settle_ms=1500):
            return None
        return recent_review_count(await ctx.html("page"), today(), ctx.heuristics)

    return Strategy(f"review_page_{index}", run)


async def extract_recent_review_count(
    ctx: ExtractionContext,
    today: Callable[[], date] = date.today,
) -> ExtractionResult[int]:
    """
    Args:
        ctx: Extraction context; the outer page is navigated to review listings
        today: Reference "now", injectable for tests
    """
    strategies = [
        _review_page_strategy(url, n, today)
        for n, url in enumerate(review_urls(ctx.place_id, ctx.slug), start=1)
    ]
    return await run_cascade("recent_review_count_30d", strategies, ctx)
