"""
Self-declared ("representative") keyword extraction.

Structured data in the content frame is tried first, then the outer page,
then keyword-chip elements in the DOM. The first strategy that yields any
candidates wins; its raw list is kept so duplicate detection can see what
capping and dedupe removed.
"""

from dataclasses import dataclass, field
from typing import Optional

from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ContentHandle, ExtractionContext
from placelens.extractors.structured_data import (
    clean_text,
    find_keyword_array,
    find_keyword_array_in_text,
    parse_next_data,
)

KEYWORD_CHIP_SELECTOR = 'a[href*="keyword"], span[class*="keyword"], div[class*="keyword"]'


@dataclass
class KeywordSet:
    keywords: list[str] = field(default_factory=list)
    raw: list[str] = field(default_factory=list)


def finalize_keywords(raw: list[str], cap: int = 5) -> list[str]:
    """Dedupe case-insensitively (first spelling wins) and cap."""
    seen = set()
    out = []
    for keyword in raw:
        text = keyword.strip()
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
        if len(out) >= cap:
            break
    return out


async def _structured(ctx: ExtractionContext, label: str) -> Optional[list[str]]:
    html = await ctx.html(label)
    if not html:
        return None
    blob = parse_next_data(html)
    if label == "page" and blob is None:
        blob = ctx.blob
    found = find_keyword_array(blob, unique=False) if blob is not None else []
    return found or find_keyword_array_in_text(html) or None


async def _from_content_structured(ctx: ExtractionContext) -> Optional[list[str]]:
    if ctx.frame is None:
        return None
    return await _structured(ctx, "frame")


async def _from_page_structured(ctx: ExtractionContext) -> Optional[list[str]]:
    return await _structured(ctx, "page")


async def _chip_texts(handle: ContentHandle) -> list[str]:
    texts = await handle.eval_on_selector_all(
        KEYWORD_CHIP_SELECTOR,
        "els => els.map(el => (el.textContent || '').trim())",
    )
    return [clean_text(t).lstrip("#") for t in texts if len(clean_text(t)) > 1]


async def _from_dom_chips(ctx: ExtractionContext) -> Optional[list[str]]:
    for _, handle in ctx.handles():
        texts = await _chip_texts(handle)
        if texts:
            return texts
    return None


KEYWORD_STRATEGIES = (
    Strategy("content_structured", _from_content_structured),
    Strategy("page_structured", _from_page_structured),
    Strategy("dom_chips", _from_dom_chips),
)


async def extract_keywords(ctx: ExtractionContext) -> tuple[ExtractionResult[list[str]], KeywordSet]:
    result = await run_cascade("keywords", KEYWORD_STRATEGIES, ctx)
    raw = list(result.value or [])
    keywords = finalize_keywords(raw, ctx.heuristics.keyword_cap)
    result.value = keywords
    return result, KeywordSet(keywords=keywords, raw=raw)
