"""Display name and address extraction."""

import re
from typing import Optional

from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.structured_data import (
    deep_find_string,
    first_string_value,
    is_banned_name,
    og_title,
)

NAME_SELECTORS = (".Fc1rA", ".GHAhO", "h1", "h2")
ADDRESS_SELECTORS = (".LDgIH", ".IH3UA", "address", 'span[class*="address"]', 'div[class*="address"]')

BLOB_NAME_KEYS = ("name", "placeName", "bizName")
BLOB_ADDRESS_KEYS = ("roadAddress", "address", "addr", "roadAddr")

ADDRESS_PATTERNS = (
    re.compile(r"\"roadAddress\"\s*:\s*\"([^\"]+)\""),
    re.compile(r"\"roadAddr\"\s*:\s*\"([^\"]+)\""),
    re.compile(r"\"address\"\s*:\s*\"([^\"]{5,200})\""),
    re.compile(r"\"addr\"\s*:\s*\"([^\"]{5,200})\""),
)


async def _first_selector_text(ctx: ExtractionContext, selectors: tuple[str, ...]) -> Optional[str]:
    for selector in selectors:
        element = await ctx.handle.query_selector(selector)
        if element is None:
            continue
        text = (await element.text_content() or "").strip()
        if text:
            return re.sub(r"\s+", " ", text)
    return None


# -----------------------------------------------------------------------------
# Name
# -----------------------------------------------------------------------------


async def _name_from_blob(ctx: ExtractionContext) -> Optional[str]:
    if ctx.blob is None:
        return None
    name = deep_find_string(ctx.blob, BLOB_NAME_KEYS)
    return name if name and not is_banned_name(name) else None


async def _name_from_dom(ctx: ExtractionContext) -> Optional[str]:
    name = await _first_selector_text(ctx, NAME_SELECTORS)
    return name if name and not is_banned_name(name) else None


async def _name_from_og_title(ctx: ExtractionContext) -> Optional[str]:
    for label, _ in ctx.handles():
        title = og_title(await ctx.html(label))
        if title and not is_banned_name(title):
            return title
    return None


NAME_STRATEGIES = (
    Strategy("next_data", _name_from_blob),
    Strategy("dom_selector", _name_from_dom),
    Strategy("og_title", _name_from_og_title),
)


async def extract_name(ctx: ExtractionContext) -> ExtractionResult[str]:
    return await run_cascade("name", NAME_STRATEGIES, ctx)


# -----------------------------------------------------------------------------
# Address
# -----------------------------------------------------------------------------


async def _address_from_blob(ctx: ExtractionContext) -> Optional[str]:
    if ctx.blob is None:
        return None
    address = deep_find_string(ctx.blob, BLOB_ADDRESS_KEYS)
    return address.replace("\n", " ") if address else None


async def _address_from_dom(ctx: ExtractionContext) -> Optional[str]:
    return await _first_selector_text(ctx, ADDRESS_SELECTORS)


async def _address_from_html(ctx: ExtractionContext) -> Optional[str]:
    for label, _ in ctx.handles():
        address = first_string_value(await ctx.html(label), ADDRESS_PATTERNS)
        if address:
            return address
    return None


ADDRESS_STRATEGIES = (
    Strategy("next_data", _address_from_blob),
    Strategy("dom_selector", _address_from_dom),
    Strategy("html_regex", _address_from_html),
)


async def extract_address(ctx: ExtractionContext) -> ExtractionResult[str]:
    return await run_cascade("address", ADDRESS_STRATEGIES, ctx)
