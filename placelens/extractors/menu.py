"""
Menu / price extraction from the price tab.

Structured menu arrays are preferred; rendered line candidates are the
fallback. Items are deduplicated by (name, price text) and capped.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.identifiers import tab_url
from placelens.extractors.structured_data import iter_dicts, parse_next_data, safe_json_parse
from placelens.models.schemas import MenuItem

MENU_ARRAY_KEYS = ("menuList", "priceList", "menus", "items")
NAME_KEYS = ("name", "menuName", "title")
PRICE_KEYS = ("price", "priceText", "amount")
DESC_KEYS = ("description", "desc")
MAX_NAME_LENGTH = 40

PRICE_LIKE = re.compile(r"\d[\d,]*\s*원|₩\s*\d")
INQUIRY_LIKE = re.compile(r"문의|변동|상담|시세")

MENU_BLOCKS_SCRIPT = """
() => {
  const out = [];
  const nodes = Array.from(document.querySelectorAll('li, [class*="menu"] > div, [class*="price"] > div'));
  for (const el of nodes) {
    const text = String(el.innerText || '').trim();
    if (!text || text.length > 400) continue;
    out.push(text);
    if (out.length >= 400) break;
  }
  return out;
}
"""


@dataclass
class MenuScan:
    items: list[MenuItem]
    total: int


def _first_text(item: dict, keys: tuple[str, ...]) -> str:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return str(value).strip()
    return ""


def is_plausible_name(name: str) -> bool:
    return bool(name) and not name.replace(",", "").isdigit() and len(name) <= MAX_NAME_LENGTH


def dedupe_items(items: list[MenuItem]) -> list[MenuItem]:
    seen = set()
    out = []
    for item in items:
        key = (item.name, item.price_text)
        if key in seen or not is_plausible_name(item.name):
            continue
        seen.add(key)
        out.append(item)
    return out


def items_from_array(values: list[Any]) -> list[MenuItem]:
    items = []
    for value in values:
        if not isinstance(value, dict):
            continue
        name = _first_text(value, NAME_KEYS)
        if not name:
            continue
        items.append(
            MenuItem(
                name=name,
                price_text=_first_text(value, PRICE_KEYS),
                description=_first_text(value, DESC_KEYS) or None,
            )
        )
    return items


def menu_from_structured(data: Any) -> Optional[list[MenuItem]]:
    """
    Longest menu array anywhere in the data.

    Returns [] when a menu key is present but every such array is empty
    (a confirmed-empty menu), None when no menu key exists.
    """
    best: Optional[list[MenuItem]] = None
    for mapping in iter_dicts(data):
        for key in MENU_ARRAY_KEYS:
            values = mapping.get(key)
            if not isinstance(values, list):
                continue
            items = items_from_array(values)
            if best is None or len(items) > len(best):
                best = items
    return best


def menu_from_raw_arrays(html: str) -> Optional[list[MenuItem]]:
    """Regex fallback for menu arrays outside a parseable blob."""
    best: Optional[list[MenuItem]] = None
    for key in MENU_ARRAY_KEYS:
        for match in re.finditer(r"\"%s\"\s*:\s*(\[[\s\S]*?\])" % key, html or ""):
            parsed = safe_json_parse(match.group(1))
            if isinstance(parsed, list):
                items = items_from_array(parsed)
                if items and (best is None or len(items) > len(best)):
                    best = items
    return best


def item_from_block(text: str) -> Optional[MenuItem]:
    """Split a rendered block: name = first line, price = first price/inquiry line, rest = description."""
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        return None
    price_index = next(
        (i for i, line in enumerate(lines[1:], start=1) if PRICE_LIKE.search(line) or INQUIRY_LIKE.search(line)),
        None,
    )
    if price_index is None:
        return None
    rest = [line for i, line in enumerate(lines[1:], start=1) if i != price_index]
    return MenuItem(name=lines[0], price_text=lines[price_index], description=" ".join(rest) or None)


def structured_menu(html: str) -> Optional[list[MenuItem]]:
    """Menu items from the embedded blob or raw arrays; [] when the menu is declared empty."""
    blob = parse_next_data(html)
    items = menu_from_structured(blob) if blob is not None else None
    if not items:
        items = menu_from_raw_arrays(html) or items
    if items:
        return dedupe_items(items) or None
    return items


async def _rendered_blocks(ctx: ExtractionContext) -> Optional[list[MenuItem]]:
    blocks = await ctx.page.evaluate(MENU_BLOCKS_SCRIPT)
    items = [item for item in (item_from_block(block) for block in blocks) if item]
    return dedupe_items(items) or None


async def extract_menu(ctx: ExtractionContext) -> ExtractionResult[MenuScan]:
    """
    Navigate to the price tab and extract menu items.

    The result value is None when the menu could not be measured, and a
    MenuScan with total 0 when the listing declares an empty menu.
    """
    result: ExtractionResult[MenuScan] = ExtractionResult(field="menu")
    if not await ctx.try_goto(tab_url(ctx.place_id, "price", ctx.slug), "menu.goto_price", settle_ms=2000):
        return result

    declared_empty = False

    async def structured(c: ExtractionContext) -> Optional[list[MenuItem]]:
        nonlocal declared_empty
        items = structured_menu(await c.html("page"))
        declared_empty = items == []
        return items or None

    found = await run_cascade(
        "menu",
        (Strategy("structured", structured), Strategy("rendered_blocks", _rendered_blocks)),
        ctx,
    )
    result.log = found.log
    cap = ctx.heuristics.menu_cap

    if found.value:
        result.value = MenuScan(items=found.value[:cap], total=len(found.value))
        result.strategy = found.strategy
    elif declared_empty:
        result.value = MenuScan(items=[], total=0)
        result.strategy = "structured_empty"
    return result
