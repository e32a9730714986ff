"""Click "더보기"-style expanders so collapsed intro and hours text is in the DOM."""

from playwright.async_api import Error as PlaywrightError

from placelens.core.trace import TraceLog
from placelens.extractors.context import ContentHandle, ExtractionContext

EXPANDER_TEXTS = (
    "정보 더보기",
    "더보기",
    "펼치기",
    "상세정보",
    "소개 더보기",
    "영업시간 더보기",
)
_CLICKABLE = 'button, a, div[role="button"]'
_ARIA_EXPANDER = (
    'button[aria-label*="더보기"], a[aria-label*="더보기"], div[role="button"][aria-label*="더보기"]'
)
CLICK_TIMEOUT_MS = 1500


async def click_once(handle: ContentHandle) -> bool:
    """Click the first visible expander; True if something was clicked."""
    locators = [handle.locator(_CLICKABLE, has_text=text).first for text in EXPANDER_TEXTS]
    locators.append(handle.locator(_ARIA_EXPANDER).first)

    for locator in locators:
        try:
            if not await locator.count():
                continue
            await locator.scroll_into_view_if_needed(timeout=CLICK_TIMEOUT_MS)
            await locator.click(timeout=CLICK_TIMEOUT_MS)
            return True
        except PlaywrightError:
            continue
    return False


async def expand_handle(handle: ContentHandle, label: str, trace: TraceLog, rounds: int, interval_ms: int) -> int:
    clicks = 0
    for _ in range(rounds):
        if not await click_once(handle):
            break
        clicks += 1
        await handle.wait_for_timeout(interval_ms)
    trace.add(f"expand.{label}", "ok" if clicks else "miss", f"{clicks} expander(s) clicked")
    return clicks


async def expand_all(ctx: ExtractionContext, rounds: int = 6, interval_ms: int = 700) -> int:
    """Expand on the outer page, then inside the content frame if there is one."""
    targets = [("page", ctx.page)]
    if ctx.frame is not None:
        targets.append(("frame", ctx.frame))

    total = 0
    for label, handle in targets:
        try:
            total += await expand_handle(handle, label, ctx.trace, rounds, interval_ms)
        except PlaywrightError as e:
            ctx.trace.fail(f"expand.{label}", str(e).splitlines()[0][:160])
    ctx.invalidate()
    return total
