"""
Navigation and frame resolution.

The target site often serves a shell page whose content lives in a nested
`iframe#entryIframe`, sometimes inlines a __NEXT_DATA__ blob instead, and
sometimes needs a hop to the /home sibling path before either appears. The
resolver walks an ordered policy list of frame-discovery steps and records
every step in the trace.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from placelens.core.exceptions import NavigationError, NavigationTimeoutError, NoContentHandleError
from placelens.core.trace import TraceLog
from placelens.extractors.identifiers import (
    canonical_mobile_url,
    detect_slug,
    extract_place_id,
    is_shell_url,
    is_short_link,
    tab_url,
)
from placelens.extractors.structured_data import parse_next_data

logger = structlog.get_logger(__name__)

ENTRY_FRAME_SELECTOR = 'iframe#entryIframe, iframe[name="entryIframe"]'
ENTRY_MARKER = "entry"
OUTER_PAGE = "outer_page"
MIN_USABLE_HTML = 500


@dataclass
class Resolution:
    """Outcome of frame resolution for one place."""

    place_id: str
    url: str
    frame: Optional[Frame]
    strategy: str
    slug: Optional[str] = None
    blob: Optional[Any] = None

    @property
    def uses_frame(self) -> bool:
        return self.frame is not None


@dataclass(frozen=True)
class FrameStep:
    name: str
    run: Callable[["FrameResolver", Page, str, TraceLog], Awaitable[Optional[Frame]]]


class FrameResolver:
    """
    Turn caller input into (place id, content handle, trace).

    Args:
        page: Page from an isolated browser context, owned by the caller
        navigation_timeout_ms: Timeout for each page.goto
        frame_wait_timeout_ms: How long to wait for the entry frame element
        settle_delay_ms: Pause after navigation for client-side rendering
    """

    def __init__(
        self,
        page: Page,
        navigation_timeout_ms: int = 45000,
        frame_wait_timeout_ms: int = 8000,
        settle_delay_ms: int = 1200,
    ):
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self.frame_wait_timeout_ms = frame_wait_timeout_ms
        self.settle_delay_ms = settle_delay_ms

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    async def goto(self, url: str, trace: TraceLog, stage: str = "goto") -> None:
        """
        Raises:
            NavigationTimeoutError: If the navigation timed out
            NavigationError: If the page could not be loaded at all
        """
        try:
            response = await self.page.goto(
                url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms
            )
        except PlaywrightTimeoutError as e:
            trace.fail(stage, f"timeout loading {url}")
            raise NavigationTimeoutError(
                f"Timed out loading {url}", trace=trace.lines(), details={"url": url}
            ) from e
        except PlaywrightError as e:
            trace.fail(stage, str(e).splitlines()[0][:160])
            raise NavigationError(
                f"Failed to load {url}", trace=trace.lines(), details={"url": url, "error": str(e)[:300]}
            ) from e

        status = response.status if response is not None else None
        if status is not None and status >= 500:
            trace.fail(stage, f"HTTP {status} for {url}")
            raise NavigationError(
                f"Target site returned HTTP {status}", trace=trace.lines(), details={"url": url, "status": status}
            )

        await self.page.wait_for_timeout(self.settle_delay_ms)
        trace.ok(stage, f"{status or '-'} {self.page.url}")

    async def identify(self, raw_input: str, trace: TraceLog) -> str:
        """
        Extract the place id, following short links through the browser when needed.

        Raises:
            InvalidIdentifierError: If no identifier can be found
        """
        if is_short_link(raw_input):
            await self.goto(raw_input.strip(), trace, stage="short_link")
            place_id = extract_place_id(self.page.url)
        else:
            place_id = extract_place_id(raw_input)
        trace.ok("identify", place_id)
        return place_id

    # -------------------------------------------------------------------------
    # Frame discovery steps
    # -------------------------------------------------------------------------

    async def _wait_entry_selector(self, page: Page, place_id: str, trace: TraceLog) -> Optional[Frame]:
        try:
            element = await page.wait_for_selector(
                ENTRY_FRAME_SELECTOR, timeout=self.frame_wait_timeout_ms, state="attached"
            )
        except PlaywrightError:
            return None
        if element is None:
            return None
        return await element.content_frame()

    async def _scan_frames(self, page: Page, place_id: str, trace: TraceLog) -> Optional[Frame]:
        for frame in page.frames:
            if frame is page.main_frame:
                continue
            if ENTRY_MARKER in (frame.url or "") or ENTRY_MARKER in (frame.name or ""):
                return frame
        return None

    async def _shell_home_retry(self, page: Page, place_id: str, trace: TraceLog) -> Optional[Frame]:
        if not is_shell_url(page.url, place_id):
            trace.miss("frame.shell_home", "not a shell path")
            return None
        await self.goto(tab_url(place_id, "home"), trace, stage="goto_home")
        return await self._wait_entry_selector(page, place_id, trace) or await self._scan_frames(
            page, place_id, trace
        )

    FRAME_POLICY: tuple[FrameStep, ...] = ()

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def resolve(self, raw_input: str, trace: Optional[TraceLog] = None) -> Resolution:
        """
        Resolve caller input to a content handle.

        Raises:
            InvalidIdentifierError: If the input carries no place identifier
            NavigationError: If the target site could not be loaded
            NoContentHandleError: If neither a frame nor a usable outer page was found
        """
        trace = trace if trace is not None else TraceLog()
        place_id = await self.identify(raw_input, trace)
        url = canonical_mobile_url(place_id)
        await self.goto(url, trace)

        for step in self.FRAME_POLICY:
            frame = await step.run(self, self.page, place_id, trace)
            if frame is not None:
                trace.ok(f"frame.{step.name}", frame.url or frame.name or "")
                return Resolution(
                    place_id=place_id,
                    url=self.page.url,
                    frame=frame,
                    strategy=step.name,
                    slug=detect_slug(self.page.url),
                )
            trace.miss(f"frame.{step.name}")

        html = await self.page.content()
        blob = parse_next_data(html)
        if blob is not None:
            trace.ok("frame.next_data", "embedded data blob on outer page")
        elif len(html) < MIN_USABLE_HTML:
            trace.fail("frame.outer_page", f"outer page too small ({len(html)} bytes)")
            raise NoContentHandleError(place_id, trace.lines())
        else:
            trace.ok(f"frame.{OUTER_PAGE}", "using outer page as content handle")

        logger.info("frame_resolution_fell_back", place_id=place_id, has_blob=blob is not None)
        return Resolution(
            place_id=place_id,
            url=self.page.url,
            frame=None,
            strategy=OUTER_PAGE,
            slug=detect_slug(self.page.url),
            blob=blob,
        )


FrameResolver.FRAME_POLICY = (
    FrameStep("entry_selector", FrameResolver._wait_entry_selector),
    FrameStep("frame_scan", FrameResolver._scan_frames),
    FrameStep("shell_home", FrameResolver._shell_home_retry),
)
