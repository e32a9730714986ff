"""
Extraction context shared by every field extractor of one crawl.

Holds the outer page, the resolved content handle (nested entry frame or the
page itself), the place id and category slug, and caches HTML snapshots so
several extractors can read the same markup without re-serializing the DOM.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page

from placelens.config.industry_schema import ExtractionHeuristics
from placelens.core.exceptions import ContentHandleClosedError
from placelens.core.trace import TraceLog
from placelens.extractors.identifiers import detect_slug
from placelens.extractors.structured_data import parse_next_data

ContentHandle = Union[Page, Frame]


@dataclass
class ExtractionContext:
    page: Page
    place_id: str
    frame: Optional[Frame] = None
    slug: Optional[str] = None
    heuristics: ExtractionHeuristics = field(default_factory=ExtractionHeuristics)
    trace: TraceLog = field(default_factory=TraceLog)
    navigation_timeout_ms: int = 45000
    settle_delay_ms: int = 1200
    blob: Optional[Any] = None
    _html: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    @property
    def handle(self) -> ContentHandle:
        """The content handle: nested frame when one was resolved, otherwise the page."""
        return self.frame if self.frame is not None else self.page

    def handles(self) -> list[tuple[str, ContentHandle]]:
        """(label, handle) pairs to search, content handle first."""
        pairs: list[tuple[str, ContentHandle]] = []
        if self.frame is not None:
            pairs.append(("frame", self.frame))
        pairs.append(("page", self.page))
        return pairs

    def ensure_usable(self) -> None:
        """
        Raises:
            ContentHandleClosedError: If the page closed or the frame detached
        """
        if self.page.is_closed():
            raise ContentHandleClosedError("Page closed during extraction", {"place_id": self.place_id})
        if self.frame is not None and self.frame.is_detached():
            self.trace.miss("context", "content frame detached, using page")
            self.frame = None
            self._html.pop("frame", None)

    async def html(self, label: str = "content", refresh: bool = False) -> str:
        """
        Serialized markup of 'frame', 'page' or 'content' (whichever handle holds content).
        """
        if label == "content":
            label = "frame" if self.frame is not None else "page"
        if label == "frame" and self.frame is None:
            return ""
        if refresh or label not in self._html:
            target = self.frame if label == "frame" else self.page
            self._html[label] = await target.content()
        return self._html[label]

    def invalidate(self) -> None:
        """Drop cached markup after the page navigated or the DOM was expanded."""
        self._html.clear()

    async def goto(self, url: str, settle_ms: Optional[int] = None) -> None:
        """Navigate the outer page to a listing tab and track category-slug redirects."""
        await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        await self.page.wait_for_timeout(self.settle_delay_ms if settle_ms is None else settle_ms)
        self.frame = None
        self.invalidate()
        if self.slug is None:
            redirected = detect_slug(self.page.url)
            if redirected:
                self.slug = redirected
                self.trace.ok("slug", f"category slug from redirect: {redirected}")

    async def load_blob(self) -> Optional[Any]:
        """Parse the outer page's embedded data blob once."""
        if self.blob is None:
            self.blob = parse_next_data(await self.html("page"))
        return self.blob

    async def try_goto(self, url: str, stage: str, settle_ms: Optional[int] = None) -> bool:
        """goto() that records a failed tab navigation in the trace instead of raising."""
        try:
            await self.goto(url, settle_ms)
        except PlaywrightError as e:
            self.ensure_usable()
            self.trace.fail(stage, f"{url}: {str(e).splitlines()[0][:160]}")
            return False
        self.trace.ok(stage, self.page.url)
        return True
