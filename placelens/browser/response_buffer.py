"""
Bounded buffer of network responses seen while a page loads.

The response callback only collects; decisions are made after navigation
settles by reading `bodies()`. Capacity is fixed, oldest entries fall out
first, and the listener is always detached when the `attached()` block exits.
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

logger = structlog.get_logger(__name__)

SNIFFED_RESOURCE_TYPES = frozenset({"xhr", "fetch", "script"})


@dataclass(frozen=True)
class BufferedResponse:
    url: str
    content_type: str
    status: int
    body: str


class ResponseBuffer:
    """
    Args:
        capacity: Maximum number of bodies kept (FIFO)
        url_filter: Cheap pre-filter on the lowercased response URL
        body_filter: Filter on (content_type, body) applied after reading the body
        resource_types: Request resource types worth reading; None accepts all
    """

    def __init__(
        self,
        capacity: int = 60,
        url_filter: Optional[Callable[[str], bool]] = None,
        body_filter: Optional[Callable[[str, str], bool]] = None,
        resource_types: Optional[frozenset[str]] = SNIFFED_RESOURCE_TYPES,
    ):
        self.capacity = capacity
        self.url_filter = url_filter
        self.body_filter = body_filter
        self.resource_types = resource_types
        self._entries: deque[BufferedResponse] = deque(maxlen=capacity)
        self._pending: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._entries)

    def _on_response(self, response: Response) -> None:
        task = asyncio.ensure_future(self.collect(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def collect(self, response: Response) -> None:
        try:
            if self.resource_types is not None and response.request.resource_type not in self.resource_types:
                return
            url = response.url
            if self.url_filter is not None and not self.url_filter(url.lower()):
                return
            status = response.status
            if status < 200 or status >= 400:
                return
            content_type = (response.headers.get("content-type") or "").lower()
            body = await response.text()
        except PlaywrightError:
            # Body unavailable (redirect, evicted, page closed)
            return
        if not body:
            return
        if self.body_filter is not None and not self.body_filter(content_type, body):
            return
        self._entries.append(BufferedResponse(url, content_type, status, body))

    async def drain(self, timeout: float = 2.0) -> None:
        """Wait briefly for in-flight body reads started by the callback."""
        if not self._pending:
            return
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in pending:
            task.cancel()

    def entries(self) -> list[BufferedResponse]:
        return list(self._entries)

    def bodies(self) -> list[str]:
        return [entry.body for entry in self._entries]

    @asynccontextmanager
    async def attached(self, page: Page) -> AsyncIterator["ResponseBuffer"]:
        page.on("response", self._on_response)
        try:
            yield self
        finally:
            page.remove_listener("response", self._on_response)
            await self.drain()
            logger.debug("response_buffer_detached", kept=len(self._entries))
