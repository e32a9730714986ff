"""
Process-wide browser lifecycle.

One Chromium instance is launched lazily on first use and shared by every
request. Call sites never touch the browser directly: they acquire an isolated
context (own cookies, viewport and user agent) through `isolated_context()`,
which closes the context on every exit path.

Usage:
    manager = get_browser_manager()
    async with manager.isolated_context(profile=MOBILE_PROFILE) as context:
        page = await context.new_page()
        ...
    await shutdown_browser_manager()
"""

import asyncio
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from placelens.config.settings import get_settings

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

ACCEPT_LANGUAGE = "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7"

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 13; SM-G991N) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Mobile Safari/537.36"
)

DESKTOP_USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
)

HIDE_WEBDRIVER_SCRIPT = """
try {
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
} catch (e) {}
"""

BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})


def pick_desktop_user_agent() -> str:
    return random.choice(DESKTOP_USER_AGENTS)


@dataclass(frozen=True)
class ContextProfile:
    """Fingerprint of an isolated browsing context."""

    user_agent: Optional[str] = MOBILE_USER_AGENT
    viewport: tuple[int, int] = (390, 844)
    locale: str = "ko-KR"
    referer: Optional[str] = None
    hide_webdriver: bool = False
    extra_headers: dict[str, str] = field(default_factory=dict)

    def context_options(self) -> dict:
        headers = {"accept-language": ACCEPT_LANGUAGE, **self.extra_headers}
        if self.referer:
            headers["referer"] = self.referer
        width, height = self.viewport
        return {
            "user_agent": self.user_agent or pick_desktop_user_agent(),
            "viewport": {"width": width, "height": height},
            "locale": self.locale,
            "extra_http_headers": headers,
        }


MOBILE_PROFILE = ContextProfile()


def stealth_profile(referer: str) -> ContextProfile:
    """Randomized desktop UA, mobile viewport, organic referer, webdriver flag hidden."""
    return ContextProfile(user_agent=None, referer=referer, hide_webdriver=True)


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


async def new_light_page(context: BrowserContext, timeout_ms: int) -> Page:
    """Page that skips images, fonts and media."""
    page = await context.new_page()
    page.set_default_timeout(max(1000, timeout_ms))
    await page.route("**/*", _block_heavy_resources)
    return page


class BrowserManager:
    """Owns the Playwright driver and the shared Chromium process."""

    def __init__(self, headless: Optional[bool] = None):
        self.headless = get_settings().browser_headless if headless is None else headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def get_browser(self) -> Browser:
        """Launch Chromium on first use; relaunch if it disconnected."""
        async with self._lock:
            if self.is_running:
                return self._browser
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=LAUNCH_ARGS,
            )
            logger.info("browser_launched", headless=self.headless)
            return self._browser

    @asynccontextmanager
    async def isolated_context(self, profile: ContextProfile = MOBILE_PROFILE) -> AsyncIterator[BrowserContext]:
        """Yield a fresh browser context and close it however the block exits."""
        browser = await self.get_browser()
        context = await browser.new_context(**profile.context_options())
        if profile.hide_webdriver:
            await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
        try:
            yield context
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning("context_close_failed", error=str(e))

    async def shutdown(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.warning("browser_close_failed", error=str(e))
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_shutdown")


# =============================================================================
# Singleton
# =============================================================================

_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get or create the process-wide browser manager."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager


async def shutdown_browser_manager() -> None:
    global _browser_manager
    if _browser_manager is not None:
        await _browser_manager.shutdown()
        _browser_manager = None


def reset_browser_manager() -> None:
    """Drop the singleton without closing it (for testing)."""
    global _browser_manager
    _browser_manager = None
