"""Browser automation: shared Chromium lifecycle, context profiles, response sniffing."""

from placelens.browser.response_buffer import BufferedResponse, ResponseBuffer
from placelens.browser.session import (
    MOBILE_PROFILE,
    BrowserManager,
    ContextProfile,
    get_browser_manager,
    new_light_page,
    pick_desktop_user_agent,
    reset_browser_manager,
    shutdown_browser_manager,
    stealth_profile,
)

__all__ = [
    "BrowserManager",
    "BufferedResponse",
    "ContextProfile",
    "MOBILE_PROFILE",
    "ResponseBuffer",
    "get_browser_manager",
    "new_light_page",
    "pick_desktop_user_agent",
    "reset_browser_manager",
    "shutdown_browser_manager",
    "stealth_profile",
]
