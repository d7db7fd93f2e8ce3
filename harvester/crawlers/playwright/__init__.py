"""Playwright module for the listing crawler."""

from .browser import close_session_context, ensure_shared_browser, new_page, shutdown_shared_browser
from .pages import configure_page
from .provider import PlaywrightPageProvider

__all__ = [
    "ensure_shared_browser",
    "close_session_context",
    "shutdown_shared_browser",
    "new_page",
    "configure_page",
    "PlaywrightPageProvider",
]
