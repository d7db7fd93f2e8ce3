"""Page setup - resource blocking and default timeout."""

from __future__ import annotations

from playwright.async_api import Page, Request, Route

from harvester.core.config import settings

BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font"})
BLOCKED_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".woff", ".woff2", ".ttf", ".mp4")


def should_block(resource_type: str, url: str) -> bool:
    if resource_type in BLOCKED_RESOURCE_TYPES:
        return True
    path = (url or "").lower().split("?", 1)[0]
    return path.endswith(BLOCKED_EXTENSIONS)


async def configure_page(page: Page) -> Page:
    page.set_default_timeout(settings.crawler_timeout)

    async def _route_handler(route: Route, request: Request) -> None:
        if should_block(request.resource_type, request.url):
            await route.abort()
        else:
            await route.continue_()

    await page.route("**/*", _route_handler)
    return page
