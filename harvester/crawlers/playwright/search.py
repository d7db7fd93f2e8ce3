"""Search page driver (Playwright)

Implements the engine's SearchPage protocol on a live page: the search
endpoint response is awaited from the moment the wrapper is created, the
rendered snapshot is read from the page HTML, and extra query states are
fetched from inside the page so they carry its cookies.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from playwright.async_api import Page, Response, TimeoutError as PlaywrightTimeoutError

from harvester.core.config import settings
from harvester.core.exceptions import BlockedException, NetworkTimeoutException
from harvester.core.logging import logger
from harvester.engine.interfaces import Session

from ..parsing import has_captcha, has_interstitial, parse_search_page_store

SEARCH_ENDPOINT = "/search/GetSearchPageState.htm"
SEARCH_BOX = "#search-box-input"
SEARCH_BUTTON = "button#search-icon"

_FETCH_SEARCH_STATE_JS = """
async ({ endpoint, queryState }) => {
    const params = new URLSearchParams({
        searchQueryState: JSON.stringify(queryState),
        wants: JSON.stringify({ cat1: ['listResults', 'mapResults'], cat2: ['total'] }),
        requestId: String(Math.floor(Math.random() * 10) + 2),
    });
    const response = await fetch(`${endpoint}?${params.toString()}`, {
        credentials: 'include',
        headers: { accept: '*/*' },
    });
    if (!response.ok) {
        throw new Error(`search endpoint answered ${response.status}`);
    }
    return response.json();
}
"""


class PlaywrightSearchPage:
    """SearchPage over a Playwright page

    Create it before navigating: the response listener must already be in
    place when the page issues its first search request.
    """

    def __init__(self, page: Page, response_timeout: Optional[float] = None):
        self.page = page
        self.response_timeout = response_timeout or settings.search_response_timeout_s
        self._response_task: asyncio.Task = asyncio.create_task(self._capture_response())

    @property
    def url(self) -> str:
        return self.page.url

    async def _capture_response(self) -> Optional[dict[str, Any]]:
        try:
            response: Response = await self.page.wait_for_event(
                "response",
                predicate=lambda r: SEARCH_ENDPOINT in r.url,
                timeout=self.response_timeout * 1000,
            )
            params = parse_qs(urlparse(response.request.url).query)
            raw_state = (params.get("searchQueryState") or ["{}"])[0]
            return {
                "result": await response.json(),
                "search_query_state": json.loads(raw_state),
            }
        except Exception as e:
            logger.debug(f"[SEARCH] No search response captured: {type(e).__name__}: {e}")
            return None

    async def wait_for_search_response(self, timeout: float) -> Optional[dict[str, Any]]:
        try:
            return await asyncio.wait_for(asyncio.shield(self._response_task), timeout)
        except asyncio.TimeoutError:
            return None

    async def read_search_snapshot(self) -> Optional[dict[str, Any]]:
        store = parse_search_page_store(await self.page.content())
        return store or None

    async def fetch_search_state(self, query_state: dict[str, Any]) -> Optional[dict[str, Any]]:
        return await self.page.evaluate(
            _FETCH_SEARCH_STATE_JS,
            {"endpoint": SEARCH_ENDPOINT, "queryState": query_state},
        )

    async def close(self) -> None:
        if not self._response_task.done():
            self._response_task.cancel()
        try:
            await self.page.close()
        except Exception as e:
            logger.debug(f"[SEARCH] Ignoring error while closing page: {type(e).__name__}")


def is_expected_search_url(url: str) -> bool:
    """After a search-box search the page must land on a results page."""
    if "searchQueryState" in url:
        return True
    if not re.search(r"(/homes/|_rb)", url):
        return False
    return "/_rb/" not in url and "_zpid" not in url


async def check_for_captcha(page: Page, session: Session) -> None:
    if has_captcha(await page.content()):
        session.retire()
        raise BlockedException("Captcha found when searching, retrying...")


async def wait_for_search_page_to_load(page: Page, term: str, session: Session) -> None:
    """Run a free-text search through the search box

    Raises:
        BlockedException: no redirect, unexpected landing page or captcha
        NetworkTimeoutException: the interstitial did not redirect in time
    """
    await asyncio.gather(page.wait_for_selector(SEARCH_BOX), page.wait_for_selector(SEARCH_BUTTON))

    await page.focus(SEARCH_BOX)
    await page.type(SEARCH_BOX, term, delay=150)

    try:
        async with page.expect_navigation(timeout=10000):
            await page.click(SEARCH_BUTTON)
    except PlaywrightTimeoutError as e:
        logger.debug(f"[SEARCH] Search did not navigate: {e}")

        if not has_interstitial(await page.content()):
            session.retire()
            raise BlockedException("Search didn't redirect, retrying...")

        try:
            async with page.expect_navigation(timeout=25000):
                await page.click('button:has-text("Skip")')
        except PlaywrightTimeoutError:
            raise NetworkTimeoutException("interstitial redirect", 25.0)

    if not is_expected_search_url(page.url):
        session.retire()
        raise BlockedException(
            f"Unexpected page address {page.url}, use a better keyword for searching "
            f"or proper state or city name. Will retry..."
        )

    await check_for_captcha(page, session)
