"""Page provider - opens the Playwright pages each work item needs"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from urllib.parse import urljoin

from harvester.core.config import settings
from harvester.core.logging import logger
from harvester.schemas.labels import Label

from ..queue import HarvestRequest
from ..session import Session
from .browser import close_session_context, new_page
from .detail import PlaywrightDetailFetcher, QueryId, intercept_query_id
from .search import PlaywrightSearchPage, wait_for_search_page_to_load


class PlaywrightPageProvider:
    """Pages bound to the session's browser context

    Holds the detail query id once captured. The initial request captures it;
    a run resumed from a persisted queue may never see that request, so the
    first detail fetch captures it instead.
    """

    def __init__(self) -> None:
        self.query: Optional[QueryId] = None
        self._query_lock = asyncio.Lock()

    async def capture_query_id(self, request: HarvestRequest, session: Session) -> None:
        await self._capture(request.url, session)

    async def _capture(self, url: str, session: Session) -> QueryId:
        async with self._query_lock:
            if self.query is not None:
                return self.query

            page = await new_page(session.id, session.proxy_url)
            try:
                logger.info("[Playwright] Trying to get queryId...")
                self.query = await intercept_query_id(page, url)
                logger.info("[Playwright] Got queryId, continuing...")
            finally:
                await page.close()
            return self.query

    async def release_session(self, session: Session) -> None:
        """Close the browser context of a discarded session."""
        await close_session_context(session.id)

    @asynccontextmanager
    async def search_page(self, request: HarvestRequest, session: Session) -> AsyncIterator[PlaywrightSearchPage]:
        page = await new_page(session.id, session.proxy_url)
        search = PlaywrightSearchPage(page)
        try:
            if request.label == Label.SEARCH.value:
                term = request.user_data.get("term", "")
                logger.info(f'[SEARCH] Searching for "{term}"')
                await page.goto(settings.site_origin, wait_until="domcontentloaded")
                await wait_for_search_page_to_load(page, term, session)
            else:
                await page.goto(request.url, wait_until="domcontentloaded")
            yield search
        finally:
            await search.close()

    @asynccontextmanager
    async def detail_fetcher(self, request: HarvestRequest, session: Session) -> AsyncIterator[PlaywrightDetailFetcher]:
        query = self.query
        if query is None:
            query = await self._capture(urljoin(settings.site_origin, settings.query_id_page_path), session)

        page = await new_page(session.id, session.proxy_url)
        try:
            await page.goto(request.url, wait_until="domcontentloaded")
            yield PlaywrightDetailFetcher(page, query)
        finally:
            await page.close()

    async def load_document(self, request: HarvestRequest, session: Session) -> tuple[str, str]:
        """Final URL and rendered HTML of a page."""
        page = await new_page(session.id, session.proxy_url)
        try:
            await page.goto(request.url, wait_until="domcontentloaded")
            return page.url, await page.content()
        finally:
            await page.close()
