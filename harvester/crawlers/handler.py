"""Page handler - routes a work item to the engine by its label

Label -> handling:
    INITIAL                   capture the detail query id, load start requests
    SEARCH, QUERY, PAGINATION discovery orchestrator over a search page
    ZPIDS, ENRICHED_ZPIDS     detail extraction pipeline over a batch
    DETAIL, LEGACY_DETAIL     preloaded detail payload, or legacy redirect
"""

from __future__ import annotations

from typing import Any, AsyncContextManager, Awaitable, Callable, Optional, Protocol

from harvester.core.exceptions import (
    BlockedException,
    CrawlerException,
    LegacyLayoutException,
    MissingPreloadedDataException,
)
from harvester.core.logging import logger
from harvester.engine.context import HarvestContext
from harvester.engine.extractor import DetailExtractionPipeline
from harvester.engine.interfaces import DetailFetcher, RequestQueue, SearchPage
from harvester.engine.orchestrator import DiscoveryOrchestrator
from harvester.engine.query_state import SearchRegion
from harvester.engine.result import DiscoveryOutcome, ExtractionStatus
from harvester.engine.transform import OutputTransform, TransformContext
from harvester.schemas.labels import Label
from harvester.utils.url_utils import clean_up_url, detail_url, is_valid_identifier

from .parsing import has_preloaded_scripts, parse_api_cache_properties, parse_next_data_building_zpid
from .queue import HarvestRequest
from .session import Session


class PageProvider(Protocol):
    """Opens the pages a work item needs (Playwright in production)."""

    async def capture_query_id(self, request: HarvestRequest, session: Session) -> None:
        ...

    def search_page(self, request: HarvestRequest, session: Session) -> AsyncContextManager[SearchPage]:
        ...

    def detail_fetcher(self, request: HarvestRequest, session: Session) -> AsyncContextManager[DetailFetcher]:
        ...

    async def load_document(self, request: HarvestRequest, session: Session) -> tuple[str, str]:
        ...


def region_from_request(request: HarvestRequest) -> SearchRegion:
    """Region a region-level work item describes

    Follow-ups carry their state in user data; start URLs and zipcode queries
    only have the URL.
    """
    data = request.user_data
    split_count = int(data.get("split_count") or 0)
    page_number = data.get("page_number")

    state = data.get("search_query_state")
    if state is None:
        _, state = clean_up_url(request.url)

    return SearchRegion(
        state or {},
        page=page_number,
        split_depth=split_count,
        explicit_bounds=split_count > 0 and not page_number,
    )


class PageHandler:
    """Dispatches one work item

    Usage:
        handler = PageHandler(context, queue, transform, pages, load_start)
        await handler.handle(request, session)
    """

    def __init__(
        self,
        context: HarvestContext,
        queue: RequestQueue,
        transform: OutputTransform,
        pages: PageProvider,
        load_start_requests: Callable[[], Awaitable[int]],
    ):
        self.context = context
        self.queue = queue
        self.transform = transform
        self.pages = pages
        self.load_start_requests = load_start_requests

    async def handle(self, request: HarvestRequest, session: Session) -> Any:
        try:
            label = Label(request.label)
        except ValueError:
            request.no_retry = True
            raise CrawlerException(f"Unknown label: {request.label!r}", "UNKNOWN_LABEL")

        if label is not Label.INITIAL and self.context.is_over_budget():
            logger.debug(f"[HANDLER] Budget reached, skipping {label.value} {request.url}")
            return None

        if label is Label.INITIAL:
            return await self.handle_initial(request, session)
        if label in Label.region_labels():
            return await self.handle_region(request, session, label)
        if label in Label.batch_labels():
            return await self.handle_batch(request, session)
        return await self.handle_detail(request, session)

    async def handle_initial(self, request: HarvestRequest, session: Session) -> int:
        try:
            await self.pages.capture_query_id(request, session)
        except Exception:
            session.retire()
            raise
        return await self.load_start_requests()

    async def handle_region(self, request: HarvestRequest, session: Session, label: Label) -> Optional[DiscoveryOutcome]:
        region = region_from_request(request)
        ignore_filter = bool(request.user_data.get("ignore_filter"))

        try:
            async with self.pages.search_page(request, session) as page:
                orchestrator = DiscoveryOrchestrator(self.context, self.queue, session)
                return await orchestrator.discover(region, page, ignore_filter=ignore_filter)
        except Exception as e:
            session.retire()
            logger.debug(f"[HANDLER] Region handling failed: {type(e).__name__}: {e}")

            if label is Label.SEARCH:
                raise CrawlerException("Retrying search", "SEARCH_RETRY", {"reason": str(e)}) from e

            if "Unexpected" in str(e):
                raise BlockedException("Request blocked, retrying...") from e

            raise

    async def handle_batch(self, request: HarvestRequest, session: Session) -> Optional[dict[ExtractionStatus, int]]:
        zpids = request.user_data.get("zpids") or []
        if not zpids:
            logger.debug("[HANDLER] zpids user data is empty")
            return None

        async with self.pages.detail_fetcher(request, session) as fetcher:
            pipeline = DetailExtractionPipeline(self.context, self.queue, session, fetcher, self.transform)
            return await pipeline.extract_many(
                zpids,
                ignore_filter=bool(request.user_data.get("ignore_filter")),
            )

    async def handle_detail(self, request: HarvestRequest, session: Session) -> Optional[dict]:
        url, html = await self.pages.load_document(request, session)
        logger.debug(f"[DETAIL] Scraping {url}")
        zpid = request.user_data.get("zpid")

        if "/b/" in url or not is_valid_identifier(zpid):
            await self._resolve_legacy(request, url, html)
            return None

        if not has_preloaded_scripts(html):
            session.retire()
            raise MissingPreloadedDataException(url)

        prop = parse_api_cache_properties(html)
        if prop is None:
            raise MissingPreloadedDataException(url)

        logger.info(f"[DETAIL] Extracting data from {url}")
        return await self.transform.process(
            prop,
            TransformContext(
                raw=prop,
                zpid=str(zpid),
                ignore_filter=bool(request.user_data.get("ignore_filter")),
                url=url,
            ),
        )

    async def _resolve_legacy(self, request: HarvestRequest, url: str, html: str) -> None:
        """Building pages carry the real listing id; re-enqueue it as a detail."""
        zpid = parse_next_data_building_zpid(html)

        if zpid:
            target = detail_url(zpid)
            result = await self.queue.enqueue(
                target,
                zpid,
                {"label": Label.DETAIL.value, "zpid": zpid},
                forefront=True,
            )
            if not result.was_already_present:
                logger.info(f"[DETAIL] Re-enqueueing {target}")
            return

        request.no_retry = True
        raise LegacyLayoutException(url)
