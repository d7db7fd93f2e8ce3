"""Page handler routing tests (fake page provider, no browser)"""
import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from conftest import BOUNDS, FakeFetcher, FakeQueue, FakeSearchPage, FakeSession, ListSink, make_context, search_payload

from harvester.core.exceptions import (
    BlockedException,
    CrawlerException,
    LegacyLayoutException,
    MissingPreloadedDataException,
)
from harvester.crawlers.handler import PageHandler, region_from_request
from harvester.crawlers.queue import HarvestRequest
from harvester.engine.result import DiscoveryOutcome, ExtractionStatus
from harvester.engine.transform import OutputTransform


class FakeProvider:
    def __init__(self, page=None, fetcher=None, document=("", ""), capture_error=None):
        self.page = page or FakeSearchPage()
        self.fetcher = fetcher or FakeFetcher()
        self.document = document
        self.capture_error = capture_error
        self.captured = 0

    async def capture_query_id(self, request, session):
        self.captured += 1
        if self.capture_error:
            raise self.capture_error

    @asynccontextmanager
    async def search_page(self, request, session):
        yield self.page

    @asynccontextmanager
    async def detail_fetcher(self, request, session):
        yield self.fetcher

    async def load_document(self, request, session):
        return self.document


def build(provider=None, context=None, load_start=None):
    context = context or make_context()
    queue = FakeQueue()
    sink = ListSink()
    handler = PageHandler(
        context,
        queue,
        OutputTransform.configure(context, sink),
        provider or FakeProvider(),
        load_start or AsyncMock(return_value=2),
    )
    return handler, context, queue, sink


def request(label, url="https://www.zillow.com/homes/", **user_data):
    return HarvestRequest(url=url, unique_key=url, user_data={"label": label, **user_data})


def detail_html(prop):
    cache = json.dumps({'ForSaleFullRenderQuery{"zpid":1}': {"property": prop}})
    return f"<html><script>{json.dumps({'apiCache': cache})}</script></html>"


class TestRegionFromRequest:
    def test_split_follow_up(self):
        region = region_from_request(request("QUERY", search_query_state={"mapBounds": BOUNDS}, split_count=2))
        assert region.split_depth == 2
        assert region.explicit_bounds
        assert not region.is_pagination

    def test_pagination_follow_up(self):
        region = region_from_request(
            request("PAGINATION", search_query_state={"mapBounds": BOUNDS}, page_number=3, split_count=1)
        )
        assert region.page == 3
        assert not region.explicit_bounds

    def test_state_from_url(self):
        url = "https://www.zillow.com/homes/?searchQueryState=%7B%22usersSearchTerm%22%3A%22x%22%7D"
        assert region_from_request(request("QUERY", url=url)).query_state == {"usersSearchTerm": "x"}


class TestRouting:
    @pytest.mark.asyncio
    async def test_unknown_label_is_terminal(self):
        handler, *_ = build()
        req = request("BOGUS")
        with pytest.raises(CrawlerException):
            await handler.handle(req, FakeSession())
        assert req.no_retry

    @pytest.mark.asyncio
    async def test_initial_loads_start_requests(self):
        load_start = AsyncMock(return_value=4)
        provider = FakeProvider()
        handler, *_ = build(provider, load_start=load_start)

        assert await handler.handle(request("INITIAL"), FakeSession()) == 4
        assert provider.captured == 1
        load_start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initial_capture_failure_retires_session(self):
        handler, *_ = build(FakeProvider(capture_error=TimeoutError("no query id")))
        session = FakeSession()
        with pytest.raises(TimeoutError):
            await handler.handle(request("INITIAL"), session)
        assert session.retired

    @pytest.mark.asyncio
    async def test_over_budget_skips_everything_but_initial(self):
        handler, context, queue, _ = build(context=make_context(extracted=["1"], max_items=1))
        assert await handler.handle(request("ZPIDS", zpids=["2"]), FakeSession()) is None
        assert await handler.handle(request("INITIAL"), FakeSession()) == 2


class TestRegion:
    @pytest.mark.asyncio
    async def test_discovery_runs(self):
        page = FakeSearchPage(response={"result": search_payload([5], total=1), "search_query_state": {"mapBounds": BOUNDS}})
        handler, context, queue, _ = build(FakeProvider(page=page))

        outcome = await handler.handle(request("QUERY", search_query_state={"mapBounds": BOUNDS}), FakeSession())

        assert isinstance(outcome, DiscoveryOutcome)
        assert queue.labelled("ENRICHED_ZPIDS")

    @pytest.mark.asyncio
    async def test_search_failure_becomes_retry(self):
        page = FakeSearchPage(snapshot=search_payload([], total=9))
        handler, *_ = build(FakeProvider(page=page))
        session = FakeSession()

        with pytest.raises(CrawlerException) as exc:
            await handler.handle(request("SEARCH", term="Denver"), session)

        assert exc.value.error_code == "SEARCH_RETRY"
        assert session.retired

    @pytest.mark.asyncio
    async def test_unexpected_page_is_blocking(self):
        provider = FakeProvider()

        @asynccontextmanager
        async def failing(request, session):
            raise RuntimeError("Unexpected page layout")
            yield

        provider.search_page = failing
        handler, *_ = build(provider)

        with pytest.raises(BlockedException):
            await handler.handle(request("QUERY"), FakeSession())


class TestBatch:
    @pytest.mark.asyncio
    async def test_zpids_extracted(self):
        handler, context, queue, sink = build()

        counts = await handler.handle(request("ZPIDS", zpids=["1", "2"]), FakeSession())

        assert counts[ExtractionStatus.SUCCESS] == 2
        assert len(sink.records) == 2

    @pytest.mark.asyncio
    async def test_enriched_stubs(self):
        handler, context, queue, sink = build()
        stubs = [{"zpid": "3", "detailUrl": "/homedetails/3_zpid/", "relaxed": False},
                 {"zpid": "4", "detailUrl": "", "relaxed": True}]

        counts = await handler.handle(request("ENRICHED_ZPIDS", zpids=stubs), FakeSession())

        assert counts[ExtractionStatus.SUCCESS] == 1
        assert counts[ExtractionStatus.DEFERRED] == 1
        assert queue.labelled("DETAIL")[0].unique_key == "4"

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        handler, *_ = build()
        assert await handler.handle(request("ZPIDS", zpids=[]), FakeSession()) is None


class TestDetail:
    @pytest.mark.asyncio
    async def test_preloaded_payload_emitted(self):
        url = "https://www.zillow.com/homedetails/x/9_zpid/"
        prop = {"zpid": 9, "homeStatus": "FOR_SALE", "price": 1}
        handler, context, queue, sink = build(FakeProvider(document=(url, detail_html(prop))))

        record = await handler.handle(request("DETAIL", url=url, zpid="9"), FakeSession())

        assert record == {"homeStatus": "FOR_SALE", "price": 1}
        assert sink.records == [record]
        assert "9" in context.extracted

    @pytest.mark.asyncio
    async def test_missing_scripts_retire_session(self):
        url = "https://www.zillow.com/homedetails/x/9_zpid/"
        handler, *_ = build(FakeProvider(document=(url, "<html></html>")))
        session = FakeSession()

        with pytest.raises(MissingPreloadedDataException):
            await handler.handle(request("DETAIL", url=url, zpid="9"), session)
        assert session.retired

    @pytest.mark.asyncio
    async def test_legacy_page_resolved(self):
        url = "https://www.zillow.com/b/tower/"
        data = {"props": {"initialData": {"building": {"zpid": 321}}}}
        html = f'<script id="__NEXT_DATA__">{json.dumps(data)}</script>'
        handler, context, queue, _ = build(FakeProvider(document=(url, html)))

        assert await handler.handle(request("LEGACY_DETAIL", url=url), FakeSession()) is None

        (item,) = queue.items
        assert item.label == "DETAIL"
        assert item.forefront
        assert item.url == "https://www.zillow.com/homedetails/321_zpid/"

    @pytest.mark.asyncio
    async def test_legacy_page_without_identifier_is_terminal(self):
        url = "https://www.zillow.com/b/tower/"
        handler, *_ = build(FakeProvider(document=(url, "<html></html>")))
        req = request("LEGACY_DETAIL", url=url)

        with pytest.raises(LegacyLayoutException):
            await handler.handle(req, FakeSession())
        assert req.no_retry
