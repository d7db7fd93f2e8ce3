"""Start request loading tests"""
import json
from urllib.parse import quote

import pytest

from conftest import FakeQueue, make_input

from harvester.crawlers.start_requests import initial_request, load_start_requests
from harvester.engine.query_state import SearchRegion, identify


def test_initial_request():
    url, key, data = initial_request()
    assert url == "https://www.zillow.com/homes/"
    assert key == "INITIAL"
    assert data == {"label": "INITIAL"}


class TestLoadStartRequests:
    @pytest.mark.asyncio
    async def test_search_term(self):
        queue = FakeQueue()
        added = await load_start_requests(make_input(zpids=[], search="Denver, CO"), queue)

        assert added == 1
        (item,) = queue.items
        assert item.label == "SEARCH"
        assert item.unique_key == "Denver, CO"
        assert item.user_data["term"] == "Denver, CO"

    @pytest.mark.asyncio
    async def test_zpids_as_one_batch(self):
        queue = FakeQueue()
        await load_start_requests(make_input(zpids=["1", "2"]), queue)

        (item,) = queue.items
        assert item.label == "ZPIDS"
        assert item.unique_key == "ZPIDS"
        assert item.user_data["zpids"] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_zipcodes(self):
        queue = FakeQueue()
        await load_start_requests(make_input(zpids=[], zipcodes=["80202", "80203"]), queue)

        assert [i.unique_key for i in queue.items] == ["ZIP80202", "ZIP80203"]
        assert queue.items[0].url == "https://www.zillow.com/homes/80202_rb/"
        assert queue.items[0].label == "QUERY"

    @pytest.mark.asyncio
    async def test_start_urls(self):
        state = {"mapBounds": {"north": 1, "south": 0, "east": 1, "west": 0}, "pagination": {"currentPage": 3}}
        urls = [
            "https://www.zillow.com/homedetails/x/55_zpid/",
            "https://www.zillow.com/denver-co/?searchQueryState=" + quote(json.dumps(state)),
            "https://www.zillow.com/b/tower/",
            "https://www.zillow.com/homedetails/y/55_zpid/",
        ]
        queue = FakeQueue()

        added = await load_start_requests(make_input(zpids=[], start_urls=urls), queue)

        assert added == 3
        detail, region, legacy = queue.items
        assert detail.unique_key == "55"
        assert detail.label == "DETAIL"
        assert region.label == "QUERY"
        assert region.user_data["ignore_filter"] is True
        assert region.unique_key == identify(SearchRegion(state))
        assert region.user_data["search_query_state"]["mapBounds"] == state["mapBounds"]
        assert legacy.label == "LEGACY_DETAIL"
        assert legacy.unique_key == legacy.url

    @pytest.mark.asyncio
    async def test_reloading_adds_nothing(self):
        queue = FakeQueue()
        run_input = make_input(search="Denver", zipcodes=["80202"])
        assert await load_start_requests(run_input, queue) == 3
        assert await load_start_requests(run_input, queue) == 0
