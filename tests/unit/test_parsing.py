"""Rendered page parsing tests (static HTML, no browser)"""
import json

from harvester.crawlers.parsing import (
    has_captcha,
    has_interstitial,
    has_preloaded_scripts,
    parse_api_cache_properties,
    parse_next_data_building_zpid,
    parse_search_page_store,
)


def search_page(store):
    body = json.dumps(store) if not isinstance(store, str) else store
    return (
        "<html><body><div id='app'></div>"
        f'<script data-zrr-shared-data-key="mobileSearchPageStore" type="application/json"><!--{body}--></script>'
        "</body></html>"
    )


def detail_page(cache):
    script = json.dumps({"apiCache": json.dumps(cache)})
    return f'<html><body><script id="hdpApolloPreloadedData" type="application/json">{script}</script></body></html>'


class TestSearchPageStore:
    def test_store_extracted(self):
        store = {"queryState": {"usersSearchTerm": "Denver"}, "cat1": {"searchResults": {"listResults": []}}}
        assert parse_search_page_store(search_page(store)) == store

    def test_absent_store(self):
        assert parse_search_page_store("<html><body>nothing</body></html>") == {}
        assert parse_search_page_store("") == {}

    def test_malformed_store(self):
        assert parse_search_page_store(search_page("{not json")) == {}


class TestApiCache:
    def test_property_from_full_render_query(self):
        cache = {
            'VariantQuery{"zpid":1}': {"property": {"zpid": 0}},
            'ForSaleDoubleScrollFullRenderQuery{"zpid":1}': {"property": {"zpid": 1, "price": 5}},
        }
        html = detail_page(cache)

        assert has_preloaded_scripts(html)
        assert parse_api_cache_properties(html) == {"zpid": 1, "price": 5}

    def test_entry_without_property_skipped(self):
        html = detail_page({'FullRenderQuery{"zpid":1}': {"property": None}})
        assert parse_api_cache_properties(html) is None

    def test_no_scripts(self):
        html = "<html><script>var x = 1;</script></html>"
        assert not has_preloaded_scripts(html)
        assert parse_api_cache_properties(html) is None


class TestNextData:
    def test_building_zpid(self):
        data = {"props": {"initialData": {"building": {"zpid": 777}}}}
        html = f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(data)}</script>'
        assert parse_next_data_building_zpid(html) == "777"

    def test_missing_building(self):
        html = '<script id="__NEXT_DATA__" type="application/json">{"props": {}}</script>'
        assert parse_next_data_building_zpid(html) is None
        assert parse_next_data_building_zpid("<html></html>") is None


class TestBlockDetection:
    def test_captcha(self):
        assert has_captcha('<div class="captcha-container"><p>Press and hold</p></div>')
        assert not has_captcha("<div>listing</div>")

    def test_interstitial(self):
        assert has_interstitial('<h1 id="interstitial-title">Please verify</h1>')
        assert not has_interstitial("")
