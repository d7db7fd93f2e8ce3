"""Rendered page parsing - pure HTML -> JSON extraction

Kept free of browser/network code so it can be tested against static HTML.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from selectolax.parser import HTMLParser

from harvester.core.logging import logger

SEARCH_STORE_SELECTOR = 'script[data-zrr-shared-data-key="mobileSearchPageStore"]'
CAPTCHA_SELECTOR = ".captcha-container"
INTERSTITIAL_SELECTOR = "#interstitial-title"


def parse_search_page_store(html: str) -> dict[str, Any]:
    """Search state embedded in a rendered search page

    The store is wrapped in an HTML comment (`<!--{...}-->`), hence the slice.

    Returns:
        the store (with `queryState`, `cat1`, `categoryTotals`, ...) or {} when absent
    """
    if not html:
        return {}

    node = HTMLParser(html).css_first(SEARCH_STORE_SELECTOR)
    if node is None:
        return {}

    text = node.text(deep=True) or ""
    sliced = text.strip()[4:-3]
    if not sliced:
        return {}

    try:
        store = json.loads(sliced)
    except ValueError as e:
        logger.debug(f"[PARSE] Search page store is not valid JSON: {e}")
        return {}
    return store if isinstance(store, dict) else {}


def parse_api_cache_properties(html: str) -> Optional[dict[str, Any]]:
    """Listing payload from the detail page's preloaded `apiCache` scripts

    Each candidate script holds JSON whose `apiCache` member is itself a JSON
    string; the first `*FullRenderQuery` entry carrying `property` wins.

    Returns:
        the `property` object, or None when no script carries one
    """
    if not html:
        return None

    for node in HTMLParser(html).css("script"):
        text = node.text(deep=True) or ""
        if "RenderQuery" not in text or "apiCache" not in text:
            continue
        try:
            loaded = json.loads(json.loads(text)["apiCache"])
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"[PARSE] Skipping unparseable apiCache script: {e}")
            continue

        for key, value in loaded.items():
            if "FullRenderQuery" in key and isinstance(value, dict) and value.get("property"):
                return value["property"]

    return None


def has_preloaded_scripts(html: str) -> bool:
    if not html:
        return False
    for node in HTMLParser(html).css("script"):
        text = node.text(deep=True) or ""
        if "RenderQuery" in text and "apiCache" in text:
            return True
    return False


def parse_next_data_building_zpid(html: str) -> Optional[str]:
    """Listing identifier of a legacy building page (`__NEXT_DATA__` blob)."""
    if not html:
        return None

    node = HTMLParser(html).css_first('script[id="__NEXT_DATA__"]')
    if node is None:
        return None

    try:
        data = json.loads(node.text(deep=True) or "")
    except ValueError:
        return None

    zpid = (((data.get("props") or {}).get("initialData") or {}).get("building") or {}).get("zpid")
    return str(zpid) if zpid else None


def has_captcha(html: str) -> bool:
    if not html:
        return False
    return HTMLParser(html).css_first(CAPTCHA_SELECTOR) is not None


def has_interstitial(html: str) -> bool:
    if not html:
        return False
    return HTMLParser(html).css_first(INTERSTITIAL_SELECTOR) is not None
