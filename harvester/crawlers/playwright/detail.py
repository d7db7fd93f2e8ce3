"""Detail payload query (Playwright)

The detail GraphQL endpoint needs the `queryId`/`clientVersion` pair the site
itself uses. It is captured once from the site's own traffic and then reused
for in-page queries, one per listing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from playwright.async_api import Page, Request

from harvester.core.config import settings
from harvester.core.exceptions import DetailFetchException, NetworkTimeoutException
from harvester.core.logging import logger

GRAPHQL_PATH = "/graphql"
DETAIL_OPERATION = "ForSaleDoubleScrollFullRenderQuery"

_QUERY_DETAIL_JS = """
async ({ path, operationName, queryId, clientVersion, zpid }) => {
    const params = new URLSearchParams({ zpid: String(zpid), operationName });
    const response = await fetch(`${path}/?${params.toString()}`, {
        method: 'POST',
        credentials: 'include',
        headers: { 'content-type': 'application/json', accept: '*/*' },
        body: JSON.stringify({
            operationName,
            variables: {
                zpid: Number(zpid),
                contactFormRenderParameter: { zpid: Number(zpid), platform: 'desktop', isDoubleScroll: true },
            },
            clientVersion,
            queryId,
        }),
    });
    return response.text();
}
"""


@dataclass(frozen=True)
class QueryId:
    query_id: str
    client_version: str


def parse_query_id(url: str, post_data: Optional[str] = None) -> Optional[QueryId]:
    """`queryId`/`clientVersion` from a GraphQL request URL or JSON body."""
    params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
    query_id = params.get("queryId")
    client_version = params.get("clientVersion")

    if post_data and not (query_id and client_version):
        try:
            body = json.loads(post_data)
        except ValueError:
            body = None
        if isinstance(body, dict):
            query_id = query_id or body.get("queryId")
            client_version = client_version or body.get("clientVersion")

    if query_id and client_version:
        return QueryId(str(query_id), str(client_version))
    return None


def _is_query_request(request: Request) -> bool:
    if GRAPHQL_PATH not in request.url:
        return False
    return parse_query_id(request.url, request.post_data) is not None


async def intercept_query_id(page: Page, url: Optional[str] = None, timeout_s: Optional[float] = None) -> QueryId:
    """Load a page and capture the detail query id from its GraphQL traffic

    Raises:
        NetworkTimeoutException: no matching request within the timeout
    """
    timeout_s = timeout_s or settings.query_id_timeout_s
    try:
        async with page.expect_request(_is_query_request, timeout=timeout_s * 1000) as request_info:
            if url:
                await page.goto(url, wait_until="domcontentloaded")
        request = await request_info.value
    except Exception as e:
        logger.debug(f"[DETAIL] Query id capture failed: {type(e).__name__}: {e}")
        raise NetworkTimeoutException("query id capture", timeout_s)

    query = parse_query_id(request.url, request.post_data)
    logger.debug(f"[DETAIL] Intercepted queryId={query.query_id} clientVersion={query.client_version}")
    return query


class PlaywrightDetailFetcher:
    """DetailFetcher running the GraphQL query from inside a site page."""

    def __init__(self, page: Page, query: QueryId):
        self.page = page
        self.query = query

    async def fetch(self, zpid: str) -> dict[str, Any]:
        """Raw `data.property` of one listing

        Raises:
            DetailFetchException: non-JSON answer or no property in it
        """
        text = await self.page.evaluate(
            _QUERY_DETAIL_JS,
            {
                "path": GRAPHQL_PATH,
                "operationName": DETAIL_OPERATION,
                "queryId": self.query.query_id,
                "clientVersion": self.query.client_version,
                "zpid": zpid,
            },
        )
        try:
            payload = json.loads(text)
        except (TypeError, ValueError):
            raise DetailFetchException(zpid, "detail query answered with non-JSON content")

        prop = ((payload or {}).get("data") or {}).get("property")
        if not isinstance(prop, dict):
            raise DetailFetchException(zpid, "detail query returned no property")
        return prop
