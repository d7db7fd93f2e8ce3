"""Start requests - turn the run input into the first work items"""

from __future__ import annotations

from urllib.parse import urljoin

from harvester.core.config import settings
from harvester.core.logging import logger
from harvester.engine.interfaces import RequestQueue
from harvester.engine.query_state import SearchRegion, identify
from harvester.schemas.input_schema import HarvestInput
from harvester.schemas.labels import Label
from harvester.utils.url_utils import clean_up_url, get_url_data


def initial_request() -> tuple[str, str, dict]:
    """(url, unique key, user data) of the query-id capture request."""
    url = urljoin(settings.site_origin, settings.query_id_page_path)
    return url, "INITIAL", {"label": Label.INITIAL.value}


async def load_start_requests(run_input: HarvestInput, queue: RequestQueue) -> int:
    """Enqueue the work items for every input source

    Returns:
        number of newly added requests
    """
    added = 0

    if run_input.search:
        term = run_input.search
        result = await queue.enqueue(
            settings.site_origin,
            term,
            {"label": Label.SEARCH.value, "term": term},
        )
        if not result.was_already_present:
            added += 1
            logger.info(f'[QUEUE] Added search "{term}"')

    if run_input.start_urls:
        count = 0
        for start_url in run_input.start_urls:
            url, query_state = clean_up_url(start_url.url)
            user_data = get_url_data(url)

            if user_data.get("zpid"):
                unique_key = user_data["zpid"]
            elif query_state:
                unique_key = identify(SearchRegion(query_state))
                user_data["search_query_state"] = query_state
            else:
                unique_key = url

            result = await queue.enqueue(url, unique_key, user_data)
            if not result.was_already_present:
                count += 1

        added += count
        logger.info(f"[QUEUE] Added {count} start urls")

    if run_input.zpids:
        result = await queue.enqueue(
            settings.site_origin,
            "ZPIDS",
            {"label": Label.ZPIDS.value, "zpids": list(run_input.zpids)},
        )
        if not result.was_already_present:
            added += 1
            logger.info(f"[QUEUE] Added {len(run_input.zpids)} zpids")

    if run_input.zipcodes:
        count = 0
        for zipcode in run_input.zipcodes:
            result = await queue.enqueue(
                urljoin(settings.site_origin, f"/homes/{zipcode}_rb/"),
                f"ZIP{zipcode}",
                {"label": Label.QUERY.value, "zipcode": zipcode},
            )
            if not result.was_already_present:
                count += 1

        added += count
        logger.info(f"[QUEUE] Added {count} zipcodes")

    return added
