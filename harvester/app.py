"""Harvest run wiring - input -> queue -> crawler -> dataset"""
import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from harvester.core.exceptions import InvalidInputException
from harvester.core.logging import logger, set_debug
from harvester.crawlers.crawler import HarvestReport, ListingCrawler
from harvester.crawlers.handler import PageHandler, PageProvider
from harvester.crawlers.queue import RequestQueueBackend, create_request_queue
from harvester.crawlers.session import SessionPool
from harvester.crawlers.start_requests import initial_request, load_start_requests
from harvester.engine.context import HarvestContext
from harvester.engine.interfaces import Sink
from harvester.engine.transform import FilterFn, MapFn, OutputFn, OutputTransform
from harvester.repositories.dataset_repository import DatasetRepository
from harvester.schemas.input_schema import HarvestInput


def load_input(source: Union[str, Path, dict[str, Any]]) -> HarvestInput:
    """Validate run input from a JSON file path or a mapping

    Raises:
        InvalidInputException: unreadable file or schema violation
    """
    if isinstance(source, dict):
        data = source
    else:
        try:
            data = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise InvalidInputException(f"cannot read input file {source}: {e}")

    try:
        return HarvestInput.model_validate(data)
    except ValidationError as e:
        raise InvalidInputException(str(e), details={"errors": e.errors(include_url=False)})


async def run_harvest(
    run_input: HarvestInput,
    *,
    map: Optional[MapFn] = None,
    filter: Optional[FilterFn] = None,
    output: Optional[OutputFn] = None,
    pages: Optional[PageProvider] = None,
    queue: Optional[RequestQueueBackend] = None,
    sink: Optional[Sink] = None,
    sessions: Optional[SessionPool] = None,
) -> HarvestReport:
    """Run one harvest to completion

    Args:
        run_input: validated input
        map, filter, output: optional output transform overrides
        pages: page provider (Playwright when omitted)
        queue: work queue (configured backend when omitted)
        sink: record sink (JSON Lines dataset when omitted)
        sessions: session pool

    Returns:
        HarvestReport

    Raises:
        TransformConfigurationException: an override has the wrong shape
    """
    set_debug(run_input.debug_log)

    context = HarvestContext.from_input(run_input)
    transform = OutputTransform.configure(context, sink or DatasetRepository(), map=map, filter=filter, output=output)

    owns_browser = pages is None
    if pages is None:
        from harvester.crawlers.playwright import PlaywrightPageProvider

        pages = PlaywrightPageProvider()

    queue = queue or await create_request_queue()

    async def _load_start_requests() -> int:
        return await load_start_requests(run_input, queue)

    handler = PageHandler(context, queue, transform, pages, _load_start_requests)
    url, unique_key, user_data = initial_request()
    await queue.enqueue(url, unique_key, user_data)

    sessions = sessions or SessionPool()
    if owns_browser and sessions.on_discard is None:
        sessions.on_discard = pages.release_session

    crawler = ListingCrawler(context, queue, handler, sessions)
    try:
        return await crawler.run()
    finally:
        await queue.close()
        if owns_browser:
            from harvester.crawlers.playwright import shutdown_shared_browser

            await shutdown_shared_browser()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="listing-harvester", description="Harvest listings for a run input")
    parser.add_argument("input", help="path of the JSON run input")
    parser.add_argument("--debug", action="store_true", help="enable DEBUG logging regardless of the input")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """`python -m harvester input.json [--debug]`"""
    args = build_parser().parse_args(argv)

    try:
        run_input = load_input(args.input)
    except InvalidInputException as e:
        logger.error(f"[APP] {e}")
        return 2

    if args.debug:
        run_input = run_input.model_copy(update={"debug_log": True})

    report = asyncio.run(run_harvest(run_input))
    print(json.dumps(report.to_dict(), ensure_ascii=False))
    return 1 if report.any_errors else 0
