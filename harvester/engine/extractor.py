"""Detail Extraction Pipeline - per-identifier fetch, transform and retry"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping, Optional, Union

from harvester.core.config import settings
from harvester.core.exceptions import DetailFetchException, InvalidIdentifierException
from harvester.core.logging import logger
from harvester.schemas.labels import Label
from harvester.utils.url_utils import detail_url, is_valid_identifier

from .context import HarvestContext
from .interfaces import DetailFetcher, RequestQueue, Session
from .result import ExtractionStatus
from .transform import OutputTransform, TransformContext

BatchItem = Union[str, int, Mapping[str, Any]]


class ProgressCounter:
    """Logs the extracted total periodically while a batch runs

    Usage:
        counter = ProgressCounter(context)
        counter.start()
        try:
            ...
        finally:
            counter.stop()
    """

    def __init__(self, context: HarvestContext, interval: Optional[float] = None):
        self.context = context
        self.interval = settings.progress_interval_s if interval is None else interval
        self._last_count = 0
        self._task: Optional[asyncio.Task] = None

    def report(self) -> None:
        size = len(self.context.extracted)
        if size != self._last_count:
            self._last_count = size
            logger.info(f"[DETAIL] Extracted total {size}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.report()

    def start(self) -> None:
        if self._task is None and self.interval > 0:
            self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

        if not self.context.any_errors:
            self.report()


class DetailExtractionPipeline:
    """Identifier -> detail payload -> transform -> sink

    Failures stay local to one identifier: a transient fetch error re-enqueues
    that identifier as its own detail work item and retires the session, and
    the batch carries on.
    """

    def __init__(
        self,
        context: HarvestContext,
        queue: RequestQueue,
        session: Session,
        fetcher: DetailFetcher,
        transform: OutputTransform,
        delay: Optional[float] = None,
    ):
        self.context = context
        self.queue = queue
        self.session = session
        self.fetcher = fetcher
        self.transform = transform
        self.delay = settings.detail_delay_s if delay is None else delay

    async def _enqueue_detail(self, zpid: str, direct_url: str = "") -> None:
        await self.queue.enqueue(
            detail_url(zpid, direct_url),
            zpid or direct_url,
            {"label": Label.DETAIL.value, "zpid": zpid},
            forefront=True,
        )

    async def extract(
        self,
        zpid: Any,
        direct_url: str = "",
        relaxed: bool = False,
        ignore_filter: bool = False,
    ) -> ExtractionStatus:
        """Extract one listing

        Args:
            zpid: listing identifier
            direct_url: detail URL from the search stub, if any
            relaxed: stub came from a loosened match and is refetched on its own
            ignore_filter: bypass the status category check

        Returns:
            ExtractionStatus

        Raises:
            InvalidIdentifierException: empty or non-numeric identifier
        """
        if not is_valid_identifier(zpid):
            raise InvalidIdentifierException(zpid)
        zpid = str(zpid).strip()

        if self.context.is_over_budget():
            return ExtractionStatus.SKIPPED

        if zpid in self.context.extracted:
            logger.debug(f"[DETAIL] Already extracted {zpid}, skipping")
            return ExtractionStatus.SKIPPED

        if relaxed:
            logger.debug(f"[DETAIL] Enqueuing relaxed zpid {zpid}")
            await self._enqueue_detail(zpid, direct_url)
            return ExtractionStatus.DEFERRED

        try:
            if not self.session.is_usable():
                raise DetailFetchException(zpid, "session is not usable anymore")

            logger.debug(f"[DETAIL] Extracting {zpid}")
            raw = await self.fetcher.fetch(zpid)
            if not isinstance(raw, dict):
                raise DetailFetchException(zpid, "empty detail payload")

            await self.transform.process(
                raw,
                TransformContext(raw=raw, zpid=zpid, ignore_filter=ignore_filter, url=direct_url),
            )
            return ExtractionStatus.SUCCESS

        except Exception as e:
            if self.context.is_over_budget():
                return ExtractionStatus.SKIPPED

            logger.debug(f"[DETAIL] Extraction failed for {zpid}: {type(e).__name__}: {e}")

            # retried as a standalone detail request
            await self._enqueue_detail(zpid, direct_url)
            self.context.record_error(str(e))
            self.session.retire()
            return ExtractionStatus.RETRIED

        finally:
            if self.delay > 0:
                await asyncio.sleep(self.delay)

    async def extract_many(
        self,
        items: Iterable[BatchItem],
        ignore_filter: bool = False,
    ) -> dict[ExtractionStatus, int]:
        """Extract a batch of plain identifiers or `{zpid, detailUrl, relaxed}` stubs

        Stops at the next item once the budget is reached. Invalid identifiers
        are logged and skipped.

        Returns:
            count per status
        """
        counts = {status: 0 for status in ExtractionStatus}
        items = list(items)

        if self.context.is_over_budget() or not items:
            return counts

        counter = ProgressCounter(self.context)
        counter.start()
        try:
            for item in items:
                if isinstance(item, Mapping):
                    zpid = item.get("zpid")
                    direct_url = item.get("detailUrl") or item.get("detail_url") or ""
                    relaxed = bool(item.get("relaxed"))
                else:
                    zpid, direct_url, relaxed = item, "", False

                if zpid is None or zpid == "":
                    continue

                try:
                    status = await self.extract(zpid, direct_url, relaxed, ignore_filter)
                except InvalidIdentifierException as e:
                    logger.debug(f"[DETAIL] {e}")
                    continue

                counts[status] += 1

                if self.context.is_over_budget():
                    break
        finally:
            counter.stop()

        return counts
