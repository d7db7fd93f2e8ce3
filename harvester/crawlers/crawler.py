"""Listing crawler - worker pool over the request queue

Workers pull work items, run them through the page handler under a per-item
timeout and either mark them handled or reclaim them for a retry. A failure
stays local to its work item; the run always completes.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from harvester.core.config import settings
from harvester.core.exceptions import NetworkTimeoutException
from harvester.core.logging import logger
from harvester.engine.context import HarvestContext
from harvester.schemas.labels import Label

from .handler import PageHandler
from .queue import HarvestRequest, RequestQueueBackend
from .session import Session, SessionPool

IDLE_POLL_S = 0.1


@dataclass
class HarvestReport:
    """Terminal outcome of a run"""

    extracted: int
    any_errors: bool
    handled: int
    failed: int
    elapsed: float

    def to_dict(self) -> dict:
        return {
            "extracted": self.extracted,
            "any_errors": self.any_errors,
            "handled": self.handled,
            "failed": self.failed,
            "elapsed": round(self.elapsed, 2),
        }


class ListingCrawler:
    """Runs the queue to completion

    Usage:
        crawler = ListingCrawler(context, queue, handler, SessionPool())
        report = await crawler.run()
    """

    def __init__(
        self,
        context: HarvestContext,
        queue: RequestQueueBackend,
        handler: PageHandler,
        sessions: SessionPool,
        max_concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.context = context
        self.queue = queue
        self.handler = handler
        self.sessions = sessions
        self.max_concurrency = max_concurrency or settings.crawler_max_concurrency
        self.max_retries = settings.crawler_max_retries if max_retries is None else max_retries
        self.failed = 0

    async def run(self) -> HarvestReport:
        logger.info(f"[CRAWLER] Starting {self.max_concurrency} worker(s)")
        workers = [asyncio.create_task(self._worker(i)) for i in range(self.max_concurrency)]
        try:
            await asyncio.gather(*workers)
        finally:
            for worker in workers:
                if not worker.done():
                    worker.cancel()

        report = HarvestReport(
            extracted=len(self.context.extracted),
            any_errors=self.context.any_errors,
            handled=await self.queue.get_handled_count(),
            failed=self.failed,
            elapsed=self.context.tracker.elapsed(),
        )

        if not report.any_errors:
            logger.info(f"[CRAWLER] Done, extracted total {report.extracted}")
        else:
            logger.warning(f"[CRAWLER] Finished with errors: {report.to_dict()}")
        return report

    async def _worker(self, worker_id: int) -> None:
        while True:
            request = await self.queue.fetch_next()
            if request is None:
                if await self.queue.is_finished():
                    logger.debug(f"[CRAWLER] Worker {worker_id} finished")
                    return
                # other workers may still enqueue follow-ups
                await asyncio.sleep(IDLE_POLL_S)
                continue

            await self._process(request)

    def _timeout_for(self, request: HarvestRequest) -> float:
        if request.label == Label.INITIAL.value:
            return settings.crawler_initial_page_timeout_s
        return self.context.input.handle_page_timeout_secs

    async def _process(self, request: HarvestRequest) -> None:
        session = self.sessions.get_session()
        timeout = self._timeout_for(request)

        try:
            await asyncio.wait_for(self.handler.handle(request, session), timeout)
        except asyncio.TimeoutError:
            session.retire()
            await self._handle_failure(request, session, NetworkTimeoutException("handle page", timeout))
        except Exception as e:
            await self._handle_failure(request, session, e)
        else:
            session.mark_good()
            await self.queue.mark_handled(request)
        finally:
            await self.sessions.release(session)

    async def _handle_failure(self, request: HarvestRequest, session: Session, error: Exception) -> None:
        session.mark_bad()
        request.retry_count += 1
        request.error_messages.append(str(error))

        retryable = not request.no_retry and getattr(error, "retryable", True)
        if retryable and request.retry_count <= self.max_retries:
            logger.warning(
                f"[CRAWLER] Retrying {request.label} {request.url} "
                f"({request.retry_count}/{self.max_retries}): {error}"
            )
            await self.queue.reclaim(request)
            return

        logger.error(f"[CRAWLER] Request {request.label} {request.url} failed: {error}")
        self.failed += 1
        self.context.record_error(str(error))
        await self.queue.mark_handled(request)
