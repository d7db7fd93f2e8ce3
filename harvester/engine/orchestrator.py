"""Discovery Orchestrator - region state machine

Coordinates one region's discovery:
1. Await the live search response and the rendered page snapshot together
2. Merge them and validate against the declared total
3. Hand the merged identifiers to the extraction side as one batch work item
4. Fan out pagination and map-split follow-ups (never from a pagination page)
5. Fetch status-category variants of the same region

Follow-ups are independent queue items, so the recursion is an explicit
work-list driven by the crawler, not a call stack. Depth and budget limits are
enforced each time a region is expanded.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from harvester.core.config import settings
from harvester.core.exceptions import InconsistentResultsException, InvalidRegionException
from harvester.core.logging import logger
from harvester.schemas.labels import Label
from harvester.utils.hash_utils import quick_hash

from .context import HarvestContext
from .interfaces import RequestQueue, SearchPage, Session
from .merger import ListingStub, MergedResultSet, RawResultBatch, merge
from .query_state import PAGES_LIMIT, SearchRegion, build_search_url, identify, status_variants
from .result import DiscoveryOutcome, DiscoveryState, FollowUp
from .splitter import split_region

Splitter = Callable[[SearchRegion], list[SearchRegion]]


class DiscoveryOrchestrator:
    """Drives one region through AwaitingBatches -> Validating -> follow-ups

    Usage:
        orchestrator = DiscoveryOrchestrator(context, queue, session)
        outcome = await orchestrator.discover(region, page)
    """

    def __init__(
        self,
        context: HarvestContext,
        queue: RequestQueue,
        session: Session,
        splitter: Splitter = split_region,
        response_timeout: Optional[float] = None,
    ):
        """
        Args:
            context: shared run context (budget, input, error flag)
            queue: work queue follow-ups are issued through
            session: session of the page being processed
            splitter: quadrant splitter for map regions
            response_timeout: bound on the live search response wait (seconds)
        """
        self.context = context
        self.queue = queue
        self.session = session
        self.splitter = splitter
        self.response_timeout = response_timeout or settings.search_response_timeout_s

    async def discover(
        self,
        region: SearchRegion,
        page: SearchPage,
        ignore_filter: bool = False,
    ) -> DiscoveryOutcome:
        """Process one region

        Args:
            region: region the page was loaded for
            page: loaded search page
            ignore_filter: the request already encodes the status category

        Returns:
            DiscoveryOutcome: visited states, merge result and issued follow-ups

        Raises:
            InconsistentResultsException: nothing returned although the
                upstream declared matches (session is retired first)
        """
        outcome = DiscoveryOutcome()
        outcome.visit(DiscoveryState.INITIAL)

        outcome.visit(DiscoveryState.AWAITING_BATCHES)
        network, snapshot = await self._await_batches(page)

        outcome.visit(DiscoveryState.VALIDATING)
        merged = merge(
            [
                RawResultBatch.from_search_state((network or {}).get("result")),
                RawResultBatch.from_search_state(snapshot),
            ],
            self.context.extracted,
        )
        outcome.merged = merged

        if merged.is_inconsistent:
            outcome.visit(DiscoveryState.INCONSISTENT)
            logger.debug(f"[DISCOVERY] No results, retiring session. declared={merged.declared_total}")
            self.session.retire()
            raise InconsistentResultsException(merged.declared_total)

        if merged.is_empty:
            outcome.visit(DiscoveryState.EMPTY_TERMINAL)
            logger.debug(f"[DISCOVERY] Really zero results: {page.url.split('?')[0]}")
            outcome.visit(DiscoveryState.DONE)
            return outcome

        outcome.visit(DiscoveryState.ACCEPTED)

        # the live response's state is usually more accurate than the rendered one
        query_state = (
            (network or {}).get("search_query_state")
            or (snapshot or {}).get("queryState")
            or region.query_state
        )
        current = region.with_query_state(query_state)

        await self._enqueue_batch(merged.results, page.url, identify(current), outcome)

        logger.info(
            f"[DISCOVERY] Got {len(merged.results)}/{merged.declared_total} "
            f"(this number is an approximation) from {page.url.split('?')[0]}"
        )

        if current.is_pagination:
            logger.debug(f"[DISCOVERY] Page {current.page} is a pagination region, no fan-out")
        elif self.context.is_over_budget():
            logger.debug("[DISCOVERY] Budget reached, no fan-out")
        else:
            results = await asyncio.gather(
                self._enqueue_pagination(current, page.url, outcome),
                self._enqueue_splits(current, page.url, outcome),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    logger.warning(f"[DISCOVERY] Follow-up issuance failed: {type(result).__name__}: {result}")
                    outcome.error = str(result)

        if not ignore_filter:
            await self._extract_status_variants(current, page, outcome)

        outcome.visit(DiscoveryState.DONE)
        return outcome

    async def _await_batches(self, page: SearchPage) -> tuple[Optional[dict], Optional[dict]]:
        """Live response and rendered snapshot, each None when unavailable."""
        return await asyncio.gather(
            self._settle(
                asyncio.wait_for(page.wait_for_search_response(self.response_timeout), self.response_timeout),
                "search response",
            ),
            self._settle(page.read_search_snapshot(), "page snapshot"),
        )

    @staticmethod
    async def _settle(awaitable: Awaitable[Any], what: str) -> Optional[Any]:
        try:
            return await awaitable
        except asyncio.TimeoutError:
            logger.debug(f"[DISCOVERY] Timed out waiting for {what}")
        except Exception as e:
            logger.debug(f"[DISCOVERY] {what} unavailable: {type(e).__name__}: {e}")
        return None

    async def _issue(
        self,
        outcome: DiscoveryOutcome,
        label: Label,
        url: str,
        unique_key: str,
        user_data: dict[str, Any],
        forefront: bool = False,
    ) -> Optional[FollowUp]:
        """Enqueue one follow-up; a failure is logged and does not affect siblings."""
        try:
            result = await self.queue.enqueue(
                url, unique_key, {"label": label.value, **user_data}, forefront=forefront
            )
        except Exception as e:
            logger.warning(f"[DISCOVERY] Failed to enqueue {label.value} {unique_key}: {type(e).__name__}: {e}")
            outcome.error = str(e)
            return None

        follow_up = FollowUp(
            label=label.value,
            url=url,
            unique_key=unique_key,
            was_already_present=result.was_already_present,
        )
        outcome.follow_ups.append(follow_up)
        return follow_up

    async def _enqueue_batch(
        self,
        stubs: list[ListingStub],
        url: str,
        region_hash: str,
        outcome: DiscoveryOutcome,
    ) -> Optional[FollowUp]:
        if self.context.is_over_budget():
            return None

        return await self._issue(
            outcome,
            Label.ENRICHED_ZPIDS,
            url,
            quick_hash(["ZPIDS", region_hash]),
            {"zpids": [stub.to_dict() for stub in stubs]},
        )

    async def _enqueue_pagination(self, region: SearchRegion, base_url: str, outcome: DiscoveryOutcome) -> int:
        """Pages 2..20 of the same region

        The upstream does not always return every map result even below its
        cap; the list pages still carry them.
        """
        count = 0
        for number in range(2, PAGES_LIMIT + 1):
            if self.context.is_over_budget():
                break

            paged = region.with_page(number)
            url = build_search_url(base_url, paged)
            unique_key = identify(paged)
            logger.debug(f"[DISCOVERY] Enqueuing pagination page number {number}: {unique_key}")

            follow_up = await self._issue(
                outcome,
                Label.PAGINATION,
                url,
                unique_key,
                {
                    "page_number": number,
                    "search_query_state": paged.to_query_state(),
                    "split_count": paged.split_depth,
                },
            )
            if follow_up and not follow_up.was_already_present:
                count += 1

        if count:
            outcome.visit(DiscoveryState.PAGINATING)
        return count

    async def _enqueue_splits(self, region: SearchRegion, base_url: str, outcome: DiscoveryOutcome) -> int:
        """Four map quadrants one level deeper, while below the configured depth."""
        max_level = self.context.input.max_level
        if max_level <= 0:
            logger.debug("[DISCOVERY] Not trying to enqueue map splits")
            return 0

        if region.split_depth >= max_level:
            logger.info(
                f"[DISCOVERY] Over max level, no map split will take place "
                f"(split_count={region.split_depth}, max_level={max_level})"
            )
            return 0

        try:
            splits = self.splitter(region)
        except InvalidRegionException as e:
            logger.warning(f"[DISCOVERY] Region cannot be split: {e}")
            return 0

        logger.info(
            f"[DISCOVERY] Splitting map into {len(splits)} squares and zooming in, "
            f"{region.split_depth + 1} splits"
        )

        count = 0
        for sub in splits:
            if self.context.is_over_budget():
                break

            url = build_search_url(base_url, sub)
            follow_up = await self._issue(
                outcome,
                Label.QUERY,
                url,
                identify(sub),
                {
                    "search_query_state": sub.to_query_state(),
                    "split_count": sub.split_depth,
                },
            )
            if follow_up:
                verb = "Didn't enqueue" if follow_up.was_already_present else "Enqueued"
                logger.debug(f"[DISCOVERY] {verb} map split request {url}")
                if not follow_up.was_already_present:
                    count += 1

        if count:
            outcome.visit(DiscoveryState.SPLITTING)
        return count

    async def _extract_status_variants(
        self,
        region: SearchRegion,
        page: SearchPage,
        outcome: DiscoveryOutcome,
    ) -> None:
        """Fetch the region once per status category and batch whatever is new

        Each variant is fetched and enqueued on its own so a failing variant
        does not lose the others.
        """
        for state in status_variants(region.query_state, self.context.input.type):
            if self.context.is_over_budget():
                break

            variant = SearchRegion(state, page=region.page, split_depth=region.split_depth)
            try:
                payload = await page.fetch_search_state(variant.to_query_state())
            except Exception as e:
                logger.debug(f"[DISCOVERY] Status variant fetch failed: {type(e).__name__}: {e}")
                continue

            merged: MergedResultSet = merge(
                [RawResultBatch.from_search_state(payload)], self.context.extracted
            )
            if merged.results:
                await self._enqueue_batch(
                    merged.results,
                    build_search_url(page.url, variant),
                    identify(variant),
                    outcome,
                )
