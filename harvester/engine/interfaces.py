"""Collaborator interfaces consumed by the engine

The engine never talks to the browser, the queue backend or the output store
directly; it goes through these protocols so that the discovery and extraction
logic can be driven by fakes in tests and by Playwright in production.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class EnqueueResult:
    """Outcome of a queue insertion

    Attributes:
        was_already_present: the unique key had been seen before, nothing was added
        unique_key: key the request was stored (or found) under
    """

    was_already_present: bool
    unique_key: str


class RequestQueue(Protocol):
    """Work queue; unique-key collision is the dedup authority for region-level work."""

    async def enqueue(
        self,
        url: str,
        unique_key: str,
        user_data: dict[str, Any],
        *,
        forefront: bool = False,
    ) -> EnqueueResult:
        ...


class Session(Protocol):
    """Browser session handle (proxy + cookies)."""

    def retire(self) -> None:
        """Mark the session unhealthy and force a rotation."""
        ...

    def is_usable(self) -> bool:
        ...


class SearchPage(Protocol):
    """Loaded search page the orchestrator reads result batches from."""

    @property
    def url(self) -> str:
        ...

    async def wait_for_search_response(self, timeout: float) -> Optional[dict[str, Any]]:
        """Intercepted search endpoint response.

        Returns:
            {"result": <payload>, "search_query_state": <decoded state>} or None
        """
        ...

    async def read_search_snapshot(self) -> Optional[dict[str, Any]]:
        """Search state embedded in the server-rendered page (includes `queryState`)."""
        ...

    async def fetch_search_state(self, query_state: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Call the search endpoint from inside the page for another query state."""
        ...


class DetailFetcher(Protocol):
    """Browser-driven detail payload query."""

    async def fetch(self, zpid: str) -> dict[str, Any]:
        """Raw listing payload (`data.property` of the detail query)."""
        ...


class Sink(Protocol):
    """Output persistence; takes ownership of emitted records."""

    async def emit(self, record: dict[str, Any]) -> None:
        ...
