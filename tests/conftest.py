"""Shared test setup

- test environment variables
- in-memory fakes for the engine's collaborators (queue, session, page,
  detail fetcher, sink)
- search payload builders

No network, no browser.
"""

from __future__ import annotations

import asyncio
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("ENVIRONMENT", "test")

from harvester.engine.budget import ExtractedSet  # noqa: E402
from harvester.engine.context import HarvestContext  # noqa: E402
from harvester.engine.interfaces import EnqueueResult  # noqa: E402
from harvester.schemas.input_schema import HarvestInput  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def test_env() -> None:
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "INFO"


# ============================================================================
# Fakes
# ============================================================================

@dataclass
class EnqueuedItem:
    url: str
    unique_key: str
    user_data: dict[str, Any]
    forefront: bool = False

    @property
    def label(self) -> str:
        return self.user_data.get("label")


@dataclass
class FakeQueue:
    """RequestQueue keeping every call; `fail_when` makes chosen enqueues raise."""

    items: list[EnqueuedItem] = field(default_factory=list)
    keys: set[str] = field(default_factory=set)
    fail_when: Optional[Callable[[str, dict], bool]] = None

    async def enqueue(self, url, unique_key, user_data, *, forefront=False) -> EnqueueResult:
        if self.fail_when is not None and self.fail_when(unique_key, user_data):
            raise RuntimeError(f"enqueue failed for {unique_key}")
        if unique_key in self.keys:
            return EnqueueResult(was_already_present=True, unique_key=unique_key)
        self.keys.add(unique_key)
        self.items.append(EnqueuedItem(url, unique_key, dict(user_data), forefront))
        return EnqueueResult(was_already_present=False, unique_key=unique_key)

    def labelled(self, label: str) -> list[EnqueuedItem]:
        return [i for i in self.items if i.label == label]


@dataclass
class FakeSession:
    usable: bool = True
    retire_calls: int = 0

    def retire(self) -> None:
        self.retire_calls += 1
        self.usable = False

    def is_usable(self) -> bool:
        return self.usable

    @property
    def retired(self) -> bool:
        return self.retire_calls > 0


@dataclass
class FakeSearchPage:
    """SearchPage with canned batches

    response/snapshot may be an Exception instance to simulate failures;
    response_delay makes the live response hang.
    """

    url: str = "https://www.zillow.com/homes/"
    response: Any = None
    snapshot: Any = None
    variants: dict[str, Any] = field(default_factory=dict)
    response_delay: float = 0.0
    fetched_states: list[dict] = field(default_factory=list)

    async def wait_for_search_response(self, timeout: float):
        if self.response_delay:
            await asyncio.sleep(self.response_delay)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    async def read_search_snapshot(self):
        if isinstance(self.snapshot, Exception):
            raise self.snapshot
        return self.snapshot

    async def fetch_search_state(self, query_state: dict):
        self.fetched_states.append(query_state)
        flags = query_state.get("filterState") or {}
        for name, payload in self.variants.items():
            if (flags.get(name) or {}).get("value") is True:
                return payload
        return None


@dataclass
class FakeFetcher:
    """DetailFetcher answering from a dict; Exception values are raised."""

    payloads: dict[str, Any] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def fetch(self, zpid: str) -> dict:
        self.calls.append(zpid)
        value = self.payloads.get(zpid)
        if isinstance(value, Exception):
            raise value
        if value is None:
            return {"zpid": int(zpid), "homeStatus": "FOR_SALE", "price": 100000}
        return value


@dataclass
class ListSink:
    records: list[dict] = field(default_factory=list)

    async def emit(self, record: dict) -> None:
        self.records.append(record)


# ============================================================================
# Builders
# ============================================================================

BOUNDS = {"north": 40.0, "south": 39.0, "east": -104.0, "west": -106.0}


def make_input(**overrides) -> HarvestInput:
    data = {"zpids": ["1"]}
    data.update(overrides)
    return HarvestInput(**data)


def make_context(extracted: Optional[list[str]] = None, **input_overrides) -> HarvestContext:
    return HarvestContext.from_input(make_input(**input_overrides), ExtractedSet(extracted or []))


def search_payload(
    zpids: list[Any],
    total: int = 0,
    kind: str = "listResults",
    category: str = "cat1",
    urls: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """GetSearchPageState-shaped payload."""
    urls = urls or {}
    items = [{"zpid": z, "detailUrl": urls.get(str(z), f"/homedetails/{z}_zpid/")} for z in zpids]
    return {
        category: {"searchResults": {kind: items}},
        "categoryTotals": {category: {"totalResultCount": total}},
    }


@pytest.fixture
def fake_queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def sink() -> ListSink:
    return ListSink()
