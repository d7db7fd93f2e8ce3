"""Query-State Codec - search region <-> upstream `searchQueryState` parameter

The upstream search endpoint takes the whole region/filter/pagination state as
one JSON object in the `searchQueryState` query parameter. This module owns
that encoding, the immutable SearchRegion value derived from it, and the
content-derived identifier used as the work queue's unique key.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from harvester.core.exceptions import InvalidRegionException
from harvester.utils.hash_utils import quick_hash

PAGES_LIMIT = 20  # upstream never serves more than 20 result pages per query
BOUND_KEYS = ("north", "south", "east", "west")

# Keys that change the result set; anything else (zoom, panel visibility) is display state.
IDENTITY_KEYS = ("mapBounds", "filterState", "usersSearchTerm", "regionSelection", "category")

_SALE_FLAGS = (
    "isForSaleByAgent",
    "isForSaleByOwner",
    "isNewConstruction",
    "isComingSoon",
    "isAuction",
    "isForSaleForeclosure",
)

STATUS_FILTERS: dict[str, dict[str, bool]] = {
    "sale": {**{k: True for k in _SALE_FLAGS}, "isForRent": False, "isRecentlySold": False},
    "fsbo": {
        **{k: False for k in _SALE_FLAGS},
        "isForSaleByOwner": True,
        "isForRent": False,
        "isRecentlySold": False,
    },
    "rent": {**{k: False for k in _SALE_FLAGS}, "isForRent": True, "isRecentlySold": False},
    "sold": {**{k: False for k in _SALE_FLAGS}, "isForRent": False, "isRecentlySold": True},
}


@dataclass(frozen=True)
class SearchRegion:
    """Search query scoped to a map/filter state

    Attributes:
        query_state: opaque upstream state (mapBounds, filterState, ...);
            pagination is carried by `page`, never by this mapping
        page: None for the first page, 2..20 for a pagination-derived region
        split_depth: recursive map splits applied since the top-level query
        explicit_bounds: bounds were set by a split (mutually exclusive with `page`)
    """

    query_state: Mapping[str, Any] = field(default_factory=dict)
    page: Optional[int] = None
    split_depth: int = 0
    explicit_bounds: bool = False

    def __post_init__(self) -> None:
        if self.page is not None and not 1 <= self.page <= PAGES_LIMIT:
            raise InvalidRegionException(f"page must be within 1..{PAGES_LIMIT}, got {self.page}")
        if self.split_depth < 0:
            raise InvalidRegionException(f"split_depth must be >= 0, got {self.split_depth}")
        if self.page is not None and self.page > 1 and self.explicit_bounds:
            raise InvalidRegionException("a region is either paginated or split, not both")

        # page 1 is the unpaginated region
        if self.page == 1:
            object.__setattr__(self, "page", None)

        state = {k: copy.deepcopy(v) for k, v in dict(self.query_state).items() if k != "pagination"}
        object.__setattr__(self, "query_state", state)

    @property
    def is_pagination(self) -> bool:
        return self.page is not None

    @property
    def map_bounds(self) -> Optional[dict[str, float]]:
        bounds = self.query_state.get("mapBounds")
        if not isinstance(bounds, Mapping) or not all(k in bounds for k in BOUND_KEYS):
            return None
        return {k: float(bounds[k]) for k in BOUND_KEYS}

    def with_page(self, page: int) -> "SearchRegion":
        """Same region, another result page."""
        return SearchRegion(self.query_state, page=page, split_depth=self.split_depth)

    def with_bounds(self, bounds: Mapping[str, float], **extra: Any) -> "SearchRegion":
        """Sub-region one split level deeper, pagination reset."""
        state = {**self.query_state, "mapBounds": dict(bounds), **extra}
        return SearchRegion(state, page=None, split_depth=self.split_depth + 1, explicit_bounds=True)

    def with_query_state(self, query_state: Mapping[str, Any]) -> "SearchRegion":
        """Same cursor and depth, state replaced (e.g. by the one the page actually used)."""
        return SearchRegion(
            query_state,
            page=self.page,
            split_depth=self.split_depth,
            explicit_bounds=self.explicit_bounds,
        )

    def to_query_state(self) -> dict[str, Any]:
        """Wire state with the pagination object restored."""
        pagination = {"currentPage": self.page} if self.page else {}
        return {**copy.deepcopy(dict(self.query_state)), "pagination": pagination}


def encode(region: SearchRegion) -> str:
    """Region -> `searchQueryState` parameter value (compact JSON, key order kept)."""
    return json.dumps(region.to_query_state(), separators=(",", ":"), ensure_ascii=False)


def decode(text: str, split_depth: int = 0) -> SearchRegion:
    """`searchQueryState` parameter value -> region

    Raises:
        InvalidRegionException: not a JSON object or an out-of-range page
    """
    try:
        state = json.loads(text)
    except (TypeError, ValueError) as e:
        raise InvalidRegionException(f"searchQueryState is not valid JSON: {e}")

    if not isinstance(state, dict):
        raise InvalidRegionException("searchQueryState must be a JSON object")

    pagination = state.get("pagination") or {}
    page = pagination.get("currentPage") if isinstance(pagination, dict) else None
    try:
        page = int(page) if page is not None else None
    except (TypeError, ValueError):
        raise InvalidRegionException(f"invalid currentPage: {page!r}")

    return SearchRegion(state, page=page, split_depth=split_depth)


def identify(region: SearchRegion) -> str:
    """Stable short hash of the logical query

    Only result-defining keys take part, serialised with sorted keys, so
    regions built in a different key order, with other zoom/visibility flags
    or with a reset pagination object collide on purpose.
    """
    identity: dict[str, Any] = {k: region.query_state[k] for k in IDENTITY_KEYS if k in region.query_state}
    if region.page and region.page > 1:
        identity["page"] = region.page
    return quick_hash(identity)


def build_search_url(base_url: str, region: SearchRegion) -> str:
    """URL of the search page for a region (root path normalised to /homes/)."""
    parsed = urlparse(base_url)
    params = {k: v[0] for k, v in parse_qs(parsed.query, keep_blank_values=True).items()}
    params["searchQueryState"] = encode(region)
    path = "/homes/" if parsed.path in ("", "/") else parsed.path
    return urlunparse((parsed.scheme, parsed.netloc, path, "", urlencode(params), ""))


def status_variants(query_state: Mapping[str, Any], home_type: str) -> Iterator[dict[str, Any]]:
    """Query states with the status filter flags for the requested category

    `all` expands to every category. Variants identical to the given state are
    skipped since that state has already been fetched.
    """
    types = list(STATUS_FILTERS) if home_type == "all" else [home_type]
    current = dict(query_state.get("filterState") or {})

    for name in types:
        flags = STATUS_FILTERS.get(name)
        if flags is None:
            continue
        filter_state = {**current, **{k: {"value": v} for k, v in flags.items()}}
        if filter_state == current:
            continue
        state = {k: copy.deepcopy(v) for k, v in query_state.items() if k != "pagination"}
        state["filterState"] = filter_state
        yield state
