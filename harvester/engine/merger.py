"""Result Merger - flatten and deduplicate raw search result batches

A region's results usually arrive twice: once embedded in the server-rendered
page and once in the live search endpoint response. The two can overlap or
complement each other; this module folds them into one deduplicated stub list
plus the largest upstream-declared total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from harvester.utils.url_utils import is_valid_identifier

from .budget import ExtractedSet

CATEGORIES = ("cat1", "cat2")
RESULT_KINDS = ("listResults", "mapResults", "relaxedResults")


@dataclass(frozen=True)
class ListingStub:
    """One search hit

    Attributes:
        zpid: identifier as string (validated during merge)
        detail_url: direct detail URL, empty when unknown
        relaxed: hit from a loosened match; needs a full detail page load
    """

    zpid: str
    detail_url: str = ""
    relaxed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"zpid": self.zpid, "detailUrl": self.detail_url, "relaxed": self.relaxed}

    @classmethod
    def from_raw(cls, item: Mapping[str, Any], relaxed: bool = False) -> "ListingStub":
        zpid = item.get("zpid")
        return cls(
            zpid="" if zpid is None else str(zpid).strip(),
            detail_url=item.get("detailUrl") or "",
            relaxed=bool(item.get("relaxed")) or relaxed,
        )


@dataclass(frozen=True)
class RawResultBatch:
    """Ordered stubs from one source plus that source's declared total."""

    stubs: tuple[ListingStub, ...] = ()
    declared_total: int = 0

    @classmethod
    def from_search_state(cls, payload: Optional[Mapping[str, Any]]) -> Optional["RawResultBatch"]:
        """Build a batch from a search endpoint payload or page store

        Flattens cat1/cat2 x list/map/relaxed results in that order. Stubs from
        `relaxedResults` are relaxed. Returns None for an absent payload.
        """
        if not payload:
            return None

        stubs: list[ListingStub] = []
        for cat in CATEGORIES:
            search_results = (payload.get(cat) or {}).get("searchResults") or {}
            for kind in RESULT_KINDS:
                for item in search_results.get(kind) or []:
                    if isinstance(item, Mapping):
                        stubs.append(ListingStub.from_raw(item, relaxed=kind == "relaxedResults"))

        totals = payload.get("categoryTotals") or {}
        declared = 0
        for cat in CATEGORIES:
            count = (totals.get(cat) or {}).get("totalResultCount")
            if isinstance(count, (int, float)) and not isinstance(count, bool):
                declared = max(declared, int(count))

        return cls(stubs=tuple(stubs), declared_total=declared)


@dataclass
class MergedResultSet:
    """Deduplicated stubs; `declared_total` is a lower bound on true matches."""

    results: list[ListingStub] = field(default_factory=list)
    declared_total: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.results

    @property
    def is_inconsistent(self) -> bool:
        """Nothing returned although the upstream claims matches."""
        return self.is_empty and self.declared_total > 0

    @property
    def zpids(self) -> list[str]:
        return [s.zpid for s in self.results]


def merge(
    batches: Iterable[Optional[RawResultBatch]],
    extracted: Optional[ExtractedSet] = None,
) -> MergedResultSet:
    """Merge result batches

    - absent batches contribute nothing and no error
    - stubs with empty/non-numeric identifiers are dropped
    - dedup against this call and against the already-extracted set;
      the first occurrence wins
    - declared_total = max of every batch's declared total (>= 0)
    """
    merged = MergedResultSet()
    seen: set[str] = set()

    for batch in batches:
        if batch is None:
            continue

        for stub in batch.stubs:
            if not is_valid_identifier(stub.zpid):
                continue
            if stub.zpid in seen:
                continue
            if extracted is not None and stub.zpid in extracted:
                continue
            seen.add(stub.zpid)
            merged.results.append(stub)

        merged.declared_total = max(merged.declared_total, batch.declared_total, 0)

    return merged
