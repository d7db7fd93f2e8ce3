"""Extraction Budget - already-extracted identifiers and the item cap

Single source of truth for "is this run done":
- ExtractedSet: identifiers already emitted to the output (append-only)
- BudgetTracker: optional positive cap on emitted records

Both are created once per run and passed by reference to every component;
nothing here is a module-level singleton.
"""

from __future__ import annotations

import threading
from time import time
from typing import Iterable, Iterator, Optional


class ExtractedSet:
    """Identifiers already emitted for this run

    Grows monotonically and never shrinks. Insertion is guarded by a lock so
    several region workers can add concurrently; membership and size reads are
    snapshots, not transactions.
    """

    def __init__(self, initial: Optional[Iterable[str]] = None) -> None:
        self._lock = threading.Lock()
        self._items: set[str] = {str(z) for z in (initial or ())}

    def add(self, zpid: str) -> bool:
        """Add an identifier

        Returns:
            bool: True when the identifier was not present before
        """
        key = str(zpid)
        with self._lock:
            if key in self._items:
                return False
            self._items.add(key)
            return True

    def __contains__(self, zpid: object) -> bool:
        return str(zpid) in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._items)


class BudgetTracker:
    """Item budget for a run

    Usage:
        tracker = BudgetTracker(ExtractedSet(), max_items=100)

        if tracker.is_over_budget():
            return  # stop issuing work

        report = tracker.get_report()
    """

    def __init__(self, extracted: ExtractedSet, max_items: Optional[int] = None) -> None:
        self.extracted = extracted
        # absent or <= 0 means unbounded
        self.max_items: Optional[int] = max_items if max_items and max_items > 0 else None
        self.start_time = time()

    @property
    def is_unbounded(self) -> bool:
        return self.max_items is None

    def is_over_budget(self, extra: int = 0) -> bool:
        """Budget reached

        Args:
            extra: records about to be emitted on top of the current count

        Returns:
            bool: True iff a positive cap is configured and
                  len(extracted) + extra >= cap
        """
        if self.max_items is None:
            return False
        return len(self.extracted) + extra >= self.max_items

    def remaining(self) -> Optional[int]:
        """Records left before the cap (None when unbounded)."""
        if self.max_items is None:
            return None
        return max(0, self.max_items - len(self.extracted))

    def elapsed(self) -> float:
        return time() - self.start_time

    def get_report(self) -> dict:
        """Budget usage report

        Returns:
            dict:
                - extracted: records emitted so far
                - max_items: cap (None when unbounded)
                - remaining: records left before the cap
                - elapsed: seconds since the tracker was created
                - is_over_budget: cap reached
        """
        return {
            "extracted": len(self.extracted),
            "max_items": self.max_items,
            "remaining": self.remaining(),
            "elapsed": self.elapsed(),
            "is_over_budget": self.is_over_budget(),
        }
