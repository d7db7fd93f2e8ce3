"""Discovery/extraction outcomes - standardized result format"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .merger import MergedResultSet


class DiscoveryState(str, Enum):
    """Discovery state machine

    INITIAL -> AWAITING_BATCHES -> VALIDATING
        -> ACCEPTED | EMPTY_TERMINAL | INCONSISTENT
        -> PAGINATING | SPLITTING | DONE
    """

    INITIAL = "initial"
    AWAITING_BATCHES = "awaiting_batches"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    EMPTY_TERMINAL = "empty_terminal"  # genuinely empty, not an error
    INCONSISTENT = "inconsistent"  # empty with positive declared total
    PAGINATING = "paginating"
    SPLITTING = "splitting"
    DONE = "done"


class ExtractionStatus(str, Enum):
    """Per-identifier extraction outcome"""

    SUCCESS = "success"
    SKIPPED = "skipped"  # already extracted or over budget
    RETRIED = "retried"  # transient failure, re-enqueued
    DEFERRED = "deferred"  # relaxed stub, re-enqueued as a full detail fetch


@dataclass
class FollowUp:
    """One follow-up work item issued through the queue"""

    label: str
    url: str
    unique_key: str
    was_already_present: bool = False


@dataclass
class DiscoveryOutcome:
    """Result of processing one region

    Attributes:
        states: visited states in order
        merged: merge result (None before validation)
        follow_ups: work items issued, duplicates included
        error: message of a per-item enqueue failure, last one wins
    """

    states: list[DiscoveryState] = field(default_factory=list)
    merged: Optional[MergedResultSet] = None
    follow_ups: list[FollowUp] = field(default_factory=list)
    error: Optional[str] = None

    def visit(self, state: DiscoveryState) -> None:
        self.states.append(state)

    @property
    def state(self) -> DiscoveryState:
        return self.states[-1] if self.states else DiscoveryState.INITIAL

    def issued(self, label: Optional[str] = None) -> list[FollowUp]:
        """Newly added follow-ups, optionally for one label."""
        return [
            f for f in self.follow_ups
            if not f.was_already_present and (label is None or f.label == label)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "states": [s.value for s in self.states],
            "results": len(self.merged.results) if self.merged else 0,
            "declared_total": self.merged.declared_total if self.merged else 0,
            "follow_ups": len(self.issued()),
        }
