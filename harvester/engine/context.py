"""Run context threaded explicitly through every engine component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from harvester.core.logging import logger
from harvester.schemas.input_schema import HarvestInput

from .budget import BudgetTracker, ExtractedSet
from .transform import DateRange


@dataclass
class HarvestContext:
    """Shared state of one run

    Attributes:
        input: validated run input
        tracker: item budget over the shared ExtractedSet
        date_range: posting date window from the input
        any_errors: some work item failed; only used for final reporting
    """

    input: HarvestInput
    tracker: BudgetTracker
    date_range: DateRange = field(default_factory=DateRange)
    any_errors: bool = False

    @classmethod
    def from_input(cls, run_input: HarvestInput, extracted: Optional[ExtractedSet] = None) -> "HarvestContext":
        tracker = BudgetTracker(extracted if extracted is not None else ExtractedSet(), run_input.max_items)
        return cls(
            input=run_input,
            tracker=tracker,
            date_range=DateRange(run_input.date_from, run_input.date_to),
        )

    @property
    def extracted(self) -> ExtractedSet:
        return self.tracker.extracted

    def is_over_budget(self, extra: int = 0) -> bool:
        return self.tracker.is_over_budget(extra)

    def record_error(self, reason: str = "") -> None:
        if not self.any_errors:
            logger.debug(f"[RUN] First error recorded: {reason}")
        self.any_errors = True
