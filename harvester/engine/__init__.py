"""Discovery and extraction engine"""

from .budget import BudgetTracker, ExtractedSet
from .context import HarvestContext
from .extractor import DetailExtractionPipeline, ProgressCounter
from .merger import ListingStub, MergedResultSet, RawResultBatch, merge
from .orchestrator import DiscoveryOrchestrator
from .query_state import SearchRegion, build_search_url, decode, encode, identify, status_variants
from .result import DiscoveryOutcome, DiscoveryState, ExtractionStatus, FollowUp
from .splitter import split_region
from .transform import DateRange, OutputTransform, TransformContext

__all__ = [
    "BudgetTracker",
    "DateRange",
    "DetailExtractionPipeline",
    "DiscoveryOrchestrator",
    "DiscoveryOutcome",
    "DiscoveryState",
    "ExtractedSet",
    "ExtractionStatus",
    "FollowUp",
    "HarvestContext",
    "ListingStub",
    "MergedResultSet",
    "OutputTransform",
    "ProgressCounter",
    "RawResultBatch",
    "SearchRegion",
    "TransformContext",
    "build_search_url",
    "decode",
    "encode",
    "identify",
    "merge",
    "split_region",
    "status_variants",
]
