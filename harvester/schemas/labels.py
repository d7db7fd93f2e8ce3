"""Work item labels

Every follow-up the engine issues carries one of these labels in its user
data; the page handler routes on it.
"""

from enum import Enum


class Label(str, Enum):
    """Work item label"""

    INITIAL = "INITIAL"  # capture the detail query id, then load start requests
    SEARCH = "SEARCH"  # free-text search through the search box
    QUERY = "QUERY"  # region query (start URL, zipcode, map split)
    PAGINATION = "PAGINATION"  # page 2..20 of a region query
    ZPIDS = "ZPIDS"  # identifier batch from the run input
    ENRICHED_ZPIDS = "ENRICHED_ZPIDS"  # identifier batch discovered on a region
    DETAIL = "DETAIL"  # single listing detail page
    LEGACY_DETAIL = "LEGACY_DETAIL"  # building page resolved to a detail on visit

    @classmethod
    def region_labels(cls) -> frozenset["Label"]:
        return frozenset({cls.SEARCH, cls.QUERY, cls.PAGINATION})

    @classmethod
    def batch_labels(cls) -> frozenset["Label"]:
        return frozenset({cls.ZPIDS, cls.ENRICHED_ZPIDS})
