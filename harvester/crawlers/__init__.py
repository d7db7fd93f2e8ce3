"""Crawler layer: queue, sessions, page handling and the worker pool."""

from .crawler import HarvestReport, ListingCrawler
from .handler import PageHandler
from .queue import HarvestRequest, InMemoryRequestQueue, RedisRequestQueue, create_request_queue
from .session import Session, SessionPool

__all__ = [
    "HarvestReport",
    "HarvestRequest",
    "InMemoryRequestQueue",
    "ListingCrawler",
    "PageHandler",
    "RedisRequestQueue",
    "Session",
    "SessionPool",
    "create_request_queue",
]
