"""Custom exceptions (Structured Exception Hierarchy)"""
from typing import Any, Optional


class HarvesterException(Exception):
    """Base exception - parent of every custom exception

    `retryable` tells the crawler whether the work item that raised it may be
    reclaimed for another attempt.
    """

    retryable: bool = True

    def __init__(self, message: str, error_code: str = "UNKNOWN_ERROR", details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# Crawler / extraction
class CrawlerException(HarvesterException):
    """Base class for crawling errors"""
    def __init__(self, message: str, error_code: str = "CRAWLER_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "CRAWLER_ERROR", details)


class InvalidIdentifierException(CrawlerException):
    """Listing identifier is empty or not purely numeric (terminal)"""
    retryable = False

    def __init__(self, zpid: Any, details: Optional[dict[str, Any]] = None):
        message = f"Invalid listing identifier: {zpid!r}"
        super().__init__(message, "INVALID_IDENTIFIER", details or {"zpid": zpid})


class InconsistentResultsException(CrawlerException):
    """No listings returned although the upstream declared a positive total"""
    def __init__(self, declared_total: int, details: Optional[dict[str, Any]] = None):
        message = f"No map results but result count is {declared_total}"
        super().__init__(message, "INCONSISTENT_RESULTS", details or {"declared_total": declared_total})


class LegacyLayoutException(CrawlerException):
    """Legacy page layout without any extractable identifier (terminal for that region)"""
    retryable = False

    def __init__(self, url: str, details: Optional[dict[str, Any]] = None):
        message = f"ZPID not found in page: {url}"
        super().__init__(message, "ZPID_NOT_FOUND", details or {"url": url})


class BlockedException(CrawlerException):
    """Blocking detected (captcha, unexpected redirect)"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Request blocked: {reason}"
        super().__init__(message, "BLOCKED", details or {"reason": reason})


class DetailFetchException(CrawlerException):
    """Detail payload could not be fetched for a valid identifier (transient)"""
    def __init__(self, zpid: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Failed to fetch detail for {zpid}: {reason}"
        super().__init__(message, "DETAIL_FETCH_FAILED", details or {"zpid": zpid, "reason": reason})


class MissingPreloadedDataException(CrawlerException):
    """Detail page rendered without the preloaded data scripts"""
    def __init__(self, url: str, details: Optional[dict[str, Any]] = None):
        message = f"Failed to load preloaded data from page: {url}"
        super().__init__(message, "PRELOADED_DATA_MISSING", details or {"url": url})


class BrowserException(CrawlerException):
    """Browser launch/navigation error"""
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, "BROWSER_ERROR", details)


class NetworkTimeoutException(CrawlerException):
    """Network timeout"""
    def __init__(self, operation: str, timeout_s: float, details: Optional[dict[str, Any]] = None):
        message = f"Network timeout during '{operation}' after {timeout_s}s"
        super().__init__(message, "NETWORK_TIMEOUT",
                        details or {"operation": operation, "timeout_s": timeout_s})


# Queue
class QueueException(HarvesterException):
    """Work queue backend error"""
    def __init__(self, message: str, error_code: str = "QUEUE_ERROR", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code or "QUEUE_ERROR", details)


# Validation
class ValidationException(HarvesterException):
    """Validation error"""
    retryable = False

    def __init__(self, field: str, reason: str, details: Optional[dict[str, Any]] = None):
        message = f"Validation failed for '{field}': {reason}"
        super().__init__(message, "VALIDATION_ERROR",
                        details or {"field": field, "reason": reason})


class InvalidInputException(ValidationException):
    """Run input rejected"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("input", reason, details)


class InvalidRegionException(ValidationException):
    """Search region violates its invariants or cannot be decoded/split"""
    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__("region", reason, details)


class TransformConfigurationException(ValidationException):
    """Output transform override has the wrong shape"""
    def __init__(self, stage: str, reason: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"transform.{stage}", reason, details)
