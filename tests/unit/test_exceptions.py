"""Exception hierarchy tests"""
import pytest

from harvester.core.exceptions import (
    BlockedException,
    CrawlerException,
    DetailFetchException,
    HarvesterException,
    InconsistentResultsException,
    InvalidIdentifierException,
    InvalidInputException,
    InvalidRegionException,
    LegacyLayoutException,
    NetworkTimeoutException,
    TransformConfigurationException,
    ValidationException,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            InvalidIdentifierException("x"),
            InconsistentResultsException(3),
            LegacyLayoutException("https://x/b/1/"),
            BlockedException("captcha"),
            DetailFetchException("1", "boom"),
            NetworkTimeoutException("goto", 5),
        ],
    )
    def test_crawler_errors(self, exc):
        assert isinstance(exc, CrawlerException)
        assert isinstance(exc, HarvesterException)

    @pytest.mark.parametrize(
        "exc",
        [InvalidInputException("bad"), InvalidRegionException("bad"), TransformConfigurationException("map", "bad")],
    )
    def test_validation_errors_are_terminal(self, exc):
        assert isinstance(exc, ValidationException)
        assert exc.retryable is False


class TestRetryability:
    def test_terminal_errors(self):
        assert not InvalidIdentifierException("x").retryable
        assert not LegacyLayoutException("u").retryable

    def test_transient_errors(self):
        assert InconsistentResultsException(3).retryable
        assert DetailFetchException("1", "boom").retryable
        assert BlockedException("captcha").retryable


class TestFormatting:
    def test_str_carries_code(self):
        exc = DetailFetchException("42", "status 500")
        assert str(exc) == "[DETAIL_FETCH_FAILED] Failed to fetch detail for 42: status 500"
        assert exc.details == {"zpid": "42", "reason": "status 500"}

    def test_field_in_validation_details(self):
        exc = TransformConfigurationException("filter", "wrong arity")
        assert exc.details["field"] == "transform.filter"
