"""Shared test fixtures for the test suite."""
import pytest

from unigit.models import BasicAuth, OAuthAuth, TokenAuth
from unigit.utils.retry import RetryPolicy


@pytest.fixture
def no_delay_policy():
    """Return a retry policy that never sleeps between attempts."""
    return RetryPolicy(max_retries=3, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def no_retry_policy():
    """Return a retry policy with a single attempt."""
    return RetryPolicy(max_retries=0, base_delay=0, jitter=False)


@pytest.fixture
def token_auth():
    """Return token auth for testing."""
    return TokenAuth("test_token")


@pytest.fixture
def oauth_auth():
    """Return OAuth auth for testing."""
    return OAuthAuth("test_oauth_token")


@pytest.fixture
def basic_auth():
    """Return basic auth for testing."""
    return BasicAuth("user", "app_password")


class HTTPStatusError(Exception):
    """Transport error carrying a status code, like most SDK errors."""

    def __init__(self, status, message="request failed", headers=None):
        super().__init__(message)
        self.status = status
        self.headers = headers or {}


@pytest.fixture
def http_error():
    """Return a factory for transport errors with a status code."""
    return HTTPStatusError
