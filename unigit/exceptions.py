"""
Exception and warning types for provider operations.

Every adapter failure surfaces as exactly one ``ProviderException`` subclass.
The transport error that caused it is kept on ``cause`` (and chained as
``__cause__``) for diagnostics.
"""

from datetime import datetime
from typing import Any, Optional


class ProviderException(Exception):
    """Base exception for all provider errors."""

    default_message = "Provider error"

    def __init__(
        self,
        message: Optional[str] = None,
        cause: Any = None,
        status: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.cause = cause
        self.status = status
        super().__init__(self.message)


class NotFoundException(ProviderException):
    """Raised when a resource is not found."""

    default_message = "Resource not found"


class AuthenticationException(ProviderException):
    """Raised when authentication or authorization fails."""

    default_message = "Authentication failed"


class RateLimitException(ProviderException):
    """Raised when API rate limit is exceeded."""

    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: Optional[str] = None,
        cause: Any = None,
        status: Optional[int] = 429,
        reset_at: Optional[datetime] = None,
    ):
        super().__init__(message, cause=cause, status=status)
        self.reset_at = reset_at


class NetworkException(ProviderException):
    """Raised when a request fails in transit or the server errors."""

    default_message = "Network request failed"


class MalformedResponseException(NetworkException):
    """Raised when a response record cannot be converted into a model."""

    default_message = "Unexpected response payload"


class ConfigurationException(ProviderException):
    """Raised when the provider configuration or a call argument is invalid."""

    default_message = "Invalid provider configuration"


class UnigitWarning(UserWarning):
    """Base class for non-fatal diagnostics."""


class OrganizationDiscoveryWarning(UnigitWarning):
    """Emitted when organization discovery fails during provider setup."""


class ProjectsUnavailableWarning(UnigitWarning):
    """Emitted when a self-hosted Bitbucket instance cannot list projects."""
