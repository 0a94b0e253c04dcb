"""
Unified async query layer for GitHub, GitLab and Bitbucket.

This package provides one provider interface over the three platforms with
retry, pagination and a shared error taxonomy. Adapters live in
``unigit.github``, ``unigit.gitlab`` and ``unigit.bitbucket`` and are
imported on demand by ``create_provider``, so only the SDK of the platform
in use has to be installed.
"""

from .base import GitProvider
from .config import ProviderConfig, ProviderOptions
from .exceptions import (AuthenticationException, ConfigurationException,
                         MalformedResponseException,
                         NetworkException, NotFoundException,
                         OrganizationDiscoveryWarning,
                         ProjectsUnavailableWarning, ProviderException,
                         RateLimitException, UnigitWarning)
from .factory import (ProviderWithOrganizations, create_provider,
                      create_provider_with_organizations)
from .models import (AppAuth, AuthConfig, BasicAuth, JobTokenAuth, OAuthAuth,
                     Organization, PaginationOptions, Repository, TokenAuth,
                     Workspace, auth_from_dict)
from .utils.retry import RetryPolicy

__all__ = [
    # Providers
    "GitProvider",
    "create_provider",
    "create_provider_with_organizations",
    "ProviderWithOrganizations",
    # Configuration
    "ProviderConfig",
    "ProviderOptions",
    "RetryPolicy",
    # Auth
    "AuthConfig",
    "TokenAuth",
    "OAuthAuth",
    "AppAuth",
    "BasicAuth",
    "JobTokenAuth",
    "auth_from_dict",
    # Models
    "Repository",
    "Organization",
    "Workspace",
    "PaginationOptions",
    # Exceptions
    "ProviderException",
    "NotFoundException",
    "AuthenticationException",
    "RateLimitException",
    "NetworkException",
    "MalformedResponseException",
    "ConfigurationException",
    # Warnings
    "UnigitWarning",
    "OrganizationDiscoveryWarning",
    "ProjectsUnavailableWarning",
]
