"""
Unified factory for creating providers from a ``ProviderConfig``.
"""

import importlib
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from unigit.base import GitProvider
from unigit.config import PLATFORMS, ProviderConfig
from unigit.exceptions import ConfigurationException, OrganizationDiscoveryWarning
from unigit.models import Organization
from unigit.utils.helpers import sanitize_for_logging

logger = logging.getLogger(__name__)

# platform -> (module, class name)
_PROVIDERS = {
    "github": ("unigit.github", "GitHubProvider"),
    "gitlab": ("unigit.gitlab", "GitLabProvider"),
    "bitbucket": ("unigit.bitbucket", "BitbucketProvider"),
}

# import name -> distribution name of the vendor SDKs.
# requests is imported by unigit itself, so it is never missing here.
_DISTRIBUTIONS = {
    "github": "PyGithub",
    "gitlab": "python-gitlab",
}


def _load_provider_class(platform: str):
    module_name, class_name = _PROVIDERS[platform]
    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        root = (e.name or "").split(".")[0]
        distribution = _DISTRIBUTIONS.get(root)
        if distribution is None:
            raise
        raise ConfigurationException(
            f"The {platform} provider requires the '{distribution}' package. "
            f"Install it with: pip install {distribution}",
            cause=e,
        ) from e
    return getattr(module, class_name)


def create_provider(config: ProviderConfig) -> GitProvider:
    """
    Create a provider for ``config.platform``.

    The adapter module (and its vendor SDK) is imported on first use.

    :param config: Provider configuration.
    :return: A ``GitProvider`` for the platform.
    :raises ConfigurationException: If the platform is unknown or its SDK is
        not installed.
    """
    platform = (config.platform or "").lower()
    if platform not in PLATFORMS:
        raise ConfigurationException(f"Unsupported provider type: {config.platform!r}")

    logger.debug(f"Creating {platform} provider: {sanitize_for_logging(config)}")
    provider_cls = _load_provider_class(platform)

    opts = config.options
    kwargs: Dict[str, Any] = {
        "auth": config.auth,
        "base_url": opts.base_url,
        "user_agent": opts.user_agent,
        "request_timeout": opts.request_timeout,
        "retry_policy": config.retry,
    }
    if platform == "gitlab":
        kwargs["host"] = config.host
    elif platform == "bitbucket":
        kwargs["workspace"] = config.workspace

    return provider_cls(**kwargs)


@dataclass
class ProviderWithOrganizations:
    """
    A provider together with the organizations discovered at creation.

    :param provider: The created provider.
    :param organizations: Discovered organizations, empty when discovery failed.
    :param error: The discovery failure, if any.
    """

    provider: GitProvider
    organizations: List[Organization] = field(default_factory=list)
    error: Optional[Exception] = None


async def create_provider_with_organizations(
    config: ProviderConfig,
) -> ProviderWithOrganizations:
    """
    Create a provider and discover its organizations in one step.

    Discovery failures never propagate: they are logged, issued as an
    ``OrganizationDiscoveryWarning`` and reported on the result's ``error``.
    Configuration errors from ``create_provider`` still raise.

    :param config: Provider configuration.
    :return: The provider and its organizations.
    """
    provider = create_provider(config)

    try:
        organizations = await provider.get_organizations()
    except Exception as e:
        message = f"Could not discover organizations: {e}"
        logger.warning(message)
        warnings.warn(message, OrganizationDiscoveryWarning, stacklevel=2)
        return ProviderWithOrganizations(provider=provider, organizations=[], error=e)

    logger.info(f"Discovered {len(organizations)} {config.platform} organizations")
    return ProviderWithOrganizations(provider=provider, organizations=organizations)