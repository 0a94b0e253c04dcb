"""
Provider configuration.

``ProviderConfig`` is what the factory consumes. ``ProviderConfig.from_env``
builds one from the usual environment variables of each platform.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from unigit.exceptions import ConfigurationException
from unigit.models import (
    AppAuth,
    AuthConfig,
    BasicAuth,
    JobTokenAuth,
    OAuthAuth,
    TokenAuth,
)
from unigit.utils.retry import RetryPolicy

PLATFORMS = ("github", "gitlab", "bitbucket")

DEFAULT_REQUEST_TIMEOUT = 20.0


@dataclass(frozen=True)
class ProviderOptions:
    """
    Options common to every provider.

    :param base_url: API base URL override for self-hosted instances.
    :param user_agent: User agent sent with API requests.
    :param request_timeout: Per-request timeout in seconds.
    """

    base_url: Optional[str] = None
    user_agent: Optional[str] = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


@dataclass(frozen=True)
class ProviderConfig:
    """
    Everything needed to construct a provider.

    :param platform: One of ``github``, ``gitlab`` or ``bitbucket``.
    :param auth: Authentication variant for the platform.
    :param options: Common options (base URL, user agent, timeout).
    :param host: GitLab instance URL (takes precedence over ``base_url``).
    :param workspace: Bitbucket Cloud workspace used by ``get_user_repos``.
    :param retry: Retry policy for every operation.
    """

    platform: str
    auth: AuthConfig
    options: ProviderOptions = field(default_factory=ProviderOptions)
    host: Optional[str] = None
    workspace: Optional[str] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @classmethod
    def from_env(
        cls,
        platform: str,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ProviderConfig":
        """
        Build a configuration from environment variables.

        GitHub: ``GITHUB_TOKEN`` or ``GITHUB_APP_ID`` + ``GITHUB_APP_PRIVATE_KEY``
        (+ ``GITHUB_APP_INSTALLATION_ID``), ``GITHUB_BASE_URL``.

        GitLab: ``GITLAB_TOKEN``, ``GITLAB_OAUTH_TOKEN`` or ``CI_JOB_TOKEN``,
        ``GITLAB_URL``.

        Bitbucket: ``BITBUCKET_USERNAME`` + ``BITBUCKET_APP_PASSWORD`` or
        ``BITBUCKET_TOKEN``, ``BITBUCKET_WORKSPACE``, ``BITBUCKET_BASE_URL``.

        Shared: ``UNIGIT_USER_AGENT``, ``UNIGIT_REQUEST_TIMEOUT`` (seconds).

        :param platform: Platform to configure.
        :param environ: Mapping to read instead of ``os.environ``.
        :raises ConfigurationException: If the platform is unknown or no
            credentials are set.
        """
        env = os.environ if environ is None else environ
        platform = (platform or "").lower()
        if platform not in PLATFORMS:
            raise ConfigurationException(f"Unsupported provider type: {platform!r}")

        timeout_raw = env.get("UNIGIT_REQUEST_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_REQUEST_TIMEOUT
        except ValueError as e:
            raise ConfigurationException(
                f"UNIGIT_REQUEST_TIMEOUT must be a number, got {timeout_raw!r}",
                cause=e,
            ) from e

        user_agent = env.get("UNIGIT_USER_AGENT") or None
        host = None
        workspace = None

        if platform == "github":
            auth = _github_auth_from_env(env)
            base_url = env.get("GITHUB_BASE_URL") or None
        elif platform == "gitlab":
            auth = _gitlab_auth_from_env(env)
            base_url = None
            host = env.get("GITLAB_URL") or None
        else:
            auth = _bitbucket_auth_from_env(env)
            base_url = env.get("BITBUCKET_BASE_URL") or None
            workspace = env.get("BITBUCKET_WORKSPACE") or None

        return cls(
            platform=platform,
            auth=auth,
            options=ProviderOptions(
                base_url=base_url,
                user_agent=user_agent,
                request_timeout=timeout,
            ),
            host=host,
            workspace=workspace,
        )


def _github_auth_from_env(env: Mapping[str, str]) -> AuthConfig:
    if env.get("GITHUB_TOKEN"):
        return TokenAuth(env["GITHUB_TOKEN"])

    app_id = env.get("GITHUB_APP_ID")
    private_key = env.get("GITHUB_APP_PRIVATE_KEY")
    if app_id and private_key:
        installation_id = env.get("GITHUB_APP_INSTALLATION_ID")
        try:
            return AppAuth(
                app_id=int(app_id),
                private_key=private_key,
                installation_id=int(installation_id) if installation_id else None,
            )
        except ValueError as e:
            raise ConfigurationException(
                "GITHUB_APP_ID and GITHUB_APP_INSTALLATION_ID must be integers",
                cause=e,
            ) from e

    raise ConfigurationException(
        "GitHub credentials not set: export GITHUB_TOKEN, or GITHUB_APP_ID "
        "and GITHUB_APP_PRIVATE_KEY"
    )


def _gitlab_auth_from_env(env: Mapping[str, str]) -> AuthConfig:
    if env.get("GITLAB_TOKEN"):
        return TokenAuth(env["GITLAB_TOKEN"])
    if env.get("GITLAB_OAUTH_TOKEN"):
        return OAuthAuth(env["GITLAB_OAUTH_TOKEN"])
    if env.get("CI_JOB_TOKEN"):
        return JobTokenAuth(env["CI_JOB_TOKEN"])
    raise ConfigurationException(
        "GitLab credentials not set: export GITLAB_TOKEN, GITLAB_OAUTH_TOKEN "
        "or CI_JOB_TOKEN"
    )


def _bitbucket_auth_from_env(env: Mapping[str, str]) -> AuthConfig:
    if env.get("BITBUCKET_USERNAME") and env.get("BITBUCKET_APP_PASSWORD"):
        return BasicAuth(env["BITBUCKET_USERNAME"], env["BITBUCKET_APP_PASSWORD"])
    if env.get("BITBUCKET_TOKEN"):
        return OAuthAuth(env["BITBUCKET_TOKEN"])
    raise ConfigurationException(
        "Bitbucket credentials not set: export BITBUCKET_USERNAME and "
        "BITBUCKET_APP_PASSWORD, or BITBUCKET_TOKEN"
    )
