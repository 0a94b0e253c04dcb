"""
Unified data models shared by every provider.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from unigit.exceptions import ConfigurationException


@dataclass(frozen=True)
class Repository:
    """A repository as reported by any platform."""

    id: str
    name: str
    full_name: str
    default_branch: str = "main"
    is_private: bool = False
    description: Optional[str] = None
    web_url: Optional[str] = None
    ssh_url: Optional[str] = None
    http_url: Optional[str] = None


@dataclass(frozen=True)
class Organization:
    """A GitHub organization, GitLab group or Bitbucket workspace/project."""

    id: str
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    web_url: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class Workspace:
    """A Bitbucket Cloud workspace."""

    slug: str
    name: str
    uuid: str


@dataclass(frozen=True)
class PaginationOptions:
    """
    Paging controls for list operations.

    :param per_page: Items requested per network call, clamped by each platform.
    :param max_items: Total cap across all pages. ``None`` means unbounded.
    """

    per_page: Optional[int] = None
    max_items: Optional[int] = None


# Authentication variants. Each carries a fixed ``kind`` tag.


@dataclass(frozen=True)
class TokenAuth:
    token: str
    kind: str = field(default="token", init=False)


@dataclass(frozen=True)
class OAuthAuth:
    token: str
    kind: str = field(default="oauth", init=False)


@dataclass(frozen=True)
class AppAuth:
    app_id: int
    private_key: str
    installation_id: Optional[int] = None
    kind: str = field(default="app", init=False)


@dataclass(frozen=True)
class BasicAuth:
    username: str
    password: str
    kind: str = field(default="basic", init=False)


@dataclass(frozen=True)
class JobTokenAuth:
    token: str
    kind: str = field(default="job", init=False)


AuthConfig = Union[TokenAuth, OAuthAuth, AppAuth, BasicAuth, JobTokenAuth]

_AUTH_TYPES = {
    "token": TokenAuth,
    "oauth": OAuthAuth,
    "app": AppAuth,
    "basic": BasicAuth,
    "job": JobTokenAuth,
}


def auth_from_dict(data: Mapping[str, Any]) -> AuthConfig:
    """
    Build an auth variant from external input such as a parsed config file.

    :param data: Mapping with a ``kind`` key plus the variant's fields.
    :return: The matching auth dataclass.
    :raises ConfigurationException: If the kind is unknown or fields are missing.
    """
    kind = data.get("kind")
    auth_cls = _AUTH_TYPES.get(kind)
    if auth_cls is None:
        raise ConfigurationException(f"Unknown auth kind: {kind!r}")

    fields = {key: value for key, value in data.items() if key != "kind"}
    try:
        return auth_cls(**fields)
    except TypeError as e:
        raise ConfigurationException(
            f"Invalid fields for auth kind {kind!r}: {e}", cause=e
        ) from e
