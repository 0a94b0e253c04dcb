"""
GitLab provider using python-gitlab.

Lists are fetched one page at a time through the python-gitlab managers
(``get_all=False`` with explicit ``page``/``per_page``). A short or empty
page ends the listing.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from gitlab import Gitlab
from gitlab.exceptions import GitlabAuthenticationError

from unigit.base import GitProvider
from unigit.config import DEFAULT_REQUEST_TIMEOUT, ProviderOptions
from unigit.exceptions import ConfigurationException
from unigit.models import (
    AuthConfig,
    JobTokenAuth,
    OAuthAuth,
    Organization,
    PaginationOptions,
    Repository,
    TokenAuth,
)
from unigit.utils.errors import DEFAULT_EXTRACTORS, ErrorMapper
from unigit.utils.helpers import split_full_name
from unigit.utils.pagination import AsyncPaginationHandler, Page
from unigit.utils.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://gitlab.com"
DEFAULT_USER_AGENT = "unigit-gitlab"

# Guest access or above, i.e. every group the user is a member of.
_MEMBER_ACCESS_LEVEL = 10


def _auth_error_status(error: BaseException) -> Optional[int]:
    if isinstance(error, GitlabAuthenticationError) and not error.response_code:
        return 401
    return None


GITLAB_ERRORS = ErrorMapper("GitLab", (_auth_error_status,) + DEFAULT_EXTRACTORS)


def _attributes(obj: Any) -> Dict[str, Any]:
    """Raw JSON attributes of a python-gitlab object (or a plain dict)."""
    attrs = getattr(obj, "attributes", None)
    return attrs if isinstance(attrs, dict) else obj


def repository_from_gitlab(obj: Any) -> Repository:
    data = _attributes(obj)
    return Repository(
        id=str(data["id"]),
        name=data["name"],
        full_name=data["path_with_namespace"],
        description=data.get("description") or None,
        default_branch=data.get("default_branch") or "main",
        is_private=data.get("visibility") != "public",
        web_url=data.get("web_url"),
        ssh_url=data.get("ssh_url_to_repo") or None,
        http_url=data.get("http_url_to_repo") or None,
    )


def organization_from_gitlab(obj: Any) -> Organization:
    data = _attributes(obj)
    return Organization(
        id=str(data["id"]),
        # full_path keeps subgroups addressable by get_organization_repos
        name=data.get("full_path") or data["path"],
        display_name=data.get("name") or None,
        description=data.get("description") or None,
        web_url=data.get("web_url"),
        # The groups API needs a separate call per group for the role.
        role="member",
    )


def _name_of(obj: Any) -> str:
    return _attributes(obj)["name"]


def _instance_url(url: str) -> str:
    url = url.rstrip("/")
    if url.endswith("/api/v4"):
        url = url[: -len("/api/v4")]
    return url


class GitLabProvider(GitProvider):
    """
    GitLab.com and self-managed GitLab provider.

    Supports personal/project tokens, OAuth tokens and CI job tokens.
    """

    platform = "GitLab"
    default_per_page = 100
    max_per_page = 100

    def __init__(
        self,
        auth: AuthConfig,
        host: Optional[str] = None,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[Gitlab] = None,
    ):
        """
        Initialize GitLab provider.

        :param auth: ``TokenAuth``, ``OAuthAuth`` or ``JobTokenAuth``.
        :param host: GitLab instance URL (default: https://gitlab.com).
        :param base_url: Alternative to ``host``. A trailing ``/api/v4`` is dropped.
        :param user_agent: User agent for API requests.
        :param request_timeout: Request timeout in seconds.
        :param retry_policy: Retry settings for every operation.
        :param client: Pre-built ``Gitlab`` client.
        """
        self.auth = auth
        self.host = _instance_url(host or base_url or DEFAULT_HOST)
        super().__init__(
            ProviderOptions(
                base_url=base_url,
                user_agent=user_agent,
                request_timeout=request_timeout,
            ),
            retry_policy=retry_policy,
            client=client,
        )

    def _create_client(self) -> Gitlab:
        auth = self.auth
        if isinstance(auth, TokenAuth):
            credentials = {"private_token": auth.token}
        elif isinstance(auth, OAuthAuth):
            credentials = {"oauth_token": auth.token}
        elif isinstance(auth, JobTokenAuth):
            credentials = {"job_token": auth.token}
        else:
            raise ConfigurationException(
                f"Unsupported GitLab auth kind: {getattr(auth, 'kind', auth)!r}"
            )

        logger.debug(f"Creating GitLab client for {self.host}")
        return Gitlab(
            url=self.host,
            timeout=self.opts.request_timeout,
            user_agent=self.opts.user_agent or DEFAULT_USER_AGENT,
            retry_transient_errors=False,
            **credentials,
        )

    def _handle_gitlab_exception(self, e: Exception) -> None:
        """
        Convert a GitLab failure into a provider exception.

        :raises ProviderException: Always.
        """
        mapped = GITLAB_ERRORS.map(e)
        if mapped is e:
            raise e
        raise mapped from e

    async def _collect(
        self,
        list_page: Callable[..., list],
        list_params: Dict[str, Any],
        options: Optional[PaginationOptions],
        transform,
    ) -> list:
        handler = AsyncPaginationHandler(
            options, self.default_per_page, self.max_per_page
        )

        async def fetch_page(page: int, per_page: int) -> Page:
            items = await self._run(
                list_page,
                page=page,
                per_page=per_page,
                get_all=False,
                **list_params,
            )
            items = list(items or [])
            # GitLab lists have no next token here; a short page is the last.
            next_page = page + 1 if len(items) >= per_page else None
            return Page(items=items, next_cursor=next_page)

        return await handler.collect(
            fetch_page, GITLAB_ERRORS.converter(transform), start=1
        )

    def _project(self, full_name: str, lazy: bool = True):
        split_full_name(full_name, "GitLab", nested=True)
        return self.client.projects.get(full_name, lazy=lazy)

    @retry_with_backoff()
    async def get_repo_metadata(self, full_name: str) -> Repository:
        """
        Get metadata for a project.

        :param full_name: ``group/project``, nested groups allowed.
        :return: Repository object.
        """
        split_full_name(full_name, "GitLab", nested=True)
        try:
            project = await self._run(self.client.projects.get, full_name)
        except Exception as e:
            self._handle_gitlab_exception(e)

        repo = GITLAB_ERRORS.converter(repository_from_gitlab)(project)
        logger.debug(f"Retrieved project: {repo.full_name}")
        return repo

    @retry_with_backoff()
    async def get_user_repos(
        self,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List projects the user is a member of, most recently updated first.

        :param search: Server-side search term.
        :param options: Pagination options.
        :return: List of Repository objects.
        """
        params: Dict[str, Any] = {
            "membership": True,
            "order_by": "updated_at",
            "sort": "desc",
        }
        if search:
            params["search"] = search

        try:
            repos = await self._collect(
                self.client.projects.list, params, options, repository_from_gitlab
            )
        except Exception as e:
            self._handle_gitlab_exception(e)

        logger.info(f"Retrieved {len(repos)} projects")
        return repos

    @retry_with_backoff()
    async def get_organizations(
        self,
        options: Optional[PaginationOptions] = None,
    ) -> List[Organization]:
        """
        List groups the user is a member of, ordered by name.

        :param options: Pagination options.
        :return: List of Organization objects (representing GitLab groups).
        """
        params = {
            "min_access_level": _MEMBER_ACCESS_LEVEL,
            "order_by": "name",
            "sort": "asc",
        }
        try:
            groups = await self._collect(
                self.client.groups.list, params, options, organization_from_gitlab
            )
        except Exception as e:
            self._handle_gitlab_exception(e)

        logger.info(f"Retrieved {len(groups)} groups")
        return groups

    @retry_with_backoff()
    async def get_organization_repos(
        self,
        org_name: str,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List projects of a group, most recently updated first.

        :param org_name: Group full path (or ID).
        :param search: Server-side search term.
        :param options: Pagination options.
        :return: List of Repository objects.
        """
        if not org_name:
            raise ConfigurationException("GitLab group name must not be empty")

        params: Dict[str, Any] = {"order_by": "updated_at", "sort": "desc"}
        if search:
            params["search"] = search

        try:
            group = self.client.groups.get(org_name, lazy=True)
            repos = await self._collect(
                group.projects.list, params, options, repository_from_gitlab
            )
        except Exception as e:
            self._handle_gitlab_exception(e)

        logger.info(f"Retrieved {len(repos)} projects for group {org_name}")
        return repos

    @retry_with_backoff()
    async def get_repo_branches(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List branch names of a project.

        :param full_name: ``group/project``.
        :param options: Pagination options.
        :return: Branch names.
        """
        try:
            project = self._project(full_name)
            branches = await self._collect(
                project.branches.list, {}, options, _name_of
            )
        except Exception as e:
            self._handle_gitlab_exception(e)

        logger.info(f"Retrieved {len(branches)} branches for {full_name}")
        return branches

    @retry_with_backoff()
    async def get_repo_tags(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List tag names of a project, most recently updated first.

        :param full_name: ``group/project``.
        :param options: Pagination options.
        :return: Tag names.
        """
        try:
            project = self._project(full_name)
            tags = await self._collect(
                project.tags.list,
                {"order_by": "updated", "sort": "desc"},
                options,
                _name_of,
            )
        except Exception as e:
            self._handle_gitlab_exception(e)

        logger.info(f"Retrieved {len(tags)} tags for {full_name}")
        return tags
