"""
GitHub provider using PyGithub.

Raw JSON is fetched through PyGithub's requester, so every list endpoint
pages with the ``Link: rel="next"`` header under our own page size and item
cap. PyGithub's built-in retry is disabled; ``retry_policy`` is the only
retry layer.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from github import Auth, Github, RateLimitExceededException
from requests.utils import parse_header_links

from unigit.base import GitProvider
from unigit.config import DEFAULT_REQUEST_TIMEOUT, ProviderOptions
from unigit.exceptions import ConfigurationException
from unigit.models import (
    AppAuth,
    AuthConfig,
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

DEFAULT_USER_AGENT = "unigit-github"


def _rate_limit_status(error: BaseException) -> Optional[int]:
    # GitHub reports exhausted rate limits as 403.
    if isinstance(error, RateLimitExceededException):
        return 429
    return None


GITHUB_ERRORS = ErrorMapper("GitHub", (_rate_limit_status,) + DEFAULT_EXTRACTORS)


def next_link(headers: Optional[Dict[str, Any]]) -> Optional[str]:
    """URL of the ``rel="next"`` entry of a ``Link`` header, if any."""
    value = (headers or {}).get("link")
    if not value:
        return None
    for link in parse_header_links(value):
        if link.get("rel") == "next":
            return link.get("url")
    return None


def repository_from_github(data: Dict[str, Any]) -> Repository:
    return Repository(
        id=str(data["id"]),
        name=data["name"],
        full_name=data["full_name"],
        description=data.get("description") or None,
        default_branch=data.get("default_branch") or "main",
        is_private=bool(data.get("private")),
        web_url=data.get("html_url"),
        ssh_url=data.get("ssh_url") or None,
        http_url=data.get("clone_url") or None,
    )


def organization_from_github(data: Dict[str, Any]) -> Organization:
    return Organization(
        id=str(data["id"]),
        name=data["login"],
        display_name=data.get("name") or None,
        description=data.get("description") or None,
        web_url=data.get("html_url"),
        # /user/orgs does not report the membership role.
        role="member",
    )


def _search_filter(search: Optional[str]):
    # GitHub's list endpoints take no search parameter.
    if not search:
        return None
    needle = search.lower()
    return lambda repo: needle in repo.name.lower() or needle in repo.full_name.lower()


class GitHubProvider(GitProvider):
    """
    GitHub and GitHub Enterprise provider.

    Supports token, OAuth token and GitHub App authentication. App auth
    exchanges an installation token when ``installation_id`` is set.
    """

    platform = "GitHub"
    default_per_page = 100
    max_per_page = 100

    def __init__(
        self,
        auth: AuthConfig,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[Github] = None,
    ):
        """
        Initialize GitHub provider.

        :param auth: ``TokenAuth``, ``OAuthAuth`` or ``AppAuth``.
        :param base_url: API URL for GitHub Enterprise, e.g.
            ``https://ghe.example/api/v3``.
        :param user_agent: User agent for API requests.
        :param request_timeout: Request timeout in seconds.
        :param retry_policy: Retry settings for every operation.
        :param client: Pre-built ``Github`` client.
        """
        self.auth = auth
        super().__init__(
            ProviderOptions(
                base_url=base_url,
                user_agent=user_agent,
                request_timeout=request_timeout,
            ),
            retry_policy=retry_policy,
            client=client,
        )

    def _create_client(self) -> Github:
        auth = self.auth
        if isinstance(auth, (TokenAuth, OAuthAuth)):
            # Personal and OAuth tokens are both bearer tokens.
            gh_auth = Auth.Token(auth.token)
        elif isinstance(auth, AppAuth):
            gh_auth = Auth.AppAuth(auth.app_id, auth.private_key)
            if auth.installation_id is not None:
                gh_auth = Auth.AppInstallationAuth(gh_auth, auth.installation_id)
        else:
            raise ConfigurationException(
                f"Unsupported GitHub auth kind: {getattr(auth, 'kind', auth)!r}"
            )

        kwargs: Dict[str, Any] = {
            "auth": gh_auth,
            "timeout": self.opts.request_timeout,
            "user_agent": self.opts.user_agent or DEFAULT_USER_AGENT,
            "per_page": self.max_per_page,
            "retry": None,
        }
        if self.opts.base_url:
            kwargs["base_url"] = self.opts.base_url

        logger.debug(f"Creating GitHub client for {self.opts.base_url or 'github.com'}")
        return Github(**kwargs)

    def _handle_github_exception(self, e: Exception) -> None:
        """
        Convert a GitHub failure into a provider exception.

        :raises ProviderException: Always.
        """
        mapped = GITHUB_ERRORS.map(e)
        if mapped is e:
            raise e
        raise mapped from e

    async def _request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], Any]:
        requester = self.client.requester
        return await self._run(
            requester.requestJsonAndCheck, "GET", url, parameters=params
        )

    async def _collect(
        self,
        path: str,
        params: Dict[str, Any],
        options: Optional[PaginationOptions],
        transform,
        include=None,
    ) -> list:
        handler = AsyncPaginationHandler(
            options, self.default_per_page, self.max_per_page
        )

        async def fetch_page(cursor: Optional[str], per_page: int) -> Page:
            if cursor is None:
                headers, data = await self._request(
                    path, {**params, "per_page": per_page, "page": 1}
                )
            else:
                # next links already carry the query string
                headers, data = await self._request(cursor)
            return Page(items=data or [], next_cursor=next_link(headers))

        return await handler.collect(
            fetch_page, GITHUB_ERRORS.converter(transform), include, start=None
        )

    @staticmethod
    def _repo_path(full_name: str) -> str:
        owner, repo = split_full_name(full_name, "GitHub")
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    @retry_with_backoff()
    async def get_repo_metadata(self, full_name: str) -> Repository:
        """
        Get metadata for a repository.

        :param full_name: ``owner/repo``.
        :return: Repository object.
        """
        path = self._repo_path(full_name)
        try:
            _, data = await self._request(path)
        except Exception as e:
            self._handle_github_exception(e)

        repo = GITHUB_ERRORS.converter(repository_from_github)(data)
        logger.debug(f"Retrieved repository: {repo.full_name}")
        return repo

    @retry_with_backoff()
    async def get_user_repos(
        self,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List repositories of the authenticated user, most recently updated first.

        :param search: Case-insensitive substring matched against name and full name.
        :param options: Pagination options.
        :return: List of Repository objects.
        """
        params = {"visibility": "all", "sort": "updated", "direction": "desc"}
        try:
            repos = await self._collect(
                "/user/repos",
                params,
                options,
                repository_from_github,
                _search_filter(search),
            )
        except Exception as e:
            self._handle_github_exception(e)

        logger.info(f"Retrieved {len(repos)} repositories")
        return repos

    @retry_with_backoff()
    async def get_organizations(
        self,
        options: Optional[PaginationOptions] = None,
    ) -> List[Organization]:
        """
        List organizations of the authenticated user.

        :param options: Pagination options.
        :return: List of Organization objects.
        """
        try:
            orgs = await self._collect(
                "/user/orgs", {}, options, organization_from_github
            )
        except Exception as e:
            self._handle_github_exception(e)

        logger.info(f"Retrieved {len(orgs)} organizations")
        return orgs

    @retry_with_backoff()
    async def get_organization_repos(
        self,
        org_name: str,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List repositories of an organization, most recently updated first.

        :param org_name: Organization login.
        :param search: Case-insensitive substring matched against name and full name.
        :param options: Pagination options.
        :return: List of Repository objects.
        """
        if not org_name:
            raise ConfigurationException("GitHub organization name must not be empty")

        params = {"type": "all", "sort": "updated", "direction": "desc"}
        try:
            repos = await self._collect(
                f"/orgs/{quote(org_name, safe='')}/repos",
                params,
                options,
                repository_from_github,
                _search_filter(search),
            )
        except Exception as e:
            self._handle_github_exception(e)

        logger.info(f"Retrieved {len(repos)} repositories for organization {org_name}")
        return repos

    @retry_with_backoff()
    async def get_repo_branches(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List branch names of a repository.

        :param full_name: ``owner/repo``.
        :param options: Pagination options.
        :return: Branch names.
        """
        path = self._repo_path(full_name) + "/branches"
        try:
            branches = await self._collect(
                path, {}, options, lambda branch: branch["name"]
            )
        except Exception as e:
            self._handle_github_exception(e)

        logger.info(f"Retrieved {len(branches)} branches for {full_name}")
        return branches

    @retry_with_backoff()
    async def get_repo_tags(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List tag names of a repository.

        :param full_name: ``owner/repo``.
        :param options: Pagination options.
        :return: Tag names.
        """
        path = self._repo_path(full_name) + "/tags"
        try:
            tags = await self._collect(path, {}, options, lambda tag: tag["name"])
        except Exception as e:
            self._handle_github_exception(e)

        logger.info(f"Retrieved {len(tags)} tags for {full_name}")
        return tags
