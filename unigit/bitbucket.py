"""
Bitbucket provider over the REST API using requests.

Bitbucket Cloud scopes repositories by workspace. Self-hosted instances list
repositories globally and group them by project. Every collection pages by
following the ``next`` URL of the previous response.
"""

import logging
import warnings
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from unigit.base import GitProvider
from unigit.config import DEFAULT_REQUEST_TIMEOUT, ProviderOptions
from unigit.exceptions import (
    ConfigurationException,
    NotFoundException,
    ProjectsUnavailableWarning,
    ProviderException,
)
from unigit.models import (
    AuthConfig,
    BasicAuth,
    OAuthAuth,
    Organization,
    PaginationOptions,
    Repository,
    Workspace,
)
from unigit.utils.errors import ErrorMapper
from unigit.utils.helpers import split_full_name
from unigit.utils.pagination import AsyncPaginationHandler, FetchPage, Page
from unigit.utils.rest import BitbucketRESTClient
from unigit.utils.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = BitbucketRESTClient.CLOUD_API_URL

BITBUCKET_ERRORS = ErrorMapper("Bitbucket")


def _href(links: Dict[str, Any], name: str) -> Optional[str]:
    return (links.get(name) or {}).get("href")


def repository_from_bitbucket(
    data: Dict[str, Any],
    namespace: Optional[str] = None,
) -> Repository:
    """
    Build a ``Repository`` from a Bitbucket repository record.

    :param data: Decoded JSON record.
    :param namespace: Project key used to build ``full_name`` when the record
        lacks one (self-hosted project listings).
    """
    links = data.get("links") or {}
    clone = {link.get("name"): link.get("href") for link in links.get("clone") or []}

    full_name = data.get("full_name")
    if not full_name:
        full_name = f"{namespace}/{data['name']}" if namespace else data["name"]

    return Repository(
        id=str(data.get("uuid") or data.get("id")),
        name=data["name"],
        full_name=full_name,
        description=data.get("description") or None,
        default_branch=(data.get("mainbranch") or {}).get("name") or "main",
        is_private=bool(data.get("is_private", False)),
        web_url=_href(links, "html"),
        ssh_url=clone.get("ssh"),
        http_url=clone.get("https"),
    )


def workspace_from_bitbucket(data: Dict[str, Any]) -> Workspace:
    return Workspace(slug=data["slug"], name=data.get("name") or data["slug"], uuid=data["uuid"])


def organization_from_workspace(data: Dict[str, Any]) -> Organization:
    return Organization(
        id=data["uuid"],
        name=data["slug"],
        display_name=data.get("name") or None,
        web_url=_href(data.get("links") or {}, "html"),
        role="member",
    )


def organization_from_project(data: Dict[str, Any]) -> Organization:
    return Organization(
        id=str(data.get("uuid") or data.get("id") or data["key"]),
        name=data["key"],
        display_name=data.get("name") or None,
        description=data.get("description") or None,
        web_url=_href(data.get("links") or {}, "html"),
        role="member",
    )


def search_query(search: Optional[str]) -> Optional[str]:
    """Bitbucket query-language filter for a name substring."""
    if not search:
        return None
    escaped = search.replace("\\", "\\\\").replace('"', '\\"')
    return f'name~"{escaped}"'


def _projects_unavailable(error: ProviderException) -> bool:
    # Missing or disabled projects API, as opposed to auth or throttling.
    if isinstance(error, NotFoundException):
        return True
    status = error.status
    return status is not None and 400 <= status < 500 and status not in (401, 403, 429)


class BitbucketProvider(GitProvider):
    """
    Bitbucket Cloud and self-hosted provider.

    Supports basic auth (username + app password) and OAuth/access tokens.
    """

    platform = "Bitbucket"
    default_per_page = 50
    max_per_page = 100

    def __init__(
        self,
        auth: AuthConfig,
        base_url: Optional[str] = None,
        workspace: Optional[str] = None,
        user_agent: Optional[str] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[BitbucketRESTClient] = None,
    ):
        """
        Initialize Bitbucket provider.

        :param auth: ``BasicAuth`` or ``OAuthAuth``.
        :param base_url: API base URL (default: https://api.bitbucket.org/2.0).
        :param workspace: Workspace used by ``get_user_repos`` on Bitbucket
            Cloud. Ignored by self-hosted instances.
        :param user_agent: User agent for API requests.
        :param request_timeout: Request timeout in seconds.
        :param retry_policy: Retry settings for every operation.
        :param client: Pre-built REST client.
        """
        self.auth = auth
        self.workspace = workspace
        super().__init__(
            ProviderOptions(
                base_url=base_url or DEFAULT_BASE_URL,
                user_agent=user_agent,
                request_timeout=request_timeout,
            ),
            retry_policy=retry_policy,
            client=client,
        )

    @property
    def is_cloud(self) -> bool:
        """Whether the configured instance is Bitbucket Cloud."""
        return "bitbucket.org" in self.opts.base_url

    def _create_client(self) -> BitbucketRESTClient:
        auth = self.auth
        if isinstance(auth, BasicAuth):
            credentials = {"username": auth.username, "password": auth.password}
        elif isinstance(auth, OAuthAuth):
            credentials = {"token": auth.token}
        else:
            raise ConfigurationException(
                f"Unsupported Bitbucket auth kind: {getattr(auth, 'kind', auth)!r}"
            )

        logger.debug(f"Creating Bitbucket client for {self.opts.base_url}")
        return BitbucketRESTClient(
            base_url=self.opts.base_url,
            timeout=self.opts.request_timeout,
            user_agent=self.opts.user_agent,
            **credentials,
        )

    def _handle_bitbucket_exception(self, e: Exception) -> None:
        """
        Convert a Bitbucket failure into a provider exception.

        :raises ProviderException: Always.
        """
        mapped = BITBUCKET_ERRORS.map(e)
        if mapped is e:
            raise e
        raise mapped from e

    def _page_fetcher(self, endpoint: str, params: Dict[str, Any]) -> FetchPage:
        async def fetch_page(cursor: Optional[str], per_page: int) -> Page:
            if cursor is None:
                values, next_url = await self._run(
                    self.client.get_page, endpoint, {**params, "pagelen": per_page}
                )
            else:
                values, next_url = await self._run(self.client.get_page, cursor)
            return Page(items=values, next_cursor=next_url)

        return fetch_page

    async def _collect(
        self,
        fetch_page: FetchPage,
        options: Optional[PaginationOptions],
        transform,
    ) -> list:
        handler = AsyncPaginationHandler(
            options, self.default_per_page, self.max_per_page
        )
        return await handler.collect(
            fetch_page, BITBUCKET_ERRORS.converter(transform), start=None
        )

    @staticmethod
    def _repo_path(full_name: str) -> str:
        workspace, slug = split_full_name(full_name, "Bitbucket")
        return f"/repositories/{quote(workspace, safe='')}/{quote(slug, safe='')}"

    def _require_cloud(self, operation: str) -> None:
        if not self.is_cloud:
            raise ConfigurationException(
                f"{operation}() is only available for Bitbucket Cloud, "
                f"not self-hosted instances"
            )

    async def _workspace_repos(
        self,
        workspace: str,
        search: Optional[str],
        options: Optional[PaginationOptions],
    ) -> List[Repository]:
        params = {"role": "member", "sort": "-updated_on", "q": search_query(search)}
        fetch_page = self._page_fetcher(
            f"/repositories/{quote(workspace, safe='')}", params
        )
        return await self._collect(fetch_page, options, repository_from_bitbucket)

    @retry_with_backoff()
    async def list_workspaces(
        self,
        options: Optional[PaginationOptions] = None,
    ) -> List[Workspace]:
        """
        List workspaces the user is a member of.

        :param options: Pagination options.
        :return: List of Workspace objects.
        :raises ConfigurationException: On self-hosted instances.
        """
        self._require_cloud("list_workspaces")
        try:
            workspaces = await self._collect(
                self._page_fetcher("/workspaces", {"role": "member"}),
                options,
                workspace_from_bitbucket,
            )
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(workspaces)} workspaces")
        return workspaces

    @retry_with_backoff()
    async def get_repo_metadata(self, full_name: str) -> Repository:
        """
        Get metadata for a repository.

        :param full_name: ``workspace/repo_slug``.
        :return: Repository object.
        """
        path = self._repo_path(full_name)
        try:
            data = await self._run(self.client.get, path)
        except Exception as e:
            self._handle_bitbucket_exception(e)

        repo = BITBUCKET_ERRORS.converter(repository_from_bitbucket)(data)
        logger.debug(f"Retrieved repository: {repo.full_name}")
        return repo

    @retry_with_backoff()
    async def get_user_repos(
        self,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List repositories of the user, most recently updated first.

        On Bitbucket Cloud this lists the configured workspace. Self-hosted
        instances list every repository the user is a member of.

        :param search: Name substring, sent as a ``q`` filter.
        :param options: Pagination options.
        :return: List of Repository objects.
        :raises ConfigurationException: On Bitbucket Cloud without a workspace.
        """
        if self.is_cloud and not self.workspace:
            raise ConfigurationException(
                "Bitbucket Cloud requires a workspace. Use list_workspaces() "
                "to discover available workspaces, then pass one as "
                "'workspace' when creating the provider."
            )

        try:
            if self.is_cloud:
                repos = await self._workspace_repos(self.workspace, search, options)
            else:
                params = {
                    "role": "member",
                    "sort": "-updated_on",
                    "q": search_query(search),
                }
                repos = await self._collect(
                    self._page_fetcher("/repositories", params),
                    options,
                    repository_from_bitbucket,
                )
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(repos)} repositories")
        return repos

    @retry_with_backoff()
    async def get_organizations(
        self,
        options: Optional[PaginationOptions] = None,
    ) -> List[Organization]:
        """
        List workspaces (Cloud) or projects (self-hosted).

        When a self-hosted instance has no usable projects API, the projects
        collected so far are returned and a ``ProjectsUnavailableWarning`` is
        issued.

        :param options: Pagination options.
        :return: List of Organization objects.
        """
        try:
            if self.is_cloud:
                orgs = await self._collect(
                    self._page_fetcher("/workspaces", {"role": "member"}),
                    options,
                    organization_from_workspace,
                )
            else:
                orgs = await self._project_organizations(options)
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(orgs)} organizations")
        return orgs

    async def _project_organizations(
        self,
        options: Optional[PaginationOptions],
    ) -> List[Organization]:
        fetch_projects = self._page_fetcher("/projects", {})
        unavailable: List[ProviderException] = []

        async def fetch_page(cursor: Optional[str], per_page: int) -> Page:
            try:
                return await fetch_projects(cursor, per_page)
            except Exception as e:
                mapped = BITBUCKET_ERRORS.map(e)
                if not _projects_unavailable(mapped):
                    raise
                unavailable.append(mapped)
                # An empty page ends pagination with what was collected.
                return Page()

        orgs = await self._collect(fetch_page, options, organization_from_project)

        if unavailable:
            error = unavailable[0]
            message = f"Projects API not available on this Bitbucket instance: {error}"
            logger.warning(message)
            warnings.warn(message, ProjectsUnavailableWarning, stacklevel=3)
        return orgs

    @retry_with_backoff()
    async def get_organization_repos(
        self,
        org_name: str,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """
        List repositories of a workspace (Cloud) or project (self-hosted).

        :param org_name: Workspace slug or project key.
        :param search: Name substring, sent as a ``q`` filter.
        :param options: Pagination options.
        :return: List of Repository objects.
        """
        if not org_name:
            raise ConfigurationException(
                "Bitbucket workspace or project name must not be empty"
            )

        try:
            if self.is_cloud:
                repos = await self._workspace_repos(org_name, search, options)
            else:
                repos = await self._project_repos(org_name, search, options)
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(repos)} repositories for {org_name}")
        return repos

    async def _project_repos(
        self,
        project_key: str,
        search: Optional[str],
        options: Optional[PaginationOptions],
    ) -> List[Repository]:
        fetch_page = self._page_fetcher(
            f"/projects/{quote(project_key, safe='')}/repos",
            {"q": search_query(search)},
        )
        try:
            return await self._collect(
                fetch_page,
                options,
                lambda data: repository_from_bitbucket(data, namespace=project_key),
            )
        except Exception as e:
            mapped = BITBUCKET_ERRORS.map(e)
            if not isinstance(mapped, NotFoundException):
                raise
            raise NotFoundException(
                f"Cannot access repositories for project '{project_key}'. "
                f"This might be a Bitbucket Cloud workspace or the project "
                f"might not exist.",
                cause=e,
                status=mapped.status,
            ) from e

    @retry_with_backoff()
    async def get_repo_branches(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List branch names of a repository.

        :param full_name: ``workspace/repo_slug``.
        :param options: Pagination options.
        :return: Branch names.
        """
        path = self._repo_path(full_name) + "/refs/branches"
        try:
            branches = await self._collect(
                self._page_fetcher(path, {}), options, lambda branch: branch["name"]
            )
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(branches)} branches for {full_name}")
        return branches

    @retry_with_backoff()
    async def get_repo_tags(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """
        List tag names of a repository, newest first.

        :param full_name: ``workspace/repo_slug``.
        :param options: Pagination options.
        :return: Tag names.
        """
        path = self._repo_path(full_name) + "/refs/tags"
        try:
            tags = await self._collect(
                self._page_fetcher(path, {"sort": "-target.date"}),
                options,
                lambda tag: tag["name"],
            )
        except Exception as e:
            self._handle_bitbucket_exception(e)

        logger.info(f"Retrieved {len(tags)} tags for {full_name}")
        return tags
