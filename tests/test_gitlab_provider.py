"""
Tests for the GitLab provider.
"""

from unittest.mock import Mock, patch

import pytest
from gitlab.exceptions import (
    GitlabAuthenticationError,
    GitlabGetError,
    GitlabListError,
)

from unigit.exceptions import (
    AuthenticationException,
    ConfigurationException,
    MalformedResponseException,
    NetworkException,
    NotFoundException,
    RateLimitException,
)
from unigit.gitlab import GitLabProvider, organization_from_gitlab, repository_from_gitlab
from unigit.models import BasicAuth, JobTokenAuth, OAuthAuth, PaginationOptions, TokenAuth


def gitlab_object(**attributes):
    """Mimic a python-gitlab REST object."""
    return Mock(attributes=attributes)


def project(name, namespace="group", **extra):
    attributes = {
        "id": sum(map(ord, f"{namespace}/{name}")),
        "name": name,
        "path_with_namespace": f"{namespace}/{name}",
        "description": "",
        "default_branch": "main",
        "visibility": "private",
        "web_url": f"https://gitlab.com/{namespace}/{name}",
        "ssh_url_to_repo": f"git@gitlab.com:{namespace}/{name}.git",
        "http_url_to_repo": f"https://gitlab.com/{namespace}/{name}.git",
    }
    attributes.update(extra)
    return gitlab_object(**attributes)


@pytest.fixture
def mock_client():
    """Return a mock python-gitlab client."""
    return Mock()


@pytest.fixture
def provider(token_auth, no_delay_policy, mock_client):
    """Return a GitLab provider with an injected client."""
    return GitLabProvider(token_auth, retry_policy=no_delay_policy, client=mock_client)


class TestConversion:
    """Tests for GitLab record conversion."""

    def test_repository_from_gitlab(self):
        """Test project conversion."""
        repo = repository_from_gitlab(
            project("api", namespace="acme/backend", description="API", visibility="public")
        )

        assert repo.name == "api"
        assert repo.full_name == "acme/backend/api"
        assert repo.description == "API"
        assert repo.is_private is False
        assert repo.web_url == "https://gitlab.com/acme/backend/api"
        assert repo.ssh_url == "git@gitlab.com:acme/backend/api.git"

    @pytest.mark.parametrize("visibility", ["private", "internal", None])
    def test_non_public_is_private(self, visibility):
        """Test anything but public visibility is private."""
        assert repository_from_gitlab(project("p", visibility=visibility)).is_private is True

    def test_plain_dict(self):
        """Test plain JSON dicts are accepted."""
        repo = repository_from_gitlab(
            {"id": 3, "name": "p", "path_with_namespace": "g/p", "default_branch": None}
        )

        assert repo.id == "3"
        assert repo.default_branch == "main"
        assert repo.description is None

    def test_organization_uses_full_path(self):
        """Test subgroups keep their full path as name."""
        org = organization_from_gitlab(
            gitlab_object(
                id=9,
                name="Backend",
                path="backend",
                full_path="acme/backend",
                description="",
                web_url="https://gitlab.com/groups/acme/backend",
            )
        )

        assert org.id == "9"
        assert org.name == "acme/backend"
        assert org.display_name == "Backend"
        assert org.description is None
        assert org.role == "member"


class TestClientConstruction:
    """Tests for lazy python-gitlab client construction."""

    @pytest.mark.parametrize(
        "auth,key",
        [
            (TokenAuth("abc"), "private_token"),
            (OAuthAuth("abc"), "oauth_token"),
            (JobTokenAuth("abc"), "job_token"),
        ],
    )
    def test_auth_kinds(self, auth, key):
        """Test each auth kind maps to its python-gitlab credential."""
        with patch("unigit.gitlab.Gitlab") as mock_gitlab:
            provider = GitLabProvider(auth)
            mock_gitlab.assert_not_called()
            provider.client

            kwargs = mock_gitlab.call_args.kwargs
            assert kwargs[key] == "abc"
            assert kwargs["url"] == "https://gitlab.com"
            assert kwargs["retry_transient_errors"] is False
            assert kwargs["timeout"] == 20.0
            assert kwargs["user_agent"] == "unigit-gitlab"

    def test_host(self, token_auth):
        """Test a self-managed host is used."""
        with patch("unigit.gitlab.Gitlab") as mock_gitlab:
            GitLabProvider(token_auth, host="https://git.example/").client
            assert mock_gitlab.call_args.kwargs["url"] == "https://git.example"

    def test_base_url_api_suffix(self, token_auth):
        """Test an API base URL is reduced to the instance URL."""
        with patch("unigit.gitlab.Gitlab") as mock_gitlab:
            GitLabProvider(token_auth, base_url="https://git.example/api/v4").client
            assert mock_gitlab.call_args.kwargs["url"] == "https://git.example"

    def test_host_takes_precedence(self, token_auth):
        """Test host wins over base_url."""
        provider = GitLabProvider(
            token_auth, host="https://a.example", base_url="https://b.example"
        )
        assert provider.host == "https://a.example"

    @pytest.mark.asyncio
    async def test_unsupported_auth(self, no_delay_policy):
        """Test unsupported auth kinds fail without retries."""
        with patch("unigit.gitlab.Gitlab") as mock_gitlab:
            provider = GitLabProvider(BasicAuth("u", "p"), retry_policy=no_delay_policy)

            with pytest.raises(ConfigurationException, match="Unsupported GitLab auth kind"):
                await provider.get_organizations()
            mock_gitlab.assert_not_called()


class TestGetRepoMetadata:
    """Tests for get_repo_metadata."""

    @pytest.mark.asyncio
    async def test_nested_namespace(self, provider, mock_client):
        """Test nested group paths are accepted."""
        mock_client.projects.get.return_value = project("api", namespace="acme/backend")

        repo = await provider.get_repo_metadata("acme/backend/api")

        assert repo.full_name == "acme/backend/api"
        mock_client.projects.get.assert_called_once_with("acme/backend/api")

    @pytest.mark.asyncio
    async def test_malformed_name(self, provider, mock_client):
        """Test malformed names fail before any API call."""
        with pytest.raises(ConfigurationException, match="Invalid GitLab repository name"):
            await provider.get_repo_metadata("no-namespace")
        mock_client.projects.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_found(self, provider, mock_client):
        """Test 404 maps to NotFoundException without retries."""
        error = GitlabGetError("404 Project Not Found", response_code=404)
        mock_client.projects.get.side_effect = error

        with pytest.raises(NotFoundException, match="GitLab resource not found") as exc_info:
            await provider.get_repo_metadata("group/missing")

        assert exc_info.value.cause is error
        assert mock_client.projects.get.call_count == 1

    @pytest.mark.asyncio
    async def test_authentication_error_without_code(self, provider, mock_client):
        """Test authentication errors without a status map to 401."""
        mock_client.projects.get.side_effect = GitlabAuthenticationError("invalid token")

        with pytest.raises(AuthenticationException) as exc_info:
            await provider.get_repo_metadata("group/project")

        assert exc_info.value.status == 401
        assert mock_client.projects.get.call_count == 1

    @pytest.mark.asyncio
    async def test_forbidden(self, provider, mock_client):
        """Test 403 maps to AuthenticationException."""
        mock_client.projects.get.side_effect = GitlabGetError("403 Forbidden", response_code=403)

        with pytest.raises(AuthenticationException, match="GitLab authorization failed"):
            await provider.get_repo_metadata("group/project")

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, provider, mock_client):
        """Test 429 is retried and finally raised."""
        mock_client.projects.get.side_effect = GitlabGetError(
            "429 Too Many Requests", response_code=429
        )

        with pytest.raises(RateLimitException):
            await provider.get_repo_metadata("group/project")
        assert mock_client.projects.get.call_count == 4

    @pytest.mark.asyncio
    async def test_server_error_then_success(self, provider, mock_client):
        """Test 5xx failures are retried."""
        mock_client.projects.get.side_effect = [
            GitlabGetError("503 Service Unavailable", response_code=503),
            project("p"),
        ]

        repo = await provider.get_repo_metadata("group/p")

        assert repo.name == "p"
        assert mock_client.projects.get.call_count == 2


class TestGetUserRepos:
    """Tests for get_user_repos."""

    @pytest.mark.asyncio
    async def test_short_page_ends_pagination(self, provider, mock_client):
        """Test a page shorter than per_page is the last one."""
        mock_client.projects.list.side_effect = [
            [project("a"), project("b")],
            [project("c")],
        ]

        repos = await provider.get_user_repos(options=PaginationOptions(per_page=2))

        assert [r.name for r in repos] == ["a", "b", "c"]
        first, second = mock_client.projects.list.call_args_list
        assert first.kwargs == {
            "page": 1,
            "per_page": 2,
            "get_all": False,
            "membership": True,
            "order_by": "updated_at",
            "sort": "desc",
        }
        assert second.kwargs["page"] == 2

    @pytest.mark.asyncio
    async def test_empty_page_ends_pagination(self, provider, mock_client):
        """Test an empty page after a full one ends pagination."""
        mock_client.projects.list.side_effect = [[project("a"), project("b")], []]

        repos = await provider.get_user_repos(options=PaginationOptions(per_page=2))

        assert len(repos) == 2
        assert mock_client.projects.list.call_count == 2

    @pytest.mark.asyncio
    async def test_search_is_server_side(self, provider, mock_client):
        """Test search is passed to the API."""
        mock_client.projects.list.return_value = [project("api")]

        await provider.get_user_repos(search="api")

        assert mock_client.projects.list.call_args.kwargs["search"] == "api"

    @pytest.mark.asyncio
    async def test_max_items(self, provider, mock_client):
        """Test pages of 100/100/37 with max_items=150 stop after two fetches."""
        pages = [
            [project(f"p{i}") for i in range(100)],
            [project(f"q{i}") for i in range(100)],
            [project(f"r{i}") for i in range(37)],
        ]
        mock_client.projects.list.side_effect = pages

        repos = await provider.get_user_repos(options=PaginationOptions(max_items=150))

        assert len(repos) == 150
        assert mock_client.projects.list.call_count == 2

    @pytest.mark.asyncio
    async def test_list_error(self, provider, mock_client):
        """Test list failures are mapped."""
        mock_client.projects.list.side_effect = GitlabListError(
            "401 Unauthorized", response_code=401
        )

        with pytest.raises(AuthenticationException, match="GitLab authentication failed"):
            await provider.get_user_repos()


class TestGetOrganizations:
    """Tests for get_organizations."""

    @pytest.mark.asyncio
    async def test_success(self, provider, mock_client):
        """Test group listing."""
        mock_client.groups.list.return_value = [
            gitlab_object(id=1, name="Acme", path="acme", full_path="acme")
        ]

        orgs = await provider.get_organizations()

        assert [o.name for o in orgs] == ["acme"]
        kwargs = mock_client.groups.list.call_args.kwargs
        assert kwargs["min_access_level"] == 10
        assert kwargs["order_by"] == "name"
        assert kwargs["sort"] == "asc"

    @pytest.mark.asyncio
    async def test_transport_error(self, provider, mock_client):
        """Test errors without a status become NetworkException after retries."""
        mock_client.groups.list.side_effect = ConnectionError("connection refused")

        with pytest.raises(NetworkException, match="GitLab request failed"):
            await provider.get_organizations()
        assert mock_client.groups.list.call_count == 4


class TestGetOrganizationRepos:
    """Tests for get_organization_repos."""

    @pytest.mark.asyncio
    async def test_success(self, provider, mock_client):
        """Test listing the projects of a group."""
        group = mock_client.groups.get.return_value
        group.projects.list.return_value = [project("svc", namespace="acme")]

        repos = await provider.get_organization_repos("acme", search="svc")

        assert repos[0].full_name == "acme/svc"
        mock_client.groups.get.assert_called_with("acme", lazy=True)
        kwargs = group.projects.list.call_args.kwargs
        assert kwargs["search"] == "svc"
        assert kwargs["order_by"] == "updated_at"

    @pytest.mark.asyncio
    async def test_empty_name(self, provider, mock_client):
        """Test an empty group name is rejected."""
        with pytest.raises(ConfigurationException):
            await provider.get_organization_repos("")
        mock_client.groups.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_group_not_found(self, provider, mock_client):
        """Test unknown groups map to NotFoundException."""
        group = mock_client.groups.get.return_value
        group.projects.list.side_effect = GitlabListError(
            "404 Group Not Found", response_code=404
        )

        with pytest.raises(NotFoundException):
            await provider.get_organization_repos("nope")


class TestBranchesAndTags:
    """Tests for get_repo_branches and get_repo_tags."""

    @pytest.mark.asyncio
    async def test_branches(self, provider, mock_client):
        """Test branch names."""
        lazy_project = mock_client.projects.get.return_value
        lazy_project.branches.list.return_value = [
            gitlab_object(name="main"),
            gitlab_object(name="feature/x"),
        ]

        branches = await provider.get_repo_branches("group/project")

        assert branches == ["main", "feature/x"]
        mock_client.projects.get.assert_called_once_with("group/project", lazy=True)

    @pytest.mark.asyncio
    async def test_tags_ordering(self, provider, mock_client):
        """Test tags are requested most recently updated first."""
        lazy_project = mock_client.projects.get.return_value
        lazy_project.tags.list.return_value = [gitlab_object(name="v2"), gitlab_object(name="v1")]

        assert await provider.get_repo_tags("group/project") == ["v2", "v1"]
        kwargs = lazy_project.tags.list.call_args.kwargs
        assert kwargs["order_by"] == "updated"
        assert kwargs["sort"] == "desc"

    @pytest.mark.asyncio
    async def test_malformed_name(self, provider, mock_client):
        """Test malformed names fail before any API call."""
        with pytest.raises(ConfigurationException):
            await provider.get_repo_tags("project-only")
        mock_client.projects.get.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("refs", ["branches", "tags"])
    @pytest.mark.parametrize(
        "status,exc_type,calls",
        [
            (404, NotFoundException, 1),
            (401, AuthenticationException, 1),
            (403, AuthenticationException, 1),
            (429, RateLimitException, 4),
            (500, NetworkException, 4),
            (502, NetworkException, 4),
        ],
    )
    async def test_error_mapping(
        self, provider, mock_client, refs, status, exc_type, calls
    ):
        """Test statuses map onto the exception taxonomy for refs."""
        list_refs = getattr(mock_client.projects.get.return_value, refs).list
        list_refs.side_effect = GitlabListError(f"{status} failed", response_code=status)

        with pytest.raises(exc_type) as exc_info:
            await getattr(provider, f"get_repo_{refs}")("group/project")

        assert exc_info.value.status == status
        assert list_refs.call_count == calls


class TestErrorMapping:
    """Tests for GitLab-specific status extraction."""

    @pytest.mark.asyncio
    async def test_authentication_error_wins_over_message(self, provider, mock_client):
        """Test a code-less authentication error is 401 whatever its message says."""
        mock_client.projects.get.side_effect = GitlabAuthenticationError(
            "404 Not Found: token scope"
        )

        with pytest.raises(AuthenticationException) as exc_info:
            await provider.get_repo_metadata("group/project")

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_malformed_project_is_not_retried(self, provider, mock_client):
        """Test a project without a path fails once with a typed error."""
        mock_client.projects.get.return_value = gitlab_object(id=1, name="p")

        with pytest.raises(
            MalformedResponseException, match="GitLab returned an unexpected record"
        ):
            await provider.get_repo_metadata("group/p")

        assert mock_client.projects.get.call_count == 1

    @pytest.mark.asyncio
    async def test_malformed_list_entry_is_not_retried(self, provider, mock_client):
        """Test a branch without a name fails once with a typed error."""
        list_branches = mock_client.projects.get.return_value.branches.list
        list_branches.return_value = [gitlab_object(name="main"), gitlab_object(commit={})]

        with pytest.raises(MalformedResponseException):
            await provider.get_repo_branches("group/project")

        assert list_branches.call_count == 1
