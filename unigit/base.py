"""
Base class for all Git hosting providers.
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, TypeVar

from unigit.config import ProviderOptions
from unigit.models import Organization, PaginationOptions, Repository
from unigit.utils.helpers import ClientCell
from unigit.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitProvider(ABC):
    """
    Common async interface implemented by every platform adapter.

    Each operation is retried with ``retry_policy`` and reports failures as
    ``ProviderException`` subclasses. The vendor client is created on first
    use and reused until ``close()``.
    """

    platform: str = ""
    default_per_page: int = 100
    max_per_page: int = 100

    def __init__(
        self,
        options: Optional[ProviderOptions] = None,
        retry_policy: Optional[RetryPolicy] = None,
        client: Any = None,
    ):
        """
        :param options: Common provider options.
        :param retry_policy: Retry settings for every operation.
        :param client: Pre-built vendor client. Skips lazy construction.
        """
        self.opts = options or ProviderOptions()
        self.retry_policy = retry_policy or RetryPolicy()
        self._client_cell: ClientCell[Any] = ClientCell(self._create_client)
        if client is not None:
            self._client_cell.set(client)

    @property
    def client(self) -> Any:
        """The vendor client, built on first access."""
        return self._client_cell.get()

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the vendor client from the configured auth."""

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking SDK call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    @abstractmethod
    async def get_repo_metadata(self, full_name: str) -> Repository:
        """
        Get metadata for a single repository.

        :param full_name: Namespace-qualified name, e.g. ``owner/repo``.
        """

    @abstractmethod
    async def get_user_repos(
        self,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """List repositories visible to the authenticated identity."""

    @abstractmethod
    async def get_organizations(
        self,
        options: Optional[PaginationOptions] = None,
    ) -> List[Organization]:
        """List organizations, groups or workspaces the identity belongs to."""

    @abstractmethod
    async def get_organization_repos(
        self,
        org_name: str,
        search: Optional[str] = None,
        options: Optional[PaginationOptions] = None,
    ) -> List[Repository]:
        """List repositories of one organization, group, workspace or project."""

    @abstractmethod
    async def get_repo_branches(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """List branch names of a repository."""

    @abstractmethod
    async def get_repo_tags(
        self,
        full_name: str,
        options: Optional[PaginationOptions] = None,
    ) -> List[str]:
        """List tag names of a repository."""

    def close(self) -> None:
        """Release the vendor client. The next call builds a fresh one."""
        client = self._client_cell.reset()
        close = getattr(client, "close", None)
        if callable(close):
            close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
