"""
Page-by-page accumulation with a uniform item cap.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from unigit.models import PaginationOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page:
    """
    One page of raw items.

    :param items: Raw records from the platform.
    :param next_cursor: Page number or URL of the next page. ``None`` when the
        platform signals there is no further page.
    """

    items: List[Any] = field(default_factory=list)
    next_cursor: Any = None


FetchPage = Callable[[Any, int], Awaitable[Page]]


class AsyncPaginationHandler(Generic[T]):
    """
    Drive a paginated list endpoint until it runs dry or the cap is reached.

    Pages are requested strictly one after the other, since most platforms
    need the previous page's cursor to ask for the next one.
    """

    def __init__(
        self,
        options: Optional[PaginationOptions] = None,
        default_per_page: int = 100,
        max_per_page: int = 100,
    ):
        """
        :param options: Caller's pagination options.
        :param default_per_page: Page size used when the caller gives none.
        :param max_per_page: Platform maximum page size.
        """
        options = options or PaginationOptions()
        requested = options.per_page or default_per_page
        self.per_page = max(1, min(requested, max_per_page))
        self.max_items = options.max_items

    def _is_full(self, results: List[T]) -> bool:
        return self.max_items is not None and len(results) >= self.max_items

    async def collect(
        self,
        fetch_page: FetchPage,
        transform: Optional[Callable[[Any], T]] = None,
        include: Optional[Callable[[T], bool]] = None,
        start: Any = 1,
    ) -> List[T]:
        """
        Fetch pages and accumulate transformed items.

        :param fetch_page: ``await fetch_page(cursor, per_page)`` returning a ``Page``.
        :param transform: Maps each raw item to its unified entity.
        :param include: Optional filter applied after ``transform``.
        :param start: Initial cursor, a page number or a URL.
        :return: At most ``max_items`` entities.
        """
        results: List[T] = []
        cursor = start
        pages = 0

        while not self._is_full(results):
            page = await fetch_page(cursor, self.per_page)
            pages += 1

            if not page.items:
                break

            for raw in page.items:
                if self._is_full(results):
                    break
                item = transform(raw) if transform else raw
                if include is not None and not include(item):
                    continue
                results.append(item)

            logger.debug(
                f"Page {pages}: {len(page.items)} items, {len(results)} accumulated"
            )

            if page.next_cursor is None:
                break
            cursor = page.next_cursor

        return results
