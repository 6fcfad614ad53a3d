"""
models/paging.py
----------------
Pagination defaults, the paging-parameter sanitizer and the generic
page container returned by searches.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, TypeVar

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_PAGE: int = 1
DEFAULT_PAGE_SIZE: int = 20
MAX_PAGE_SIZE: int = 1_000_000


def sanitize(
    page: int,
    page_size: int,
    default_page: int = DEFAULT_PAGE,
    default_page_size: int = DEFAULT_PAGE_SIZE,
) -> tuple[int, int]:
    """
    Bring raw paging input into safe bounds.

    Non-positive values fall back to the defaults and page_size is capped
    at MAX_PAGE_SIZE. Never raises.

    Returns:
        (page, page_size)
    """
    if page <= 0:
        page = default_page
    if page_size <= 0:
        page_size = default_page_size
    if page_size > MAX_PAGE_SIZE:
        page_size = MAX_PAGE_SIZE
    return page, page_size


@dataclass
class PagedResult(Generic[T]):
    """
    One page of a larger ordered result set.

    Attributes:
        items: Rows of this page, in query order.
        total_count: Number of matching rows across all pages.
        page: 1-based page number.
        page_size: Maximum number of items per page.
    """
    items: list[T] = field(default_factory=list)
    total_count: int = 0
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @classmethod
    def from_items(
        cls,
        items: Iterable[T],
        page: int = DEFAULT_PAGE,
        page_size: int = DEFAULT_PAGE_SIZE,
        total_count: int = 0,
    ) -> "PagedResult[T]":
        """Build a page from any iterable, materializing it."""
        return cls(items=list(items), total_count=total_count, page=page, page_size=page_size)

    def map(self, func: Callable[[T], U]) -> "PagedResult[U]":
        """Return a new page with every item converted, keeping the paging metadata."""
        return PagedResult(
            items=[func(item) for item in self.items],
            total_count=self.total_count,
            page=self.page,
            page_size=self.page_size,
        )
