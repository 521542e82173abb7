import math
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

@dataclass(frozen=True)
class PagedResult(Generic[T]):
    """One window of a filtered, sorted result set.

    ``total_count`` always describes the filtered set before windowing, so a
    page past the end still reports how many records matched.
    """
    items: Sequence[T]
    total_count: int
    page: int
    page_size: int

    @property
    def is_first_page(self) -> bool:
        return self.page == 1

    @property
    def is_last_page(self) -> bool:
        return self.page * self.page_size >= self.total_count

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    def map(self, fn: Callable[[T], R]) -> "PagedResult[R]":
        return PagedResult([fn(i) for i in self.items], self.total_count, self.page, self.page_size)

def page_window(page: int, page_size: int) -> tuple[int, int]:
    """(offset, limit) for the half-open range [(page-1)*size, page*size)."""
    return (page - 1) * page_size, page_size

