"""
Lazy Pagination
===============

Cursor-style batch loading: ``DataService`` fetches one window starting at an
offset, ``LazyLoadManager`` keeps the cursor between calls.
"""

from typing import Awaitable, Callable, Generic, List, TypeVar

from ticket_manager.core.exceptions import ValidationException
from ticket_manager.tickets.domain import LazyLoad

T = TypeVar("T")

FetchFunc = Callable[[int, int], Awaitable[List[T]]]


class DataService(Generic[T]):
    """Loads fixed-size windows through ``fetch_data_func(from_index, page_size)``."""

    def __init__(self, page_size: int, fetch_data_func: FetchFunc):
        if page_size <= 0:
            raise ValidationException("Page size must be greater than zero.")
        self.page_size = page_size
        self._fetch = fetch_data_func

    async def load_data(self, from_index: int) -> LazyLoad[T]:
        items = list(await self._fetch(from_index, self.page_size))
        return LazyLoad(
            result=items,
            # A full window means there may be more behind it
            has_more_records=len(items) >= self.page_size,
            next_from=from_index + len(items),
        )


class LazyLoadManager(Generic[T]):
    """
    Keeps the cursor of a ``DataService``.

    Each ``load_next_batch`` call replaces ``current_items`` with the next
    window. Once the source is exhausted the last batch is returned again
    without another fetch.
    """

    def __init__(self, data_service: DataService[T]):
        self._data_service = data_service
        self._current = LazyLoad(result=[], has_more_records=True, next_from=0)

    @property
    def current_items(self) -> List[T]:
        return self._current.result

    @property
    def has_more_items(self) -> bool:
        return self._current.has_more_records

    @property
    def next_from(self) -> int:
        return self._current.next_from

    async def load_next_batch(self) -> List[T]:
        if not self._current.has_more_records:
            return self._current.result
        self._current = await self._data_service.load_data(self._current.next_from)
        return self._current.result

    def reset(self) -> None:
        self._current = LazyLoad(result=[], has_more_records=True, next_from=0)
