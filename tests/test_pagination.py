import pytest

from ticket_manager.core.exceptions import ValidationException
from ticket_manager.tickets.application.pagination import DataService, LazyLoadManager


def _source(items):
    calls = []

    async def fetch(from_index, page_size):
        calls.append((from_index, page_size))
        return items[from_index:from_index + page_size]

    return fetch, calls


def test_data_service_rejects_non_positive_page_size():
    fetch, _ = _source([])

    with pytest.raises(ValidationException):
        DataService(0, fetch)


@pytest.mark.asyncio
async def test_load_data_reports_cursor():
    fetch, calls = _source(list(range(5)))
    service = DataService(2, fetch)

    batch = await service.load_data(2)

    assert batch.result == [2, 3]
    assert batch.has_more_records is True
    assert batch.next_from == 4
    assert calls == [(2, 2)]


@pytest.mark.asyncio
async def test_load_data_short_window_is_last():
    fetch, _ = _source(list(range(5)))

    batch = await DataService(2, fetch).load_data(4)

    assert batch.result == [4]
    assert batch.has_more_records is False
    assert batch.next_from == 5


@pytest.mark.asyncio
async def test_lazy_load_manager_stops_fetching_when_exhausted():
    fetch, calls = _source(list(range(3)))
    manager = LazyLoadManager(DataService(2, fetch))

    assert manager.has_more_items is True
    assert await manager.load_next_batch() == [0, 1]
    assert await manager.load_next_batch() == [2]
    assert manager.has_more_items is False
    assert await manager.load_next_batch() == [2]
    assert calls == [(0, 2), (2, 2)]


@pytest.mark.asyncio
async def test_lazy_load_manager_exact_multiple_needs_one_empty_fetch():
    fetch, calls = _source(list(range(4)))
    manager = LazyLoadManager(DataService(2, fetch))

    await manager.load_next_batch()
    await manager.load_next_batch()
    assert manager.has_more_items is True

    assert await manager.load_next_batch() == []
    assert manager.has_more_items is False
    assert manager.next_from == 4
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_lazy_load_manager_reset_starts_over():
    fetch, _ = _source(list(range(3)))
    manager = LazyLoadManager(DataService(2, fetch))
    await manager.load_next_batch()

    manager.reset()

    assert manager.current_items == []
    assert manager.next_from == 0
    assert await manager.load_next_batch() == [0, 1]
