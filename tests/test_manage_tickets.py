from dataclasses import dataclass
from enum import Enum
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from conftest import make_create_dto
from ticket_manager.config import Settings
from ticket_manager.core.exceptions import (
    ConfigurationException,
    ContextNotInitializedException,
    ValidationException,
)
from ticket_manager.infrastructure.cache import InMemoryCacheManager
from ticket_manager.infrastructure.database import DatabaseConfig, MySQLDb, PSQLDb, SQLDb
from ticket_manager.infrastructure.storage import AttachmentFile
from ticket_manager.tickets.application.dto import UpdateTitleDTO
from ticket_manager.tickets.application.services import ManageTickets, create_ticket_manager
from ticket_manager.tickets.infrastructure.providers import (
    MySQLTicketRepository,
    PostgreSQLTicketRepository,
    SQLServerTicketRepository,
)


@dataclass
class OracleDb(DatabaseConfig):
    drivername = "oracle+oracledb"


class Severity(str, Enum):
    MINOR = "Minor"
    MAJOR = "Major"


class EmptyEnum(Enum):
    pass


@pytest.fixture
def idle_engine():
    return create_async_engine("sqlite+aiosqlite://")


# ========== Provider selection ==========

@pytest.mark.parametrize(
    "config, provider_type",
    [
        (PSQLDb(), PostgreSQLTicketRepository),
        (MySQLDb(), MySQLTicketRepository),
        (SQLDb(), SQLServerTicketRepository),
    ],
)
def test_provider_is_selected_by_config_type(idle_engine, config, provider_type):
    manager = ManageTickets(config, idle_engine, InMemoryCacheManager())

    assert isinstance(manager.provider, provider_type)


def test_unsupported_config_type_is_rejected(idle_engine):
    with pytest.raises(ConfigurationException, match="Unsupported database type."):
        ManageTickets(OracleDb(), idle_engine, InMemoryCacheManager())


def test_empty_enumeration_is_rejected(idle_engine):
    with pytest.raises(ConfigurationException, match="has no values"):
        ManageTickets(PSQLDb(), idle_engine, InMemoryCacheManager(), status_enum=EmptyEnum)


# ========== Context ==========

@pytest.mark.asyncio
async def test_operations_require_started_context(engine, storage):
    manager = ManageTickets(PSQLDb(), engine, InMemoryCacheManager(), storage=storage)

    assert manager.is_context_created is False
    with pytest.raises(ContextNotInitializedException):
        await manager.get_number_of_tickets()


@pytest.mark.asyncio
async def test_start_without_migrations_fails_on_empty_database(engine, storage):
    manager = ManageTickets(
        PSQLDb(), engine, InMemoryCacheManager(), storage=storage, apply_migrations_automatically=False
    )

    with pytest.raises(ContextNotInitializedException):
        await manager.start()

    assert manager.is_context_created is False


@pytest.mark.asyncio
async def test_start_applies_migrations(manager):
    assert manager.is_context_created is True
    assert await manager.get_number_of_tickets() == 0


# ========== Caching ==========

@pytest.mark.asyncio
async def test_get_ticket_by_id_is_served_from_cache(manager, cache):
    ticket = await manager.create_ticket(make_create_dto())
    first = await manager.get_ticket_by_id(ticket.ticket_id)

    manager.provider.get_ticket_by_id = AsyncMock()
    second = await manager.get_ticket_by_id(ticket.ticket_id)

    assert second == first
    manager.provider.get_ticket_by_id.assert_not_awaited()
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_missing_ticket_is_not_cached(manager, cache):
    assert await manager.get_ticket_by_id(404) is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_update_invalidates_cached_ticket_and_lists(manager, cache):
    ticket = await manager.create_ticket(make_create_dto(title="Before"))
    await manager.get_ticket_by_id(ticket.ticket_id)
    await manager.get_tickets_by_status("Open")
    await manager.search_tickets("before")
    assert len(cache) == 3

    await manager.update_ticket_title(ticket.ticket_id, UpdateTitleDTO(title="After"))

    assert len(cache) == 0
    assert (await manager.get_ticket_by_id(ticket.ticket_id)).title == "After"
    assert (await manager.search_tickets("before")).total_count == 0


@pytest.mark.asyncio
async def test_cached_search_keys_include_paging(manager):
    for i in range(3):
        await manager.create_ticket(make_create_dto(title=f"Paged ticket {i}"))

    first = await manager.search_tickets("paged", page_number=1, page_size=2)
    second = await manager.search_tickets("paged", page_number=2, page_size=2)

    assert [t.title for t in first.tickets] == ["Paged ticket 0", "Paged ticket 1"]
    assert [t.title for t in second.tickets] == ["Paged ticket 2"]


@pytest.mark.asyncio
async def test_cached_searches_with_colons_do_not_collide(manager):
    await manager.create_ticket(make_create_dto(title="alpha one"))
    await manager.create_ticket(make_create_dto(title="alpha:closed other"))

    broad = await manager.search_tickets("alpha", status="closed:x")
    narrow = await manager.search_tickets("alpha:closed", status="x")

    assert broad.total_count == 2
    assert narrow.total_count == 1
    assert [t.title for t in narrow.tickets] == ["alpha:closed other"]


@pytest.mark.asyncio
async def test_delete_ticket_invalidates_cache(manager):
    ticket = await manager.create_ticket(make_create_dto(), [AttachmentFile("a.txt", b"first")])
    assert await manager.get_ticket_by_id(ticket.ticket_id) is not None

    await manager.delete_ticket(ticket.ticket_id)

    assert await manager.get_ticket_by_id(ticket.ticket_id) is None
    assert await manager.get_number_of_tickets_by_tag("Billing") == 0


# ========== Lazy loading ==========

@pytest.mark.asyncio
async def test_load_next_batch_walks_through_tickets(manager):
    for i in range(3):
        await manager.create_ticket(make_create_dto(title=f"Lazy ticket {i}"))

    first = await manager.load_next_batch()
    second = await manager.load_next_batch()

    assert [t.title for t in first] == ["Lazy ticket 0", "Lazy ticket 1"]
    assert [t.title for t in second] == ["Lazy ticket 2"]
    assert manager.has_more_tickets is False
    assert await manager.load_next_batch() == second

    manager.reset_lazy_loading()
    assert manager.has_more_tickets is True
    assert manager.current_tickets == []


# ========== Custom enumerations ==========

@pytest.mark.asyncio
async def test_custom_priority_enumeration(engine, storage):
    manager = ManageTickets(PSQLDb(), engine, InMemoryCacheManager(), storage=storage, priority_enum=Severity)
    await manager.start()
    try:
        ticket = await manager.create_ticket(make_create_dto())
        assert ticket.priority == "Minor"

        updated = await manager.update_ticket_priority(ticket.ticket_id, "major")
        assert updated.priority == "Major"

        with pytest.raises(ValidationException):
            await manager.update_ticket_priority(ticket.ticket_id, "High")
    finally:
        await manager.stop()


# ========== Wiring ==========

def test_create_ticket_manager_uses_settings(idle_engine, storage):
    settings = Settings(database_provider="mysql", lazy_load_page_size=5, cache_namespace="Tests")

    manager = create_ticket_manager(settings, engine=idle_engine, storage=storage)

    assert isinstance(manager.config, MySQLDb)
    assert isinstance(manager.provider, MySQLTicketRepository)
    assert manager.provider.storage is storage
