from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from ticket_manager.infrastructure.cache import InMemoryCacheManager
from ticket_manager.infrastructure.database import PSQLDb
from ticket_manager.infrastructure.storage import AttachmentStorage
from ticket_manager.tickets.application.dto import CreateTicketDTO
from ticket_manager.tickets.application.services import ManageTickets
from ticket_manager.tickets.domain import Ticket
from ticket_manager.tickets.infrastructure.providers import PostgreSQLTicketRepository


def make_ticket(ticket_id: int = 1, **overrides) -> Ticket:
    now = datetime(2024, 3, 2, 9, 15, tzinfo=timezone.utc)
    values = dict(
        ticket_id=ticket_id,
        creator_email="jane@example.com",
        title=f"Ticket {ticket_id}",
        description="Invoice total is wrong",
        priority="High",
        tag="Billing",
        ticket_status="Open",
        created_date=now,
        updated_date=now,
        assignee_email="billing@example.com",
    )
    values.update(overrides)
    return Ticket(**values)


def make_create_dto(title: str = "Invoice total is wrong", **overrides) -> CreateTicketDTO:
    values = dict(
        creator_email="jane@example.com",
        title=title,
        description="The March invoice double-counts the support plan.",
        assignee_email="billing@example.com",
    )
    values.update(overrides)
    return CreateTicketDTO(**values)


@pytest.fixture
def storage(tmp_path):
    return AttachmentStorage(tmp_path / "UploadedFiles", max_files=2)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tickets.db'}")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def repository(engine, storage):
    repository = PostgreSQLTicketRepository(engine, storage)
    await repository.apply_migrations()
    return repository


@pytest.fixture
def cache():
    return InMemoryCacheManager(default_ttl=60)


@pytest_asyncio.fixture
async def manager(engine, storage, cache):
    manager = ManageTickets(
        PSQLDb(database="tickets"),
        engine,
        cache,
        storage=storage,
        lazy_load_page_size=2,
    )
    await manager.start()
    try:
        yield manager
    finally:
        await manager.stop()
